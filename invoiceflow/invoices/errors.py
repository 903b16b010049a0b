"""Typed failures of the ingestion pipeline and the invoice read side.

Every ingestion failure is terminal for the current attempt; ``retryable``
tells the caller whether re-submitting the same upload can succeed.
"""

from datetime import date


class IngestionError(Exception):
    """Base class for ingestion failures."""

    code = "ingestion_error"
    retryable = False


class EmptyUpload(IngestionError):
    code = "empty_upload"


class ExtractionFailed(IngestionError):
    code = "extraction_failed"
    retryable = True


class ExtractionTimedOut(IngestionError):
    code = "extraction_timed_out"
    retryable = True


class NotAnInvoice(IngestionError):
    code = "not_an_invoice"


class DocumentUnreadable(IngestionError):
    code = "document_unreadable"


class WorkspaceNotFound(IngestionError):
    code = "workspace_not_found"

    def __init__(self, workspace_id: str) -> None:
        super().__init__(f"Workspace '{workspace_id}' does not exist")
        self.workspace_id = workspace_id


class DuplicateInvoice(IngestionError):
    """The workspace already holds this invoice.

    Carries either the vendor-issued ``invoice_id`` or the fingerprint inputs,
    whichever key detected the conflict.
    """

    code = "duplicate_invoice"

    def __init__(
        self,
        invoice_id: str | None = None,
        fingerprint: str | None = None,
        vendor_name: str | None = None,
        invoice_date: date | None = None,
        invoice_total: float | None = None,
        existing_id: str | None = None,
    ) -> None:
        self.invoice_id = invoice_id
        self.fingerprint = fingerprint
        self.vendor_name = vendor_name
        self.invoice_date = invoice_date
        self.invoice_total = invoice_total
        self.existing_id = existing_id
        if invoice_id is not None:
            message = f"An invoice with ID '{invoice_id}' already exists"
        else:
            message = (
                f"An invoice from '{vendor_name}' for the same amount and date already exists"
            )
        super().__init__(message)


class ArchivalFailed(IngestionError):
    code = "archival_failed"
    retryable = True


class PersistenceFailed(IngestionError):
    code = "persistence_failed"
    retryable = True


class InvoiceNotFound(Exception):
    """No invoice with this id in the workspace."""

    code = "invoice_not_found"

    def __init__(self, workspace_id: str, invoice_id: str) -> None:
        super().__init__(f"Invoice '{invoice_id}' not found in workspace '{workspace_id}'")
        self.workspace_id = workspace_id
        self.invoice_id = invoice_id


class InvalidCategory(Exception):
    """Category is neither a workspace category nor the uncategorized sentinel."""

    code = "invalid_category"
