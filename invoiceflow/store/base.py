"""Store interfaces consumed by the pipeline and the invoice service.

Concrete stores: ``invoiceflow.store.mongo`` (MongoDB via motor) and
``invoiceflow.store.memory`` (process-local, for tests and development).
"""

from typing import Protocol

from invoiceflow.invoices.models import (
    CorrectionLog,
    NormalizedInvoice,
    WorkspaceCategoryConfig,
)


class StoreError(Exception):
    """Infrastructure failure inside a store."""


class DuplicateKeyViolation(StoreError):
    """Insert rejected by a uniqueness constraint on a natural key."""

    def __init__(self, key: str, message: str = "") -> None:
        super().__init__(message or f"Unique constraint violated on {key}")
        self.key = key


class InvoiceStore(Protocol):
    """Invoice persistence, always scoped by workspace."""

    async def find_by_invoice_id(
        self, workspace_id: str, invoice_id: str
    ) -> NormalizedInvoice | None: ...

    async def find_by_fingerprint(
        self, workspace_id: str, fingerprint: str
    ) -> NormalizedInvoice | None: ...

    async def get(self, workspace_id: str, id: str) -> NormalizedInvoice | None: ...

    async def insert(self, invoice: NormalizedInvoice) -> NormalizedInvoice:
        """Insert a new invoice.

        Raises:
            DuplicateKeyViolation: If invoiceId or fingerprint already exists
            StoreError: On any other storage failure
        """
        ...

    async def replace(self, invoice: NormalizedInvoice) -> None:
        """Overwrite an existing invoice (same workspace and id).

        Raises:
            DuplicateKeyViolation: If another invoice already has the new invoiceId or fingerprint
            StoreError: If the invoice does not exist, or on any other storage failure
        """
        ...

    async def list_for_workspace(self, workspace_id: str) -> list[NormalizedInvoice]:
        """All invoices of a workspace, newest upload first."""
        ...

    async def add_correction(self, correction: CorrectionLog) -> None: ...


class WorkspaceStore(Protocol):
    """Read access to workspace category settings."""

    async def get_categories(self, workspace_id: str) -> WorkspaceCategoryConfig | None: ...
