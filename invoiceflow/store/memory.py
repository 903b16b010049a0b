"""Process-local stores for tests and single-process development.

Uniqueness of invoice numbers and fingerprints is checked and applied in the
same step without awaiting in between, so concurrent ingestions on one event
loop cannot both insert the same key.
"""

from invoiceflow.invoices.models import (
    CorrectionLog,
    NormalizedInvoice,
    WorkspaceCategoryConfig,
)
from invoiceflow.store.base import DuplicateKeyViolation, StoreError


class InMemoryInvoiceStore:
    """Invoice store backed by dictionaries, partitioned by workspace."""

    def __init__(self) -> None:
        self._invoices: dict[str, dict[str, NormalizedInvoice]] = {}
        self.corrections: list[CorrectionLog] = []

    def _partition(self, workspace_id: str) -> dict[str, NormalizedInvoice]:
        return self._invoices.setdefault(workspace_id, {})

    async def find_by_invoice_id(
        self, workspace_id: str, invoice_id: str
    ) -> NormalizedInvoice | None:
        for invoice in self._partition(workspace_id).values():
            if invoice.invoice_id == invoice_id:
                return invoice.model_copy(deep=True)
        return None

    async def find_by_fingerprint(
        self, workspace_id: str, fingerprint: str
    ) -> NormalizedInvoice | None:
        for invoice in self._partition(workspace_id).values():
            if invoice.fingerprint == fingerprint:
                return invoice.model_copy(deep=True)
        return None

    async def get(self, workspace_id: str, id: str) -> NormalizedInvoice | None:
        invoice = self._partition(workspace_id).get(id)
        return invoice.model_copy(deep=True) if invoice else None

    async def insert(self, invoice: NormalizedInvoice) -> NormalizedInvoice:
        partition = self._partition(invoice.workspace_id)
        if invoice.id in partition:
            raise StoreError(f"Invoice {invoice.id} already stored")

        self._check_unique(partition, invoice)
        partition[invoice.id] = invoice.model_copy(deep=True)
        return invoice

    async def replace(self, invoice: NormalizedInvoice) -> None:
        partition = self._partition(invoice.workspace_id)
        if invoice.id not in partition:
            raise StoreError(f"Invoice {invoice.id} not found")
        self._check_unique(partition, invoice)
        partition[invoice.id] = invoice.model_copy(deep=True)

    @staticmethod
    def _check_unique(
        partition: dict[str, NormalizedInvoice], invoice: NormalizedInvoice
    ) -> None:
        for existing in partition.values():
            if existing.id == invoice.id:
                continue
            if invoice.invoice_id is not None and existing.invoice_id == invoice.invoice_id:
                raise DuplicateKeyViolation("invoiceId")
            if invoice.fingerprint is not None and existing.fingerprint == invoice.fingerprint:
                raise DuplicateKeyViolation("fingerprint")

    async def list_for_workspace(self, workspace_id: str) -> list[NormalizedInvoice]:
        invoices = sorted(
            self._partition(workspace_id).values(),
            key=lambda invoice: invoice.uploaded_at,
            reverse=True,
        )
        return [invoice.model_copy(deep=True) for invoice in invoices]

    async def add_correction(self, correction: CorrectionLog) -> None:
        self.corrections.append(correction)


class InMemoryWorkspaceStore:
    """Workspace category settings held in a dictionary."""

    def __init__(self, configs: list[WorkspaceCategoryConfig] | None = None) -> None:
        self._configs = {config.id: config for config in configs or []}

    def put(self, config: WorkspaceCategoryConfig) -> None:
        self._configs[config.id] = config

    async def get_categories(self, workspace_id: str) -> WorkspaceCategoryConfig | None:
        return self._configs.get(workspace_id)
