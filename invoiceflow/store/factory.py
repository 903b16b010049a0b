"""Store wiring for process entry points."""

import logging

from invoiceflow.shared.config import Settings
from invoiceflow.store.base import InvoiceStore, WorkspaceStore
from invoiceflow.store.memory import InMemoryInvoiceStore, InMemoryWorkspaceStore
from invoiceflow.store.mongo import MongoDatabase

logger = logging.getLogger(__name__)


class Stores:
    """Invoice and workspace stores sharing one backend connection."""

    def __init__(
        self,
        invoices: InvoiceStore,
        workspaces: WorkspaceStore,
        database: MongoDatabase | None = None,
    ) -> None:
        self.invoices = invoices
        self.workspaces = workspaces
        self.database = database

    async def open(self) -> None:
        """Prepare the backend (indexes) before serving."""
        if self.database is not None and self.database.invoices is not None:
            await self.database.invoices.ensure_indexes()
            logger.info("Invoice indexes ensured")

    async def is_ready(self) -> bool:
        """True if the backend can serve requests."""
        if self.database is None:
            return True
        return await self.database.ping()

    def close(self) -> None:
        if self.database is not None:
            self.database.close()


def create_stores(settings: Settings) -> Stores:
    """Create the stores selected by ``settings.store_backend``.

    Args:
        settings: Application settings

    Returns:
        Stores for invoices and workspace categories
    """
    if settings.store_backend == "memory":
        logger.warning("Using in-memory stores; data is lost on restart")
        return Stores(InMemoryInvoiceStore(), InMemoryWorkspaceStore())

    database = MongoDatabase(settings)
    database.connect()
    assert database.invoices is not None and database.workspaces is not None
    return Stores(database.invoices, database.workspaces, database)
