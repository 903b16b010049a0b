"""MongoDB stores using motor.

Invoices are stored as camelCase documents with ``_id`` set to the invoice id.
Unique partial indexes on ``(workspaceId, invoiceId)`` and
``(workspaceId, fingerprint)`` make duplicate inserts fail atomically, closing
the window between the duplicate check and the insert.
"""

import logging
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from invoiceflow.invoices.models import (
    CorrectionLog,
    NormalizedInvoice,
    WorkspaceCategoryConfig,
)
from invoiceflow.shared.config import Settings
from invoiceflow.store.base import DuplicateKeyViolation, StoreError

logger = logging.getLogger(__name__)

INVOICE_ID_INDEX = "workspace_invoice_id_unique"
FINGERPRINT_INDEX = "workspace_fingerprint_unique"


def _duplicate_key_violation(error: DuplicateKeyError) -> DuplicateKeyViolation:
    key = "fingerprint" if FINGERPRINT_INDEX in str(error) else "invoiceId"
    return DuplicateKeyViolation(key, str(error))


class MongoInvoiceStore:
    """Invoice store on a MongoDB collection."""

    def __init__(
        self, collection: AsyncIOMotorCollection, corrections: AsyncIOMotorCollection
    ) -> None:
        self.collection = collection
        self.corrections = corrections

    async def ensure_indexes(self) -> None:
        """Create the uniqueness and listing indexes (idempotent)."""
        await self.collection.create_index(
            [("workspaceId", ASCENDING), ("invoiceId", ASCENDING)],
            name=INVOICE_ID_INDEX,
            unique=True,
            partialFilterExpression={"invoiceId": {"$type": "string"}},
        )
        await self.collection.create_index(
            [("workspaceId", ASCENDING), ("fingerprint", ASCENDING)],
            name=FINGERPRINT_INDEX,
            unique=True,
            partialFilterExpression={"fingerprint": {"$type": "string"}},
        )
        await self.collection.create_index(
            [("workspaceId", ASCENDING), ("uploadedAt", DESCENDING)]
        )

    @staticmethod
    def _to_model(document: dict[str, Any] | None) -> NormalizedInvoice | None:
        return NormalizedInvoice.from_document(document) if document else None

    async def _find_one(self, query: dict[str, Any]) -> NormalizedInvoice | None:
        try:
            document = await self.collection.find_one(query)
        except PyMongoError as e:
            raise StoreError(f"Invoice query failed: {e}") from e
        return self._to_model(document)

    async def find_by_invoice_id(
        self, workspace_id: str, invoice_id: str
    ) -> NormalizedInvoice | None:
        return await self._find_one({"workspaceId": workspace_id, "invoiceId": invoice_id})

    async def find_by_fingerprint(
        self, workspace_id: str, fingerprint: str
    ) -> NormalizedInvoice | None:
        return await self._find_one({"workspaceId": workspace_id, "fingerprint": fingerprint})

    async def get(self, workspace_id: str, id: str) -> NormalizedInvoice | None:
        return await self._find_one({"_id": id, "workspaceId": workspace_id})

    async def insert(self, invoice: NormalizedInvoice) -> NormalizedInvoice:
        document = invoice.to_document()
        document["_id"] = invoice.id
        try:
            await self.collection.insert_one(document)
        except DuplicateKeyError as e:
            raise _duplicate_key_violation(e) from e
        except PyMongoError as e:
            raise StoreError(f"Invoice insert failed: {e}") from e
        return invoice

    async def replace(self, invoice: NormalizedInvoice) -> None:
        document = invoice.to_document()
        document["_id"] = invoice.id
        try:
            result = await self.collection.replace_one(
                {"_id": invoice.id, "workspaceId": invoice.workspace_id}, document
            )
        except DuplicateKeyError as e:
            raise _duplicate_key_violation(e) from e
        except PyMongoError as e:
            raise StoreError(f"Invoice update failed: {e}") from e
        if result.matched_count == 0:
            raise StoreError(f"Invoice {invoice.id} not found")

    async def list_for_workspace(self, workspace_id: str) -> list[NormalizedInvoice]:
        try:
            cursor = self.collection.find({"workspaceId": workspace_id}).sort(
                "uploadedAt", DESCENDING
            )
            documents = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise StoreError(f"Invoice listing failed: {e}") from e
        return [NormalizedInvoice.from_document(document) for document in documents]

    async def add_correction(self, correction: CorrectionLog) -> None:
        document = correction.to_document()
        document["_id"] = correction.id
        try:
            await self.corrections.insert_one(document)
        except PyMongoError as e:
            raise StoreError(f"Correction log insert failed: {e}") from e


class MongoWorkspaceStore:
    """Workspace settings documents: ``{_id: workspaceId, categories: [...]}``."""

    def __init__(self, collection: AsyncIOMotorCollection) -> None:
        self.collection = collection

    async def get_categories(self, workspace_id: str) -> WorkspaceCategoryConfig | None:
        try:
            document = await self.collection.find_one(
                {"_id": workspace_id}, projection={"categories": 1}
            )
        except PyMongoError as e:
            raise StoreError(f"Workspace query failed: {e}") from e
        if document is None:
            return None
        return WorkspaceCategoryConfig(
            id=workspace_id,
            categories=document.get("categories") or [],
        )


class MongoDatabase:
    """Owns the motor client and the stores built on it."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.client: AsyncIOMotorClient | None = None
        self.invoices: MongoInvoiceStore | None = None
        self.workspaces: MongoWorkspaceStore | None = None

    def connect(self) -> None:
        """Initialize the client and stores."""
        self.client = AsyncIOMotorClient(self.settings.mongodb_url)
        db = self.client[self.settings.mongodb_database]
        self.invoices = MongoInvoiceStore(db.invoices, db.correction_logs)
        self.workspaces = MongoWorkspaceStore(db.workspaces)
        logger.info(f"Connected to MongoDB database '{self.settings.mongodb_database}'")

    def close(self) -> None:
        """Close the client."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    async def ping(self) -> bool:
        """True if the server answers a ping."""
        if self.client is None:
            return False
        try:
            await self.client.admin.command("ping")
        except PyMongoError as e:
            logger.warning(f"MongoDB ping failed: {e}")
            return False
        return True
