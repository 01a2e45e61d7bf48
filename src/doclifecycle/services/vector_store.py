"""Vector store service backing the document search index with ChromaDB.

ChromaDB's Python client is synchronous, so blocking calls are wrapped in
asyncio.to_thread() to keep the async interface of the other services.
"""

import asyncio
from typing import Any

import chromadb
import structlog

MetadataValue = str | int | float | bool
Where = dict[str, Any]


class VectorStore:
    """Stores section texts in a ChromaDB collection and removes them by filter.

    Accepts a ChromaDB client via dependency injection so tests can use an
    EphemeralClient and production a PersistentClient.
    """

    DEFAULT_COLLECTION_NAME = "documents"

    def __init__(
        self,
        client: chromadb.ClientAPI,
        collection_name: str | None = None,
        embedding_function: Any | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._client = client
        self._collection_name = collection_name or self.DEFAULT_COLLECTION_NAME
        self._embedding_function = embedding_function
        self._logger = logger or structlog.get_logger(__name__)
        self._collection: chromadb.Collection | None = None

    @property
    def collection_name(self) -> str:
        return self._collection_name

    async def initialize(self) -> None:
        """Open the collection, creating it if it doesn't exist."""
        kwargs: dict[str, Any] = {"name": self._collection_name}
        if self._embedding_function is not None:
            kwargs["embedding_function"] = self._embedding_function
        self._collection = await asyncio.to_thread(self._client.get_or_create_collection, **kwargs)
        self._logger.info("vector_store_initialized", collection_name=self._collection_name)

    def _require_collection(self) -> chromadb.Collection:
        if self._collection is None:
            raise RuntimeError("VectorStore not initialized. Call initialize() first.")
        return self._collection

    async def add_documents(
        self,
        ids: list[str],
        documents: list[str],
        metadatas: list[dict[str, MetadataValue]] | None = None,
    ) -> None:
        """Upsert texts, letting the collection's embedding function embed them.

        Raises:
            ValueError: If input lists have mismatched lengths.
            RuntimeError: If collection not initialized.
        """
        collection = self._require_collection()
        if not ids:
            return
        if len(ids) != len(documents):
            raise ValueError(f"Mismatched lengths: ids={len(ids)}, documents={len(documents)}")
        if metadatas is not None and len(metadatas) != len(ids):
            raise ValueError(f"Mismatched lengths: ids={len(ids)}, metadatas={len(metadatas)}")

        await asyncio.to_thread(collection.upsert, ids=ids, documents=documents, metadatas=metadatas)
        self._logger.debug("documents_added", collection=self._collection_name, count=len(ids))

    async def delete_where(self, where: Where) -> None:
        """Delete every entry whose metadata matches ``where``."""
        collection = self._require_collection()
        await asyncio.to_thread(collection.delete, where=where)
        self._logger.debug("documents_deleted", collection=self._collection_name, where=where)

    async def get_where(self, where: Where) -> dict[str, Any]:
        """Return ids, documents and metadatas of entries matching ``where``."""
        collection = self._require_collection()
        return await asyncio.to_thread(collection.get, where=where, include=["documents", "metadatas"])

    async def count(self) -> int:
        collection = self._require_collection()
        return await asyncio.to_thread(collection.count)
