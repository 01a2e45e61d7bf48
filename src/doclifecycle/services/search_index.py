"""Search-index synchronizer consumed by the lifecycle store.

The store only needs two calls: put a published version's content into the
index for a document, and take a document out of it. ``ChromaSearchIndex``
implements them on top of a ChromaDB collection, keeping one entry per
content section and scoping every entry by workspace.
"""

import asyncio
from typing import Any, Protocol, runtime_checkable

import structlog

from doclifecycle.errors import SearchIndexError
from doclifecycle.services.sectioner import Sectioner
from doclifecycle.services.vector_store import MetadataValue, VectorStore


@runtime_checkable
class SearchIndex(Protocol):
    async def index(
        self,
        content: str,
        document_id: str,
        workspace_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...

    async def remove(self, document_id: str, workspace_id: str) -> None: ...


def _document_filter(document_id: str, workspace_id: str) -> dict[str, Any]:
    return {"$and": [{"document_id": document_id}, {"workspace_id": workspace_id}]}


def _scalar_metadata(metadata: dict[str, Any] | None) -> dict[str, MetadataValue]:
    """Keep only values ChromaDB can store as metadata."""
    if not metadata:
        return {}
    return {key: value for key, value in metadata.items() if isinstance(value, (str, int, float, bool))}


class ChromaSearchIndex:
    """Indexes document content as sections in a ChromaDB collection.

    ``index`` replaces whatever was stored for the document before, so
    re-publishing a different version never leaves stale sections behind.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        sectioner: Sectioner | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._vector_store = vector_store
        self._sectioner = sectioner or Sectioner()
        self._logger = logger or structlog.get_logger(__name__)
        self._initialized = False
        self._write_lock = asyncio.Lock()
        self._writes: set[asyncio.Task[None]] = set()

    async def initialize(self) -> None:
        if not self._initialized:
            await self._vector_store.initialize()
            self._initialized = True

    async def index(
        self,
        content: str,
        document_id: str,
        workspace_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Replace the indexed sections of a document with ``content``.

        The write keeps running if the caller is cancelled, and ``remove``
        waits for running writes, so a removal always lands after them.

        Raises:
            SearchIndexError: If the underlying collection rejects the write.
        """
        write = asyncio.create_task(self._replace_sections(content, document_id, workspace_id, metadata))
        self._writes.add(write)
        write.add_done_callback(self._writes.discard)
        await asyncio.shield(write)

    async def _replace_sections(
        self,
        content: str,
        document_id: str,
        workspace_id: str,
        metadata: dict[str, Any] | None,
    ) -> None:
        async with self._write_lock:
            try:
                await self.initialize()
                await self._vector_store.delete_where(_document_filter(document_id, workspace_id))

                sections = self._sectioner.split(content)
                if not sections:
                    self._logger.debug("search_index_empty_content", document_id=document_id)
                    return

                extra = _scalar_metadata(metadata)
                ids = [f"{workspace_id}:{document_id}-section-{section.section_index}" for section in sections]
                texts = [section.text for section in sections]
                metadatas: list[dict[str, MetadataValue]] = []
                for section in sections:
                    entry: dict[str, MetadataValue] = {
                        **extra,
                        "document_id": document_id,
                        "workspace_id": workspace_id,
                        "section_index": section.section_index,
                        "total_sections": len(sections),
                        "content_hash": section.content_hash,
                    }
                    if section.title:
                        entry["section_title"] = section.title
                    metadatas.append(entry)

                await self._vector_store.add_documents(ids=ids, documents=texts, metadatas=metadatas)
            except Exception as e:
                raise SearchIndexError(f"failed to index document {document_id}", original_error=e) from e

            self._logger.info(
                "search_index_updated",
                document_id=document_id,
                workspace_id=workspace_id,
                section_count=len(sections),
            )

    async def remove(self, document_id: str, workspace_id: str) -> None:
        """Remove every indexed section of a document in a workspace.

        Raises:
            SearchIndexError: If the underlying collection rejects the delete.
        """
        if self._writes:
            await asyncio.gather(*list(self._writes), return_exceptions=True)
        async with self._write_lock:
            try:
                await self.initialize()
                await self._vector_store.delete_where(_document_filter(document_id, workspace_id))
            except Exception as e:
                raise SearchIndexError(f"failed to remove document {document_id}", original_error=e) from e

        self._logger.info("search_index_removed", document_id=document_id, workspace_id=workspace_id)
