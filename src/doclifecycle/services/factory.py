"""Factory functions for creating and wiring the lifecycle store.

Provides a production factory driven by Settings and a test factory that uses
in-memory SQLite and an ephemeral ChromaDB client for fast, isolated tests.
"""

from pathlib import Path
from typing import Any
from uuid import uuid4

import chromadb
import structlog

from doclifecycle.config import Settings
from doclifecycle.services.database import create_async_engine_from_path, create_async_engine_from_url
from doclifecycle.services.lifecycle_store import LifecycleStore
from doclifecycle.services.search_index import ChromaSearchIndex
from doclifecycle.services.sectioner import Sectioner
from doclifecycle.services.vector_store import VectorStore

_TEST_COLLECTION_ID_LENGTH = 8


def create_search_index(
    client: chromadb.ClientAPI,
    collection_name: str,
    max_section_chars: int = 1500,
    embedding_function: Any | None = None,
) -> ChromaSearchIndex:
    """Create a ChromaSearchIndex over the given client and collection."""
    logger = structlog.get_logger(__name__)
    vector_store = VectorStore(
        client=client,
        collection_name=collection_name,
        embedding_function=embedding_function,
        logger=logger,
    )
    return ChromaSearchIndex(
        vector_store=vector_store,
        sectioner=Sectioner(max_section_chars=max_section_chars, logger=logger),
        logger=logger,
    )


def create_lifecycle_store(settings: Settings) -> LifecycleStore:
    """Create a production LifecycleStore.

    Connects to ``settings.database_url`` and, when search is enabled, a
    ChromaDB collection persisted under ``settings.chroma_path``.
    """
    logger = structlog.get_logger(__name__)
    engine = create_async_engine_from_url(settings.database_url)

    search_index = None
    if settings.search_enabled:
        chroma_path = Path(settings.chroma_path)
        chroma_path.mkdir(parents=True, exist_ok=True)
        search_index = create_search_index(
            client=chromadb.PersistentClient(path=str(chroma_path)),
            collection_name=settings.collection_name,
            max_section_chars=settings.max_section_chars,
        )

    return LifecycleStore(engine=engine, search_index=search_index, logger=logger)


def create_test_lifecycle_store(
    with_search: bool = True,
    collection_name: str | None = None,
    embedding_function: Any | None = None,
) -> LifecycleStore:
    """Create a LifecycleStore with in-memory storage for testing.

    Each call creates independent storage, so tests don't interfere. The
    schema still has to be created with ``initialize_schema()``.
    """
    logger = structlog.get_logger(__name__)
    engine = create_async_engine_from_path(":memory:")

    search_index = None
    if with_search:
        search_index = create_search_index(
            client=chromadb.EphemeralClient(),
            collection_name=collection_name or f"test_{uuid4().hex[:_TEST_COLLECTION_ID_LENGTH]}",
            embedding_function=embedding_function,
        )

    return LifecycleStore(engine=engine, search_index=search_index, logger=logger)
