"""Integration tests for the lifecycle store with a real ChromaDB search index.

These tests use ChromaDB's default embedding function (sentence-transformers
all-MiniLM-L6-v2) so published content is embedded and queried for real.
Marked as slow since they load ML models and perform real inference.
"""

import pytest

from doclifecycle.services.factory import create_test_lifecycle_store
from doclifecycle.services.lifecycle_store import LifecycleStore

WORKSPACE = "workspace-1"


@pytest.fixture
async def store() -> LifecycleStore:
    """Create an in-memory store indexing into an ephemeral collection."""
    store = create_test_lifecycle_store()
    await store.initialize_schema()
    return store


async def _publish(store: LifecycleStore, title: str, content: str) -> str:
    created = await store.create_document(
        title=title,
        content=content,
        message_id=f"msg-{title}",
        workspace_id=WORKSPACE,
        user_id="user-1",
    )
    await store.publish_document(created.envelope.id, created.current_draft.id, make_searchable=True)
    await store.drain()
    return created.envelope.id


def _collection(store: LifecycleStore):
    # The store does not expose queries; reach the collection directly.
    return store._search_index._vector_store._require_collection()


@pytest.mark.slow
class TestPublishedDocumentsAreSearchable:
    async def test_query_finds_relevant_document(self, store: LifecycleStore) -> None:
        python_id = await _publish(store, "python", "Python is excellent for data analysis and machine learning.")
        await _publish(store, "bread", "Baking bread requires flour, water, yeast, and patience.")

        results = _collection(store).query(
            query_texts=["programming languages for AI"],
            n_results=1,
            where={"workspace_id": WORKSPACE},
        )

        assert results["metadatas"][0][0]["document_id"] == python_id

    async def test_unpublished_document_disappears_from_results(self, store: LifecycleStore) -> None:
        document_id = await _publish(store, "garden", "Tomatoes grow best in sunny locations with regular watering.")

        await store.unpublish_document(document_id)

        remaining = _collection(store).get(where={"document_id": document_id})
        assert remaining["ids"] == []

    async def test_republished_version_replaces_old_sections(self, store: LifecycleStore) -> None:
        document_id = await _publish(store, "notes", "Old notes about the quarterly budget.")
        draft = await store.save_document_draft(
            document_id, "New notes about hiring plans.", "msg-edit", WORKSPACE, "user-1"
        )

        await store.publish_document(document_id, draft.id, make_searchable=True)
        await store.drain()

        entries = _collection(store).get(where={"document_id": document_id})
        assert entries["documents"] == ["New notes about hiring plans."]
        assert entries["metadatas"][0]["version_id"] == draft.id
