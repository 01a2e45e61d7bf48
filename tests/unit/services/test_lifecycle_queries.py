from uuid import uuid4

import pytest

from doclifecycle.models.enums import SortField, SortOrder
from doclifecycle.models.views import MessageLink
from doclifecycle.services.database import create_async_engine_from_path
from doclifecycle.services.lifecycle_store import LifecycleStore

WORKSPACE = "workspace-1"


@pytest.fixture
async def store() -> LifecycleStore:
    store = LifecycleStore(engine=create_async_engine_from_path(":memory:"))
    await store.initialize_schema()
    return store


async def _create(store: LifecycleStore, title: str, **kwargs):
    return await store.create_document(
        title=title,
        content=kwargs.pop("content", f"{title} body"),
        message_id=kwargs.pop("message_id", "m1"),
        workspace_id=kwargs.pop("workspace_id", WORKSPACE),
        user_id="user-1",
        **kwargs,
    )


class TestDocumentLookups:
    async def test_get_document_by_id_returns_summary(self, store) -> None:
        created = await _create(store, "Notes")

        summary = await store.get_document_by_id(created.envelope.id, WORKSPACE)

        assert summary.envelope.id == created.envelope.id
        assert summary.current_draft.id == created.current_draft.id
        assert summary.current_published is None
        assert summary.has_unpublished_draft is True

    async def test_get_document_by_id_is_workspace_scoped(self, store) -> None:
        created = await _create(store, "Notes")

        assert await store.get_document_by_id(created.envelope.id, "workspace-2") is None
        assert await store.get_document_by_id(str(uuid4()), WORKSPACE) is None

    async def test_get_published_document_by_id(self, store) -> None:
        created = await _create(store, "Notes")
        assert await store.get_published_document_by_id(created.envelope.id, WORKSPACE) is None

        await store.publish_document(created.envelope.id, created.current_draft.id)

        summary = await store.get_published_document_by_id(created.envelope.id, WORKSPACE)
        assert summary.current_published.id == created.current_draft.id

    async def test_missing_document_with_versions_is_none(self, store) -> None:
        assert await store.get_document_with_versions(str(uuid4())) is None

    async def test_all_versions_in_number_order(self, store) -> None:
        created = await _create(store, "Notes")
        for n in (2, 3):
            await store.save_document_draft(created.envelope.id, f"v{n}", f"m{n}", WORKSPACE, "user-1")

        versions = await store.get_all_versions_for_document(created.envelope.id)

        assert [v.version_number for v in versions] == [1, 2, 3]


class TestWorkspaceListings:
    async def test_all_workspace_documents(self, store) -> None:
        await _create(store, "First")
        await _create(store, "Second")
        await _create(store, "Elsewhere", workspace_id="workspace-2")

        documents = await store.get_all_workspace_documents(WORKSPACE)

        assert {d.envelope.title for d in documents} == {"First", "Second"}

    async def test_published_documents_only(self, store) -> None:
        published = await _create(store, "Published")
        await store.publish_document(published.envelope.id, published.current_draft.id)
        await _create(store, "Draft only")

        documents = await store.get_published_documents(WORKSPACE)

        assert [d.envelope.id for d in documents] == [published.envelope.id]
        assert documents[0].current_published.id == published.current_draft.id

    async def test_published_documents_by_ids(self, store) -> None:
        first = await _create(store, "First")
        second = await _create(store, "Second")
        unpublished = await _create(store, "Unpublished")
        for created in (first, second):
            await store.publish_document(created.envelope.id, created.current_draft.id)

        documents = await store.get_published_documents_by_ids(
            [first.envelope.id, unpublished.envelope.id], WORKSPACE
        )

        assert [d.envelope.id for d in documents] == [first.envelope.id]
        assert await store.get_published_documents_by_ids([], WORKSPACE) == []


class TestPaginatedListing:
    @pytest.fixture
    async def seeded(self, store) -> LifecycleStore:
        await _create(store, "Alpha plan", document_type="plan")
        await _create(store, "Beta notes", document_type="notes")
        await _create(store, "Gamma plan", document_type="plan")
        await _create(store, "Hidden plan", workspace_id="workspace-2")
        return store

    async def test_first_page_reports_more(self, seeded) -> None:
        page = await seeded.get_workspace_documents_paginated(
            WORKSPACE, page=1, limit=2, sort_by=SortField.TITLE, sort_order=SortOrder.ASC
        )

        assert page.total == 3
        assert page.has_more is True
        assert [d.envelope.title for d in page.documents] == ["Alpha plan", "Beta notes"]

    async def test_last_page_reports_no_more(self, seeded) -> None:
        page = await seeded.get_workspace_documents_paginated(
            WORKSPACE, page=2, limit=2, sort_by=SortField.TITLE, sort_order=SortOrder.ASC
        )

        assert page.has_more is False
        assert [d.envelope.title for d in page.documents] == ["Gamma plan"]

    async def test_descending_title_order(self, seeded) -> None:
        page = await seeded.get_workspace_documents_paginated(
            WORKSPACE, sort_by=SortField.TITLE, sort_order=SortOrder.DESC
        )

        assert [d.envelope.title for d in page.documents] == ["Gamma plan", "Beta notes", "Alpha plan"]

    async def test_search_matches_title_case_insensitively(self, seeded) -> None:
        page = await seeded.get_workspace_documents_paginated(WORKSPACE, search="PLAN")

        assert page.total == 2
        assert {d.envelope.title for d in page.documents} == {"Alpha plan", "Gamma plan"}

    async def test_filters_by_document_type(self, seeded) -> None:
        page = await seeded.get_workspace_documents_paginated(WORKSPACE, document_type="notes")

        assert [d.envelope.title for d in page.documents] == ["Beta notes"]

    async def test_page_beyond_end_is_empty(self, seeded) -> None:
        page = await seeded.get_workspace_documents_paginated(WORKSPACE, page=5, limit=10)

        assert page.documents == []
        assert page.total == 3
        assert page.has_more is False

    @pytest.mark.parametrize("page_number, limit", [(0, 10), (1, 0), (1, 101)])
    async def test_rejects_invalid_paging(self, store, page_number, limit) -> None:
        with pytest.raises(ValueError):
            await store.get_workspace_documents_paginated(WORKSPACE, page=page_number, limit=limit)


class TestMessageLinks:
    async def test_links_standalone_version_to_message(self, store) -> None:
        created = await _create(store, "Notes", message_id=None)

        updated = await store.update_document_versions_message_id(
            [MessageLink(version_id=created.current_draft.id, message_id="m9", chat_id="c1")]
        )

        assert updated == 1
        versions = await store.get_all_versions_for_document(created.envelope.id)
        assert versions[0].message_id == "m9"
        assert versions[0].chat_id == "c1"
        assert await store.clean_orphaned_versions(WORKSPACE) == 0

    async def test_unknown_versions_are_not_counted(self, store) -> None:
        updated = await store.update_document_versions_message_id(
            [MessageLink(version_id=str(uuid4()), message_id="m9")]
        )

        assert updated == 0
        assert await store.update_document_versions_message_id([]) == 0

    async def test_unlink_messages_is_workspace_scoped(self, store) -> None:
        mine = await _create(store, "Mine", message_id="m1")
        theirs = await _create(store, "Theirs", message_id="m1", workspace_id="workspace-2")

        unlinked = await store.unlink_messages(["m1"], WORKSPACE)

        assert unlinked == 1
        assert (await store.get_all_versions_for_document(mine.envelope.id))[0].message_id is None
        assert (await store.get_all_versions_for_document(theirs.envelope.id))[0].message_id == "m1"
        assert await store.unlink_messages([], WORKSPACE) == 0
