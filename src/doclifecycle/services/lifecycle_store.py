"""Lifecycle store for versioned document envelopes.

Every mutating operation runs in a single transaction. The active draft and
active published version of an envelope are flags on its version rows, moved
only through ``services.flags`` so no transaction ever commits two holders.

The search index is touched at two kinds of points. Making content findable
(publish with search, toggle on, amending a searchable published draft) is
fire-and-forget after commit: failures are logged and never reach the caller.
Making content unfindable (unpublish, toggle off, publish without search) is
awaited inside the transaction before any row is written, and a failure aborts
the operation. A removal first cancels the document's pending index writes,
and a write only starts if no removal or newer write was scheduled after it.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from uuid import uuid4

import structlog
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from doclifecycle.errors import (
    ConcurrentModificationError,
    DatabaseError,
    DocumentNotFoundError,
    DocumentNotPublishedError,
    NoPublishedVersionError,
    SearchIndexError,
    VersionNotFoundError,
)
from doclifecycle.models.base import as_utc, normalize_optional_reference, normalize_reference, utc_now
from doclifecycle.models.envelope import DEFAULT_DOCUMENT_TYPE, DocumentEnvelope
from doclifecycle.models.enums import ActiveFlag, ContentKind, SortField, SortOrder
from doclifecycle.models.tables import EnvelopeRecord, VersionRecord
from doclifecycle.models.version import DocumentVersion
from doclifecycle.models.views import (
    CreatedDocument,
    DocumentPage,
    DocumentSummary,
    DocumentWithVersions,
    MessageLink,
)
from doclifecycle.services.allocator import next_version_number
from doclifecycle.services.database import create_schema
from doclifecycle.services.flags import clear_flag, move_flag
from doclifecycle.services.search_index import SearchIndex

MAX_PAGE_SIZE = 100

_SORT_COLUMNS = {
    SortField.UPDATED_AT: EnvelopeRecord.updated_at,
    SortField.CREATED_AT: EnvelopeRecord.created_at,
    SortField.TITLE: EnvelopeRecord.title,
}


class LifecycleStore:
    """Creates, edits, publishes and cleans up versioned documents.

    Accepts an AsyncEngine via dependency injection so tests can run against
    an in-memory database. The search index is optional; without one the
    store only maintains the relational state.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        search_index: SearchIndex | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._engine = engine
        self._search_index = search_index
        self._logger = logger or structlog.get_logger(__name__)
        # Pending index writes per document, and the generation a write must
        # still hold when it starts; removals and newer writes bump it.
        self._index_tasks: dict[str, set[asyncio.Task[None]]] = {}
        self._index_generations: dict[str, int] = {}

    async def __aenter__(self) -> "LifecycleStore":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def initialize_schema(self) -> None:
        """Create database tables if they don't exist."""
        await create_schema(self._engine)
        self._logger.info("lifecycle_store_initialized")

    async def drain(self) -> None:
        """Wait for every scheduled search-index write to finish."""
        while True:
            pending = [task for tasks in self._index_tasks.values() for task in tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        """Drain pending index writes and release database connections."""
        await self.drain()
        await self._engine.dispose()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_document(
        self,
        title: str,
        content: str,
        message_id: str | None,
        workspace_id: str,
        user_id: str,
        document_type: str | None = None,
        kind: ContentKind | str | None = None,
        metadata: dict[str, Any] | None = None,
        chat_id: str | None = None,
    ) -> CreatedDocument:
        """Create an envelope with version 1 as its active draft."""
        now = utc_now()
        envelope = DocumentEnvelope(
            id=str(uuid4()),
            title=title,
            document_type=document_type or DEFAULT_DOCUMENT_TYPE,
            workspace_id=workspace_id,
            created_by_user_id=user_id,
            created_at=now,
            updated_at=now,
        )

        async with self._transaction() as session:
            session.add(_envelope_to_record(envelope))
            await session.flush()

            version_number = await next_version_number(session, envelope.id)
            version = DocumentVersion(
                id=str(uuid4()),
                document_envelope_id=envelope.id,
                workspace_id=envelope.workspace_id,
                message_id=message_id,
                chat_id=chat_id,
                content=content,
                metadata=metadata or {},
                kind=ContentKind(kind) if kind else ContentKind.TEXT,
                version_number=version_number,
                created_by_user_id=user_id,
                created_at=now,
            )
            record = _version_to_record(version)
            session.add(record)
            await session.flush()
            await move_flag(session, envelope.id, record.id, ActiveFlag.DRAFT)
            await session.refresh(record)
            draft = _record_to_version(record)

        self._logger.info(
            "document_created",
            document_id=envelope.id,
            version_id=draft.id,
            workspace_id=envelope.workspace_id,
            message_id=message_id,
        )
        return CreatedDocument(envelope=envelope, current_draft=draft)

    async def save_document_draft(
        self,
        envelope_id: str,
        content: str,
        message_id: str | None,
        workspace_id: str,
        user_id: str,
        metadata: dict[str, Any] | None = None,
        chat_id: str | None = None,
    ) -> DocumentVersion:
        """Save draft content, amending the current draft or branching a new one.

        The current draft is amended in place when it was produced by the same
        conversational turn (same ``message_id``). Otherwise a new version is
        created and takes the draft flag, leaving the previous draft untouched
        in history. Amending a draft that is also the searchable published
        version re-indexes it after commit.

        Raises:
            DocumentNotFoundError: If the envelope is not in the workspace.
        """
        message_id = normalize_optional_reference(message_id, "message_id")
        workspace_id = normalize_reference(workspace_id, "workspace_id")
        chat_id = normalize_optional_reference(chat_id, "chat_id")
        index_payload = None
        now = utc_now()
        async with self._transaction() as session:
            envelope = await self._lock_envelope(session, envelope_id, workspace_id)
            draft = await self._active_record(session, envelope_id, ActiveFlag.DRAFT)

            if draft is not None and draft.message_id == message_id:
                draft.content = content
                if metadata is not None:
                    draft.metadata_json = dict(metadata)
                if chat_id is not None:
                    draft.chat_id = chat_id
                envelope.updated_at = now
                await session.flush()
                await session.refresh(draft)
                saved = _record_to_version(draft)
                event = "draft_amended"
                if draft.is_active_published and envelope.is_searchable:
                    index_payload = _index_payload(envelope, draft)
            else:
                basis = draft or await self._latest_record(session, envelope_id)
                version_number = await next_version_number(session, envelope_id)
                if metadata is not None:
                    new_metadata = dict(metadata)
                else:
                    new_metadata = dict(basis.metadata_json or {}) if basis is not None else {}
                version = DocumentVersion(
                    id=str(uuid4()),
                    document_envelope_id=envelope_id,
                    workspace_id=envelope.workspace_id,
                    message_id=message_id,
                    chat_id=chat_id,
                    content=content,
                    metadata=new_metadata,
                    kind=ContentKind(basis.kind) if basis is not None else ContentKind.TEXT,
                    version_number=version_number,
                    created_by_user_id=user_id,
                    created_at=now,
                )
                record = _version_to_record(version)
                session.add(record)
                await session.flush()
                await move_flag(session, envelope_id, record.id, ActiveFlag.DRAFT)
                envelope.updated_at = now
                await session.flush()
                await session.refresh(record)
                saved = _record_to_version(record)
                event = "draft_branched"

        self._logger.info(
            event,
            document_id=envelope_id,
            version_id=saved.id,
            version_number=saved.version_number,
            message_id=message_id,
        )
        if index_payload is not None:
            self._schedule_index(**index_payload)
        return saved

    async def publish_document(self, envelope_id: str, version_id: str, make_searchable: bool = False) -> None:
        """Make ``version_id`` the published version of the envelope.

        Raises:
            DocumentNotFoundError: If the envelope does not exist.
            VersionNotFoundError: If the version is not part of the envelope.
            SearchIndexError: If a previously searchable document could not be
                removed from the index.
        """
        now = utc_now()
        async with self._transaction() as session:
            envelope = await self._lock_envelope(session, envelope_id)
            target = await session.get(VersionRecord, version_id)
            if target is None or target.document_envelope_id != envelope_id:
                raise VersionNotFoundError(envelope_id, version_id)

            if envelope.is_searchable and not make_searchable:
                await self._remove_from_index(envelope_id, envelope.workspace_id)

            await move_flag(session, envelope_id, version_id, ActiveFlag.PUBLISHED)
            envelope.is_searchable = make_searchable
            envelope.updated_at = now
            await session.flush()
            index_payload = _index_payload(envelope, target) if make_searchable else None

        self._logger.info(
            "document_published",
            document_id=envelope_id,
            version_id=version_id,
            searchable=make_searchable,
        )
        if index_payload is not None:
            self._schedule_index(**index_payload)

    async def unpublish_document(self, envelope_id: str) -> None:
        """Withdraw the published version and remove it from search.

        Raises:
            DocumentNotFoundError: If the envelope does not exist.
            SearchIndexError: If the index removal fails; nothing is written.
        """
        now = utc_now()
        async with self._transaction() as session:
            envelope = await self._lock_envelope(session, envelope_id)
            await self._remove_from_index(envelope_id, envelope.workspace_id)
            cleared = await clear_flag(session, envelope_id, ActiveFlag.PUBLISHED)
            envelope.is_searchable = False
            envelope.updated_at = now

        self._logger.info("document_unpublished", document_id=envelope_id, cleared=cleared)

    async def toggle_document_searchable(self, envelope_id: str) -> bool:
        """Flip whether the published version is searchable.

        Returns:
            The new searchable state.

        Raises:
            DocumentNotFoundError: If the envelope does not exist.
            DocumentNotPublishedError: If no version is published.
            SearchIndexError: If turning search off could not remove the
                document from the index.
        """
        now = utc_now()
        async with self._transaction() as session:
            envelope = await self._lock_envelope(session, envelope_id)
            published = await self._active_record(session, envelope_id, ActiveFlag.PUBLISHED)
            if published is None:
                raise DocumentNotPublishedError(envelope_id)

            searchable = not envelope.is_searchable
            if not searchable:
                await self._remove_from_index(envelope_id, envelope.workspace_id)

            envelope.is_searchable = searchable
            envelope.updated_at = now
            await session.flush()
            index_payload = _index_payload(envelope, published) if searchable else None

        self._logger.info("searchable_toggled", document_id=envelope_id, searchable=searchable)
        if index_payload is not None:
            self._schedule_index(**index_payload)
        return searchable

    async def get_or_create_standalone_draft(self, envelope_id: str, user_id: str) -> DocumentVersion:
        """Return the standalone draft, branching one from the published version if needed.

        Calling this repeatedly returns the same version.

        Raises:
            DocumentNotFoundError: If the envelope does not exist.
            NoPublishedVersionError: If there is no standalone draft and no
                published version to branch from.
        """
        now = utc_now()
        async with self._transaction() as session:
            envelope = await self._lock_envelope(session, envelope_id)
            draft = await self._active_record(session, envelope_id, ActiveFlag.DRAFT)
            if draft is not None and draft.message_id is None:
                return _record_to_version(draft)

            published = await self._active_record(session, envelope_id, ActiveFlag.PUBLISHED)
            if published is None:
                raise NoPublishedVersionError(envelope_id)

            version_number = await next_version_number(session, envelope_id)
            record = VersionRecord(
                id=str(uuid4()),
                schema_version=DocumentVersion.SCHEMA_VERSION,
                document_envelope_id=envelope_id,
                workspace_id=envelope.workspace_id,
                message_id=None,
                chat_id=None,
                content=published.content,
                metadata_json=dict(published.metadata_json or {}),
                kind=published.kind,
                version_number=version_number,
                is_active_draft=False,
                is_active_published=False,
                created_by_user_id=user_id,
                created_at=now,
            )
            session.add(record)
            await session.flush()
            await move_flag(session, envelope_id, record.id, ActiveFlag.DRAFT)
            envelope.updated_at = now
            await session.flush()
            await session.refresh(record)
            standalone = _record_to_version(record)

        self._logger.info(
            "standalone_draft_created",
            document_id=envelope_id,
            version_id=standalone.id,
            version_number=standalone.version_number,
            branched_from=published.id,
        )
        return standalone

    async def discard_standalone_draft(self, envelope_id: str) -> None:
        """Drop the standalone draft of an envelope.

        A standalone draft that was never published is deleted. If it is also
        the published version only its draft flag is cleared, since published
        content is never deleted here. Without a standalone draft this is a
        no-op.

        Raises:
            DocumentNotFoundError: If the envelope does not exist.
        """
        async with self._transaction() as session:
            envelope = await self._lock_envelope(session, envelope_id)
            draft = await self._active_record(session, envelope_id, ActiveFlag.DRAFT)
            if draft is None or draft.message_id is not None:
                self._logger.debug("standalone_draft_missing", document_id=envelope_id)
                return

            version_id = draft.id
            if draft.is_active_published:
                await clear_flag(session, envelope_id, ActiveFlag.DRAFT)
                deleted = False
            else:
                await session.delete(draft)
                deleted = True
            envelope.updated_at = utc_now()

        self._logger.info(
            "standalone_draft_discarded",
            document_id=envelope_id,
            version_id=version_id,
            deleted=deleted,
        )

    async def clean_orphaned_versions(self, workspace_id: str) -> int:
        """Delete versions with no conversational turn that are not published.

        Returns:
            Number of versions deleted.
        """
        async with self._transaction() as session:
            result = await session.execute(
                delete(VersionRecord)
                .where(
                    VersionRecord.workspace_id == workspace_id,
                    VersionRecord.message_id.is_(None),
                    VersionRecord.is_active_published.is_(False),
                )
                .execution_options(synchronize_session=False)
            )
            deleted = result.rowcount or 0

        self._logger.info("orphaned_versions_cleaned", workspace_id=workspace_id, deleted=deleted)
        return deleted

    async def update_document_versions_message_id(self, links: list[MessageLink]) -> int:
        """Anchor versions to the messages that produced them.

        Returns:
            Number of versions updated.
        """
        if not links:
            return 0

        updated = 0
        async with self._transaction() as session:
            for link in links:
                values: dict[str, Any] = {"message_id": link.message_id}
                if link.chat_id is not None:
                    values["chat_id"] = link.chat_id
                result = await session.execute(
                    update(VersionRecord)
                    .where(VersionRecord.id == link.version_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                updated += result.rowcount or 0

        self._logger.info("version_messages_linked", requested=len(links), updated=updated)
        return updated

    async def unlink_messages(self, message_ids: list[str], workspace_id: str) -> int:
        """Detach versions from deleted messages, leaving them standalone.

        Returns:
            Number of versions unlinked.
        """
        if not message_ids:
            return 0

        async with self._transaction() as session:
            result = await session.execute(
                update(VersionRecord)
                .where(
                    VersionRecord.workspace_id == workspace_id,
                    VersionRecord.message_id.in_(message_ids),
                )
                .values(message_id=None, chat_id=None)
                .execution_options(synchronize_session=False)
            )
            unlinked = result.rowcount or 0

        self._logger.info("messages_unlinked", workspace_id=workspace_id, unlinked=unlinked)
        return unlinked

    async def unlink_chat(self, chat_id: str, workspace_id: str) -> int:
        """Detach every version produced in a deleted chat.

        Returns:
            Number of versions unlinked.
        """
        async with self._transaction() as session:
            result = await session.execute(
                update(VersionRecord)
                .where(VersionRecord.workspace_id == workspace_id, VersionRecord.chat_id == chat_id)
                .values(message_id=None, chat_id=None)
                .execution_options(synchronize_session=False)
            )
            unlinked = result.rowcount or 0

        self._logger.info("chat_unlinked", workspace_id=workspace_id, chat_id=chat_id, unlinked=unlinked)
        return unlinked

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def has_unpublished_draft(self, envelope_id: str) -> bool:
        """True when the active draft differs from the published version."""
        async with self._transaction() as session:
            draft = await self._active_record(session, envelope_id, ActiveFlag.DRAFT)
            if draft is None:
                return False
            published = await self._active_record(session, envelope_id, ActiveFlag.PUBLISHED)
            return published is None or published.id != draft.id

    async def get_document_with_versions(self, envelope_id: str) -> DocumentWithVersions | None:
        """Return the envelope, its derived current versions and full history."""
        async with self._transaction() as session:
            envelope = await session.get(EnvelopeRecord, envelope_id)
            if envelope is None:
                return None
            versions = await self._version_records(session, envelope_id)
            return DocumentWithVersions.from_versions(
                _record_to_envelope(envelope),
                [_record_to_version(record) for record in versions],
            )

    async def get_all_versions_for_document(self, envelope_id: str) -> list[DocumentVersion]:
        async with self._transaction() as session:
            versions = await self._version_records(session, envelope_id)
            return [_record_to_version(record) for record in versions]

    async def get_document_by_id(self, envelope_id: str, workspace_id: str) -> DocumentSummary | None:
        workspace_id = normalize_reference(workspace_id, "workspace_id")
        async with self._transaction() as session:
            envelope = await session.get(EnvelopeRecord, envelope_id)
            if envelope is None or envelope.workspace_id != workspace_id:
                return None
            summaries = await self._summaries(session, [envelope])
            return summaries[0]

    async def get_published_document_by_id(self, envelope_id: str, workspace_id: str) -> DocumentSummary | None:
        summary = await self.get_document_by_id(envelope_id, workspace_id)
        if summary is None or summary.current_published is None:
            return None
        return summary

    async def get_all_workspace_documents(self, workspace_id: str) -> list[DocumentSummary]:
        async with self._transaction() as session:
            result = await session.execute(
                select(EnvelopeRecord)
                .where(EnvelopeRecord.workspace_id == workspace_id)
                .order_by(EnvelopeRecord.updated_at.desc(), EnvelopeRecord.id)
            )
            return await self._summaries(session, list(result.scalars().all()))

    async def get_published_documents(self, workspace_id: str) -> list[DocumentSummary]:
        return await self._published_summaries(workspace_id)

    async def get_published_documents_by_ids(self, envelope_ids: list[str], workspace_id: str) -> list[DocumentSummary]:
        if not envelope_ids:
            return []
        return await self._published_summaries(workspace_id, envelope_ids)

    async def get_workspace_documents_paginated(
        self,
        workspace_id: str,
        page: int = 1,
        limit: int = 20,
        sort_by: SortField = SortField.UPDATED_AT,
        sort_order: SortOrder = SortOrder.DESC,
        search: str | None = None,
        document_type: str | None = None,
    ) -> DocumentPage:
        """List a workspace's documents one page at a time.

        Raises:
            ValueError: If ``page`` is below 1 or ``limit`` is outside 1..100.
        """
        if page < 1:
            raise ValueError("page must be at least 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        conditions = [EnvelopeRecord.workspace_id == workspace_id]
        if search and search.strip():
            conditions.append(EnvelopeRecord.title.ilike(f"%{search.strip()}%"))
        if document_type:
            conditions.append(EnvelopeRecord.document_type == document_type)

        column = _SORT_COLUMNS[SortField(sort_by)]
        ordering = column.asc() if SortOrder(sort_order) == SortOrder.ASC else column.desc()

        async with self._transaction() as session:
            total_result = await session.execute(select(func.count()).select_from(EnvelopeRecord).where(*conditions))
            total = total_result.scalar_one()

            result = await session.execute(
                select(EnvelopeRecord)
                .where(*conditions)
                .order_by(ordering, EnvelopeRecord.id)
                .offset((page - 1) * limit)
                .limit(limit)
            )
            documents = await self._summaries(session, list(result.scalars().all()))

        return DocumentPage(
            documents=documents,
            total=total,
            page=page,
            limit=limit,
            has_more=page * limit < total,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """Open a session with a single transaction, mapping driver errors."""
        try:
            async with AsyncSession(self._engine, expire_on_commit=False) as session:
                async with session.begin():
                    yield session
        except IntegrityError as e:
            self._logger.warning("version_constraint_conflict", error=str(e.orig))
            raise ConcurrentModificationError(
                "document was modified concurrently, retry the operation",
                original_error=e,
            ) from e
        except SQLAlchemyError as e:
            raise DatabaseError("database operation failed", original_error=e) from e

    async def _lock_envelope(
        self,
        session: AsyncSession,
        envelope_id: str,
        workspace_id: str | None = None,
    ) -> EnvelopeRecord:
        result = await session.execute(select(EnvelopeRecord).where(EnvelopeRecord.id == envelope_id).with_for_update())
        envelope = result.scalar_one_or_none()
        if envelope is None or (workspace_id is not None and envelope.workspace_id != workspace_id):
            raise DocumentNotFoundError(envelope_id)
        return envelope

    async def _active_record(self, session: AsyncSession, envelope_id: str, flag: ActiveFlag) -> VersionRecord | None:
        result = await session.execute(
            select(VersionRecord).where(
                VersionRecord.document_envelope_id == envelope_id,
                getattr(VersionRecord, flag.value).is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def _latest_record(self, session: AsyncSession, envelope_id: str) -> VersionRecord | None:
        result = await session.execute(
            select(VersionRecord)
            .where(VersionRecord.document_envelope_id == envelope_id)
            .order_by(VersionRecord.version_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _version_records(self, session: AsyncSession, envelope_id: str) -> list[VersionRecord]:
        result = await session.execute(
            select(VersionRecord)
            .where(VersionRecord.document_envelope_id == envelope_id)
            .order_by(VersionRecord.version_number)
        )
        return list(result.scalars().all())

    async def _summaries(self, session: AsyncSession, envelopes: list[EnvelopeRecord]) -> list[DocumentSummary]:
        """Attach derived active versions to each envelope, preserving order."""
        if not envelopes:
            return []

        result = await session.execute(
            select(VersionRecord).where(
                VersionRecord.document_envelope_id.in_([envelope.id for envelope in envelopes]),
                or_(VersionRecord.is_active_draft.is_(True), VersionRecord.is_active_published.is_(True)),
            )
        )
        by_envelope: dict[str, list[DocumentVersion]] = {}
        for record in result.scalars().all():
            by_envelope.setdefault(record.document_envelope_id, []).append(_record_to_version(record))

        return [
            DocumentSummary.from_versions(_record_to_envelope(envelope), by_envelope.get(envelope.id, []))
            for envelope in envelopes
        ]

    async def _published_summaries(
        self,
        workspace_id: str,
        envelope_ids: list[str] | None = None,
    ) -> list[DocumentSummary]:
        statement = (
            select(EnvelopeRecord)
            .join(VersionRecord, VersionRecord.document_envelope_id == EnvelopeRecord.id)
            .where(
                EnvelopeRecord.workspace_id == workspace_id,
                VersionRecord.is_active_published.is_(True),
            )
            .order_by(EnvelopeRecord.updated_at.desc(), EnvelopeRecord.id)
        )
        if envelope_ids is not None:
            statement = statement.where(EnvelopeRecord.id.in_(envelope_ids))

        async with self._transaction() as session:
            result = await session.execute(statement)
            return await self._summaries(session, list(result.scalars().all()))

    async def _remove_from_index(self, envelope_id: str, workspace_id: str) -> None:
        """Remove a document from search; must succeed before rows change.

        Index writes still pending for the document are superseded and
        cancelled first, so none of them can land after the removal.
        """
        if self._search_index is None:
            return
        pending = list(self._index_tasks.get(envelope_id, ()))
        if pending:
            self._bump_index_generation(envelope_id)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            self._logger.debug("search_index_writes_cancelled", document_id=envelope_id, count=len(pending))
        try:
            await self._search_index.remove(envelope_id, workspace_id)
        except SearchIndexError:
            raise
        except Exception as e:
            raise SearchIndexError(f"failed to remove document {envelope_id}", original_error=e) from e

    def _schedule_index(
        self,
        content: str,
        document_id: str,
        workspace_id: str,
        metadata: dict[str, Any],
    ) -> None:
        if self._search_index is None:
            return
        earlier = list(self._index_tasks.get(document_id, ()))
        generation = self._bump_index_generation(document_id)
        task = asyncio.create_task(
            self._index_in_background(
                self._search_index, generation, earlier, content, document_id, workspace_id, metadata
            )
        )
        self._index_tasks.setdefault(document_id, set()).add(task)
        task.add_done_callback(lambda done: self._forget_index_task(document_id, done))

    def _bump_index_generation(self, document_id: str) -> int:
        generation = self._index_generations.get(document_id, 0) + 1
        self._index_generations[document_id] = generation
        return generation

    def _forget_index_task(self, document_id: str, task: asyncio.Task[None]) -> None:
        tasks = self._index_tasks.get(document_id)
        if tasks is None:
            return
        tasks.discard(task)
        if not tasks:
            del self._index_tasks[document_id]
            self._index_generations.pop(document_id, None)

    async def _index_in_background(
        self,
        search_index: SearchIndex,
        generation: int,
        earlier: list[asyncio.Task[None]],
        content: str,
        document_id: str,
        workspace_id: str,
        metadata: dict[str, Any],
    ) -> None:
        if earlier:
            await asyncio.gather(*earlier, return_exceptions=True)
        if self._index_generations.get(document_id) != generation:
            # A removal or a newer write came in after this one was scheduled.
            self._logger.debug("search_index_superseded", document_id=document_id, workspace_id=workspace_id)
            return
        try:
            await search_index.index(content, document_id, workspace_id, metadata=metadata)
        except Exception as e:
            # Search may lag the relational store; the caller already returned.
            self._logger.warning(
                "search_index_failed",
                document_id=document_id,
                workspace_id=workspace_id,
                error=str(e),
            )


def _index_payload(envelope: EnvelopeRecord, version: VersionRecord) -> dict[str, Any]:
    return {
        "content": version.content,
        "document_id": envelope.id,
        "workspace_id": envelope.workspace_id,
        "metadata": {
            "title": envelope.title,
            "document_type": envelope.document_type,
            "kind": version.kind,
            "version_id": version.id,
            "version_number": version.version_number,
        },
    }


def _envelope_to_record(envelope: DocumentEnvelope) -> EnvelopeRecord:
    return EnvelopeRecord.model_validate(envelope.model_dump())


def _record_to_envelope(record: EnvelopeRecord) -> DocumentEnvelope:
    """Convert an envelope row to the domain model.

    SQLite doesn't preserve timezone info, so UTC is restored.
    """
    data = record.model_dump(exclude={"last_version_number"})
    data["created_at"] = as_utc(data["created_at"])
    data["updated_at"] = as_utc(data["updated_at"])
    return DocumentEnvelope.from_record(data)


def _version_to_record(version: DocumentVersion) -> VersionRecord:
    data = version.model_dump()
    data["metadata_json"] = data.pop("metadata")
    data["kind"] = version.kind.value
    return VersionRecord.model_validate(data)


def _record_to_version(record: VersionRecord) -> DocumentVersion:
    data = record.model_dump()
    data["metadata"] = data.pop("metadata_json") or {}
    data["kind"] = ContentKind(data["kind"])
    data["created_at"] = as_utc(data["created_at"])
    return DocumentVersion.from_record(data)
