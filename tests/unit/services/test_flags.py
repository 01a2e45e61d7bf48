from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from doclifecycle.errors import VersionNotFoundError
from doclifecycle.models.enums import ActiveFlag
from doclifecycle.models.tables import EnvelopeRecord, VersionRecord
from doclifecycle.services.database import create_async_engine_from_path, create_schema
from doclifecycle.services.flags import clear_flag, move_flag


def _make_envelope_record() -> EnvelopeRecord:
    now = datetime.now(timezone.utc)
    return EnvelopeRecord(
        id=str(uuid4()),
        schema_version="document_envelope.v1",
        title="Roadmap",
        document_type="document",
        workspace_id="workspace-1",
        created_by_user_id="user-1",
        created_at=now,
        updated_at=now,
    )


def _make_version_record(envelope_id: str, number: int, **flags) -> VersionRecord:
    return VersionRecord(
        id=str(uuid4()),
        schema_version="document_version.v1",
        document_envelope_id=envelope_id,
        workspace_id="workspace-1",
        message_id=f"m{number}",
        content=f"content {number}",
        metadata_json={},
        kind="text",
        version_number=number,
        created_by_user_id="user-1",
        created_at=datetime.now(timezone.utc),
        **flags,
    )


@pytest.fixture
async def async_engine() -> AsyncEngine:
    engine = create_async_engine_from_path(":memory:")
    await create_schema(engine)
    return engine


@pytest.fixture
async def seeded(async_engine) -> tuple[str, list[str]]:
    envelope = _make_envelope_record()
    versions = [_make_version_record(envelope.id, n) for n in (1, 2, 3)]
    async with AsyncSession(async_engine, expire_on_commit=False) as session:
        async with session.begin():
            session.add(envelope)
            await session.flush()
            session.add_all(versions)
    return envelope.id, [version.id for version in versions]


async def _holders(engine: AsyncEngine, envelope_id: str, flag: ActiveFlag) -> list[str]:
    async with AsyncSession(engine, expire_on_commit=False) as session:
        result = await session.execute(
            select(VersionRecord.id).where(
                VersionRecord.document_envelope_id == envelope_id,
                getattr(VersionRecord, flag.value).is_(True),
            )
        )
        return list(result.scalars().all())


class TestMoveFlag:
    async def test_sets_flag_on_target(self, async_engine, seeded) -> None:
        envelope_id, version_ids = seeded

        async with AsyncSession(async_engine, expire_on_commit=False) as session:
            async with session.begin():
                await move_flag(session, envelope_id, version_ids[0], ActiveFlag.DRAFT)

        assert await _holders(async_engine, envelope_id, ActiveFlag.DRAFT) == [version_ids[0]]

    async def test_moving_leaves_single_holder(self, async_engine, seeded) -> None:
        envelope_id, version_ids = seeded

        for version_id in version_ids:
            async with AsyncSession(async_engine, expire_on_commit=False) as session:
                async with session.begin():
                    await move_flag(session, envelope_id, version_id, ActiveFlag.DRAFT)

        assert await _holders(async_engine, envelope_id, ActiveFlag.DRAFT) == [version_ids[2]]

    async def test_flags_move_independently(self, async_engine, seeded) -> None:
        envelope_id, version_ids = seeded

        async with AsyncSession(async_engine, expire_on_commit=False) as session:
            async with session.begin():
                await move_flag(session, envelope_id, version_ids[0], ActiveFlag.PUBLISHED)
                await move_flag(session, envelope_id, version_ids[1], ActiveFlag.DRAFT)
                await move_flag(session, envelope_id, version_ids[0], ActiveFlag.DRAFT)

        assert await _holders(async_engine, envelope_id, ActiveFlag.PUBLISHED) == [version_ids[0]]
        assert await _holders(async_engine, envelope_id, ActiveFlag.DRAFT) == [version_ids[0]]

    async def test_rejects_version_of_another_envelope(self, async_engine, seeded) -> None:
        envelope_id, version_ids = seeded
        other = _make_envelope_record()
        foreign = _make_version_record(other.id, 1)
        async with AsyncSession(async_engine, expire_on_commit=False) as session:
            async with session.begin():
                session.add(other)
                await session.flush()
                session.add(foreign)
                await session.flush()
                await move_flag(session, envelope_id, version_ids[0], ActiveFlag.DRAFT)

        async with AsyncSession(async_engine, expire_on_commit=False) as session:
            with pytest.raises(VersionNotFoundError):
                async with session.begin():
                    await move_flag(session, envelope_id, foreign.id, ActiveFlag.DRAFT)

        assert await _holders(async_engine, envelope_id, ActiveFlag.DRAFT) == [version_ids[0]]
        assert await _holders(async_engine, other.id, ActiveFlag.DRAFT) == []

    async def test_rejects_unknown_version(self, async_engine, seeded) -> None:
        envelope_id, _ = seeded

        async with AsyncSession(async_engine, expire_on_commit=False) as session:
            with pytest.raises(VersionNotFoundError):
                async with session.begin():
                    await move_flag(session, envelope_id, str(uuid4()), ActiveFlag.PUBLISHED)


class TestClearFlag:
    async def test_clear_reports_rows_cleared(self, async_engine, seeded) -> None:
        envelope_id, version_ids = seeded
        async with AsyncSession(async_engine, expire_on_commit=False) as session:
            async with session.begin():
                await move_flag(session, envelope_id, version_ids[1], ActiveFlag.PUBLISHED)

        async with AsyncSession(async_engine, expire_on_commit=False) as session:
            async with session.begin():
                first = await clear_flag(session, envelope_id, ActiveFlag.PUBLISHED)
                second = await clear_flag(session, envelope_id, ActiveFlag.PUBLISHED)

        assert first == 1
        assert second == 0
        assert await _holders(async_engine, envelope_id, ActiveFlag.PUBLISHED) == []


class TestActiveFlagIndexes:
    async def test_schema_rejects_second_active_draft(self, async_engine, seeded) -> None:
        envelope_id, _ = seeded
        async with AsyncSession(async_engine, expire_on_commit=False) as session:
            async with session.begin():
                session.add(_make_version_record(envelope_id, 4, is_active_draft=True))

        async with AsyncSession(async_engine, expire_on_commit=False) as session:
            with pytest.raises(IntegrityError):
                async with session.begin():
                    session.add(_make_version_record(envelope_id, 5, is_active_draft=True))

    async def test_schema_rejects_second_active_published(self, async_engine, seeded) -> None:
        envelope_id, _ = seeded
        async with AsyncSession(async_engine, expire_on_commit=False) as session:
            async with session.begin():
                session.add(_make_version_record(envelope_id, 4, is_active_published=True))

        async with AsyncSession(async_engine, expire_on_commit=False) as session:
            with pytest.raises(IntegrityError):
                async with session.begin():
                    session.add(_make_version_record(envelope_id, 5, is_active_published=True))

    async def test_schema_rejects_duplicate_version_number(self, async_engine, seeded) -> None:
        envelope_id, _ = seeded

        async with AsyncSession(async_engine, expire_on_commit=False) as session:
            with pytest.raises(IntegrityError):
                async with session.begin():
                    session.add(_make_version_record(envelope_id, 2))
