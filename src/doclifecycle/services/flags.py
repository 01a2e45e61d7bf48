"""Moves single-owner active flags between versions of one envelope.

The version table carries partial unique indexes on (envelope, flag = true).
A single UPDATE that sets the new holder while the old one is still set would
trip that index mid-statement on some engines, so every move is two ordered
statements inside the caller's transaction: clear the current holder, then set
the target. Other transactions never see the intermediate state.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from doclifecycle.errors import VersionNotFoundError
from doclifecycle.models.enums import ActiveFlag
from doclifecycle.models.tables import VersionRecord


def _column(flag: ActiveFlag):
    return getattr(VersionRecord, flag.value)


async def clear_flag(session: AsyncSession, envelope_id: str, flag: ActiveFlag) -> int:
    """Clear ``flag`` on every version of the envelope that holds it.

    Returns:
        Number of rows that were cleared (0 or 1 while the invariant holds).
    """
    column = _column(flag)
    statement = (
        update(VersionRecord)
        .where(VersionRecord.document_envelope_id == envelope_id, column.is_(True))
        .values({flag.value: False})
        .execution_options(synchronize_session="evaluate")
    )
    result = await session.execute(statement)
    return result.rowcount or 0


async def move_flag(
    session: AsyncSession,
    envelope_id: str,
    target_version_id: str,
    flag: ActiveFlag,
) -> None:
    """Make ``target_version_id`` the only version of the envelope holding ``flag``.

    Raises:
        VersionNotFoundError: If the target is not a version of the envelope.
    """
    owner = await session.execute(
        select(VersionRecord.id).where(
            VersionRecord.id == target_version_id,
            VersionRecord.document_envelope_id == envelope_id,
        )
    )
    if owner.scalar_one_or_none() is None:
        raise VersionNotFoundError(envelope_id, target_version_id)

    await clear_flag(session, envelope_id, flag)
    await session.execute(
        update(VersionRecord)
        .where(VersionRecord.id == target_version_id)
        .values({flag.value: True})
        .execution_options(synchronize_session="evaluate")
    )
