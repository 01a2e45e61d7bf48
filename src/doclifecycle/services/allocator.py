"""Allocates version numbers for an envelope."""

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from doclifecycle.models.tables import EnvelopeRecord, VersionRecord


async def next_version_number(session: AsyncSession, envelope_id: str) -> int:
    """Allocate the next version number for the envelope.

    Returns ``max(version_number) + 1``, or 1 if the envelope has no versions.
    The envelope also records the highest number it ever handed out, so a
    number whose version was later deleted is never issued again.

    Must run in the same transaction as the insert that uses the number,
    after the envelope row has been locked.
    """
    result = await session.execute(
        select(func.max(VersionRecord.version_number)).where(VersionRecord.document_envelope_id == envelope_id)
    )
    highest_existing = result.scalar_one_or_none() or 0

    result = await session.execute(
        select(EnvelopeRecord.last_version_number).where(EnvelopeRecord.id == envelope_id)
    )
    high_water = result.scalar_one_or_none() or 0

    allocated = max(highest_existing, high_water) + 1
    await session.execute(
        update(EnvelopeRecord)
        .where(EnvelopeRecord.id == envelope_id)
        .values(last_version_number=allocated)
        .execution_options(synchronize_session="evaluate")
    )
    return allocated
