"""SQLModel table definitions for envelope and version persistence.

Table models are kept apart from the frozen domain models in envelope.py and
version.py. The ORM needs mutable rows; callers only ever see validated,
immutable snapshots.

The envelope row carries no pointer to its active versions. Which version is
the current draft or the current published one is recorded as flags on the
version rows, and two partial unique indexes guarantee that at most one row
per envelope holds each flag. The domain field ``metadata`` is stored in
``metadata_json`` because SQLModel reserves ``metadata`` for the schema.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, UniqueConstraint, text
from sqlmodel import Field, SQLModel


class EnvelopeRecord(SQLModel, table=True):
    """SQLModel table for document envelopes."""

    __tablename__ = "document_envelopes"

    id: str = Field(primary_key=True)
    schema_version: str
    title: str
    document_type: str
    workspace_id: str = Field(index=True)
    created_by_user_id: str
    is_searchable: bool = Field(default=False, index=True)
    # Highest version number ever allocated; survives deletion of that version.
    last_version_number: int = Field(default=0)
    created_at: datetime = Field(sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(sa_type=DateTime(timezone=True))


class VersionRecord(SQLModel, table=True):
    """SQLModel table for document versions.

    Rows belong to exactly one envelope. ``message_id`` and ``chat_id`` are
    plain columns: the conversation tables live elsewhere, and unlinking on
    message deletion is done explicitly by the store.
    """

    __tablename__ = "document_versions"
    __table_args__ = (
        UniqueConstraint("document_envelope_id", "version_number", name="uq_version_number_per_envelope"),
        Index(
            "one_active_draft_per_envelope",
            "document_envelope_id",
            unique=True,
            sqlite_where=text("is_active_draft = 1"),
            postgresql_where=text("is_active_draft = true"),
        ),
        Index(
            "one_active_published_per_envelope",
            "document_envelope_id",
            unique=True,
            sqlite_where=text("is_active_published = 1"),
            postgresql_where=text("is_active_published = true"),
        ),
    )

    id: str = Field(primary_key=True)
    schema_version: str
    document_envelope_id: str = Field(
        index=True,
        foreign_key="document_envelopes.id",
        ondelete="CASCADE",
    )
    workspace_id: str = Field(index=True)
    message_id: str | None = Field(default=None, index=True)
    chat_id: str | None = Field(default=None, index=True)
    content: str
    metadata_json: dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    kind: str
    version_number: int
    is_active_draft: bool = Field(default=False)
    is_active_published: bool = Field(default=False)
    created_by_user_id: str
    created_at: datetime = Field(sa_type=DateTime(timezone=True))
