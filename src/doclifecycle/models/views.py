"""Read models derived from an envelope and its versions.

Nothing here is stored. The current draft and current published version are
computed by filtering an envelope's versions on their active flags.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from doclifecycle.models.base import normalize_optional_reference, normalize_reference, normalize_uuid
from doclifecycle.models.envelope import DocumentEnvelope
from doclifecycle.models.version import DocumentVersion


def _find_active(versions: list[DocumentVersion], flag: str) -> DocumentVersion | None:
    active = [version for version in versions if getattr(version, flag)]
    if len(active) > 1:
        raise ValueError(f"more than one version has {flag} set")
    return active[0] if active else None


class CreatedDocument(BaseModel):
    """Result of creating a document: the envelope and its first draft."""

    envelope: DocumentEnvelope
    current_draft: DocumentVersion

    model_config = ConfigDict(frozen=True)


class DocumentSummary(BaseModel):
    """An envelope with its derived active draft and active published version."""

    envelope: DocumentEnvelope
    current_draft: DocumentVersion | None = None
    current_published: DocumentVersion | None = None

    model_config = ConfigDict(frozen=True)

    @property
    def has_unpublished_draft(self) -> bool:
        if self.current_draft is None:
            return False
        if self.current_published is None:
            return True
        return self.current_draft.id != self.current_published.id

    @classmethod
    def from_versions(cls, envelope: DocumentEnvelope, versions: list[DocumentVersion]) -> "DocumentSummary":
        return cls(
            envelope=envelope,
            current_draft=_find_active(versions, "is_active_draft"),
            current_published=_find_active(versions, "is_active_published"),
        )


class DocumentWithVersions(DocumentSummary):
    """Full view of an envelope including its complete version history."""

    all_versions: list[DocumentVersion] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_ownership(self) -> "DocumentWithVersions":
        for version in self.all_versions:
            if version.document_envelope_id != self.envelope.id:
                raise ValueError("version does not belong to envelope")
        return self

    @classmethod
    def from_versions(cls, envelope: DocumentEnvelope, versions: list[DocumentVersion]) -> "DocumentWithVersions":
        ordered = sorted(versions, key=lambda version: version.version_number)
        return cls(
            envelope=envelope,
            current_draft=_find_active(ordered, "is_active_draft"),
            current_published=_find_active(ordered, "is_active_published"),
            all_versions=ordered,
        )


class DocumentPage(BaseModel):
    """One page of a workspace document listing."""

    documents: list[DocumentSummary] = Field(default_factory=list)
    total: int = Field(ge=0)
    page: int = Field(ge=1)
    limit: int = Field(ge=1)
    has_more: bool

    model_config = ConfigDict(frozen=True)


class MessageLink(BaseModel):
    """Anchors a version to the conversational turn that produced it."""

    version_id: str
    message_id: str
    chat_id: str | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("version_id", mode="before")
    @classmethod
    def _normalize_version_id(cls, value: Any) -> str:
        return normalize_uuid(value)

    @field_validator("message_id", mode="before")
    @classmethod
    def _normalize_message_id(cls, value: Any) -> str:
        return normalize_reference(value, "message_id")

    @field_validator("chat_id", mode="before")
    @classmethod
    def _normalize_chat_id(cls, value: Any) -> str | None:
        return normalize_optional_reference(value, "chat_id")


__all__ = [
    "CreatedDocument",
    "DocumentPage",
    "DocumentSummary",
    "DocumentWithVersions",
    "MessageLink",
]
