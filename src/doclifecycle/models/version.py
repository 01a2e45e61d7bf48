from datetime import datetime
from typing import Any, ClassVar

from pydantic import Field, ValidationInfo, field_validator

from doclifecycle.models.base import (
    RecordModel,
    normalize_metadata,
    normalize_optional_reference,
    normalize_reference,
    normalize_uuid,
    require_aware_datetime,
)
from doclifecycle.models.enums import ContentKind


class DocumentVersion(RecordModel):
    """Immutable content snapshot belonging to exactly one envelope.

    A version with ``message_id`` set to None is standalone: it is not tied
    to a live conversation turn.
    """

    SCHEMA_VERSION: ClassVar[str] = "document_version.v1"

    schema_version: str = Field(default=SCHEMA_VERSION)
    id: str
    document_envelope_id: str
    workspace_id: str
    message_id: str | None = None
    chat_id: str | None = None
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    kind: ContentKind = ContentKind.TEXT
    version_number: int = Field(ge=1)
    is_active_draft: bool = False
    is_active_published: bool = False
    created_by_user_id: str
    created_at: datetime

    @field_validator("id", "document_envelope_id", mode="before")
    @classmethod
    def _normalize_ids(cls, value: Any) -> str:
        return normalize_uuid(value)

    @field_validator("workspace_id", "created_by_user_id", mode="before")
    @classmethod
    def _normalize_references(cls, value: Any, info: ValidationInfo) -> str:
        return normalize_reference(value, info.field_name or "value")

    @field_validator("message_id", "chat_id", mode="before")
    @classmethod
    def _normalize_conversation_refs(cls, value: Any, info: ValidationInfo) -> str | None:
        return normalize_optional_reference(value, info.field_name or "value")

    @field_validator("metadata", mode="before")
    @classmethod
    def _normalize_metadata(cls, value: Any) -> dict[str, Any]:
        return normalize_metadata(value)

    @field_validator("created_at", mode="before")
    @classmethod
    def _validate_created_at(cls, value: Any) -> datetime:
        return require_aware_datetime(value, "created_at")

    @property
    def is_standalone(self) -> bool:
        return self.message_id is None
