from datetime import datetime
from typing import Any, ClassVar

from pydantic import Field, ValidationInfo, field_validator, model_validator

from doclifecycle.models.base import (
    RecordModel,
    normalize_reference,
    normalize_uuid,
    require_aware_datetime,
    require_text,
)

DEFAULT_DOCUMENT_TYPE = "document"


class DocumentEnvelope(RecordModel):
    """Durable identity of a logical document, independent of its content."""

    SCHEMA_VERSION: ClassVar[str] = "document_envelope.v1"

    schema_version: str = Field(default=SCHEMA_VERSION)
    id: str
    title: str
    document_type: str = DEFAULT_DOCUMENT_TYPE
    workspace_id: str
    created_by_user_id: str
    is_searchable: bool = False
    created_at: datetime
    updated_at: datetime

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> str:
        return normalize_uuid(value)

    @field_validator("workspace_id", "created_by_user_id", mode="before")
    @classmethod
    def _normalize_references(cls, value: Any, info: ValidationInfo) -> str:
        return normalize_reference(value, info.field_name or "value")

    @field_validator("title", "document_type")
    @classmethod
    def _require_text(cls, value: str, info: ValidationInfo) -> str:
        return require_text(value, info.field_name or "value")

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _validate_timestamps(cls, value: Any, info: ValidationInfo) -> datetime:
        return require_aware_datetime(value, info.field_name or "timestamp")

    @model_validator(mode="after")
    def _validate_order(self) -> "DocumentEnvelope":
        if self.updated_at < self.created_at:
            raise ValueError("updated_at must not precede created_at")
        return self
