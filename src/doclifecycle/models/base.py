"""Frozen record base and field validators shared by the domain models."""

from datetime import datetime, timezone
from typing import Any, ClassVar, Mapping, Type, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, model_validator

T_Record = TypeVar("T_Record", bound="RecordModel")


class RecordModel(BaseModel):
    """Frozen domain record stamped with the schema it was written under.

    Subclasses set ``SCHEMA_VERSION`` and default their ``schema_version``
    field to it; a record carrying any other value is rejected.
    """

    SCHEMA_VERSION: ClassVar[str]
    schema_version: str

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _check_schema_version(self) -> "RecordModel":
        if self.schema_version != self.SCHEMA_VERSION:
            raise ValueError(f"unsupported schema_version {self.schema_version!r}, expected {self.SCHEMA_VERSION!r}")
        return self

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_record(cls: Type[T_Record], data: Mapping[str, Any]) -> T_Record:
        return cls.model_validate(data)


def normalize_uuid(value: Any) -> str:
    """Canonical string form of a UUID given as UUID or text."""
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, str):
        return str(UUID(value.strip()))
    raise ValueError("identifier must be a UUID")


def normalize_reference(value: Any, field_name: str) -> str:
    """Opaque identifier owned by the caller (workspace, user, message, chat)."""
    if isinstance(value, UUID):
        return str(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field_name} must be a non-empty string")
    return value.strip()


def normalize_optional_reference(value: Any, field_name: str) -> str | None:
    return None if value is None else normalize_reference(value, field_name)


def require_text(value: str, field_name: str) -> str:
    if not value.strip():
        raise ValueError(f"{field_name} cannot be blank")
    return value


def normalize_metadata(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError("metadata must be a mapping")
    return dict(value)


def require_aware_datetime(value: Any, field_name: str) -> datetime:
    """Accept a datetime or ISO-8601 string that carries a UTC offset."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        raise ValueError(f"{field_name} must be a datetime")
    if value.utcoffset() is None:
        raise ValueError(f"{field_name} must be timezone-aware")
    return value


def as_utc(dt: datetime) -> datetime:
    """SQLite returns naive datetimes; stored values are always UTC."""
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
