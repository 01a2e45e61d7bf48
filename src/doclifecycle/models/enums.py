from enum import StrEnum


class ActiveFlag(StrEnum):
    """Single-owner flags carried by document versions.

    Values are the column names on the version table.
    """

    DRAFT = "is_active_draft"
    PUBLISHED = "is_active_published"


class ContentKind(StrEnum):
    TEXT = "text"
    MARKDOWN = "markdown"
    CODE = "code"
    SHEET = "sheet"
    JSON = "json"


class SortField(StrEnum):
    UPDATED_AT = "updated_at"
    CREATED_AT = "created_at"
    TITLE = "title"


class SortOrder(StrEnum):
    ASC = "asc"
    DESC = "desc"
