from doclifecycle.models.envelope import DocumentEnvelope
from doclifecycle.models.enums import ActiveFlag, ContentKind, SortField, SortOrder
from doclifecycle.models.version import DocumentVersion
from doclifecycle.models.views import (
    CreatedDocument,
    DocumentPage,
    DocumentSummary,
    DocumentWithVersions,
    MessageLink,
)

__all__ = [
    "DocumentEnvelope",
    "DocumentVersion",
    "CreatedDocument",
    "DocumentSummary",
    "DocumentWithVersions",
    "DocumentPage",
    "MessageLink",
    "ActiveFlag",
    "ContentKind",
    "SortField",
    "SortOrder",
]
