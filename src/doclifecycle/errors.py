"""Typed errors raised by the lifecycle store.

Precondition errors are raised before any write is attempted and carry a
message suitable for showing to an end user.
"""


class DocumentStoreError(Exception):
    """Base exception for lifecycle store errors."""

    retryable = False

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class PreconditionError(DocumentStoreError):
    """Raised when an operation's precondition does not hold."""


class DocumentNotFoundError(PreconditionError):
    """Raised when an envelope does not exist in the requested scope."""

    def __init__(self, document_id: str):
        super().__init__("document not found or already deleted")
        self.document_id = document_id


class VersionNotFoundError(PreconditionError):
    """Raised when a version does not belong to the given envelope."""

    def __init__(self, document_id: str, version_id: str):
        super().__init__("version not found for document")
        self.document_id = document_id
        self.version_id = version_id


class DocumentNotPublishedError(PreconditionError):
    """Raised when an operation needs a published version and there is none."""

    def __init__(self, document_id: str):
        super().__init__("document not published")
        self.document_id = document_id


class NoPublishedVersionError(PreconditionError):
    """Raised when a standalone draft is requested with nothing to branch from."""

    def __init__(self, document_id: str):
        super().__init__("no published version exists")
        self.document_id = document_id


class ConcurrentModificationError(DocumentStoreError):
    """Raised when a concurrent writer won a flag move or version number.

    The transaction was rolled back; the caller may retry the whole operation.
    """

    retryable = True


class SearchIndexError(DocumentStoreError):
    """Raised when the search index rejects an index or remove call."""


class DatabaseError(DocumentStoreError):
    """Raised when the relational store fails for any other reason."""
