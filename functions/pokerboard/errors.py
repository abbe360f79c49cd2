"""
Coarse repository failures.

Each failure only says that the requested query or mutation could not
complete. The underlying Firestore error is logged where it is caught and
kept as ``__cause__``; callers are not expected to branch on it.
"""


class RepositoryError(Exception):
    default_message = "Repository operation failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class CreationFailure(RepositoryError):
    default_message = "Failed to create document"


class FetchFailure(RepositoryError):
    default_message = "Failed to fetch documents"


class UpdateFailure(RepositoryError):
    default_message = "Failed to update document"


class DeletionFailure(RepositoryError):
    default_message = "Failed to delete document"


class SyncFailure(RepositoryError):
    default_message = "Failed to sync sprint counts"
