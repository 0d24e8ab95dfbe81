"""Error taxonomy for building store operations.

Callers must be able to tell these outcomes apart:
- RevisionConflictError: reload the building and re-apply the edit
- TransientStoreError: retry the same call unchanged
- AlreadyLikedError: do not retry, report to the user
- ValidationFailureError: fix the request, nothing was written
"""


class CatalogueError(Exception):
    """Base exception for all building store errors."""

    code = "error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ValidationFailureError(CatalogueError):
    """Raised before any transaction when proposed fields are unknown or malformed."""

    code = "validation_failure"

    def __init__(self, message: str, errors: list[dict] | None = None):
        self.errors = errors or []
        super().__init__(message)


class BuildingNotFoundError(CatalogueError):
    """Raised when no building exists for the requested id."""

    code = "not_found"

    def __init__(self, building_id: int):
        self.building_id = building_id
        super().__init__(f"Building {building_id} not found")


class RevisionConflictError(CatalogueError):
    """Raised when the expected revision no longer matches the stored building."""

    code = "conflict"

    def __init__(self, building_id: int, expected_revision: int | None):
        self.building_id = building_id
        self.expected_revision = expected_revision
        super().__init__(
            f"Building {building_id} is no longer at revision {expected_revision}; re-fetch before updating"
        )


class AlreadyLikedError(CatalogueError):
    """Raised when a user likes a building they already like."""

    code = "already_liked"

    def __init__(self, building_id: int, user_id: str):
        self.building_id = building_id
        self.user_id = user_id
        super().__init__(f"User {user_id} already likes building {building_id}")


class TransientStoreError(CatalogueError):
    """Raised on serialization failures, lock timeouts and dropped connections."""

    code = "transient_store_failure"


class StoreError(CatalogueError):
    """Raised when the database fails in a way that is not known to be transient."""

    code = "store_error"


class RevertError(CatalogueError):
    """Raised when a log entry cannot be reverted."""

    code = "revert_error"
