"""Building records: patches, revision log, edit and like transactions."""

from catalogue.buildings.errors import (
    AlreadyLikedError,
    BuildingNotFoundError,
    CatalogueError,
    RevertError,
    RevisionConflictError,
    StoreError,
    TransientStoreError,
    ValidationFailureError,
)
from catalogue.buildings.patch import Patch, apply_patch, diff
from catalogue.buildings.service import like_building, revert_revision, save_building
from catalogue.buildings.whitelist import BUILDING_FIELD_WHITELIST, READ_ONLY_FIELDS

__all__ = [
    "BUILDING_FIELD_WHITELIST",
    "READ_ONLY_FIELDS",
    "AlreadyLikedError",
    "BuildingNotFoundError",
    "CatalogueError",
    "Patch",
    "RevertError",
    "RevisionConflictError",
    "StoreError",
    "TransientStoreError",
    "ValidationFailureError",
    "apply_patch",
    "diff",
    "like_building",
    "revert_revision",
    "save_building",
]
