"""Building API endpoints.

Reads go straight to the read layer. Saves, likes and reverts go through
the service layer, which owns the transactions. Store errors are turned
into HTTP responses by the handlers registered in catalogue.main.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from catalogue.api.dependencies import get_current_user_id
from catalogue.buildings.repository import (
    get_building_by_id,
    query_buildings_at_point,
    query_buildings_by_reference,
)
from catalogue.buildings.service import get_building_history, like_building, revert_revision, save_building
from catalogue.buildings.types import BuildingRecord, LogEntryRecord
from catalogue.db.session import get_db

router = APIRouter(prefix="/buildings", tags=["buildings"])


class RevertRequest(BaseModel):
    """Body of a revert request."""

    revision_id: int | None = Field(description="Revision of the building the caller last saw")


@router.get("/reference", response_model=list[BuildingRecord])
def get_buildings_by_reference(
    key: str = Query(..., description="Reference type: toid or uprn"),
    id: str = Query(..., description="Reference value"),
    db: Session = Depends(get_db),
) -> list[BuildingRecord]:
    """Find buildings by OS TOID or UPRN."""
    return [BuildingRecord.model_validate(b) for b in query_buildings_by_reference(db, key, id)]


@router.get("/locate", response_model=list[BuildingRecord])
def get_buildings_at_point(
    lng: float = Query(..., ge=-180, le=180),
    lat: float = Query(..., ge=-90, le=90),
    db: Session = Depends(get_db),
) -> list[BuildingRecord]:
    """Find buildings at a WGS84 point."""
    return [BuildingRecord.model_validate(b) for b in query_buildings_at_point(db, lng, lat)]


@router.get("/{building_id}", response_model=BuildingRecord)
def get_building(building_id: int, db: Session = Depends(get_db)) -> BuildingRecord:
    return BuildingRecord.model_validate(get_building_by_id(db, building_id))


@router.post("/{building_id}", response_model=BuildingRecord)
def post_building(
    building_id: int,
    building: dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
) -> BuildingRecord:
    """Save an edited building.

    The body is the building as the caller last fetched it, with edits
    applied, including its revision_id. A 409 means the building changed in
    the meantime: fetch it again and re-apply the edit.
    """
    logger.info("Building save requested", building_id=building_id, user_id=user_id)
    return save_building(building_id, building, user_id)


@router.post("/{building_id}/like", response_model=BuildingRecord)
def post_building_like(building_id: int, user_id: str = Depends(get_current_user_id)) -> BuildingRecord:
    return like_building(building_id, user_id)


@router.get("/{building_id}/history", response_model=list[LogEntryRecord])
def get_history(
    building_id: int,
    limit: int | None = Query(None, ge=1, le=1000),
) -> list[LogEntryRecord]:
    """List the building's log entries, newest first."""
    return get_building_history(building_id, limit=limit)


@router.post("/{building_id}/history/{log_id}/revert", response_model=BuildingRecord)
def post_revert(
    building_id: int,
    log_id: int,
    request: RevertRequest,
    user_id: str = Depends(get_current_user_id),
) -> BuildingRecord:
    """Undo one edit by re-applying its old values."""
    return revert_revision(building_id, log_id, request.revision_id, user_id)
