"""Read-only building lookups.

These are plain queries: no locking, no writes. Each returns matching rows
or an empty result.
"""

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from catalogue.buildings.errors import BuildingNotFoundError, ValidationFailureError
from catalogue.db.models import Building, BuildingProperty, Geometry

REFERENCE_KEYS = ("toid", "uprn")


def get_building_by_id(session: Session, building_id: int) -> Building:
    """Get a building by id.

    Raises:
        BuildingNotFoundError: If no building has this id
    """
    building = session.get(Building, building_id)
    if building is None:
        raise BuildingNotFoundError(building_id)
    return building


def query_buildings_by_reference(session: Session, key: str, value: str) -> list[Building]:
    """Find buildings by an external reference.

    Args:
        session: Database session
        key: "toid" (OS TOID on the building) or "uprn" (property UPRN)
        value: Reference value

    Raises:
        ValidationFailureError: If key is not a supported reference type
    """
    if key == "toid":
        query = select(Building).where(Building.ref_toid == value)
    elif key == "uprn":
        try:
            uprn = int(value)
        except ValueError as e:
            raise ValidationFailureError(f"UPRN must be an integer, got {value!r}") from e
        query = (
            select(Building)
            .join(BuildingProperty, BuildingProperty.building_id == Building.building_id)
            .where(BuildingProperty.uprn == uprn)
            .distinct()
        )
    else:
        raise ValidationFailureError(f"Key must be one of {', '.join(REFERENCE_KEYS)}, got {key!r}")

    buildings = list(session.execute(query.order_by(Building.building_id)).scalars().all())
    logger.debug(f"Reference lookup {key}={value} matched {len(buildings)} building(s)")
    return buildings


def query_buildings_at_point(session: Session, lng: float, lat: float) -> list[Building]:
    """Find buildings whose footprint envelope contains the point (WGS84 degrees)."""
    query = (
        select(Building)
        .join(Geometry, Geometry.geometry_id == Building.geometry_id)
        .where(
            Geometry.min_lng <= lng,
            Geometry.max_lng >= lng,
            Geometry.min_lat <= lat,
            Geometry.max_lat >= lat,
        )
        .order_by(Building.building_id)
    )
    return list(session.execute(query).scalars().all())
