from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Float, ForeignKey, Index, Integer, String, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigId = BigInteger().with_variant(Integer, "sqlite")
PatchJSON = JSON().with_variant(JSONB, "postgresql")


class Base(DeclarativeBase):
    """Base class for all database models."""


class Geometry(Base):
    """Building footprint reference.

    Stores the footprint envelope in WGS84 degrees. Point lookups match
    buildings whose envelope contains the point.
    """

    __tablename__ = "geometries"

    geometry_id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    min_lng: Mapped[float] = mapped_column(Float, nullable=False)
    min_lat: Mapped[float] = mapped_column(Float, nullable=False)
    max_lng: Mapped[float] = mapped_column(Float, nullable=False)
    max_lat: Mapped[float] = mapped_column(Float, nullable=False)

    __table_args__ = (Index("idx_geometries_envelope", "min_lng", "max_lng", "min_lat", "max_lat"),)


class Building(Base):
    """Crowd-edited building record.

    Stores:
    - building_id: immutable surface identifier
    - revision_id: log_id of the latest log entry touching this row (assigned by the store)
    - geometry_id: footprint reference (read-only)
    - whitelisted attribute columns (location, date, facade, size, dynamics)
    - likes_total: aggregate counter, owned by the like path
    """

    __tablename__ = "buildings"

    building_id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    revision_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    geometry_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("geometries.geometry_id"), nullable=True, index=True
    )

    ref_toid: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    ref_osm_id: Mapped[str | None] = mapped_column(String, nullable=True)

    location_name: Mapped[str | None] = mapped_column(String, nullable=True)
    location_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    location_street: Mapped[str | None] = mapped_column(String, nullable=True)
    location_line_two: Mapped[str | None] = mapped_column(String, nullable=True)
    location_town: Mapped[str | None] = mapped_column(String, nullable=True)
    location_postcode: Mapped[str | None] = mapped_column(String, nullable=True)
    location_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    date_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    date_lower: Mapped[int | None] = mapped_column(Integer, nullable=True)
    date_upper: Mapped[int | None] = mapped_column(Integer, nullable=True)
    date_source: Mapped[str | None] = mapped_column(String, nullable=True)

    facade_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    facade_upper: Mapped[int | None] = mapped_column(Integer, nullable=True)
    facade_lower: Mapped[int | None] = mapped_column(Integer, nullable=True)
    facade_source: Mapped[str | None] = mapped_column(String, nullable=True)

    size_storeys_attic: Mapped[int | None] = mapped_column(Integer, nullable=True)
    size_storeys_core: Mapped[int | None] = mapped_column(Integer, nullable=True)
    size_storeys_basement: Mapped[int | None] = mapped_column(Integer, nullable=True)
    size_height_apex: Mapped[float | None] = mapped_column(Float, nullable=True)
    size_floor_area_ground: Mapped[float | None] = mapped_column(Float, nullable=True)
    size_floor_area_total: Mapped[float | None] = mapped_column(Float, nullable=True)
    size_width_frontage: Mapped[float | None] = mapped_column(Float, nullable=True)

    dynamics_has_demolished_buildings: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    past_buildings: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)

    likes_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def to_fields(self) -> dict[str, Any]:
        """Return the current column values keyed by column name."""
        return {column.key: getattr(self, column.key) for column in self.__table__.columns}


class BuildingProperty(Base):
    """Address-level property (UPRN) belonging to a building."""

    __tablename__ = "building_properties"

    building_property_id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    building_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("buildings.building_id"), nullable=False, index=True
    )
    uprn: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)


class BuildingUserLike(Base):
    """One row per (building, user) like.

    The composite primary key rejects a second like by the same user.
    likes_total on the building is always recounted from this table.
    """

    __tablename__ = "building_user_likes"

    building_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("buildings.building_id"), primary_key=True)
    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))


class Log(Base):
    """Append-only revision log.

    Each entry records the forward patch (new values of changed fields), the
    reverse patch (old values; NULL for counter entries), the building and the
    acting user. log_id is the sequence value reused as the building's new
    revision_id.
    """

    __tablename__ = "logs"

    log_id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    log_timestamp: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    forward_patch: Mapped[dict[str, Any]] = mapped_column(PatchJSON, nullable=False)
    reverse_patch: Mapped[dict[str, Any] | None] = mapped_column(PatchJSON, nullable=True)
    building_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("buildings.building_id"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    __table_args__ = (Index("idx_logs_building_id_log_id", "building_id", "log_id"),)


@event.listens_for(Log, "before_update")
@event.listens_for(Log, "before_delete")
def _reject_log_mutation(_mapper, _connection, target: Log) -> None:
    """Log entries are permanent once written."""
    raise RuntimeError(f"Log entry {target.log_id} is immutable")
