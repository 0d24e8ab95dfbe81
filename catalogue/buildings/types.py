"""Building and revision log types.

BuildingUpdate is the validated shape of an edit: every whitelisted field,
strictly typed, nothing else. BuildingRecord and LogEntryRecord are the
detached views returned once a transaction has committed.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    model_validator,
)

from catalogue.buildings.errors import ValidationFailureError

OverlapPresent = Literal["25%", "50%", "75%", "100%"]


class YearRange(BaseModel):
    """Earliest/latest estimate of a year."""

    min: StrictInt
    max: StrictInt

    @model_validator(mode="after")
    def check_order(self) -> "YearRange":
        if self.min > self.max:
            raise ValueError(f"min ({self.min}) must not be greater than max ({self.max})")
        return self


class PastBuilding(BaseModel):
    """A building that previously stood on the same site.

    Attributes:
        year_constructed: Construction year estimate range
        year_demolished: Demolition year estimate range
        overlap_present: Share of the current footprint it covered
        links: Source links for the evidence
    """

    model_config = ConfigDict(extra="forbid")

    year_constructed: YearRange
    year_demolished: YearRange
    overlap_present: OverlapPresent
    links: list[StrictStr] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_lifespan(self) -> "PastBuilding":
        if self.year_constructed.max > self.year_demolished.min:
            raise ValueError("year_constructed.max must not be later than year_demolished.min")
        return self


class BuildingUpdate(BaseModel):
    """Editable building fields. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")

    ref_toid: StrictStr | None = None
    ref_osm_id: StrictStr | None = None

    location_name: StrictStr | None = None
    location_number: StrictInt | None = None
    location_street: StrictStr | None = None
    location_line_two: StrictStr | None = None
    location_town: StrictStr | None = None
    location_postcode: StrictStr | None = None
    location_latitude: StrictFloat | None = Field(default=None, ge=-90, le=90)
    location_longitude: StrictFloat | None = Field(default=None, ge=-180, le=180)

    date_year: StrictInt | None = None
    date_lower: StrictInt | None = None
    date_upper: StrictInt | None = None
    date_source: StrictStr | None = None

    facade_year: StrictInt | None = None
    facade_upper: StrictInt | None = None
    facade_lower: StrictInt | None = None
    facade_source: StrictStr | None = None

    size_storeys_attic: StrictInt | None = Field(default=None, ge=0)
    size_storeys_core: StrictInt | None = Field(default=None, ge=0)
    size_storeys_basement: StrictInt | None = Field(default=None, ge=0)
    size_height_apex: StrictFloat | None = Field(default=None, ge=0)
    size_floor_area_ground: StrictFloat | None = Field(default=None, ge=0)
    size_floor_area_total: StrictFloat | None = Field(default=None, ge=0)
    size_width_frontage: StrictFloat | None = Field(default=None, ge=0)

    dynamics_has_demolished_buildings: StrictBool | None = None
    past_buildings: list[PastBuilding] | None = None


def validate_building_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Validate proposed editable fields.

    Args:
        fields: Proposed values with read-only keys already removed

    Returns:
        The fields that were supplied, in JSON-compatible form, with defaults
        filled in inside nested values (a past building without links gets [])

    Raises:
        ValidationFailureError: If a key is not editable or a value is malformed
    """
    try:
        update = BuildingUpdate.model_validate(fields)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
            for error in e.errors()
        ]
        fields_in_error = ", ".join(sorted({error["field"] for error in errors}))
        raise ValidationFailureError(f"Invalid building fields: {fields_in_error}", errors=errors) from e
    return update.model_dump(mode="json", include=update.model_fields_set)


class BuildingRecord(BaseModel):
    """Committed state of a building."""

    model_config = ConfigDict(from_attributes=True)

    building_id: int
    revision_id: int | None = None
    geometry_id: int | None = None

    ref_toid: str | None = None
    ref_osm_id: str | None = None

    location_name: str | None = None
    location_number: int | None = None
    location_street: str | None = None
    location_line_two: str | None = None
    location_town: str | None = None
    location_postcode: str | None = None
    location_latitude: float | None = None
    location_longitude: float | None = None

    date_year: int | None = None
    date_lower: int | None = None
    date_upper: int | None = None
    date_source: str | None = None

    facade_year: int | None = None
    facade_upper: int | None = None
    facade_lower: int | None = None
    facade_source: str | None = None

    size_storeys_attic: int | None = None
    size_storeys_core: int | None = None
    size_storeys_basement: int | None = None
    size_height_apex: float | None = None
    size_floor_area_ground: float | None = None
    size_floor_area_total: float | None = None
    size_width_frontage: float | None = None

    dynamics_has_demolished_buildings: bool | None = None
    past_buildings: list[dict[str, Any]] | None = None

    likes_total: int = 0


class LogEntryRecord(BaseModel):
    """Immutable revision log entry.

    Attributes:
        log_id: Sequence value; equals the building's revision_id after this change
        log_timestamp: When the entry was written
        forward_patch: New values of the changed fields
        reverse_patch: Old values of the changed fields (None for like counts)
        building_id: Building that changed
        user_id: Acting user
    """

    model_config = ConfigDict(from_attributes=True)

    log_id: int
    log_timestamp: datetime
    forward_patch: dict[str, Any]
    reverse_patch: dict[str, Any] | None = None
    building_id: int
    user_id: str
