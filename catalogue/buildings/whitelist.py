"""Which building fields callers may edit."""

from collections.abc import Mapping
from typing import Any

BUILDING_FIELD_WHITELIST = frozenset(
    {
        "ref_toid",
        "ref_osm_id",
        "location_name",
        "location_number",
        "location_street",
        "location_line_two",
        "location_town",
        "location_postcode",
        "location_latitude",
        "location_longitude",
        "date_year",
        "date_lower",
        "date_upper",
        "date_source",
        "facade_year",
        "facade_upper",
        "facade_lower",
        "facade_source",
        "size_storeys_attic",
        "size_storeys_core",
        "size_storeys_basement",
        "size_height_apex",
        "size_floor_area_ground",
        "size_floor_area_total",
        "size_width_frontage",
        "dynamics_has_demolished_buildings",
        "past_buildings",
    }
)

# Never client-writable. likes_total is owned by the like path.
READ_ONLY_FIELDS = frozenset({"building_id", "revision_id", "geometry_id", "likes_total"})


def strip_read_only_fields(record: Mapping[str, Any]) -> tuple[int | None, dict[str, Any]]:
    """Split a submitted building into its expected revision and its editable fields.

    The input mapping is not modified.

    Returns:
        (revision_id the caller last saw, remaining fields without read-only keys)
    """
    expected_revision = record.get("revision_id")
    fields = {key: value for key, value in record.items() if key not in READ_ONLY_FIELDS}
    return expected_revision, fields
