"""Tests for saving building edits against an expected revision.

Tests cover:
- Successful edit: log entry, new revision, stored values
- Stale revision and unknown building are conflicts
- Read-only fields are never written
- No-op saves write nothing
- A failure mid-transaction leaves no trace
- Concurrent saves on the same revision: exactly one wins
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.exc import OperationalError, ProgrammingError

import catalogue.buildings.service as service
from catalogue.buildings.errors import RevisionConflictError, StoreError, TransientStoreError, ValidationFailureError
from catalogue.buildings.service import save_building


def test_edit_scenario_from_stale_caller(create_building, fetch_building, log_entries):
    """Caller A saves on the current revision; caller B, still on it, conflicts."""
    building_id = create_building(size_storeys_core=3)
    r5 = fetch_building(building_id).revision_id

    result = save_building(building_id, {"revision_id": r5, "size_storeys_core": 4}, "user-a")

    r6 = result.revision_id
    assert r6 > r5
    assert result.size_storeys_core == 4
    entries = log_entries(building_id)
    assert entries[-1].log_id == r6
    assert entries[-1].forward_patch == {"size_storeys_core": 4}
    assert entries[-1].reverse_patch == {"size_storeys_core": 3}
    assert entries[-1].user_id == "user-a"

    with pytest.raises(RevisionConflictError) as exc_info:
        save_building(building_id, {"revision_id": r5, "size_storeys_core": 5}, "user-b")

    assert exc_info.value.expected_revision == r5
    stored = fetch_building(building_id)
    assert stored.revision_id == r6
    assert stored.size_storeys_core == 4
    assert len(log_entries(building_id)) == len(entries)


def test_full_record_round_trip(create_building, fetch_building, log_entries):
    """A client posts back the whole record it fetched, with one edit."""
    building_id = create_building(location_street="Gower Street", date_year=1890, size_height_apex=14.5)
    record = fetch_building(building_id).to_fields()
    record["date_year"] = 1891

    result = save_building(building_id, record, "user-1")

    assert result.date_year == 1891
    assert result.location_street == "Gower Street"
    assert log_entries(building_id)[-1].forward_patch == {"date_year": 1891}


def test_read_only_fields_are_not_written(create_building, fetch_building):
    building_id = create_building(date_year=1900)
    before = fetch_building(building_id)

    result = save_building(
        building_id,
        {
            "building_id": 999,
            "revision_id": before.revision_id,
            "geometry_id": 42,
            "likes_total": 1000,
            "date_year": 1901,
        },
        "user-1",
    )

    assert result.building_id == building_id
    assert result.geometry_id is None
    assert result.likes_total == 0
    assert result.date_year == 1901


def test_unchanged_save_writes_nothing(create_building, fetch_building, log_entries):
    building_id = create_building(date_year=1900)
    before = fetch_building(building_id)

    result = save_building(building_id, {"revision_id": before.revision_id, "date_year": 1900}, "user-1")

    assert result.revision_id == before.revision_id
    assert len(log_entries(building_id)) == 1


def test_composite_field_saved_whole(create_building, log_entries):
    past = {
        "year_constructed": {"min": 1850, "max": 1860},
        "year_demolished": {"min": 1940, "max": 1941},
        "overlap_present": "100%",
        "links": [],
    }
    building_id = create_building(dynamics_has_demolished_buildings=None)
    revision = log_entries(building_id)[-1].log_id

    result = save_building(
        building_id,
        {"revision_id": revision, "dynamics_has_demolished_buildings": True, "past_buildings": [past]},
        "user-1",
    )

    assert result.past_buildings == [past]
    assert log_entries(building_id)[-1].reverse_patch == {
        "dynamics_has_demolished_buildings": None,
        "past_buildings": None,
    }


def test_past_building_links_default_stored(create_building, fetch_building, log_entries):
    past = {
        "year_constructed": {"min": 1850, "max": 1860},
        "year_demolished": {"min": 1940, "max": 1941},
        "overlap_present": "50%",
    }
    building_id = create_building()
    revision = fetch_building(building_id).revision_id

    saved = save_building(building_id, {"revision_id": revision, "past_buildings": [past]}, "user-1")
    resaved = save_building(
        building_id, {"revision_id": saved.revision_id, "past_buildings": [{**past, "links": []}]}, "user-1"
    )

    assert fetch_building(building_id).past_buildings == [{**past, "links": []}]
    assert resaved.revision_id == saved.revision_id
    assert len(log_entries(building_id)) == 2


def test_submitted_record_is_not_modified(create_building, fetch_building):
    building_id = create_building(date_year=1900)
    record = {"building_id": building_id, "revision_id": fetch_building(building_id).revision_id, "date_year": 1901}
    submitted = dict(record)

    save_building(building_id, submitted, "user-1")

    assert submitted == record


def test_unknown_building_is_a_conflict(db_engine):
    with pytest.raises(RevisionConflictError):
        save_building(12345, {"revision_id": 1, "date_year": 1900}, "user-1")


def test_missing_revision_rejected_before_transaction(create_building, monkeypatch):
    building_id = create_building(date_year=1900)
    monkeypatch.setattr(service, "get_session", _fail_if_called)

    with pytest.raises(ValidationFailureError, match="revision_id"):
        save_building(building_id, {"date_year": 1901}, "user-1")


@pytest.mark.parametrize("revision", ["5", 5.0, True])
def test_non_integer_revision_rejected(create_building, monkeypatch, revision):
    building_id = create_building(date_year=1900)
    monkeypatch.setattr(service, "get_session", _fail_if_called)

    with pytest.raises(ValidationFailureError):
        save_building(building_id, {"revision_id": revision, "date_year": 1901}, "user-1")


def test_unknown_field_rejected_before_transaction(create_building, fetch_building, monkeypatch):
    building_id = create_building(date_year=1900)
    revision = fetch_building(building_id).revision_id
    monkeypatch.setattr(service, "get_session", _fail_if_called)

    with pytest.raises(ValidationFailureError, match="roof_colour"):
        save_building(building_id, {"revision_id": revision, "roof_colour": "red"}, "user-1")


def test_failure_after_log_append_rolls_back_everything(create_building, fetch_building, log_entries, monkeypatch):
    building_id = create_building(date_year=1900)
    before = fetch_building(building_id)
    real_append = service.append_log_entry

    def append_then_fail(session, **kwargs):
        real_append(session, **kwargs)
        raise OperationalError("INSERT INTO logs", {}, Exception("server closed the connection unexpectedly"))

    monkeypatch.setattr(service, "append_log_entry", append_then_fail)

    with pytest.raises(TransientStoreError):
        save_building(building_id, {"revision_id": before.revision_id, "date_year": 1901}, "user-1")

    after = fetch_building(building_id)
    assert after.revision_id == before.revision_id
    assert after.date_year == 1900
    assert len(log_entries(building_id)) == 1


def test_unclassified_store_error_is_not_reported_as_transient(create_building, fetch_building, monkeypatch):
    building_id = create_building(date_year=1900)
    revision = fetch_building(building_id).revision_id

    def broken_append(session, **kwargs):
        raise ProgrammingError("INSERT INTO logs", {}, Exception("column does not exist"))

    monkeypatch.setattr(service, "append_log_entry", broken_append)

    with pytest.raises(StoreError):
        save_building(building_id, {"revision_id": revision, "date_year": 1901}, "user-1")


def test_concurrent_saves_on_same_revision(create_building, fetch_building, log_entries):
    workers = 8
    building_id = create_building(size_storeys_core=3)
    start_revision = fetch_building(building_id).revision_id
    barrier = threading.Barrier(workers)

    def attempt(storeys: int):
        barrier.wait()
        try:
            return save_building(building_id, {"revision_id": start_revision, "size_storeys_core": storeys}, f"user-{storeys}")
        except RevisionConflictError as e:
            return e

    with ThreadPoolExecutor(max_workers=workers) as pool:
        outcomes = list(pool.map(attempt, range(10, 10 + workers)))

    winners = [o for o in outcomes if not isinstance(o, RevisionConflictError)]
    conflicts = [o for o in outcomes if isinstance(o, RevisionConflictError)]
    assert len(winners) == 1
    assert len(conflicts) == workers - 1

    stored = fetch_building(building_id)
    assert stored.revision_id == winners[0].revision_id
    assert stored.size_storeys_core == winners[0].size_storeys_core
    entries = log_entries(building_id)
    assert len(entries) == 2
    assert entries[-1].log_id == stored.revision_id


def test_sequential_saves_form_linear_history(create_building, fetch_building, log_entries):
    building_id = create_building(size_storeys_core=1)
    revision = fetch_building(building_id).revision_id

    for storeys in (2, 3, 4):
        revision = save_building(building_id, {"revision_id": revision, "size_storeys_core": storeys}, "user-1").revision_id

    entries = log_entries(building_id)
    assert [e.forward_patch for e in entries[1:]] == [
        {"size_storeys_core": 2},
        {"size_storeys_core": 3},
        {"size_storeys_core": 4},
    ]
    assert [e.reverse_patch for e in entries[1:]] == [
        {"size_storeys_core": 1},
        {"size_storeys_core": 2},
        {"size_storeys_core": 3},
    ]
    assert entries[-1].log_id == revision


def _fail_if_called(*args, **kwargs):
    raise AssertionError("transaction must not start for an invalid request")
