"""Root conftest for all tests.

Every test gets its own SQLite file database. The session module's lazy
engine and session factory are patched to point at it, so service code
that opens its own transactions through get_session() uses the test
database. A file (not :memory:) is used so that threads get separate
connections and lock against each other like real clients.
"""

from collections.abc import Callable, Generator
from typing import Any

import pytest
from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

import catalogue.db.session as session_module
from catalogue.buildings.log_repository import append_log_entry
from catalogue.db.models import Base, Building, BuildingProperty, Geometry, Log
from catalogue.db.session import create_database_engine, get_session


@pytest.fixture
def db_engine(tmp_path, monkeypatch) -> Generator[Engine, None, None]:
    engine = create_database_engine(f"sqlite:///{tmp_path / 'catalogue.db'}")
    Base.metadata.create_all(engine)

    monkeypatch.setattr(session_module, "_engine", engine)
    monkeypatch.setattr(
        session_module,
        "_SessionLocal",
        sessionmaker(autocommit=False, autoflush=False, bind=engine),
    )

    yield engine

    engine.dispose()


@pytest.fixture
def log_entries(db_engine) -> Callable[[int], list[Log]]:
    """Load a building's committed log entries, oldest first.

    Each call uses its own short transaction; SQLite transactions hold the
    database write lock, so tests must not keep one open across service calls.
    """

    def _entries(building_id: int) -> list[Log]:
        with get_session() as session:
            entries = list(
                session.execute(select(Log).where(Log.building_id == building_id).order_by(Log.log_id)).scalars()
            )
            session.expunge_all()
            return entries

    return _entries


@pytest.fixture
def test_user_id() -> str:
    return "user-1"


@pytest.fixture
def create_building(db_engine) -> Callable[..., int]:
    """Factory that inserts a building and its creation log entry.

    The creation entry gives the building a store-assigned revision_id,
    the same way an import job would.

    Returns:
        Factory(**fields) -> building_id
    """

    def _create(
        *,
        envelope: tuple[float, float, float, float] | None = None,
        uprns: tuple[int, ...] = (),
        **fields: Any,
    ) -> int:
        with get_session() as session:
            geometry_id = None
            if envelope is not None:
                min_lng, min_lat, max_lng, max_lat = envelope
                geometry = Geometry(min_lng=min_lng, min_lat=min_lat, max_lng=max_lng, max_lat=max_lat)
                session.add(geometry)
                session.flush()
                geometry_id = geometry.geometry_id

            building = Building(geometry_id=geometry_id, likes_total=0, **fields)
            session.add(building)
            session.flush()

            for uprn in uprns:
                session.add(BuildingProperty(building_id=building.building_id, uprn=uprn))

            entry = append_log_entry(
                session,
                building_id=building.building_id,
                user_id="import",
                forward_patch=dict(fields),
            )
            building.revision_id = entry.log_id
            return building.building_id

    return _create


@pytest.fixture
def fetch_building(db_engine) -> Callable[[int], Building]:
    """Load a committed building in a fresh session (detached, attributes loaded)."""

    def _fetch(building_id: int) -> Building:
        with get_session() as session:
            building = session.get(Building, building_id)
            session.expunge(building)
            return building

    return _fetch
