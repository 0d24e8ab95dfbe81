"""Building mutations: field edits, likes and reverts.

Two transaction shapes write to a building row:

save_building (field edits)
    Optimistic check on revision_id combined with a row lock. The stored row
    is read with SELECT ... FOR UPDATE filtered by (building_id, revision_id),
    so once inside the transaction the edit is pessimistic: nobody else can
    read-modify-write the row until commit. The final UPDATE is scoped by the
    same pair and must touch exactly one row. A stale revision_id, or an
    unknown building_id, is a RevisionConflictError: the caller re-fetches and
    re-applies its own edit. Nothing is merged or retried here.

like_building (like counts)
    No expected revision. Runs at SERIALIZABLE, records the like, recounts
    likes from building_user_likes and writes likes_total and revision_id
    unconditionally. Concurrent likes from different users all succeed;
    serialization failures are retried a bounded number of times.

Every database error is translated at this boundary into one of the
CatalogueError kinds, and the whole transaction is rolled back.
"""

import time
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

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
from catalogue.buildings.log_repository import append_log_entry, get_log_entry, list_building_history
from catalogue.buildings.patch import diff
from catalogue.buildings.repository import get_building_by_id
from catalogue.buildings.types import BuildingRecord, LogEntryRecord, validate_building_fields
from catalogue.buildings.whitelist import BUILDING_FIELD_WHITELIST, strip_read_only_fields
from catalogue.config.settings import settings
from catalogue.db.models import Building, BuildingUserLike
from catalogue.db.session import get_session

T = TypeVar("T")


def _is_transient(error: SQLAlchemyError) -> bool:
    if isinstance(error, (OperationalError, InterfaceError, PoolTimeoutError)):
        return True
    return isinstance(error, DBAPIError) and error.connection_invalidated


def _run_protocol(action: str, building_id: int, user_id: str, work: Callable[[Session], T], **session_options) -> T:
    """Run `work` in one transaction and translate database errors.

    CatalogueError raised by `work` passes through unchanged. Any
    SQLAlchemyError becomes TransientStoreError or StoreError.
    """
    log = logger.bind(action=action, building_id=building_id, user_id=user_id)
    try:
        with get_session(**session_options) as session:
            return work(session)
    except CatalogueError:
        raise
    except SQLAlchemyError as e:
        if _is_transient(e):
            log.warning(f"{action} aborted by the store, safe to retry: {type(e).__name__}")
            raise TransientStoreError(f"{action} on building {building_id} failed transiently; retry") from e
        log.exception(f"{action} failed with an unexpected store error")
        raise StoreError(f"{action} on building {building_id} failed") from e


def _check_expected_revision(building: Mapping[str, Any], expected_revision: Any) -> None:
    if "revision_id" not in building:
        raise ValidationFailureError("revision_id is required to save a building")
    if expected_revision is not None and (isinstance(expected_revision, bool) or not isinstance(expected_revision, int)):
        raise ValidationFailureError(f"revision_id must be an integer, got {expected_revision!r}")


def save_building(building_id: int, building: Mapping[str, Any], user_id: str) -> BuildingRecord:
    """Apply a caller's edit to a building if it was made against the latest revision.

    Args:
        building_id: Building to update
        building: Submitted building, including the revision_id the caller last saw.
            Read-only fields (building_id, revision_id, geometry_id, likes_total)
            are ignored; every other key must be an editable field.
        user_id: Acting user

    Returns:
        BuildingRecord after the edit. When nothing changed the stored building is
        returned as-is: no log entry, no new revision.

    Raises:
        ValidationFailureError: Unknown field or malformed value (nothing written)
        RevisionConflictError: revision_id is stale or building_id unknown
        TransientStoreError: Lock timeout, serialization or connection failure
        StoreError: Any other database failure
    """
    expected_revision, fields = strip_read_only_fields(building)
    _check_expected_revision(building, expected_revision)
    proposed = validate_building_fields(fields)

    def work(session: Session) -> BuildingRecord:
        stored = session.execute(
            select(Building)
            .where(Building.building_id == building_id, Building.revision_id == expected_revision)
            .with_for_update()
        ).scalar_one_or_none()
        if stored is None:
            raise RevisionConflictError(building_id, expected_revision)

        patch = diff(stored.to_fields(), proposed, BUILDING_FIELD_WHITELIST)
        if patch.is_empty():
            logger.debug("No editable field changed; building left at current revision", building_id=building_id)
            return BuildingRecord.model_validate(stored)

        entry = append_log_entry(
            session,
            building_id=building_id,
            user_id=user_id,
            forward_patch=patch.forward,
            reverse_patch=patch.reverse,
        )
        result = session.execute(
            update(Building)
            .where(Building.building_id == building_id, Building.revision_id == expected_revision)
            .values(revision_id=entry.log_id, **patch.forward)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise RevisionConflictError(building_id, expected_revision)

        session.refresh(stored)
        logger.info(
            "Building saved",
            building_id=building_id,
            user_id=user_id,
            revision_id=entry.log_id,
            fields=sorted(patch.forward),
        )
        return BuildingRecord.model_validate(stored)

    try:
        return _run_protocol("save_building", building_id, user_id, work)
    except RevisionConflictError:
        logger.warning(
            "Building save rejected: revision is stale",
            building_id=building_id,
            user_id=user_id,
            expected_revision=expected_revision,
        )
        raise


def _like_once(building_id: int, user_id: str) -> BuildingRecord:
    def work(session: Session) -> BuildingRecord:
        building = session.get(Building, building_id)
        if building is None:
            raise BuildingNotFoundError(building_id)

        session.add(BuildingUserLike(building_id=building_id, user_id=user_id))
        try:
            session.flush()
        except IntegrityError as e:
            raise AlreadyLikedError(building_id, user_id) from e

        likes_total = session.scalar(
            select(func.count()).select_from(BuildingUserLike).where(BuildingUserLike.building_id == building_id)
        )
        entry = append_log_entry(
            session,
            building_id=building_id,
            user_id=user_id,
            forward_patch={"likes_total": likes_total},
        )
        session.execute(
            update(Building)
            .where(Building.building_id == building_id)
            .values(revision_id=entry.log_id, likes_total=likes_total)
            .execution_options(synchronize_session=False)
        )
        session.refresh(building)
        logger.info("Building liked", building_id=building_id, user_id=user_id, likes_total=likes_total)
        return BuildingRecord.model_validate(building)

    return _run_protocol("like_building", building_id, user_id, work, isolation_level="SERIALIZABLE")


def like_building(building_id: int, user_id: str) -> BuildingRecord:
    """Record that a user likes a building and refresh its like count.

    Serialization failures are retried with exponential backoff up to
    settings.like_max_retries times before TransientStoreError is raised.

    Raises:
        BuildingNotFoundError: No building with this id
        AlreadyLikedError: This user already likes this building (nothing written)
        TransientStoreError: Retries exhausted
        StoreError: Any other database failure
    """
    max_retries = settings.like_max_retries
    for attempt in range(max_retries + 1):
        try:
            return _like_once(building_id, user_id)
        except AlreadyLikedError:
            logger.warning("Duplicate like rejected", building_id=building_id, user_id=user_id)
            raise
        except TransientStoreError:
            if attempt >= max_retries:
                raise
            delay = settings.like_retry_delay * (2**attempt)
            logger.warning(
                f"Retrying like in {delay:.2f}s (attempt {attempt + 1}/{max_retries})",
                building_id=building_id,
                user_id=user_id,
            )
            time.sleep(delay)

    raise TransientStoreError(f"like_building on building {building_id} failed")


def revert_revision(building_id: int, log_id: int, expected_revision: int | None, user_id: str) -> BuildingRecord:
    """Undo one field edit by saving its reverse patch.

    The revert is an ordinary save: it is conflict-checked against
    expected_revision and writes its own log entry.

    Raises:
        RevertError: Unknown log entry, entry of another building, or a like-count entry
        RevisionConflictError: expected_revision is stale
    """

    def load(session: Session) -> dict[str, Any]:
        entry = get_log_entry(session, log_id)
        if entry is None or entry.building_id != building_id:
            raise RevertError(f"Log entry {log_id} not found for building {building_id}")
        if entry.reverse_patch is None:
            raise RevertError(f"Log entry {log_id} has no reverse patch and cannot be reverted")
        return dict(entry.reverse_patch)

    reverse_patch = _run_protocol("revert_revision", building_id, user_id, load)
    logger.info("Reverting log entry", building_id=building_id, log_id=log_id, user_id=user_id)
    return save_building(building_id, {**reverse_patch, "revision_id": expected_revision}, user_id)


def get_building(building_id: int) -> BuildingRecord:
    """Fetch the committed state of a building."""
    with get_session() as session:
        return BuildingRecord.model_validate(get_building_by_id(session, building_id))


def get_building_history(building_id: int, limit: int | None = None) -> list[LogEntryRecord]:
    """Fetch log entries for a building, newest first."""
    with get_session() as session:
        get_building_by_id(session, building_id)
        return [LogEntryRecord.model_validate(entry) for entry in list_building_history(session, building_id=building_id, limit=limit)]
