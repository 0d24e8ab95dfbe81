"""Repository functions for the revision log.

Handles appending and querying log entries.
Single responsibility: database operations only.
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from catalogue.db.models import Log


def append_log_entry(
    session: Session,
    *,
    building_id: int,
    user_id: str,
    forward_patch: dict[str, Any],
    reverse_patch: dict[str, Any] | None = None,
) -> Log:
    """Append a log entry and assign its sequence id.

    The entry is flushed so that log_id is available as the building's
    new revision_id within the same transaction.

    Args:
        session: Database session (inside the caller's transaction)
        building_id: Building the change applies to
        user_id: Acting user
        forward_patch: New values of changed fields
        reverse_patch: Old values of changed fields, or None for derived entries

    Returns:
        Created Log instance with log_id populated
    """
    entry = Log(
        building_id=building_id,
        user_id=user_id,
        forward_patch=dict(forward_patch),
        reverse_patch=dict(reverse_patch) if reverse_patch is not None else None,
    )
    session.add(entry)
    session.flush()
    return entry


def get_log_entry(session: Session, log_id: int) -> Log | None:
    """Get a single log entry by id."""
    return session.get(Log, log_id)


def list_building_history(
    session: Session,
    *,
    building_id: int,
    limit: int | None = None,
) -> list[Log]:
    """List log entries for a building, newest first.

    Args:
        session: Database session
        building_id: Building to query
        limit: Optional maximum number of entries

    Returns:
        List of Log instances ordered by log_id DESC
    """
    query = select(Log).where(Log.building_id == building_id).order_by(Log.log_id.desc())
    if limit is not None:
        query = query.limit(limit)
    return list(session.execute(query).scalars().all())
