"""FastAPI dependencies for the building API.

Authentication happens upstream; the gateway forwards the authenticated
user id in the X-User-Id header.
"""

from __future__ import annotations

from fastapi import Header, HTTPException, status
from loguru import logger


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Return the acting user id.

    Raises:
        HTTPException: 401 if the header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        logger.debug("Rejected request without X-User-Id")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id.strip()
