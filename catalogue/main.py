from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from catalogue.api.buildings import router as buildings_router
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
from catalogue.config.settings import settings
from catalogue.core.logger import setup_logger
from catalogue.db.session import init_db

setup_logger(level=settings.log_level, log_file=settings.log_file, serialize=settings.log_json)

ERROR_STATUS_CODES: dict[type[CatalogueError], int] = {
    ValidationFailureError: status.HTTP_422_UNPROCESSABLE_CONTENT,
    BuildingNotFoundError: status.HTTP_404_NOT_FOUND,
    RevisionConflictError: status.HTTP_409_CONFLICT,
    AlreadyLikedError: status.HTTP_409_CONFLICT,
    TransientStoreError: status.HTTP_503_SERVICE_UNAVAILABLE,
    RevertError: status.HTTP_400_BAD_REQUEST,
    StoreError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Create the schema on startup."""
    logger.info("Ensuring database tables exist")
    init_db()
    yield


app = FastAPI(title="Building Catalogue", lifespan=lifespan)
app.include_router(buildings_router)


@app.exception_handler(CatalogueError)
async def catalogue_error_handler(_request: Request, exc: CatalogueError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    content: dict = {"error": exc.code, "detail": exc.message}
    if isinstance(exc, ValidationFailureError) and exc.errors:
        content["errors"] = exc.errors
    headers = {"Retry-After": "1"} if isinstance(exc, TransientStoreError) else None
    return JSONResponse(status_code=status_code, content=content, headers=headers)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
