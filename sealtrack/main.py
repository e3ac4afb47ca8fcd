"""FastAPI application for custody task tracking."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sealtrack.attendance.routes import router as attendance_router
from sealtrack.custody.models import CustodyEvent
from sealtrack.custody.routes import router as custody_router
from sealtrack.custody.schemas import CustodyEventResponse, DuplicateEventResponse
from sealtrack.db import init_db
from sealtrack.errors import DuplicateError, SealTrackError
from sealtrack.logging_config import setup_logging
from sealtrack.metrics import router as metrics_router
from sealtrack.tasks.routes import router as tasks_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    init_db()
    yield


app = FastAPI(
    title="SealTrack Backend",
    description="Chain-of-custody tracking for sealed examination material",
    version="1.0.0",
    lifespan=lifespan,
)

# Observability
app.include_router(metrics_router)  # exposes GET /metrics

# Functional routers
app.include_router(tasks_router)
app.include_router(custody_router)
app.include_router(attendance_router)


# --------------------
# Error mapping
# --------------------
@app.exception_handler(DuplicateError)
async def duplicate_handler(request: Request, exc: DuplicateError):
    if isinstance(exc.existing, CustodyEvent):
        body = DuplicateEventResponse(
            detail=exc.message,
            existing=CustodyEventResponse.model_validate(exc.existing),
        ).model_dump(mode="json")
    else:
        body = {"detail": exc.message}
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(SealTrackError)
async def domain_error_handler(request: Request, exc: SealTrackError):
    if exc.status_code >= 500:
        logger.error("Unhandled domain error", exc_info=exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# --------------------
# Root
# --------------------
@app.get("/")
async def root():
    return {"message": "SealTrack custody API", "version": "1.0.0"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
