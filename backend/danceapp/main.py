"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from danceapp.config import settings
from danceapp.database import Base, engine
from danceapp.services.exceptions import ServiceError, ValidationError

# Import routers
from danceapp.routers import users, workspaces, events, attendance

# Import all models so Base.metadata knows about them
from danceapp.models.user import User                                      # noqa: F401
from danceapp.models.workspace import Workspace, WorkspaceMember           # noqa: F401
from danceapp.models.event import Event, EventOrganizer                    # noqa: F401
from danceapp.models.attendee import Attendee                              # noqa: F401
from danceapp.models.attendance_history import AttendanceHistory           # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Dance Studio Events",
    description="Recurring classes, socials and attendance tracking for dance studios",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    """Translate service-layer errors into JSON responses."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected (%s): %s", request.method, request.url.path, exc.status_code, exc.message)
    content = {"detail": exc.message}
    if isinstance(exc, ValidationError):
        content["field"] = exc.field
    return JSONResponse(status_code=exc.status_code, content=content)


# Register routers
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(workspaces.router, prefix="/api/workspaces", tags=["Workspaces"])
app.include_router(events.router, prefix="/api/events", tags=["Events"])
app.include_router(attendance.router, prefix="/api", tags=["Attendance"])


@app.on_event("startup")
def on_startup():
    """Create database tables on startup (for SQLite dev mode)."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
