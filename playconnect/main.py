import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from playconnect.config import settings
from playconnect.core.errors import EngineError
from playconnect.database import Base, engine

# Import models so SQLAlchemy registers tables
from playconnect.models import (
    parent,
    child,
    connection_request,
    connection,
    skeleton_account,
    skeleton_child,
    skeleton_connection_request,
    activity,
    activity_invitation,
    pending_activity_invitation,
)

# Routers
from playconnect.routers import (
    parent_router,
    connection_router,
    activity_router,
    activity_invitation_router,
    admin_router,
)

# -----------------------
# LOGGING
# -----------------------
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

# -----------------------
# CREATE APP
# -----------------------
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Connection requests, pending activity invitations and skeleton accounts for PlayConnect.",
    version="1.0.0",
)
logger.info(f"🚀 Starting {settings.PROJECT_NAME} ({settings.ENV})")

# -----------------------
# CORS (ONLY ONCE)
# -----------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],   # allow all during development
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------
# DATABASE TABLES
# -----------------------
Base.metadata.create_all(bind=engine)


# -----------------------
# ERROR TRANSLATION
# -----------------------
@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    if exc.status_code >= 500:
        logger.error(
            f"❌ {exc.error} on {request.method} {request.url.path}: {exc.detail}",
            exc_info=exc,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": exc.error},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"❌ Database error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Database error", "error": "database_error"},
    )


# -----------------------
# ROUTES
# -----------------------
app.include_router(parent_router.router)
app.include_router(connection_router.router)
app.include_router(activity_router.router)
app.include_router(activity_invitation_router.router)
app.include_router(admin_router.router)


# -----------------------
# HEALTH CHECK
# -----------------------
@app.get("/")
def root():
    return {"message": "PlayConnect API is running!"}
