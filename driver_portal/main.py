"""
FastAPI application for the driver portal print and health endpoints
"""
from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
import logging
import logging.config

from driver_portal.config import settings, validate_settings
from driver_portal.database import init_db
from driver_portal.dependencies import get_remote_store
from driver_portal.stores.remote import SQLDocumentStore
from driver_portal.api import printing

# Configure logging
logging.config.dictConfig(settings.get_logging_config())
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Driver Portal",
    description="Punch clock sync layer and return form print dispatch for delivery drivers",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_tags=[
        {
            "name": "printing",
            "description": "Return form print dispatch",
        },
    ]
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # The portal front end is served from another origin
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(
    printing.router,
    prefix=settings.API_PREFIX,
)


@app.get("/health")
async def health_check(remote: SQLDocumentStore = Depends(get_remote_store)):
    """Health check; the service stays usable with the remote store down"""
    remote_ok = await remote.ping()
    if not remote_ok:
        logger.warning("Health check: remote store unreachable, writes will fall back to the local cache")

    return {
        "status": "healthy",
        "remote_store": "connected" if remote_ok else "unreachable",
        "version": "1.0.0"
    }


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup"""
    logger.info("Starting Driver Portal")

    try:
        validate_settings()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        raise

    try:
        # In production, use Alembic migrations instead
        init_db()
        logger.info("Remote document table initialized")
    except Exception as e:
        logger.error(f"Failed to initialize remote store, running on local cache: {e}")

    logger.info("Driver Portal started successfully")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Driver Portal")


def run():
    """Console entry point"""
    import uvicorn

    uvicorn.run(
        "driver_portal.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    run()
