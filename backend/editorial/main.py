"""
FastAPI application: wires the database, the editorial services and the
DOI retry job into one app.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from editorial.core.config import settings
from editorial.core.collections import setup_collections
from editorial.core.database import connect_to_mongo, close_mongo_connection, get_database, ping_database
from editorial.core.error_handling import ApplicationError
from editorial.core.logging_config import setup_logging
from editorial.core.middleware import setup_middleware
from editorial.core.response_formatter import ResponseFormatter
from editorial.api import api_router
from editorial.services.blob_store import S3BlobStore
from editorial.services.container import EditorialServices

import logging
logger = logging.getLogger(__name__)


async def retry_failed_deposits(services: EditorialServices):
    """Background job: retry failed DOI deposits."""
    try:
        result = await services.doi.bulk_retry()
        if result.processed:
            logger.info(
                f"DOI retry job processed {result.processed} deposit(s): "
                f"{result.success} succeeded, {result.failed} failed"
            )
    except Exception as e:
        logger.error(f"Error in DOI retry job: {e}", exc_info=True)


def create_scheduler(services: EditorialServices) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler()
    # max_instances=1 prevents overlapping runs; coalesce=True collapses missed runs into one
    scheduler.add_job(
        retry_failed_deposits,
        trigger=IntervalTrigger(minutes=settings.doi_retry_interval_minutes),
        id='retry_doi_deposits',
        name='Retry Failed DOI Deposits',
        args=[services],
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60
    )
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await connect_to_mongo()
    db = get_database()
    await setup_collections(db)

    services = EditorialServices.build(db, blob_store=S3BlobStore())
    app.state.services = services

    scheduler = None
    if settings.doi_retry_interval_minutes > 0:
        scheduler = create_scheduler(services)
        scheduler.start()
        logger.info(f"Retrying failed DOI deposits every {settings.doi_retry_interval_minutes} min")
    app.state.scheduler = scheduler

    yield

    if scheduler is not None:
        scheduler.shutdown(wait=False)
    await close_mongo_connection()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Editorial Workflow API",
        description="Manuscript submission, peer review, issue publication and DOI deposit for an academic journal",
        version="1.0.0",
        debug=settings.debug,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_middleware(app)

    @app.exception_handler(ApplicationError)
    async def application_error_handler(request: Request, exc: ApplicationError):
        return ResponseFormatter.from_application_error(exc)

    app.include_router(api_router, prefix="/api")

    @app.get("/health", tags=["Health Check"])
    async def health_check():
        return {"status": "healthy", "message": "Editorial Workflow API is running"}

    @app.get("/health/detailed", tags=["Health Check"])
    async def detailed_health_check():
        """Database reachability and whether the DOI retry job is running."""
        db_status = "healthy" if await ping_database() else "unhealthy"
        scheduler = getattr(app.state, "scheduler", None)
        return {
            "overall_status": db_status,
            "checks": {
                "database": {"status": db_status},
                "doi_retry_job": {"running": bool(scheduler and scheduler.running)},
            }
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "editorial.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
