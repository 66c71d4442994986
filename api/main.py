"""
FastAPI application initialization
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from api.middleware import RequestContextMiddleware
from api.routes import health, tasks, ingest, onboarding, onboarding_config
from api.routes import settings as settings_routes
from clients.graph import GraphClient
from clients.issue_tracker import IssueTrackerClient
from core.config import settings
from core.database import async_session_maker, create_tables, engine
from core.logging import setup_logging
from core.settings_store import SettingsStore, UserSettingsStore
from ingestion.aggregator import AggregatorState, TaskAggregator
from ingestion.extractors.drop_folder import DropFolderWatcher
from ingestion.extractors.graph_source import GRAPH_SOURCES, GraphSource
from ingestion.extractors.issue_tracker_source import IssueTrackerSource
from ingestion.loaders.task_store import TaskStore
from ingestion.scheduler import SyncScheduler
from ingestion.transformers.normalizer import SourceNormalizer
from models.base import TaskSource
from schemas.api import ErrorResponse
import logging

logger = logging.getLogger(__name__)


def build_aggregator(settings_store: SettingsStore) -> TaskAggregator:
    """Aggregator with every source that has credentials configured"""
    aggregator = TaskAggregator(
        async_session_maker,
        settings_provider=settings_store,
        normalizer=SourceNormalizer(issue_tracker_base_url=settings.ISSUE_TRACKER_BASE_URL),
        state=AggregatorState(default_interval_minutes=settings.SYNC_DEFAULT_INTERVAL_MINUTES),
    )

    if settings.ISSUE_TRACKER_BASE_URL and settings.ISSUE_TRACKER_API_TOKEN:
        aggregator.register_source(
            TaskSource.ISSUE_TRACKER,
            IssueTrackerSource(IssueTrackerClient(), jql=settings.ISSUE_TRACKER_JQL),
        )
    else:
        logger.info("Issue tracker not configured, source disabled")

    if settings.GRAPH_ACCESS_TOKEN:
        graph = GraphClient()
        for kind in GRAPH_SOURCES:
            aggregator.register_source(kind, GraphSource(kind, graph))
    else:
        logger.info("Graph access token not set, planner/todo/calendar/email disabled")

    return aggregator


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown"""
    setup_logging()
    logger.info("Starting TaskHub API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    await create_tables()

    settings_store = SettingsStore(async_session_maker)
    await settings_store.seed_defaults()

    # Calendar and email tasks are re-fetched on startup
    async with async_session_maker() as session:
        await TaskStore(session).delete_transient_tasks()

    aggregator = build_aggregator(settings_store)
    aggregator.state.load_settings(await settings_store.get_all())
    settings_store.subscribe(aggregator.state.apply_setting)

    scheduler = SyncScheduler(aggregator)

    watcher = None
    if settings.DROP_FOLDER:
        watcher = DropFolderWatcher(settings.DROP_FOLDER, aggregator)
        if watcher.ensure_folder():
            scheduler.add_drop_folder(watcher)
            logger.info(f"Watching drop folder {settings.DROP_FOLDER}")

    scheduler.start(run_immediately=settings.SYNC_ON_STARTUP)

    app.state.settings_store = settings_store
    app.state.user_settings_store = UserSettingsStore(async_session_maker)
    app.state.aggregator = aggregator
    app.state.scheduler = scheduler
    app.state.drop_folder = watcher
    app.state.issue_tracker = (
        IssueTrackerClient() if settings.ISSUE_TRACKER_BASE_URL and settings.ISSUE_TRACKER_API_TOKEN else None
    )

    yield

    logger.info("Shutting down TaskHub API")
    await scheduler.stop()
    await aggregator.close()
    if app.state.issue_tracker is not None:
        await app.state.issue_tracker.close()
    await engine.dispose()


# Create FastAPI app
app = FastAPI(
    title="TaskHub API",
    description="Task aggregation and onboarding ticket orchestration",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(RequestContextMiddleware)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Invalid payloads are client errors (400)"""
    detail = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    body = ErrorResponse(error="Validation failed", detail=detail)
    return JSONResponse(status_code=400, content=body.model_dump(mode="json"))


# Include routers
app.include_router(health.router)
app.include_router(tasks.router)
app.include_router(ingest.router)
app.include_router(onboarding.router)
app.include_router(onboarding_config.router)
app.include_router(settings_routes.router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "TaskHub API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "tasks": "/tasks",
            "ingest": "/ingest",
            "onboarding": "/onboarding",
            "onboarding_config": "/onboarding-config"
        }
    }
