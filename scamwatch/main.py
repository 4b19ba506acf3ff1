"""Scamwatch — FastAPI app for community scam-number reports."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from scamwatch.config import settings
from scamwatch.connections import connection_manager
from scamwatch.errors import ScamwatchError
from scamwatch.routers import admin, reports, ws
from scamwatch.services.auth import SharedSecretAuthenticator
from scamwatch.services.moderation import ModerationEngine
from scamwatch.services.search import ReportView
from scamwatch.store.factory import build_store

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the store and approved-report view; tear down in reverse on shutdown."""
    store = build_store(settings)
    view = ReportView(store)
    await view.start()

    app.state.store = store
    app.state.view = view
    app.state.engine = ModerationEngine(store)
    app.state.authenticator = SharedSecretAuthenticator(settings.admin_password)
    logger.info("Scamwatch backend started (store: %s)", store.name)
    yield
    await connection_manager.close_all()
    await view.stop()
    await store.close()
    logger.info("Scamwatch backend stopped")


app = FastAPI(
    title="Scamwatch",
    description="Community reports of phone scammers, with moderation and voting",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ScamwatchError)
async def scamwatch_error_handler(request: Request, exc: ScamwatchError):
    if exc.status_code >= 500:
        logger.warning("%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.kind, "detail": exc.detail})


app.include_router(reports.router)
app.include_router(admin.router)
app.include_router(ws.router)


@app.get("/health")
async def health(request: Request):
    """Health check."""
    view: ReportView = request.app.state.view
    return {
        "status": "ok" if view.error is None else "degraded",
        "feed_error": view.error,
        "store": request.app.state.store.name,
        "approved_reports": len(view.reports),
        "live_feeds": connection_manager.count,
    }
