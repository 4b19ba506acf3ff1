"""FastAPI dependencies: components built in the app lifespan, read from app.state."""
from fastapi import Request

from scamwatch.services.moderation import ModerationEngine
from scamwatch.services.search import ReportView
from scamwatch.store.base import ReportStore


def get_store(request: Request) -> ReportStore:
    return request.app.state.store


def get_engine(request: Request) -> ModerationEngine:
    return request.app.state.engine


def get_view(request: Request) -> ReportView:
    return request.app.state.view
