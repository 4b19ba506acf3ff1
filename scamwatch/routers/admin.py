"""Moderator router: login check, dashboard, approve, delete."""
from fastapi import APIRouter, Depends, Request, Response

from scamwatch.deps import get_engine, get_store
from scamwatch.errors import AuthenticationFailed
from scamwatch.models.admin import DashboardOut, LoginOut, LoginRequest
from scamwatch.models.report import ReportOut
from scamwatch.services.auth import require_moderator
from scamwatch.services.moderation import ModerationEngine
from scamwatch.services.search import reports_from_snapshot
from scamwatch.store.base import ReportStore

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/login", response_model=LoginOut)
async def login(body: LoginRequest, request: Request):
    """Check the moderator secret. No session is created; send it as X-Moderator-Secret."""
    if not request.app.state.authenticator.authenticate(body.password):
        raise AuthenticationFailed("Invalid password")
    return LoginOut()


@router.get("/reports", response_model=DashboardOut, dependencies=[Depends(require_moderator)])
async def dashboard(store: ReportStore = Depends(get_store)):
    """All reports, newest first, split into pending and approved."""
    reports = sorted(reports_from_snapshot(await store.list()), key=lambda r: r.created_at, reverse=True)
    pending = [ReportOut.from_report(r) for r in reports if not r.approved]
    approved = [ReportOut.from_report(r) for r in reports if r.approved]
    return DashboardOut(
        total=len(reports),
        pending=len(pending),
        approved=len(approved),
        pending_reports=pending,
        approved_reports=approved,
    )


@router.post("/reports/{report_id}/approve", response_model=ReportOut, dependencies=[Depends(require_moderator)])
async def approve_report(report_id: str, engine: ModerationEngine = Depends(get_engine)):
    report = await engine.approve(report_id)
    return ReportOut.from_report(report)


@router.delete("/reports/{report_id}", status_code=204, dependencies=[Depends(require_moderator)])
async def delete_report(report_id: str, engine: ModerationEngine = Depends(get_engine)):
    """Permanent delete. Succeeds when the report is already gone."""
    await engine.delete(report_id)
    return Response(status_code=204)

