"""Public reports router: submit, search the approved set, vote, voter identity."""
from fastapi import APIRouter, Depends

from scamwatch.deps import get_engine, get_view
from scamwatch.errors import NotFound
from scamwatch.models.report import (
    SCAM_CATEGORIES,
    ReportCreate,
    ReportOut,
    SearchFilters,
    VoteOut,
    VoteRequest,
)
from scamwatch.services.moderation import ModerationEngine
from scamwatch.services.search import ReportView
from scamwatch.utils.ids import generate_voter_id

router = APIRouter(prefix="/api", tags=["reports"])


@router.get("/categories", response_model=list[str])
async def list_categories():
    return SCAM_CATEGORIES


@router.post("/identity")
async def issue_identity():
    """Issue a local voter ID. Clients keep it and send it with every vote."""
    return {"voter_id": generate_voter_id()}


@router.post("/reports", response_model=ReportOut, status_code=201)
async def submit_report(body: ReportCreate, engine: ModerationEngine = Depends(get_engine)):
    """Public submission. Stays hidden from search until a moderator approves it."""
    report = await engine.submit(body)
    return ReportOut.from_report(report)


@router.get("/reports", response_model=list[ReportOut])
async def search_reports(query: str = "", category: str = "", view: ReportView = Depends(get_view)):
    """Search approved reports. No filters returns everything."""
    await view.flush()
    results = view.search(SearchFilters(query=query, category=category))
    return [ReportOut.from_report(r) for r in results]


@router.get("/reports/{report_id}", response_model=ReportOut)
async def get_report(report_id: str, view: ReportView = Depends(get_view)):
    await view.flush()
    report = view.get(report_id)
    if report is None:
        raise NotFound(report_id)
    return ReportOut.from_report(report)


@router.post("/reports/{report_id}/vote", response_model=VoteOut)
async def vote_on_report(
    report_id: str,
    body: VoteRequest,
    engine: ModerationEngine = Depends(get_engine),
):
    """Record a yes/no vote. A repeat vote from the same voter changes nothing."""
    report, already_voted = await engine.vote(report_id, body.voter_id, body.choice)
    return VoteOut(report=ReportOut.from_report(report), already_voted=already_voted)
