"""Moderation engine: submit, approve, delete, and idempotent vote-merge."""
import logging
from typing import Any, Optional

from scamwatch.errors import ValidationError
from scamwatch.models.report import (
    MAX_SCREENSHOTS,
    OTHER_CATEGORY,
    Report,
    ReportCreate,
    VoteChoice,
    Votes,
)
from scamwatch.store.base import Record, ReportStore

logger = logging.getLogger(__name__)


def resolve_category(draft: ReportCreate) -> str:
    """The submitted category, or the custom one when "Other" was picked."""
    if draft.category == OTHER_CATEGORY:
        return (draft.custom_category or "").strip()
    return draft.category.strip()


def merge_vote(votes: Votes, voter_id: str, choice: VoteChoice) -> Optional[Votes]:
    """Return votes with voter_id counted once, or None if they already voted."""
    if votes.has_voted(voter_id):
        return None
    return Votes(
        yes=votes.yes + (1 if choice == VoteChoice.YES else 0),
        no=votes.no + (1 if choice == VoteChoice.NO else 0),
        voters=[*votes.voters, voter_id],
    )


class ModerationEngine:
    """All writes to the report collection go through here.

    No local state is kept: every operation reads from and writes to the
    store, and callers see the result through their subscriptions.
    """

    def __init__(self, store: ReportStore) -> None:
        self.store = store

    async def submit(self, draft: ReportCreate) -> Report:
        phone = draft.phone_number.strip()
        category = resolve_category(draft)
        if not phone or not category:
            raise ValidationError("Phone number and category are required")
        if len(draft.screenshots) > MAX_SCREENSHOTS:
            raise ValidationError(f"At most {MAX_SCREENSHOTS} screenshots per report")

        record: Record = {
            "phoneNumber": phone,
            "name": (draft.name or "").strip() or None,
            "category": category,
            "description": (draft.description or "").strip() or None,
            "screenshots": list(draft.screenshots),
            "approved": False,
            "reportCount": 1,
            "votes": {"yes": 0, "no": 0, "voters": []},
        }
        report_id = await self.store.create(record)
        stored = await self.store.get(report_id)
        report = Report.from_record(report_id, stored if stored is not None else record)
        logger.info("Report %s submitted (%s)", report_id, category)
        return report

    async def approve(self, report_id: str) -> Report:
        """Idempotent; raises NotFound when the report is gone."""
        changed = False

        def _approve(current: Record) -> Optional[dict[str, Any]]:
            nonlocal changed
            changed = current.get("approved") is not True
            return {"approved": True} if changed else None

        record = await self.store.transaction(report_id, _approve)
        if changed:
            logger.info("Report %s approved", report_id)
        return Report.from_record(report_id, record)

    async def delete(self, report_id: str) -> None:
        """Permanent. Deleting a missing report is a success."""
        await self.store.remove(report_id)
        logger.info("Report %s deleted", report_id)

    async def vote(self, report_id: str, voter_id: str, choice: VoteChoice) -> tuple[Report, bool]:
        """Count voter_id's vote at most once. Returns (report, already_voted).

        The merge runs inside the store transaction so it sees the latest
        persisted votes, not the caller's copy.
        """
        voter_id = voter_id.strip()
        if not voter_id:
            raise ValidationError("voter_id is required")
        choice = VoteChoice(choice)
        already_voted = False

        def _merge(current: Record) -> Optional[dict[str, Any]]:
            nonlocal already_voted
            merged = merge_vote(Votes.model_validate(current.get("votes") or {}), voter_id, choice)
            already_voted = merged is None
            if merged is None:
                return None
            return {"votes": merged.model_dump()}

        record = await self.store.transaction(report_id, _merge)
        if not already_voted:
            logger.info("Vote %s recorded on report %s", choice.value, report_id)
        return Report.from_record(report_id, record), already_voted
