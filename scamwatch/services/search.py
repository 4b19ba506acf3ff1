"""Search over the approved working set, and the view that keeps that set current."""
import logging
from typing import Optional, Sequence

from scamwatch.errors import StoreUnavailable
from scamwatch.models.report import Report, SearchFilters
from scamwatch.store.base import Predicate, ReportStore, Snapshot, Subscription, approved_only

logger = logging.getLogger(__name__)


def matches_query(report: Report, query: str) -> bool:
    """query must already be lower-cased and trimmed."""
    if not query:
        return True
    return (
        query in report.phone_number.lower()
        or (report.name is not None and query in report.name.lower())
        or query in report.category.lower()
    )


def matches_category(report: Report, category: str) -> bool:
    return not category or report.category == category


def search(reports: Sequence[Report], filters: SearchFilters) -> list[Report]:
    """Filter reports by substring query AND exact category. Pure, order-preserving."""
    query = filters.query.strip().lower()
    if not query and not filters.category:
        return list(reports)
    return [
        r for r in reports
        if matches_query(r, query) and matches_category(r, filters.category)
    ]


def reports_from_snapshot(snapshot: Snapshot) -> tuple[Report, ...]:
    reports = []
    for report_id, record in snapshot.items():
        try:
            reports.append(Report.from_record(report_id, record))
        except ValueError as e:
            logger.warning("Skipping malformed report %s: %s", report_id, e)
    return tuple(reports)


class ReportView:
    """Holds a live, read-only working set of reports from a store subscription.

    Every push replaces the tuple wholesale; it is never mutated in place.
    """

    def __init__(self, store: ReportStore, predicate: Predicate = approved_only) -> None:
        self.store = store
        self.predicate = predicate
        self._reports: tuple[Report, ...] = ()
        self._subscription: Optional[Subscription] = None

    @property
    def reports(self) -> tuple[Report, ...]:
        return self._reports

    @property
    def error(self) -> Optional[str]:
        """Why the live feed died, or None while it is healthy."""
        return self._subscription.error if self._subscription is not None else None

    def _ensure_live(self) -> None:
        if self.error is not None:
            raise StoreUnavailable(self.error)

    async def _on_snapshot(self, snapshot: Snapshot) -> None:
        self._reports = reports_from_snapshot(snapshot)

    async def start(self) -> None:
        if self._subscription is None:
            self._subscription = await self.store.subscribe(self.predicate, self._on_snapshot)
            await self._subscription.flush()
            logger.info("Report view started with %d reports", len(self._reports))

    async def stop(self) -> None:
        if self._subscription is not None:
            await self._subscription.unsubscribe()
            self._subscription = None

    async def flush(self) -> None:
        """Wait until the latest pushed snapshot is in the working set."""
        if self._subscription is not None:
            await self._subscription.flush()

    def search(self, filters: SearchFilters) -> list[Report]:
        self._ensure_live()
        return search(self._reports, filters)

    def get(self, report_id: str) -> Optional[Report]:
        self._ensure_live()
        return next((r for r in self._reports if r.id == report_id), None)
