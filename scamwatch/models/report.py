"""Report models: persisted shape, submissions, votes, search filters."""
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

OTHER_CATEGORY = "Other"

SCAM_CATEGORIES = [
    "Online Fraud",
    "Bank Scam",
    "Freelance Scam",
    "Investment Scam",
    "Romance Scam",
    "Tech Support Scam",
    "Phone Scam",
    "Email Scam",
    OTHER_CATEGORY,
]

MAX_SCREENSHOTS = 3


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase input; serializes camelCase like the stored records."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VoteChoice(str, Enum):
    YES = "yes"
    NO = "no"


class Votes(CamelModel):
    yes: int = Field(default=0, ge=0)
    no: int = Field(default=0, ge=0)
    voters: list[str] = Field(default_factory=list)

    @field_validator("voters", mode="before")
    @classmethod
    def _dedupe_voters(cls, v: Any) -> list[str]:
        # Persisted as a list; the store has no set type.
        if v is None:
            return []
        if isinstance(v, dict):
            # Firebase returns sparse arrays as {"0": ..., "1": ...}
            v = [v[k] for k in sorted(v, key=lambda k: int(k))]
        return list(dict.fromkeys(v))

    @property
    def total(self) -> int:
        return self.yes + self.no

    def has_voted(self, voter_id: str) -> bool:
        return voter_id in self.voters


class Report(CamelModel):
    """A persisted report record, keyed by store-assigned id."""

    id: str
    phone_number: str
    name: Optional[str] = None
    category: str
    description: Optional[str] = None
    screenshots: list[str] = Field(default_factory=list)
    approved: bool = False
    report_count: int = Field(default=1, ge=1)
    votes: Votes = Field(default_factory=Votes)
    created_at: int = 0
    updated_at: int = 0

    @field_validator("votes", mode="before")
    @classmethod
    def _default_votes(cls, v: Any) -> Any:
        return v if v is not None else {}

    @field_validator("screenshots", mode="before")
    @classmethod
    def _default_screenshots(cls, v: Any) -> Any:
        return v if v is not None else []

    @classmethod
    def from_record(cls, report_id: str, record: dict[str, Any]) -> "Report":
        return cls.model_validate({**record, "id": report_id})


class ReportOut(Report):
    """Report plus derived trust signals. Never persisted."""

    @computed_field(alias="totalVotes")
    @property
    def total_votes(self) -> int:
        return self.votes.total

    @computed_field(alias="confirmationRatio")
    @property
    def confirmation_ratio(self) -> float:
        total = self.votes.total
        return self.votes.yes / total if total > 0 else 0.0

    @classmethod
    def from_report(cls, report: Report) -> "ReportOut":
        return cls.model_validate(report.model_dump())


class ReportCreate(CamelModel):
    """Public submission. `custom_category` replaces `category` when it is "Other"."""

    phone_number: str = ""
    name: Optional[str] = None
    category: str = ""
    custom_category: Optional[str] = None
    description: Optional[str] = None
    screenshots: list[str] = Field(default_factory=list)


class SearchFilters(CamelModel):
    query: str = ""
    category: str = ""


class VoteRequest(CamelModel):
    voter_id: str
    choice: VoteChoice


class VoteOut(CamelModel):
    report: ReportOut
    already_voted: bool = False
