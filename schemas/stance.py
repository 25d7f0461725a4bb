from datetime import datetime
from typing import List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator


NO_INFORMATION = "No Information Found"
UNVERIFIABLE_TITLE = "We are unable to verify this information"


class PoliticalIssue(NamedTuple):
    id: str
    name: str
    description: str


POLITICAL_ISSUES: List[PoliticalIssue] = [
    PoliticalIssue("economy", "Economy & Taxes", "Economic policies, tax reform, and fiscal responsibility"),
    PoliticalIssue("healthcare", "Healthcare & Insurance", "Healthcare reform, insurance, and medical policies"),
    PoliticalIssue("abortion", "Abortion & Reproductive Rights", "Abortion policy, reproductive rights, and family planning"),
    PoliticalIssue("climate", "Climate & Environment", "Climate change, environmental protection, and energy policy"),
    PoliticalIssue("elections", "Elections & Voting Rights", "Voting rights, election integrity, and democratic processes"),
    PoliticalIssue("gun-control", "Gun Control & Public Safety", "Gun policy, public safety, and Second Amendment rights"),
    PoliticalIssue("israel-palestine", "Israel-Palestine Conflict", "Middle East policy, Israel-Palestine relations, and peace process"),
    PoliticalIssue("russia-ukraine", "Russia-Ukraine War", "Ukraine support, Russia policy, and international relations"),
    PoliticalIssue("technology", "Technology & Privacy", "Tech regulation, privacy rights, and digital policy"),
    PoliticalIssue("immigration", "Immigration & Border Security", "Border security, immigration reform, and citizenship policy"),
    PoliticalIssue("lgbtq", "LGBTQ+ Rights", "LGBTQ+ equality, civil rights, and anti-discrimination"),
    PoliticalIssue("education", "Education", "Education reform, funding, and policy"),
]

ISSUE_NAMES = [issue.name for issue in POLITICAL_ISSUES]


def find_issue(label: str) -> Optional[PoliticalIssue]:
    """Match a model-provided issue label against the fixed issue list."""
    key = (label or "").strip().lower()
    if not key:
        return None
    for issue in POLITICAL_ISSUES:
        if key in (issue.id, issue.name.lower()):
            return issue
    if len(key) < 4:
        return None
    for issue in POLITICAL_ISSUES:
        # "Economy" or "Gun Control" style short labels
        if issue.name.lower().startswith(key) or key.startswith(issue.name.lower()):
            return issue
    return None


class Source(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str  # Empty only for the "unable to verify" marker
    title: str
    origin: str = ""

    @field_validator("url")
    @classmethod
    def url_must_be_absolute(cls, value: str) -> str:
        value = value.strip()
        if value and not value.startswith(("http://", "https://")):
            raise ValueError(f"source url must be absolute: {value!r}")
        return value


UNVERIFIABLE_SOURCE = Source(url="", title=UNVERIFIABLE_TITLE, origin="")


def is_unverifiable(sources: List[Source]) -> bool:
    """True for the "searched, nothing credible" marker list, False for []."""
    return len(sources) == 1 and sources[0] == UNVERIFIABLE_SOURCE


class PoliticalStance(BaseModel):
    issue: str
    stance: str
    sources: List[Source] = []
    # Model self-assessment, 0-100; None when the model gave none
    confidence: Optional[int] = Field(default=None, ge=0, le=100)
    reasoning: Optional[str] = None

    @computed_field
    @property
    def hasVerification(self) -> bool:
        return bool(self.sources) and not is_unverifiable(self.sources)

    @property
    def has_information(self) -> bool:
        return self.stance.strip() != NO_INFORMATION

    @model_validator(mode="after")
    def no_sources_without_information(self) -> "PoliticalStance":
        if not self.has_information and self.sources:
            raise ValueError(f"'{NO_INFORMATION}' stance for {self.issue} cannot carry sources")
        if not self.has_information and (self.confidence is not None or self.reasoning):
            raise ValueError(f"'{NO_INFORMATION}' stance for {self.issue} cannot carry an assessment")
        return self


def no_information_stance(issue: str) -> PoliticalStance:
    return PoliticalStance(issue=issue, stance=NO_INFORMATION, sources=[])


class CandidateRecord(BaseModel):
    name: str
    normalized_name: str
    last_updated: datetime
    search_count: int
    last_searched: datetime
    stances: List[PoliticalStance]
