# services/scoring_service.py
"""
Credibility scoring for raw search hits.

Every hit is scored as a weighted sum of four factors (domain credibility,
title relevance, content freshness, source diversity). The factors are kept
on the result so a score can always be explained after the fact.
"""
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from urllib.parse import urlparse


# Known outlets and their credibility (0-100)
DOMAIN_CREDIBILITY_WEIGHTS = {
    "reuters.com": 95,
    "ap.org": 95,
    "apnews.com": 95,
    "bbc.com": 90,
    "bbc.co.uk": 90,
    "npr.org": 90,
    "nytimes.com": 88,
    "washingtonpost.com": 88,
    "wsj.com": 88,
    "cnn.com": 75,
    "foxnews.com": 70,
    "msnbc.com": 70,
    "abcnews.go.com": 80,
    "cbsnews.com": 80,
    "nbcnews.com": 80,
    "politico.com": 85,
    "rollcall.com": 80,
    "thehill.com": 75,
    "realclearpolitics.com": 70,
    "fivethirtyeight.com": 85,
    "factcheck.org": 90,
    "snopes.com": 90,
    "politifact.com": 90,
}
UNKNOWN_DOMAIN_SCORE = 30

POLITICAL_KEYWORDS = [
    "political",
    "stance",
    "position",
    "policy",
    "election",
    "campaign",
    "candidate",
    "republican",
    "democrat",
]

DOMAIN_WEIGHT = 0.4
TITLE_WEIGHT = 0.25
FRESHNESS_WEIGHT = 0.2
DIVERSITY_WEIGHT = 0.15

NO_YEAR_FRESHNESS_SCORE = 60
ISOLATED_DIVERSITY_SCORE = 80
REPEAT_DOMAIN_PENALTY = 25
MIN_DIVERSITY_SCORE = 25

HIGH_TIER_SCORE = 80
MEDIUM_TIER_SCORE = 60

_YEAR_PATTERN = re.compile(r"\b((?:19|20)\d{2})\b")


@dataclass(frozen=True)
class SearchHit:
    """One raw result from the search provider."""

    title: str = ""
    link: str = ""
    snippet: str = ""
    source: str = ""

    @property
    def domain(self) -> str:
        return self.source or extract_domain(self.link)


@dataclass(frozen=True)
class ScoringFactor:
    name: str
    score: float
    weight: float
    description: str


@dataclass(frozen=True)
class ScoredSource:
    hit: SearchHit
    score: float
    credibility_tier: str  # "high" | "medium" | "low"
    factors: Tuple[ScoringFactor, ...]

    @property
    def title(self) -> str:
        return self.hit.title

    @property
    def link(self) -> str:
        return self.hit.link

    @property
    def domain(self) -> str:
        return self.hit.domain


@dataclass
class ClaimContext:
    """
    What a hit is scored against.

    seen_domains is shared across one verification run; None means the hit
    is scored in isolation and diversity falls back to a flat score.
    """

    candidate: str = ""
    issue: str = ""
    stance: str = ""
    seen_domains: Optional[Counter] = field(default=None)


def extract_domain(url: str) -> str:
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def domain_credibility(domain: str) -> int:
    domain = domain.lower()
    if domain.startswith("www."):
        domain = domain[4:]
    while domain:
        if domain in DOMAIN_CREDIBILITY_WEIGHTS:
            return DOMAIN_CREDIBILITY_WEIGHTS[domain]
        if "." not in domain:
            break
        # edition.cnn.com -> cnn.com
        domain = domain.split(".", 1)[1]
    return UNKNOWN_DOMAIN_SCORE


def title_relevance(title: str) -> int:
    lower_title = (title or "").lower()
    matches = sum(1 for keyword in POLITICAL_KEYWORDS if keyword in lower_title)
    return min(50 + 10 * matches, 100)


def freshness_score(snippet: str, current_year: int) -> int:
    years = [int(y) for y in _YEAR_PATTERN.findall(snippet or "")]
    years = [y for y in years if y <= current_year]
    if not years:
        return NO_YEAR_FRESHNESS_SCORE

    year_diff = current_year - max(years)
    if year_diff == 0:
        return 100
    if year_diff == 1:
        return 90
    if year_diff == 2:
        return 80
    if year_diff <= 5:
        return 70
    return 50


def diversity_score(domain: str, seen_domains: Optional[Counter]) -> int:
    if seen_domains is None:
        return ISOLATED_DIVERSITY_SCORE
    repeats = seen_domains.get(domain, 0)
    return max(100 - REPEAT_DOMAIN_PENALTY * repeats, MIN_DIVERSITY_SCORE)


def credibility_tier(score: float) -> str:
    if score >= HIGH_TIER_SCORE:
        return "high"
    if score >= MEDIUM_TIER_SCORE:
        return "medium"
    return "low"


def score_source(
    hit: SearchHit,
    context: Optional[ClaimContext] = None,
    *,
    now: Optional[datetime] = None,
) -> ScoredSource:
    """Score a single search hit for how citable it is for the given claim."""
    context = context or ClaimContext()
    current_year = (now or datetime.now(timezone.utc)).year
    domain = hit.domain

    factors = [
        ScoringFactor(
            name="Domain Credibility",
            score=domain_credibility(domain),
            weight=DOMAIN_WEIGHT,
            description=f"Domain {domain or 'unknown'} credibility score",
        ),
        ScoringFactor(
            name="Title Relevance",
            score=title_relevance(hit.title),
            weight=TITLE_WEIGHT,
            description="How relevant the title is to political analysis",
        ),
        ScoringFactor(
            name="Content Freshness",
            score=freshness_score(hit.snippet, current_year),
            weight=FRESHNESS_WEIGHT,
            description="How recent the content appears to be",
        ),
        ScoringFactor(
            name="Source Diversity",
            score=diversity_score(domain, context.seen_domains),
            weight=DIVERSITY_WEIGHT,
            description=(
                "How often this domain was already cited in this analysis"
                if context.seen_domains is not None
                else "No batch context, flat diversity score"
            ),
        ),
    ]

    total = round(sum(f.score * f.weight for f in factors), 2)
    return ScoredSource(
        hit=hit,
        score=total,
        credibility_tier=credibility_tier(total),
        factors=tuple(factors),
    )


def score_and_rank(hits: List[SearchHit], context: Optional[ClaimContext] = None, **kwargs) -> List[ScoredSource]:
    scored = [score_source(hit, context, **kwargs) for hit in hits]
    return sorted(scored, key=lambda s: s.score, reverse=True)
