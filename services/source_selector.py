# services/source_selector.py
import logging
from typing import Iterable, List

from pydantic import ValidationError

from schemas.stance import UNVERIFIABLE_SOURCE, Source
from services.scoring_service import MEDIUM_TIER_SCORE, ScoredSource

logger = logging.getLogger(__name__)

# Anything scored "low" is not citable
MIN_ADMISSION_SCORE = float(MEDIUM_TIER_SCORE)
DEFAULT_MAX_RESULTS = 3


def _to_source(scored: ScoredSource) -> Source:
    return Source(url=scored.link, title=scored.title.strip(), origin=scored.domain)


def select_sources(
    scored_hits: Iterable[ScoredSource],
    max_results: int = DEFAULT_MAX_RESULTS,
) -> List[Source]:
    """
    Pick the citable sources for one claim.

    Returns at most max_results sources, best first. If nothing clears the
    admission threshold the result is [UNVERIFIABLE_SOURCE], never [].
    """
    if max_results < 1:
        raise ValueError(f"max_results must be at least 1, got {max_results}")

    ranked = sorted(scored_hits, key=lambda s: s.score, reverse=True)

    selected: List[Source] = []
    seen_urls = set()
    for scored in ranked:
        if len(selected) >= max_results:
            break
        if scored.score < MIN_ADMISSION_SCORE:
            # Sorted, so nothing after this one clears the bar either
            break
        if not scored.title.strip() or not scored.link:
            continue
        try:
            source = _to_source(scored)
        except ValidationError:
            logger.debug(f"Dropping hit with unusable link: {scored.link}")
            continue
        if source.url in seen_urls:
            continue
        seen_urls.add(source.url)
        selected.append(source)

    if not selected:
        return [UNVERIFIABLE_SOURCE]
    return selected
