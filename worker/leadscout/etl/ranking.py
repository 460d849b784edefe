"""Prospect ordering for the end of a run."""

from typing import Iterable, List, Optional, Tuple

from leadscout.models import Candidate

# Sorts an unscored website after every scored one.
_MISSING_SCORE = -1


def prospect_sort_key(candidate: Candidate) -> Tuple[int, float]:
    if not candidate.has_website:
        return (0, candidate.rating or 0.0)
    score = candidate.website_score if candidate.website_score is not None else _MISSING_SCORE
    return (1, -score)


def rank_candidates(candidates: Iterable[Candidate], limit: Optional[int] = None) -> List[Candidate]:
    """Order candidates by prospect value, then truncate to ``limit``.

    Businesses without a website come first, lowest rating first. Businesses
    with a website follow, worst site score first. The sort is stable, and
    truncation happens after sorting.
    """
    ranked = sorted(candidates, key=prospect_sort_key)
    if limit is not None:
        ranked = ranked[:limit]
    return ranked
