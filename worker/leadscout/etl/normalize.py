"""Utilities for turning raw detail-panel text into filtered candidates."""

import logging
import re
from typing import AbstractSet, Any, Iterable, List, Mapping, Optional, Set

from leadscout.models import Candidate, ExclusionKey, ExistingBusiness

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"\d+(?:[.,]\d+)?")
_NON_DIGITS_RE = re.compile(r"\D")

RawRecord = Mapping[str, Optional[str]]


def parse_rating(text: Optional[str]) -> Optional[float]:
    """Return the first decimal in ``text`` when it is a plausible star rating."""
    if not text:
        return None
    match = _NUMBER_RE.search(text)
    if not match:
        return None
    rating = float(match.group(0).replace(",", "."))
    if 0 < rating <= 5:
        return rating
    return None


def parse_review_count(text: Optional[str]) -> Optional[int]:
    if not text:
        return None
    digits = _NON_DIGITS_RE.sub("", text)
    if not digits:
        return None
    return int(digits)


def _strip_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value_str = str(value).strip()
    return value_str or None


def exclusion_key(name: str, address: Optional[str]) -> ExclusionKey:
    return (name.strip().lower(), (address or "").strip().lower())


def build_exclusion_set(existing: Iterable[ExistingBusiness]) -> frozenset:
    """Keys for businesses the caller already knows about."""
    return frozenset(exclusion_key(item.name, item.address) for item in existing if item.name)


def passes_rating_filter(rating: Optional[float], min_rating: Optional[float]) -> bool:
    # Missing ratings are never penalised.
    if not min_rating or rating is None:
        return True
    return rating >= min_rating


def to_candidate(raw: RawRecord, *, category: str, location_query: str) -> Optional[Candidate]:
    """Build a typed candidate from an extracted field bag; ``None`` without a name."""
    name = _strip_or_none(raw.get("name"))
    if not name:
        return None

    return Candidate(
        name=name,
        address=_strip_or_none(raw.get("address")),
        phone=_strip_or_none(raw.get("phone")),
        rating=parse_rating(raw.get("rating")),
        review_count=parse_review_count(raw.get("review_count")),
        category=_strip_or_none(raw.get("category")) or category,
        source_url=_strip_or_none(raw.get("source_url")),
        website_url=_strip_or_none(raw.get("website_url")),
        location_query=location_query,
    )


def admit(
    candidate: Candidate,
    *,
    excluded: AbstractSet[ExclusionKey],
    accepted: AbstractSet[ExclusionKey],
    min_rating: Optional[float],
) -> bool:
    """Apply the exclusion, in-run duplicate and rating checks to one candidate."""
    key = exclusion_key(candidate.name, candidate.address)
    if key in excluded:
        logger.debug("Skipping %s: already known", candidate.name)
        return False
    if key in accepted:
        logger.debug("Skipping %s: duplicate in this run", candidate.name)
        return False
    if not passes_rating_filter(candidate.rating, min_rating):
        logger.debug("Skipping %s due to rating %.1f", candidate.name, candidate.rating)
        return False
    return True


def normalize_batch(
    raws: Iterable[RawRecord],
    *,
    excluded: AbstractSet[ExclusionKey],
    min_rating: Optional[float],
    category: str,
    location_query: str,
) -> List[Candidate]:
    """Normalize and filter a batch of raw records without enrichment.

    Never mutates ``excluded``.
    """
    accepted_keys: Set[ExclusionKey] = set()
    accepted: List[Candidate] = []
    for raw in raws:
        candidate = to_candidate(raw, category=category, location_query=location_query)
        if candidate is None:
            continue
        if not admit(candidate, excluded=excluded, accepted=accepted_keys, min_rating=min_rating):
            continue
        accepted_keys.add(exclusion_key(candidate.name, candidate.address))
        accepted.append(candidate)
    return accepted
