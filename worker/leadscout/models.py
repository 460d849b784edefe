"""Core data models shared by the maps discovery pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, NamedTuple, Optional, Tuple

DEFAULT_CATEGORY = "businesses"


class Phase(str, Enum):
    INIT = "init"
    SEARCHING = "searching"
    EXTRACTING = "extracting"
    ANALYZING = "analyzing"
    DONE = "done"


class ExistingBusiness(NamedTuple):
    """A name/address pair already known to persistence."""

    name: str
    address: Optional[str] = None


ExclusionKey = Tuple[str, str]


@dataclass(frozen=True, slots=True)
class Candidate:
    """Normalized snapshot of a business read from a maps detail panel."""

    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    category: Optional[str] = None
    source_url: Optional[str] = None
    website_url: Optional[str] = None
    website_score: Optional[int] = None
    website_issues: Optional[List[str]] = None
    location_query: Optional[str] = None

    @property
    def has_website(self) -> bool:
        return bool(self.website_url)

    def as_row(self) -> Dict[str, Any]:
        """Shape used by the persistence upsert."""
        return {
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "rating": self.rating,
            "review_count": self.review_count,
            "category": self.category,
            "google_maps_url": self.source_url,
            "has_website": self.has_website,
            "website_url": self.website_url,
            "website_score": self.website_score,
            "website_issues": list(self.website_issues) if self.website_issues is not None else None,
            "location_query": self.location_query,
        }


@dataclass(frozen=True)
class ScrapeConfig:
    """Parameters of one discovery run."""

    location: str
    radius_km: Optional[float] = None
    min_rating: Optional[float] = None
    categories: Tuple[str, ...] = ()
    exclude_existing: FrozenSet[ExistingBusiness] = frozenset()
    max_results: int = 10

    def __post_init__(self) -> None:
        if not self.location or not self.location.strip():
            raise ValueError("location is required")
        if self.max_results <= 0:
            raise ValueError("max_results must be positive")

    @property
    def search_categories(self) -> Tuple[str, ...]:
        cleaned = tuple(c.strip() for c in self.categories if c and c.strip())
        return cleaned or (DEFAULT_CATEGORY,)


@dataclass(frozen=True)
class ProgressEvent:
    current: int
    total: int
    message: str
    phase: Phase
    progress: Optional[float] = None
    business_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "current": self.current,
            "total": self.total,
            "message": self.message,
            "phase": self.phase.value,
        }
        if self.progress is not None:
            payload["progress"] = round(self.progress, 1)
        if self.business_name:
            payload["businessName"] = self.business_name
        return payload


@dataclass
class ScrapeResult:
    candidates: List[Candidate] = field(default_factory=list)
    total_scraped: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
