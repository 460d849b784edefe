"""Website-quality enrichment for discovered candidates."""

from __future__ import annotations

import asyncio
import enum
import functools
import inspect
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, List, Optional, Tuple

from leadscout.core.config import Settings, get_settings
from leadscout.core.website_analyzer import analyze_website
from leadscout.models import Candidate

logger = logging.getLogger(__name__)

Scorer = Callable[[str], Any]


class EnrichmentFailure(RuntimeError):
    """The scorer timed out, failed or returned something unusable."""


class Verdict(str, enum.Enum):
    NO_WEBSITE = "no_website"
    ENRICHED = "enriched"
    GOOD_SITE = "good_site"
    UNENRICHED = "unenriched"


@dataclass(frozen=True)
class EnrichmentOutcome:
    verdict: Verdict
    candidate: Optional[Candidate]

    @property
    def keep(self) -> bool:
        return self.candidate is not None


def _read_score(result: Any) -> Tuple[int, List[str]]:
    if result is None:
        raise EnrichmentFailure("scorer returned no analysis")
    if isinstance(result, dict):
        score, issues = result.get("score"), result.get("issues")
    else:
        score, issues = getattr(result, "score", None), getattr(result, "issues", None)
    try:
        score = int(score)
    except (TypeError, ValueError) as exc:
        raise EnrichmentFailure(f"scorer returned an invalid score: {score!r}") from exc
    issues_list: List[str] = [str(issue) for issue in (issues or [])]
    return score, issues_list


class EnrichmentClient:
    """Calls the website scorer and applies the "already good" policy.

    A successful score below ``good_site_threshold`` drops the candidate, as
    a business with a decent site is not a lead. Any scorer failure keeps the
    candidate without score or issues.
    """

    def __init__(
        self,
        scorer: Optional[Scorer] = None,
        *,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.scorer = scorer or functools.partial(
            analyze_website, timeout=self.settings.analyzer_request_timeout_s
        )
        self.good_site_threshold = self.settings.good_site_threshold
        self.timeout_s = self.settings.analyzer_timeout_s

    async def _score(self, url: str) -> Tuple[int, List[str]]:
        if inspect.iscoroutinefunction(self.scorer):
            call = self.scorer(url)
        else:
            call = asyncio.to_thread(self.scorer, url)
        try:
            result = await asyncio.wait_for(call, timeout=self.timeout_s)
        except asyncio.TimeoutError as exc:
            raise EnrichmentFailure(f"scorer timed out after {self.timeout_s}s") from exc
        except EnrichmentFailure:
            raise
        except Exception as exc:  # noqa: BLE001
            raise EnrichmentFailure(str(exc) or exc.__class__.__name__) from exc
        return _read_score(result)

    async def enrich(self, candidate: Candidate) -> EnrichmentOutcome:
        if not candidate.website_url:
            return EnrichmentOutcome(Verdict.NO_WEBSITE, candidate)

        try:
            score, issues = await self._score(candidate.website_url)
        except EnrichmentFailure as exc:
            logger.warning("Website analysis failed for %s (%s): %s", candidate.name, candidate.website_url, exc)
            return EnrichmentOutcome(Verdict.UNENRICHED, candidate)

        if score < self.good_site_threshold:
            logger.info("Skipping %s - good website (score: %s)", candidate.name, score)
            return EnrichmentOutcome(Verdict.GOOD_SITE, None)

        enriched = replace(candidate, website_score=score, website_issues=issues)
        return EnrichmentOutcome(Verdict.ENRICHED, enriched)
