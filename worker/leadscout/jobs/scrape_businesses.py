"""Maps discovery job: browse, extract, filter, enrich and rank businesses."""

import argparse
import asyncio
import json
import logging
from typing import Callable, List, Optional, Set

from leadscout.core import db
from leadscout.core.config import Settings, get_settings
from leadscout.core.enrichment import EnrichmentClient, Scorer, Verdict
from leadscout.core.jitter import Jitter, Sleep
from leadscout.core.progress import ProgressCallback, ProgressEmitter
from leadscout.etl.normalize import admit, build_exclusion_set, exclusion_key, to_candidate
from leadscout.etl.ranking import rank_candidates
from leadscout.models import (
    Candidate,
    ExclusionKey,
    ExistingBusiness,
    Phase,
    ProgressEvent,
    ScrapeConfig,
    ScrapeResult,
)
from leadscout.vendors.browser_session import BrowserSession, SessionError
from leadscout.vendors.google_maps import (
    CandidateExtractor,
    ExtractionSkip,
    FieldExtractor,
    ListingLoader,
    NavigationError,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[Settings], BrowserSession]


class _Run:
    """State of a single scrape run; never reused."""

    def __init__(
        self,
        config: ScrapeConfig,
        emitter: ProgressEmitter,
        *,
        settings: Settings,
        enrichment: EnrichmentClient,
        jitter: Jitter,
        fields: Optional[FieldExtractor],
    ) -> None:
        self.config = config
        self.emitter = emitter
        self.settings = settings
        self.enrichment = enrichment
        self.jitter = jitter
        self.fields = fields
        self.excluded = build_exclusion_set(config.exclude_existing)
        self.accepted_keys: Set[ExclusionKey] = set()
        self.candidates: List[Candidate] = []
        self.total_scraped = 0

    @property
    def full(self) -> bool:
        return len(self.candidates) >= self.config.max_results

    async def scrape(self, session: BrowserSession) -> None:
        categories = self.config.search_categories
        for cat_index, category in enumerate(categories):
            if self.full:
                break
            try:
                await self._scrape_category(session, category, cat_index, len(categories))
            except NavigationError as exc:
                logger.warning("Abandoning category %s: %s", category, exc)
                continue
            await self.jitter.pause(self.settings.category_delay_s)

    async def _scrape_category(
        self, session: BrowserSession, category: str, cat_index: int, total_categories: int
    ) -> None:
        page = session.page
        self.emitter.emit(
            Phase.SEARCHING,
            f"Searching: {category}...",
            current=len(self.candidates),
            progress=10 + (cat_index / total_categories) * 10,
        )

        loader = ListingLoader(
            page,
            settings=self.settings,
            jitter=self.jitter,
            notify=lambda message: self.emitter.emit(
                Phase.SEARCHING,
                message,
                current=len(self.candidates),
                progress=20 + (cat_index / total_categories) * 10,
            ),
        )
        entries = await loader.load(category, self.config.location, self.config.max_results)
        extractor = CandidateExtractor(page, entries, settings=self.settings, jitter=self.jitter, fields=self.fields)

        total_to_process = await entries.count()
        for index in range(total_to_process):
            if self.full:
                break
            self.emitter.emit(
                Phase.EXTRACTING,
                f"Extracting {index + 1}/{total_to_process}...",
                current=len(self.candidates),
                progress=self.emitter.extraction_progress(len(self.candidates)),
            )
            if await self._process_entry(extractor, index, category):
                await self.jitter.pause(self.settings.candidate_delay_s)

    async def _process_entry(self, extractor: CandidateExtractor, index: int, category: str) -> bool:
        try:
            raw = await extractor.extract_at(index)
        except ExtractionSkip as skip:
            if skip.reached_extraction:
                self.total_scraped += 1
                logger.debug("Skipping entry %d: %s", index, skip)
            else:
                logger.warning("Error processing entry %d: %s", index, skip)
            return False
        self.total_scraped += 1

        candidate = to_candidate(raw, category=category, location_query=self.config.location)
        if candidate is None:
            return False
        if not admit(
            candidate,
            excluded=self.excluded,
            accepted=self.accepted_keys,
            min_rating=self.config.min_rating,
        ):
            return False

        phase = Phase.EXTRACTING
        if candidate.has_website:
            phase = Phase.ANALYZING
            self.emitter.emit(
                Phase.ANALYZING,
                f"Analyzing: {candidate.name}...",
                current=len(self.candidates),
                progress=self.emitter.extraction_progress(len(self.candidates)),
                business_name=candidate.name,
            )
            outcome = await self.enrichment.enrich(candidate)
            if outcome.verdict is Verdict.GOOD_SITE:
                return False
            candidate = outcome.candidate

        self.candidates.append(candidate)
        self.accepted_keys.add(exclusion_key(candidate.name, candidate.address))
        self.emitter.emit(
            phase,
            f"Found: {candidate.name}",
            current=len(self.candidates),
            progress=self.emitter.extraction_progress(len(self.candidates)),
            business_name=candidate.name,
        )
        logger.info(
            "Added: %s | Website: %s",
            candidate.name,
            f"Yes (score: {candidate.website_score})" if candidate.has_website else "No",
        )
        return True

    def result(self, error: Optional[str] = None) -> ScrapeResult:
        """Ranked snapshot of what has been collected so far."""
        return ScrapeResult(
            candidates=rank_candidates(self.candidates, self.config.max_results),
            total_scraped=self.total_scraped,
            error=error,
        )


def _prepare(
    config: ScrapeConfig,
    on_progress: Optional[ProgressCallback],
    *,
    settings: Settings,
    scorer: Optional[Scorer],
    fields: Optional[FieldExtractor],
    sleep: Optional[Sleep],
) -> _Run:
    return _Run(
        config,
        ProgressEmitter(on_progress, total=config.max_results),
        settings=settings,
        enrichment=EnrichmentClient(scorer, settings=settings),
        jitter=Jitter(sleep=sleep),
        fields=fields,
    )


async def _execute(state: _Run, session_factory: SessionFactory) -> ScrapeResult:
    config, emitter = state.config, state.emitter
    logger.info(
        "Starting maps scrape location=%s categories=%s min_rating=%s radius_km=%s max_results=%d excluded=%d",
        config.location,
        list(config.search_categories),
        config.min_rating,
        config.radius_km,
        config.max_results,
        len(state.excluded),
    )

    session = session_factory(state.settings)
    try:
        emitter.emit(Phase.INIT, "Launching browser...", current=0, progress=5)
        await session.open()
        await state.scrape(session)
    except SessionError as exc:
        logger.error("Browser session failed to start: %s", exc)
        return ScrapeResult(candidates=[], total_scraped=0, error=str(exc))
    except Exception as exc:  # noqa: BLE001
        logger.exception("Maps scrape failed: %s", exc)
        return state.result(error=str(exc) or exc.__class__.__name__)
    finally:
        await session.close()

    result = state.result()
    emitter.complete(len(result.candidates), f"Done! {len(result.candidates)} results found")
    logger.info("Completed run: accepted=%d scraped=%d", len(result.candidates), state.total_scraped)
    return result


async def run(
    config: ScrapeConfig,
    on_progress: Optional[ProgressCallback] = None,
    *,
    settings: Optional[Settings] = None,
    session_factory: SessionFactory = BrowserSession,
    scorer: Optional[Scorer] = None,
    fields: Optional[FieldExtractor] = None,
    sleep: Optional[Sleep] = None,
) -> ScrapeResult:
    """Run one discovery pass and return ranked candidates.

    Each call builds and tears down its own browser session. Expected failures
    never escape: a session that cannot start, or any unexpected exception,
    ends up in ``ScrapeResult.error`` alongside whatever was collected.
    """
    settings = settings or get_settings()
    state = _prepare(config, on_progress, settings=settings, scorer=scorer, fields=fields, sleep=sleep)
    return await _execute(state, session_factory)


def run_blocking(
    config: ScrapeConfig,
    on_progress: Optional[ProgressCallback] = None,
    *,
    settings: Optional[Settings] = None,
    session_factory: SessionFactory = BrowserSession,
    scorer: Optional[Scorer] = None,
    fields: Optional[FieldExtractor] = None,
    sleep: Optional[Sleep] = None,
) -> ScrapeResult:
    """Synchronous entry point that enforces the run timeout ceiling.

    On timeout the run is cancelled, its session still closes, and the
    candidates accepted so far are returned with the error.
    """
    settings = settings or get_settings()
    state = _prepare(config, on_progress, settings=settings, scorer=scorer, fields=fields, sleep=sleep)

    async def _bounded() -> ScrapeResult:
        return await asyncio.wait_for(_execute(state, session_factory), timeout=settings.run_timeout_s)

    try:
        return asyncio.run(_bounded())
    except asyncio.TimeoutError:
        logger.error("Maps scrape exceeded %gs and was cancelled", settings.run_timeout_s)
        return state.result(error=f"Scrape timed out after {settings.run_timeout_s:g}s")


def build_config(
    *,
    location: str,
    categories: Optional[List[str]] = None,
    min_rating: Optional[float] = None,
    radius_km: Optional[float] = None,
    max_results: Optional[int] = None,
    existing: Optional[List[ExistingBusiness]] = None,
) -> ScrapeConfig:
    settings = get_settings()
    return ScrapeConfig(
        location=location.strip(),
        radius_km=radius_km,
        min_rating=min_rating,
        categories=tuple(categories or ()),
        exclude_existing=frozenset(existing or ()),
        max_results=max_results or settings.default_max_results,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Discover businesses on Google Maps")
    parser.add_argument("--location", dest="location", required=True, help="Search region, e.g. 'Liège'")
    parser.add_argument(
        "--category",
        dest="categories",
        action="append",
        default=[],
        help="Search term; repeat for several categories",
    )
    parser.add_argument("--min-rating", dest="min_rating", type=float, help="Minimum rating to keep")
    parser.add_argument("--radius", dest="radius_km", type=float, help="Search radius in km")
    parser.add_argument(
        "--max-results",
        dest="max_results",
        type=int,
        default=get_settings().default_max_results,
        help="Maximum number of prospects to return",
    )
    parser.add_argument(
        "--persist",
        dest="persist",
        action="store_true",
        help="Skip already stored businesses and upsert the results",
    )
    return parser


def _log_progress(event: ProgressEvent) -> None:
    logger.info("[%s] %d/%d %s", event.phase.value, event.current, event.total, event.message)


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args()
    if args.max_results is not None and args.max_results <= 0:
        parser.error("--max-results must be positive")

    existing: List[ExistingBusiness] = []
    if args.persist:
        existing = db.fetch_existing_businesses(args.location)

    config = build_config(
        location=args.location,
        categories=args.categories,
        min_rating=args.min_rating,
        radius_km=args.radius_km,
        max_results=args.max_results,
        existing=existing,
    )
    result = run_blocking(config, _log_progress)

    for candidate in result.candidates:
        print(json.dumps(candidate.as_row(), ensure_ascii=False))

    if result.error:
        logger.error("Scrape finished with error: %s", result.error)
        return 1

    if args.persist:
        stored = db.upsert_businesses(result.candidates)
        logger.info("Stored %d businesses", stored)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
