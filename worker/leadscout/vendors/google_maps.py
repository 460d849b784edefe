"""Google Maps search-results navigation and detail-panel extraction.

Everything that knows about the maps DOM lives here: selectors, the consent
dialog, scroll-driven pagination and the per-field selector chains. The
orchestration in :mod:`leadscout.jobs.scrape_businesses` only deals with
positions, raw field bags and candidates.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Protocol, Sequence
from urllib.parse import quote, urljoin

from playwright.async_api import ElementHandle, Page
from playwright.async_api import Error as PlaywrightError

from leadscout.core.config import Settings
from leadscout.core.jitter import Jitter
from leadscout.vendors.browser_session import ScraperError

logger = logging.getLogger(__name__)

MAPS_SEARCH_URL = "https://www.google.com/maps/search/"
ENTRY_SELECTOR = 'a[href*="/maps/place/"]'
RESULTS_CONTAINER_SELECTOR = '[role="feed"], .m6QErb.DxyBCb'
CONSENT_SELECTORS = (
    'button[aria-label*="Accept all"]',
    'button[aria-label*="Tout accepter"]',
    'button[aria-label*="Accepter tout"]',
    '[aria-label*="Accept"]',
)
SCROLL_SCRIPT = """selector => {
    const container = document.querySelector(selector);
    if (!container) return false;
    container.scrollTop = container.scrollHeight;
    return true;
}"""

# Digits with thousands separators, e.g. "1 234" or "1.234".
_COUNT_PATTERN = r"(\d(?:[\d\s.,]*\d)?)"


class NavigationError(ScraperError):
    """A results page did not load within its timeout."""


class ExtractionSkip(Exception):
    """An entry produced no usable record.

    ``reached_extraction`` tells whether the detail panel was actually read,
    which decides whether the entry counts as scraped.
    """

    def __init__(self, message: str, *, reached_extraction: bool) -> None:
        super().__init__(message)
        self.reached_extraction = reached_extraction


class ExtractionStrategy(Protocol):
    async def extract(self, page: Page) -> Optional[str]:
        ...


@dataclass(frozen=True)
class SelectorStrategy:
    """Read text or an attribute from the first element matching ``selector``.

    ``remove`` is a regex stripped from the value, ``pattern`` a regex whose
    first group (or whole match) is kept, and ``absolute`` resolves relative
    URLs against the page URL.
    """

    selector: str
    attribute: Optional[str] = None
    pattern: Optional[str] = None
    remove: Optional[str] = None
    absolute: bool = False

    async def extract(self, page: Page) -> Optional[str]:
        element = await page.query_selector(self.selector)
        if element is None:
            return None
        if self.attribute:
            value = await element.get_attribute(self.attribute)
        else:
            value = await element.text_content()
        return self.clean(value, base_url=page.url)

    def clean(self, value: Optional[str], *, base_url: Optional[str] = None) -> Optional[str]:
        if value is None:
            return None
        if self.remove:
            value = re.sub(self.remove, "", value, flags=re.IGNORECASE)
        if self.pattern:
            match = re.search(self.pattern, value)
            if not match:
                return None
            value = match.group(1) if match.groups() else match.group(0)
        value = value.strip()
        if not value:
            return None
        if self.absolute and base_url:
            value = urljoin(base_url, value)
        return value


@dataclass(frozen=True)
class PageUrlStrategy:
    """The URL of the page itself; the canonical listing URL once a place is open."""

    async def extract(self, page: Page) -> Optional[str]:
        return page.url or None


GOOGLE_MAPS_FIELDS: Dict[str, Sequence[ExtractionStrategy]] = {
    "name": (
        SelectorStrategy("h1.DUwDvf"),
        SelectorStrategy('[data-item-id="title"] h1'),
        SelectorStrategy("h1"),
    ),
    "rating": (SelectorStrategy('div.F7nice span[aria-hidden="true"]'),),
    "review_count": (
        SelectorStrategy(
            'div.F7nice span[aria-label*="review"], div.F7nice span[aria-label*="avis"]',
            attribute="aria-label",
            pattern=_COUNT_PATTERN,
        ),
        SelectorStrategy("div.F7nice", pattern=r"\(" + _COUNT_PATTERN + r"\)"),
    ),
    "category": (SelectorStrategy('button[jsaction*="category"]'),),
    "address": (
        SelectorStrategy(
            'button[data-item-id="address"]',
            attribute="aria-label",
            remove=r"^\s*(adresse|address)\s*:\s*",
        ),
        SelectorStrategy('button[data-item-id="address"]'),
    ),
    "phone": (
        SelectorStrategy('button[data-item-id^="phone"]', attribute="aria-label", remove=r"[^\d+\s-]"),
    ),
    "website_url": (SelectorStrategy('a[data-item-id="authority"]', attribute="href", absolute=True),),
    "source_url": (PageUrlStrategy(),),
}


class FieldExtractor:
    """Maps each field to an ordered chain of strategies; the first non-empty value wins."""

    def __init__(self, chains: Optional[Mapping[str, Sequence[ExtractionStrategy]]] = None) -> None:
        self.chains = dict(chains if chains is not None else GOOGLE_MAPS_FIELDS)

    async def extract(self, page: Page) -> Dict[str, Optional[str]]:
        record: Dict[str, Optional[str]] = {}
        for field_name, strategies in self.chains.items():
            record[field_name] = None
            for strategy in strategies:
                try:
                    value = await strategy.extract(page)
                except PlaywrightError as exc:
                    logger.debug("Strategy %r failed for %s: %s", strategy, field_name, exc)
                    continue
                if value:
                    record[field_name] = value
                    break
        return record


def build_search_url(category: str, location: str) -> str:
    query = f"{category} near {location}"
    return MAPS_SEARCH_URL + quote(query, safe="")


class EntryList:
    """Result entries addressed by position.

    Clicking an entry can re-render the results feed, so handles are never
    cached: every :meth:`resolve` takes a fresh snapshot of the DOM and picks
    the entry at ``index``.
    """

    def __init__(self, page: Page, *, selector: str = ENTRY_SELECTOR, limit: Optional[int] = None) -> None:
        self.page = page
        self.selector = selector
        self.limit = limit

    async def count(self) -> int:
        handles = await self.page.query_selector_all(self.selector)
        if self.limit is None:
            return len(handles)
        return min(len(handles), self.limit)

    async def resolve(self, index: int) -> Optional[ElementHandle]:
        if self.limit is not None and index >= self.limit:
            return None
        handles = await self.page.query_selector_all(self.selector)
        if index >= len(handles):
            return None
        return handles[index]


class ListingLoader:
    """Opens a maps search and materialises a bounded list of result entries."""

    def __init__(
        self,
        page: Page,
        *,
        settings: Settings,
        jitter: Jitter,
        notify: Optional[Callable[[str], None]] = None,
        consent_selectors: Sequence[str] = CONSENT_SELECTORS,
        entry_selector: str = ENTRY_SELECTOR,
        container_selector: str = RESULTS_CONTAINER_SELECTOR,
    ) -> None:
        self.page = page
        self.settings = settings
        self.jitter = jitter
        self.notify = notify
        self.consent_selectors = tuple(consent_selectors)
        self.entry_selector = entry_selector
        self.container_selector = container_selector

    async def navigate(self, url: str) -> None:
        try:
            await self.page.goto(url, wait_until="networkidle", timeout=self.settings.navigation_timeout_ms)
        except PlaywrightError as exc:
            # playwright's TimeoutError subclasses Error
            raise NavigationError(f"Failed to load {url}: {exc}") from exc
        await self.jitter.settle(self.settings.page_settle_s)

    async def dismiss_consent(self) -> bool:
        for selector in self.consent_selectors:
            try:
                button = await self.page.query_selector(selector)
                if button is None:
                    continue
                await button.click()
            except PlaywrightError as exc:
                logger.debug("Consent selector %s failed: %s", selector, exc)
                continue
            logger.info("Clicked consent button (%s)", selector)
            await self.jitter.settle(self.settings.consent_settle_s)
            return True
        logger.debug("No consent dialog")
        return False

    async def scroll_results(self) -> None:
        for _ in range(self.settings.scroll_count):
            try:
                await self.page.evaluate(SCROLL_SCRIPT, self.container_selector)
            except PlaywrightError as exc:
                logger.warning("Error scrolling results: %s", exc)
                return
            await self.jitter.settle(self.settings.scroll_pause_s)

    async def load(self, category: str, location: str, max_results: int) -> EntryList:
        url = build_search_url(category, location)
        logger.info("Searching: %s near %s", category, location)
        await self.navigate(url)
        await self.dismiss_consent()

        if self.notify is not None:
            self.notify("Loading results...")
        await self.scroll_results()

        entries = EntryList(self.page, selector=self.entry_selector, limit=max_results * 2)
        logger.info("Found %d result links for %s", await entries.count(), category)
        return entries


class CandidateExtractor:
    """Opens one entry at a time and reads its detail panel."""

    def __init__(
        self,
        page: Page,
        entries: EntryList,
        *,
        settings: Settings,
        jitter: Jitter,
        fields: Optional[FieldExtractor] = None,
    ) -> None:
        self.page = page
        self.entries = entries
        self.settings = settings
        self.jitter = jitter
        self.fields = fields or FieldExtractor()

    async def extract_at(self, index: int) -> Dict[str, Optional[str]]:
        try:
            handle = await self.entries.resolve(index)
        except PlaywrightError as exc:
            # e.g. the feed re-rendered after the previous click
            raise ExtractionSkip(f"could not locate entry {index}: {exc}", reached_extraction=False) from exc
        if handle is None:
            raise ExtractionSkip(f"entry {index} is no longer rendered", reached_extraction=False)

        try:
            await handle.click()
        except PlaywrightError as exc:
            raise ExtractionSkip(f"could not open entry {index}: {exc}", reached_extraction=False) from exc

        await self.jitter.settle(self.settings.detail_settle_s)
        record = await self.fields.extract(self.page)
        if not record.get("name"):
            raise ExtractionSkip(f"entry {index} has no name", reached_extraction=True)
        return record
