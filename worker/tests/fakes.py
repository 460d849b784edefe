"""In-memory stand-ins for the browser objects the scraper drives."""

from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import quote

from playwright.async_api import Error as PlaywrightError

from leadscout.core.config import Settings
from leadscout.vendors.google_maps import CONSENT_SELECTORS, ENTRY_SELECTOR, GOOGLE_MAPS_FIELDS


def fast_settings(**overrides) -> Settings:
    values = dict(
        database_url="",
        candidate_delay_s=(0.0, 0.0),
        category_delay_s=(0.0, 0.0),
        analyzer_timeout_s=2.0,
    )
    values.update(overrides)
    return Settings(**values)


async def no_sleep(seconds):
    return None


@dataclass
class Listing:
    name: Optional[str]
    rating: Optional[str] = None
    reviews: Optional[int] = None
    category: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    click_error: bool = False

    @property
    def url(self) -> str:
        slug = quote(self.name or "unnamed")
        return f"https://www.google.com/maps/place/{slug}/data=!1"


class FakeElement:
    def __init__(self, text=None, attrs=None, on_click=None):
        self.text = text
        self.attrs = attrs or {}
        self.on_click = on_click
        self.clicks = 0

    async def click(self):
        self.clicks += 1
        if self.on_click is not None:
            self.on_click()

    async def text_content(self):
        return self.text

    async def get_attribute(self, name):
        return self.attrs.get(name)


def _selector(field_name: str, position: int = 0) -> str:
    return GOOGLE_MAPS_FIELDS[field_name][position].selector


class FakeMapsPage:
    """A maps tab whose search results are keyed by category.

    ``results`` maps a search term to the listings it renders; ``broken``
    holds search terms whose navigation fails.
    """

    def __init__(self, results: Dict[str, List[Listing]], *, consent: bool = False, broken=()):
        self.results = results
        self.consent_open = consent
        self.broken = set(broken)
        self.url = "about:blank"
        self.visited: List[str] = []
        self.scrolls = 0
        self.listings: List[Listing] = []
        self.current: Optional[Listing] = None

    async def goto(self, url, wait_until=None, timeout=None):
        self.visited.append(url)
        for category in self.broken:
            if quote(f"{category} near ", safe="") in url:
                raise PlaywrightError(f"Timeout {timeout}ms exceeded navigating to {url}")
        self.url = url
        self.current = None
        self.listings = []
        for category, listings in self.results.items():
            if quote(f"{category} near ", safe="") in url:
                self.listings = list(listings)

    async def evaluate(self, script, arg=None):
        self.scrolls += 1
        return True

    async def query_selector_all(self, selector):
        if selector != ENTRY_SELECTOR:
            return []
        return [FakeElement(attrs={"href": listing.url}, on_click=self._opener(listing)) for listing in self.listings]

    def _opener(self, listing: Listing):
        def open_listing():
            if listing.click_error:
                raise PlaywrightError("Element is not attached to the DOM")
            self.current = listing
            self.url = listing.url

        return open_listing

    async def query_selector(self, selector):
        if selector in CONSENT_SELECTORS:
            if not self.consent_open:
                return None
            return FakeElement(on_click=self._close_consent)
        listing = self.current
        if listing is None:
            return None
        if selector == _selector("name") and listing.name:
            return FakeElement(text=listing.name)
        if selector == _selector("rating") and listing.rating:
            return FakeElement(text=listing.rating)
        if selector == _selector("review_count") and listing.reviews is not None:
            return FakeElement(attrs={"aria-label": f"{listing.reviews} reviews"})
        if selector == _selector("category") and listing.category:
            return FakeElement(text=listing.category)
        if selector == _selector("address") and listing.address:
            return FakeElement(text=listing.address, attrs={"aria-label": f"Address: {listing.address}"})
        if selector == _selector("phone") and listing.phone:
            return FakeElement(attrs={"aria-label": f"Phone: {listing.phone}"})
        if selector == _selector("website_url") and listing.website:
            return FakeElement(attrs={"href": listing.website})
        return None

    def _close_consent(self):
        self.consent_open = False


class FakeSession:
    def __init__(self, page: FakeMapsPage, *, open_error: Optional[Exception] = None):
        self._page = page
        self.open_error = open_error
        self.opened = 0
        self.closed = 0

    @property
    def page(self):
        return self._page

    async def open(self):
        self.opened += 1
        if self.open_error is not None:
            raise self.open_error
        return self._page

    async def close(self):
        self.closed += 1


class Recorder:
    """Progress sink collecting every event."""

    def __init__(self):
        self.events = []

    def __call__(self, event):
        self.events.append(event)

    @property
    def phases(self):
        return [event.phase.value for event in self.events]
