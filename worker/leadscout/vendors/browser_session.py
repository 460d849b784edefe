"""Lifecycle of the headless browser used by one scrape run."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, async_playwright

from leadscout.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

LAUNCH_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--window-size=1920,1080",
)


class ScraperError(RuntimeError):
    """Base class for failures raised by the browser layer."""


class SessionError(ScraperError):
    """The browser process or its page could not be started."""


class BrowserSession:
    """Owns one browser process, one context and one page.

    A session belongs to exactly one run and is never shared. ``close`` is
    idempotent and safe to call after a failed ``open``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        self.settings = settings or get_settings()
        self._playwright_factory = playwright_factory
        self._playwright = None
        self._browser = None
        self._context = None
        self._page: Optional[Page] = None

    @property
    def is_open(self) -> bool:
        return self._page is not None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise SessionError("Browser session is not open")
        return self._page

    async def open(self) -> Page:
        if self._page is not None:
            return self._page

        settings = self.settings
        try:
            self._playwright = await self._playwright_factory().start()
            self._browser = await self._playwright.chromium.launch(
                headless=settings.headless,
                args=list(LAUNCH_ARGS),
            )
            self._context = await self._browser.new_context(
                viewport={"width": settings.viewport_width, "height": settings.viewport_height},
                user_agent=settings.user_agent,
            )
            self._page = await self._context.new_page()
        except Exception as exc:  # noqa: BLE001
            await self.close()
            raise SessionError(f"Unable to start browser: {exc}") from exc

        logger.info("Browser session opened (headless=%s)", settings.headless)
        return self._page

    async def close(self) -> None:
        page, context, browser, playwright = self._page, self._context, self._browser, self._playwright
        self._page = self._context = self._browser = self._playwright = None

        for label, resource, method in (
            ("page", page, "close"),
            ("context", context, "close"),
            ("browser", browser, "close"),
            ("playwright", playwright, "stop"),
        ):
            if resource is None:
                continue
            try:
                await getattr(resource, method)()
            except PlaywrightError as exc:
                logger.warning("Failed to release %s: %s", label, exc)

        if browser is not None:
            logger.info("Browser session closed")

    async def __aenter__(self) -> "BrowserSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        await self.close()
