"""Technical quality scoring for business websites.

The score runs from 0 to 100. Higher means a worse site, which makes the
business a better redesign prospect. Everything is plain HTTP and HTML
inspection; no rendering.
"""

from __future__ import annotations

import ipaddress
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Tuple
from urllib.parse import urljoin, urlparse, urlunparse

import requests
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
REQUEST_TIMEOUT = 8
MAX_REDIRECTS = 3
DEPRECATED_TAGS = (
    "font",
    "center",
    "marquee",
    "blink",
    "frame",
    "frameset",
    "applet",
    "basefont",
    "big",
    "strike",
    "tt",
)
BLOCKED_HOSTS = {"localhost", "0.0.0.0", "169.254.169.254"}
BLOCKED_SUFFIXES = (".internal", ".local")

COPYRIGHT_REGEX = re.compile(r"©\s*(\d{4})|copyright\s*(\d{4})", re.IGNORECASE)
MEDIA_QUERY_REGEX = re.compile(r"@media[^{]*(max|min)-width", re.IGNORECASE)
FLEX_GRID_REGEX = re.compile(r"display\s*:\s*(flex|grid)|flexbox", re.IGNORECASE)


class UnsafeUrlError(ValueError):
    """Raised when a URL points at a private or non-http destination."""


@dataclass
class WebsiteChecks:
    has_https: bool = False
    has_viewport: bool = False
    has_mobile_optimization: bool = False
    copyright_year: Optional[int] = None
    has_deprecated_tags: bool = False
    has_modern_meta: bool = False
    load_time_ms: Optional[int] = None
    has_inline_styles: bool = False
    has_favicon: bool = False
    has_accessibility: bool = False


@dataclass
class WebsiteAnalysis:
    url: str
    score: int
    checks: WebsiteChecks
    issues: List[str] = field(default_factory=list)


def sanitize_website(raw_url: str) -> Optional[str]:
    """Normalise raw website strings into absolute URLs, defaulting to https."""

    if not raw_url:
        return None

    url = raw_url.strip()
    if not url:
        return None

    if not url.lower().startswith(("http://", "https://")):
        url = f"https://{url}"

    parsed = urlparse(url)
    if not parsed.netloc:
        return None

    normalized = parsed._replace(path=parsed.path or "/", fragment="")
    return urlunparse(normalized)


def is_public_url(url: str) -> bool:
    """Reject anything that could reach internal infrastructure."""
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"}:
        return False

    host = (parsed.hostname or "").lower()
    if not host or ":" in host:
        return False
    if host in BLOCKED_HOSTS or host.endswith(BLOCKED_SUFFIXES):
        return False

    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return True
    return not (address.is_private or address.is_loopback or address.is_link_local or address.is_unspecified)


def fetch_with_safe_redirects(
    session: requests.Session, url: str, *, timeout: float = REQUEST_TIMEOUT
) -> requests.Response:
    """GET ``url`` following at most MAX_REDIRECTS hops, each one re-validated."""
    current = url
    for _ in range(MAX_REDIRECTS + 1):
        if not is_public_url(current):
            raise UnsafeUrlError(f"Refusing to fetch non-public URL {current}")
        response = session.get(current, timeout=timeout, allow_redirects=False)
        if 300 <= response.status_code < 400:
            location = response.headers.get("Location")
            if not location:
                raise requests.RequestException(f"Redirect without Location header from {current}")
            current = urljoin(current, location)
            continue
        return response
    raise requests.TooManyRedirects(f"More than {MAX_REDIRECTS} redirects from {url}")


def _has_mobile_hints(html: str, soup: BeautifulSoup) -> bool:
    if MEDIA_QUERY_REGEX.search(html):
        return True
    if soup.select("img[srcset], picture source"):
        return True
    if FLEX_GRID_REGEX.search(html):
        return True
    lowered = html.lower()
    if "bootstrap" in lowered or soup.select('[class*="col-"]'):
        return True
    if "tailwind" in lowered or soup.select('[class*="sm:"], [class*="md:"], [class*="lg:"]'):
        return True
    return False


def _count_layout_tables(soup: BeautifulSoup) -> int:
    return sum(1 for table in soup.find_all("table") if not table.find("th") and not table.get("role"))


def inspect_html(html: str, checks: WebsiteChecks, *, current_year: Optional[int] = None) -> List[str]:
    """Fill ``checks`` from the page markup and return the issues found."""
    current_year = current_year or date.today().year
    soup = BeautifulSoup(html, "html.parser")
    issues: List[str] = []

    checks.has_viewport = soup.find("meta", attrs={"name": "viewport"}) is not None
    checks.has_mobile_optimization = checks.has_viewport and _has_mobile_hints(html, soup)
    if not checks.has_viewport:
        issues.append("No viewport meta tag: not mobile friendly")
        issues.append("Probably not responsive")
    elif not checks.has_mobile_optimization:
        issues.append("Limited mobile optimisation")

    for tag in DEPRECATED_TAGS:
        if soup.find(tag) is not None:
            checks.has_deprecated_tags = True
            issues.append(f"Uses obsolete <{tag}> tag")
            break

    if _count_layout_tables(soup) > 2:
        checks.has_deprecated_tags = True
        issues.append("Uses tables for page layout")

    has_description = bool((soup.find("meta", attrs={"name": "description"}) or {}).get("content"))
    has_og = soup.find("meta", attrs={"property": re.compile(r"^og:")}) is not None
    has_twitter = soup.find("meta", attrs={"name": re.compile(r"^twitter:")}) is not None
    checks.has_modern_meta = has_og or has_twitter or has_description
    if not checks.has_modern_meta:
        issues.append("No modern meta tags (weak SEO)")

    body = soup.body or soup
    match = COPYRIGHT_REGEX.search(body.get_text(" "))
    if match:
        checks.copyright_year = int(match.group(1) or match.group(2))
        if checks.copyright_year < current_year - 2:
            issues.append(f"Outdated copyright ({checks.copyright_year})")

    total_elements = len(soup.find_all(True))
    styled_elements = len(soup.find_all(style=True))
    checks.has_inline_styles = total_elements > 0 and styled_elements / total_elements > 0.15
    if checks.has_inline_styles:
        issues.append("Heavy use of inline styles")

    checks.has_favicon = bool(soup.select('link[rel~="icon"], link[rel="apple-touch-icon"]'))
    if not checks.has_favicon:
        issues.append("No favicon")

    images = soup.find_all("img")
    images_with_alt = [img for img in images if img.has_attr("alt")]
    has_aria = bool(soup.select("[aria-label], [aria-labelledby], [role]"))
    checks.has_accessibility = has_aria or (bool(images) and len(images_with_alt) / len(images) > 0.5)
    if not checks.has_accessibility and len(images) > 3:
        issues.append("Poor accessibility (missing alt text)")

    return issues


def calculate_score(checks: WebsiteChecks, *, current_year: Optional[int] = None) -> int:
    current_year = current_year or date.today().year
    score = 0

    if not checks.has_https:
        score += 20

    if not checks.has_viewport:
        score += 25
    elif not checks.has_mobile_optimization:
        score += 15

    if checks.has_deprecated_tags:
        score += 15

    if not checks.has_modern_meta:
        score += 10

    if checks.copyright_year:
        years_old = current_year - checks.copyright_year
        if years_old >= 5:
            score += 15
        elif years_old >= 3:
            score += 10
        elif years_old >= 2:
            score += 5

    if checks.has_inline_styles:
        score += 5
    if not checks.has_favicon:
        score += 5
    if not checks.has_accessibility:
        score += 5

    if checks.load_time_ms:
        if checks.load_time_ms > 8000:
            score += 10
        elif checks.load_time_ms > 5000:
            score += 5

    return min(100, score)


def _fetch(session: requests.Session, url: str, timeout: float) -> Tuple[str, requests.Response, List[str]]:
    """Fetch over https, falling back to plain http once."""
    try:
        return url, fetch_with_safe_redirects(session, url, timeout=timeout), []
    except UnsafeUrlError:
        raise
    except requests.RequestException as exc:
        if not url.startswith("https://"):
            raise
        logger.debug("HTTPS fetch failed for %s (%s); retrying over HTTP", url, exc)

    http_url = "http://" + url[len("https://"):]
    response = fetch_with_safe_redirects(session, http_url, timeout=timeout)
    return http_url, response, ["HTTPS does not work: fell back to HTTP"]


def analyze_website(
    url: str,
    *,
    session: Optional[requests.Session] = None,
    timeout: float = REQUEST_TIMEOUT,
) -> Optional[WebsiteAnalysis]:
    """Score ``url``; ``None`` when the site cannot be fetched or is not allowed."""
    target = sanitize_website(url)
    if not target:
        logger.warning("Cannot analyse empty or malformed URL %r", url)
        return None

    owns_session = session is None
    session = session or requests.Session()
    session.headers.setdefault("User-Agent", USER_AGENT)
    session.headers.setdefault("Accept", "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8")
    session.headers.setdefault("Accept-Language", "fr-BE,fr;q=0.9,en;q=0.8")

    started = time.monotonic()
    try:
        final_url, response, issues = _fetch(session, target, timeout)
    except UnsafeUrlError as exc:
        logger.warning("%s", exc)
        return None
    except requests.RequestException as exc:
        logger.warning("Failed to fetch %s: %s", target, exc)
        return None
    finally:
        if owns_session:
            session.close()

    if not response.ok:
        logger.info("Website %s answered %s; not scoring", final_url, response.status_code)
        return None

    checks = WebsiteChecks(has_https=final_url.startswith("https://"))
    checks.load_time_ms = int((time.monotonic() - started) * 1000)
    if not checks.has_https and not issues:
        issues.append("No HTTPS: site is not secure")

    issues.extend(inspect_html(response.text, checks))
    if checks.load_time_ms > 5000:
        issues.append(f"Slow to load ({round(checks.load_time_ms / 1000)}s)")

    return WebsiteAnalysis(url=final_url, score=calculate_score(checks), checks=checks, issues=issues)
