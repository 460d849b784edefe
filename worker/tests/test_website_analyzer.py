import pytest
import requests

from leadscout.core import website_analyzer
from leadscout.core.website_analyzer import WebsiteChecks

MODERN_HTML = """
<html><head>
<meta name="viewport" content="width=device-width, initial-scale=1">
<meta name="description" content="Artisan bakery">
<link rel="icon" href="/favicon.ico">
<style>@media (max-width: 600px) { .nav { display: none } }</style>
</head><body><nav aria-label="main">Menu</nav><img src="a.jpg" alt="bread">
<footer>© 2026 Boulangerie</footer></body></html>
"""

LEGACY_HTML = """
<html><head><title>Garage</title></head>
<body><center><font color="red">Welcome</font></center>
<table><tr><td>a</td></tr></table><table><tr><td>b</td></tr></table><table><tr><td>c</td></tr></table>
<p>Copyright 2012 Garage Lambert</p></body></html>
"""


class DummyResponse:
    def __init__(self, status_code=200, text="", headers=None):
        self.status_code = status_code
        self.text = text
        self.headers = headers or {}

    @property
    def ok(self):
        return self.status_code < 400


class DummySession:
    def __init__(self, responses):
        self.responses = responses
        self.headers = {}
        self.calls = []
        self.closed = False

    def get(self, url, timeout=None, allow_redirects=True):
        self.calls.append(url)
        outcome = self.responses.get(url)
        if outcome is None:
            raise requests.ConnectionError(f"cannot reach {url}")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self):
        self.closed = True


def test_sanitize_website_adds_scheme():
    assert website_analyzer.sanitize_website("acme.be") == "https://acme.be/"
    assert website_analyzer.sanitize_website("http://acme.be/contact#top") == "http://acme.be/contact"
    assert website_analyzer.sanitize_website("   ") is None


@pytest.mark.parametrize(
    "url,allowed",
    [
        ("https://acme.be/", True),
        ("https://93.184.216.34/", True),
        ("http://localhost/", False),
        ("http://127.0.0.1/", False),
        ("http://10.0.0.5/admin", False),
        ("http://169.254.169.254/latest", False),
        ("http://printer.local/", False),
        ("ftp://acme.be/", False),
    ],
)
def test_is_public_url(url, allowed):
    assert website_analyzer.is_public_url(url) is allowed


def test_modern_site_scores_low():
    session = DummySession({"https://bakery.be/": DummyResponse(text=MODERN_HTML)})

    analysis = website_analyzer.analyze_website("bakery.be", session=session)

    assert analysis.url == "https://bakery.be/"
    assert analysis.checks.has_https is True
    assert analysis.checks.has_viewport is True
    assert analysis.checks.has_mobile_optimization is True
    assert analysis.score < 25
    assert session.closed is False


def test_legacy_site_over_http_scores_high():
    session = DummySession({"http://garage.be/": DummyResponse(text=LEGACY_HTML)})

    analysis = website_analyzer.analyze_website("garage.be", session=session)

    assert analysis.url == "http://garage.be/"
    assert "HTTPS does not work: fell back to HTTP" in analysis.issues
    assert "No viewport meta tag: not mobile friendly" in analysis.issues
    assert "Uses obsolete <font> tag" in analysis.issues
    assert "Uses tables for page layout" in analysis.issues
    assert "Outdated copyright (2012)" in analysis.issues
    assert analysis.checks.copyright_year == 2012
    assert analysis.score >= 80


def test_redirects_are_revalidated():
    session = DummySession(
        {
            "https://shady.be/": DummyResponse(status_code=302, headers={"Location": "http://127.0.0.1/admin"}),
        }
    )

    assert website_analyzer.analyze_website("https://shady.be", session=session) is None
    assert session.calls == ["https://shady.be/"]


def test_relative_redirect_is_followed():
    session = DummySession(
        {
            "https://old.be/": DummyResponse(status_code=301, headers={"Location": "/home"}),
            "https://old.be/home": DummyResponse(text=MODERN_HTML),
        }
    )

    analysis = website_analyzer.analyze_website("https://old.be", session=session)

    assert analysis is not None
    assert analysis.checks.has_viewport is True
    assert session.calls == ["https://old.be/", "https://old.be/home"]


def test_unreachable_or_error_site_returns_none():
    assert website_analyzer.analyze_website("https://gone.be", session=DummySession({})) is None

    session = DummySession({"https://down.be/": DummyResponse(status_code=503)})
    assert website_analyzer.analyze_website("https://down.be", session=session) is None


def test_private_target_is_refused_without_request():
    session = DummySession({})
    assert website_analyzer.analyze_website("http://192.168.1.1", session=session) is None
    assert session.calls == []


def test_calculate_score_weights():
    worst = WebsiteChecks(
        has_https=False,
        has_viewport=False,
        copyright_year=2015,
        has_deprecated_tags=True,
        has_modern_meta=False,
        load_time_ms=9000,
    )
    assert website_analyzer.calculate_score(worst, current_year=2026) == 100

    best = WebsiteChecks(
        has_https=True,
        has_viewport=True,
        has_mobile_optimization=True,
        has_modern_meta=True,
        has_favicon=True,
        has_accessibility=True,
        copyright_year=2026,
        load_time_ms=800,
    )
    assert website_analyzer.calculate_score(best, current_year=2026) == 0

    aging = WebsiteChecks(
        has_https=True,
        has_viewport=True,
        has_mobile_optimization=False,
        has_modern_meta=True,
        has_favicon=True,
        has_accessibility=True,
        copyright_year=2023,
    )
    assert website_analyzer.calculate_score(aging, current_year=2026) == 25
