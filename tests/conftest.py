"""
Pytest fixtures and configuration for harcap tests.

=============================================================================
Test Classification
=============================================================================

Primary Markers:
- @pytest.mark.unit: Single class/function, no browser
  - Fast (<1s per test)
  - DEFAULT: Tests without marker are auto-classified as unit

- @pytest.mark.integration: Full run orchestration against FakeBrowserSession
  - Real asyncio timing, short delays

- @pytest.mark.e2e: Real Chromium via Playwright
  - DEFAULT EXCLUDED: Must use `pytest -m e2e` to run

=============================================================================
Mock Strategy
=============================================================================

- Browser: FakeBrowserSession implements the BrowserSession protocol in memory.
  Requests issued by the fake during navigation go through the interception
  handler as FakeRoute objects.
- Playwright objects: unittest.mock (AsyncMock/MagicMock)
- File I/O: tmp_path fixture
"""

import asyncio
import os
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

# Set test environment before importing anything else
os.environ["HARCAP_CONFIG_DIR"] = str(Path(__file__).parent.parent / "config")

from harcap.browser.session import NavigationResult
from harcap.utils.config import get_settings


# =============================================================================
# Pytest Hooks for Test Classification
# =============================================================================


def pytest_configure(config):
    """Register custom markers for test classification."""
    config.addinivalue_line("markers", "unit: Unit tests with no browser (fast, <1s/test)")
    config.addinivalue_line(
        "markers", "integration: Run orchestration tests against a fake browser session"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests requiring a real browser (excluded by default)"
    )


def pytest_collection_modifyitems(config, items):
    """
    Auto-apply markers and skip e2e tests unless explicitly selected.

    Tests without explicit markers are assumed to be unit tests.
    """
    markexpr = config.getoption("-m", default="")
    skip_e2e = pytest.mark.skip(reason="E2E tests need a real browser. Run with: pytest -m e2e")

    for item in items:
        has_classification = any(
            marker.name in ("unit", "integration", "e2e") for marker in item.iter_markers()
        )
        if not has_classification:
            item.add_marker(pytest.mark.unit)

        if "e2e" not in markexpr and any(m.name == "e2e" for m in item.iter_markers()):
            item.add_marker(skip_e2e)


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Clear cached settings so env overrides in one test don't leak."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# =============================================================================
# Fake Browser
# =============================================================================


class FakeRoute:
    """Stand-in for playwright.async_api.Route."""

    def __init__(self, url: str):
        self.request = MagicMock()
        self.request.url = url
        self.continued = False
        self.aborted_with: str | None = None

    async def continue_(self) -> None:
        self.continued = True

    async def abort(self, error_code: str = "failed") -> None:
        self.aborted_with = error_code


class FakeBrowserSession:
    """
    In-memory BrowserSession.

    The measured navigation (the one issued while the recorder runs) pushes
    ``request_urls`` through the interception handler, then takes ``load_ms``
    to settle. With ``timed_out`` set it reports a navigation timeout.
    """

    def __init__(
        self,
        *,
        load_ms: int = 20,
        request_urls: list[str] | None = None,
        timed_out: bool = False,
        metrics: dict[str, float] | None = None,
    ):
        self.load_ms = load_ms
        self.request_urls = request_urls or []
        self.timed_out = timed_out
        self.metrics = metrics or {"Nodes": 12.0, "JSHeapUsedSize": 1024.0}

        self.calls: list[str] = []
        self.navigations: list[str] = []
        self.screenshots: list[str] = []
        self.routes: list[FakeRoute] = []
        self.handler: Any = None
        self.recording = False
        self.closed = False

    async def open(self) -> None:
        self.calls.append("open")

    async def navigate(self, url: str, wait_until: str, timeout_ms: int) -> NavigationResult:
        self.navigations.append(url)
        if not self.recording:
            return NavigationResult.success(url, status=200)

        self.calls.append("navigate")
        if self.handler is not None:
            for request_url in self.request_urls:
                route = FakeRoute(request_url)
                self.routes.append(route)
                await self.handler(route)

        await asyncio.sleep(self.load_ms / 1000)
        if self.timed_out:
            return NavigationResult.failure(
                url, "Timeout exceeded", timed_out=True, elapsed_ms=self.load_ms
            )
        return NavigationResult.success(url, status=200, elapsed_ms=self.load_ms)

    async def enable_interception(self, handler: Any) -> None:
        self.calls.append("enable_interception")
        self.handler = handler

    async def disable_interception(self) -> None:
        self.calls.append("disable_interception")
        self.handler = None

    async def take_screenshot(self, path: str, full_page: bool = False) -> str | None:
        self.screenshots.append(path)
        return path

    async def start_trace(self, path: str) -> None:
        self.calls.append("start_trace")

    async def stop_trace(self) -> None:
        self.calls.append("stop_trace")

    def start_recorder(self, url: str) -> None:
        self.calls.append("start_recorder")
        self.recording = True

    async def stop_recorder(self) -> dict[str, Any]:
        self.calls.append("stop_recorder")
        self.recording = False
        entries = [
            {
                "request": {"method": "GET", "url": route.request.url},
                "response": {"status": 0 if route.aborted_with else 200},
                "timings": {"send": 0, "wait": 5, "receive": 1},
            }
            for route in self.routes
        ]
        return {
            "log": {
                "version": "1.2",
                "creator": {"name": "harcap", "version": "test"},
                "pages": [{"id": "page_1", "title": "", "pageTimings": {}}],
                "entries": entries,
            }
        }

    async def evaluate(self, script: str, *args: Any) -> Any:
        if "paint" in script:
            return [{"name": "first-paint", "startTime": 42.0}]
        return {"navigationStart": 1000, "loadEventEnd": 1200}

    async def performance_counters(self) -> dict[str, float]:
        return dict(self.metrics)

    async def close(self) -> None:
        self.calls.append("close")
        self.closed = True


@pytest.fixture
def make_route():
    """Factory for FakeRoute objects."""

    def _make(url: str) -> FakeRoute:
        return FakeRoute(url)

    return _make


@pytest.fixture
def make_fake_session():
    """Factory for FakeBrowserSession objects."""

    def _make(**kwargs: Any) -> FakeBrowserSession:
        return FakeBrowserSession(**kwargs)

    return _make
