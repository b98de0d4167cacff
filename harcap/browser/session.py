"""
Browser session for harcap.

Defines the ``BrowserSession`` protocol the run is driven through and its
Playwright implementation. The session owns exactly one page.

Features:
- Launch Chromium or attach to a running browser over CDP
- Device emulation, extra headers and cache control
- Request interception hooks (continue/abort/delay decided by the caller)
- Screenshots, Chromium trace capture and network activity recording
- Performance counters via the DevTools Performance domain
"""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from harcap.capture.recorder import ActivityRecorder
from harcap.errors import BrowserConnectionError
from harcap.utils.config import BrowserConfig, RunOptions
from harcap.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import (
        Browser,
        BrowserContext,
        CDPSession,
        Page,
        Playwright,
        Route,
    )

logger = get_logger(__name__)

RouteHandler = Callable[["Route"], Awaitable[None]]

# Always passed to a launched browser
LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-gpu",
    "--ignore-certificate-errors",
    "--no-first-run",
    "--no-default-browser-check",
]


# ============================================================================
# Data Classes
# ============================================================================


@dataclass
class NavigationResult:
    """
    Result of a navigation.

    Attributes:
        ok: Whether the wait condition was reached.
        url: Requested URL.
        status: HTTP status of the main document, if any.
        error: Error message if navigation failed.
        timed_out: Whether the failure was a navigation timeout.
        elapsed_ms: Time taken in milliseconds.
    """

    ok: bool
    url: str
    status: int | None = None
    error: str | None = None
    timed_out: bool = False
    elapsed_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "ok": self.ok,
            "url": self.url,
            "status": self.status,
            "error": self.error,
            "timed_out": self.timed_out,
            "elapsed_ms": self.elapsed_ms,
        }

    @classmethod
    def success(
        cls,
        url: str,
        *,
        status: int | None = None,
        elapsed_ms: float = 0.0,
    ) -> "NavigationResult":
        """Create a successful result."""
        return cls(ok=True, url=url, status=status, elapsed_ms=elapsed_ms)

    @classmethod
    def failure(
        cls,
        url: str,
        error: str,
        *,
        timed_out: bool = False,
        elapsed_ms: float = 0.0,
    ) -> "NavigationResult":
        """Create a failure result."""
        return cls(ok=False, url=url, error=error, timed_out=timed_out, elapsed_ms=elapsed_ms)


# ============================================================================
# Browser Session Protocol
# ============================================================================


@runtime_checkable
class BrowserSession(Protocol):
    """
    Protocol for the browser collaborator driven by a run.

    ``navigate`` never raises for page-level failures; it reports them in
    the returned NavigationResult.
    """

    async def open(self) -> None:
        """Start or attach to the browser and open the page."""
        ...

    async def navigate(self, url: str, wait_until: str, timeout_ms: int) -> NavigationResult:
        """Navigate the page. ``timeout_ms == 0`` disables the timeout."""
        ...

    async def enable_interception(self, handler: RouteHandler) -> None:
        """Route every request of the page through ``handler``."""
        ...

    async def disable_interception(self) -> None:
        """Remove request interception."""
        ...

    async def take_screenshot(self, path: str, full_page: bool = False) -> str | None:
        """Save a screenshot. Returns the path, or None on failure."""
        ...

    async def start_trace(self, path: str) -> None:
        """Start a browser trace written to ``path``."""
        ...

    async def stop_trace(self) -> None:
        """Stop the browser trace."""
        ...

    def start_recorder(self, url: str) -> None:
        """Start recording network activity."""
        ...

    async def stop_recorder(self) -> dict[str, Any]:
        """Stop recording and return the HAR-like log."""
        ...

    async def evaluate(self, script: str, *args: Any) -> Any:
        """Evaluate JavaScript in the page."""
        ...

    async def performance_counters(self) -> dict[str, float]:
        """Snapshot of the page's performance counters."""
        ...

    async def close(self) -> None:
        """Release the page and browser."""
        ...


# ============================================================================
# Playwright Implementation
# ============================================================================


class PlaywrightSession:
    """
    Browser session implemented with Playwright (Chromium).

    A browser launched by the session is closed by ``close()``; a browser
    reached through ``endpoint`` is left running.
    """

    def __init__(self, options: RunOptions, browser_settings: BrowserConfig):
        self._options = options
        self._settings = browser_settings
        self._playwright: "Playwright | None" = None
        self._browser: "Browser | None" = None
        self._context: "BrowserContext | None" = None
        self._page: "Page | None" = None
        self._cdp: "CDPSession | None" = None
        self._recorder: ActivityRecorder | None = None
        self._route_handler: RouteHandler | None = None
        self._tracing = False

    @property
    def page(self) -> "Page":
        if self._page is None:
            raise RuntimeError("Browser session is not open")
        return self._page

    async def _connect(self) -> "Browser":
        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        endpoint = self._options.endpoint

        try:
            if endpoint:
                browser = await self._playwright.chromium.connect_over_cdp(endpoint)
                logger.info("Connected to browser via CDP", endpoint=endpoint)
            else:
                browser = await self._playwright.chromium.launch(
                    headless=self._options.headless,
                    args=[*self._options.chrome_args, *LAUNCH_ARGS],
                )
                logger.info("Browser launched", headless=self._options.headless)
        except Exception as e:
            await self._playwright.stop()
            self._playwright = None
            raise BrowserConnectionError(
                f"Browser connection failed: {e}", endpoint=endpoint
            ) from e

        return browser

    async def open(self) -> None:
        """Start or attach to the browser and open the page."""
        self._browser = await self._connect()
        assert self._playwright is not None

        context_args: dict[str, Any] = {
            "viewport": {
                "width": self._settings.viewport_width,
                "height": self._settings.viewport_height,
            },
            "ignore_https_errors": True,
        }
        if self._options.device:
            try:
                context_args = dict(self._playwright.devices[self._options.device])
            except KeyError:
                raise BrowserConnectionError(
                    f"Unknown device model: {self._options.device}"
                ) from None
            logger.info("Emulating device", device=self._options.device)

        self._context = await self._browser.new_context(**context_args)
        self._page = await self._context.new_page()

        if self._options.headers:
            await self._page.set_extra_http_headers(self._options.headers)

        self._cdp = await self._context.new_cdp_session(self._page)
        await self._cdp.send("Performance.enable")
        await self._cdp.send("Network.enable")
        await self._cdp.send(
            "Network.setCacheDisabled", {"cacheDisabled": not self._options.cache_enabled}
        )

    async def navigate(self, url: str, wait_until: str, timeout_ms: int) -> NavigationResult:
        """Navigate the page, reporting failures in the result."""
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        start_time = time.monotonic()
        try:
            response = await self.page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            return NavigationResult.failure(
                url,
                str(e),
                timed_out=True,
                elapsed_ms=(time.monotonic() - start_time) * 1000,
            )
        except Exception as e:
            return NavigationResult.failure(
                url,
                str(e),
                elapsed_ms=(time.monotonic() - start_time) * 1000,
            )

        return NavigationResult.success(
            url,
            status=response.status if response is not None else None,
            elapsed_ms=(time.monotonic() - start_time) * 1000,
        )

    async def enable_interception(self, handler: RouteHandler) -> None:
        self._route_handler = handler
        await self.page.route("**/*", handler)

    async def disable_interception(self) -> None:
        if self._route_handler is not None:
            await self.page.unroute("**/*", self._route_handler)
            self._route_handler = None

    async def take_screenshot(self, path: str, full_page: bool = False) -> str | None:
        """Save a screenshot of the page."""
        try:
            await self.page.screenshot(
                path=path,
                full_page=full_page,
                type=self._settings.screenshot_type,
            )
            return path
        except Exception as e:
            logger.error("Screenshot failed", path=path, error=str(e))
            return None

    async def start_trace(self, path: str) -> None:
        assert self._browser is not None
        await self._browser.start_tracing(page=self.page, path=path, screenshots=True)
        self._tracing = True
        logger.info("Trace started", path=path)

    async def stop_trace(self) -> None:
        if not self._tracing:
            return
        assert self._browser is not None
        await self._browser.stop_tracing()
        self._tracing = False
        logger.info("Trace stopped")

    def start_recorder(self, url: str) -> None:
        self._recorder = ActivityRecorder(self.page)
        self._recorder.start(url)

    async def stop_recorder(self) -> dict[str, Any]:
        if self._recorder is None:
            raise RuntimeError("Activity recorder was not started")
        try:
            title = await self.page.title()
        except Exception as e:
            logger.debug("Failed to read page title", error=str(e))
            title = ""
        return await self._recorder.stop(title=title)

    async def evaluate(self, script: str, *args: Any) -> Any:
        return await self.page.evaluate(script, *args)

    async def performance_counters(self) -> dict[str, float]:
        """Read ``Performance.getMetrics`` as a name -> value mapping."""
        if self._cdp is None:
            raise RuntimeError("Browser session is not open")
        result = await self._cdp.send("Performance.getMetrics")
        return {m["name"]: m["value"] for m in result.get("metrics", [])}

    async def close(self) -> None:
        """Close and cleanup session resources."""
        if self._cdp is not None:
            try:
                await self._cdp.detach()
            except Exception as e:
                logger.debug("Failed to detach CDP session", error=str(e))
            self._cdp = None

        if self._context is not None and not self._options.endpoint:
            try:
                await self._context.close()
            except Exception as e:
                logger.debug("Failed to close browser context", error=str(e))
        self._context = None
        self._page = None

        if self._browser is not None:
            if self._options.endpoint:
                logger.info("Leaving connected browser running")
            else:
                try:
                    await self._browser.close()
                except Exception as e:
                    logger.debug("Failed to close browser", error=str(e))
            self._browser = None

        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

        logger.info("Browser session closed")


async def list_devices() -> list[str]:
    """Names of the device descriptors available for emulation."""
    from playwright.async_api import async_playwright

    async with async_playwright() as playwright:
        return sorted(playwright.devices.keys())
