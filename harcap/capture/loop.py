"""
Periodic screenshot capture running alongside the measured navigation.

The loop takes a screenshot at elapsed 0, interval, 2*interval, ... until
the navigation signals completion. The stop signal interrupts the wait
between ticks immediately, and one final screenshot is taken tagged with
the elapsed time at which the page settled.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from harcap.utils.logging import get_logger

logger = get_logger(__name__)

ScreenshotFunc = Callable[[str], Awaitable[object]]


def format_screenshot_path(template: str, elapsed_ms: int) -> str:
    """Substitute the elapsed time into a screenshot path template.

    ``%d`` is replaced by the elapsed milliseconds zero-padded to six digits,
    so that files sort in capture order (``shot-%d.jpg`` -> ``shot-000500.jpg``).
    Templates without a placeholder are returned unchanged.
    """
    return template.replace("%d", f"{elapsed_ms:06d}")


@dataclass
class Capture:
    """A screenshot taken by the capture loop."""

    elapsed_ms: int
    path: str
    final: bool = False


@dataclass
class CaptureSession:
    """Shared state between the navigation task and the capture loop.

    ``stopped`` transitions from False to True exactly once.
    """

    elapsed_ms: int = 0
    _stop_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> bool:
        """Signal completion. Returns False if already stopped."""
        if self._stop_event.is_set():
            return False
        self._stop_event.set()
        return True

    async def wait_stopped(self, timeout: float | None) -> bool:
        """Wait for the stop signal. Returns True if it fired within timeout."""
        if self._stop_event.is_set():
            return True
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True


class CaptureLoop:
    """Takes screenshots at a fixed interval until the session is stopped.

    Example:
        session = CaptureSession()
        loop = CaptureLoop(take_screenshot, "shot-%d.jpg", 500, session)
        await asyncio.gather(navigate_then(session.stop), loop.run())
        loop.captures  # -> [Capture(0, ...), Capture(500, ...), ..., final]
    """

    def __init__(
        self,
        screenshot: ScreenshotFunc,
        path_template: str | None,
        interval_ms: int,
        session: CaptureSession,
    ):
        """
        Initialize the capture loop.

        Args:
            screenshot: Coroutine function taking the output path.
            path_template: Screenshot path template with optional ``%d``.
            interval_ms: Tick period in ms. 0 disables the loop.
            session: Shared capture session carrying the stop signal.
        """
        if interval_ms < 0:
            raise ValueError("interval_ms must be >= 0")

        self._screenshot = screenshot
        self._template = path_template
        self._interval_ms = interval_ms
        self._session = session
        self.captures: list[Capture] = []

    @property
    def enabled(self) -> bool:
        return bool(self._template) and self._interval_ms > 0

    async def run(self) -> list[Capture]:
        """Run until the session stops. Returns the captures taken."""
        if not self.enabled:
            return self.captures

        interval = self._interval_ms / 1000
        started = time.monotonic()
        tick = 0

        while True:
            elapsed_ms = tick * self._interval_ms
            self._session.elapsed_ms = elapsed_ms
            capture = await self._capture(elapsed_ms)

            if self._session.stopped:
                capture.final = True
                logger.debug("Page loaded, capture loop finished", captures=len(self.captures))
                return self.captures

            tick += 1
            deadline = started + tick * interval
            timeout = max(0.0, deadline - time.monotonic())
            if await self._session.wait_stopped(timeout):
                settled_ms = int((time.monotonic() - started) * 1000)
                self._session.elapsed_ms = settled_ms
                capture = await self._capture(settled_ms)
                capture.final = True
                logger.debug("Page loaded, capture loop finished", captures=len(self.captures))
                return self.captures

    async def _capture(self, elapsed_ms: int) -> Capture:
        assert self._template is not None
        path = format_screenshot_path(self._template, elapsed_ms)
        await self._screenshot(path)
        capture = Capture(elapsed_ms=elapsed_ms, path=path)
        self.captures.append(capture)
        logger.debug("Screenshot captured", elapsed_ms=elapsed_ms, path=path)
        return capture
