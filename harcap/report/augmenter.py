"""
Artifact assembly.

Merges the recorded activity log with the page's performance data and the
delays applied by the interception engine:

- ``log.pages[0].extra = {"metrics": ..., "timing": ..., "paint": ...}``
- ``entry.timings._delayed = <ms>`` for every entry whose URL was delayed
"""

import json
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from harcap.utils.logging import get_logger

if TYPE_CHECKING:
    from harcap.browser.session import BrowserSession

logger = get_logger(__name__)

NAVIGATION_TIMING_SCRIPT = "() => JSON.parse(JSON.stringify(window.performance.timing))"
PAINT_TIMING_SCRIPT = (
    "() => performance.getEntriesByType('paint').map(e => JSON.parse(JSON.stringify(e)))"
)


class HarAugmenter:
    """Attaches performance data and delay annotations to the activity log.

    Example:
        augmenter = HarAugmenter(engine.lookup)
        artifact = augmenter.augment(har, metrics=metrics, timing=timing, paint=paint)
    """

    def __init__(self, lookup_delay: Callable[[str], int | None]):
        """
        Args:
            lookup_delay: Returns the delay applied to a URL, or None.
                Normally ``InterceptionEngine.lookup``.
        """
        self._lookup_delay = lookup_delay

    def augment(
        self,
        har: dict[str, Any],
        *,
        metrics: dict[str, float],
        timing: dict[str, Any],
        paint: list[dict[str, Any]],
    ) -> dict[str, Any]:
        """
        Annotate the log in place.

        Args:
            har: HAR-like log from the activity recorder.
            metrics: Performance counters snapshot.
            timing: Navigation timing.
            paint: Paint timing entries.

        Returns:
            The same (now augmented) log.
        """
        log = har.setdefault("log", {})
        pages = log.setdefault("pages", [])
        if not pages:
            logger.warning("Activity log has no page record, creating one")
            pages.append({"id": "page_1", "title": "", "pageTimings": {}})

        pages[0]["extra"] = {"metrics": metrics, "timing": timing, "paint": paint}

        annotated = 0
        for entry in log.setdefault("entries", []):
            url = entry.get("request", {}).get("url")
            if url is None:
                continue
            delay = self._lookup_delay(url)
            if delay is not None and delay > 0:
                entry.setdefault("timings", {})["_delayed"] = delay
                annotated += 1

        logger.info(
            "Artifact augmented",
            entries=len(log["entries"]),
            delayed_entries=annotated,
            metrics=len(metrics),
            paint_entries=len(paint),
        )
        return har

    async def collect_and_augment(
        self,
        session: "BrowserSession",
        har: dict[str, Any],
    ) -> dict[str, Any]:
        """Read performance data from the page and augment the log."""
        metrics = await session.performance_counters()
        timing = await session.evaluate(NAVIGATION_TIMING_SCRIPT) or {}
        paint = await session.evaluate(PAINT_TIMING_SCRIPT) or []
        return self.augment(har, metrics=metrics, timing=timing, paint=paint)


def entry_count(artifact: dict[str, Any]) -> int:
    """Number of log entries, 0 if a ``process`` hook reshaped the artifact."""
    log = artifact.get("log")
    entries = log.get("entries") if isinstance(log, dict) else None
    return len(entries) if isinstance(entries, list) else 0


def write_artifact(artifact: dict[str, Any], path: str | Path) -> Path:
    """Write the artifact as JSON. Returns the written path."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(artifact, ensure_ascii=False), encoding="utf-8")
    logger.info("Artifact saved", path=str(out), entries=entry_count(artifact))
    return out
