"""
Tests for artifact augmentation and persistence.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-AU-N-01 | Entry with 300 ms delay | Equivalence – normal | timings._delayed == 300 | |
| TC-AU-N-02 | Entry without delay | Equivalence – normal | No _delayed field | |
| TC-AU-N-03 | Metrics, timing, paint | Equivalence – normal | pages[0].extra set | |
| TC-AU-N-04 | collect_and_augment | Equivalence – normal | Data read from session | |
| TC-AU-B-01 | Log without pages | Boundary – empty | Page record created | |
| TC-AU-B-02 | Entry without timings | Boundary – missing | timings created | |
| TC-AU-B-03 | Big delay recorded | Boundary – large | _delayed == 600000 | |
| TC-WA-N-01 | write_artifact | Equivalence – normal | UTF-8 JSON, parent created | |
| TC-WA-B-01 | Artifact without log.entries | Boundary – reshaped | Written, count 0 | process hook output |
"""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from harcap.report.augmenter import (
    NAVIGATION_TIMING_SCRIPT,
    PAINT_TIMING_SCRIPT,
    HarAugmenter,
    entry_count,
    write_artifact,
)

pytestmark = pytest.mark.unit


def make_har(*urls: str) -> dict:
    return {
        "log": {
            "version": "1.2",
            "creator": {"name": "harcap", "version": "1.2"},
            "pages": [{"id": "page_1", "title": "Example", "pageTimings": {}}],
            "entries": [
                {"request": {"method": "GET", "url": url}, "timings": {"wait": 3}}
                for url in urls
            ],
        }
    }


class TestHarAugmenter:
    """Tests for HarAugmenter.augment."""

    def test_delayed_and_undelayed_entries(self) -> None:
        """TC-AU-N-01 / TC-AU-N-02."""
        # Given: A ledger with one delayed URL
        delays = {"https://example.com/style.css": 300}
        har = make_har("https://example.com/", "https://example.com/style.css")

        # When: Augmenting
        HarAugmenter(delays.get).augment(har, metrics={}, timing={}, paint=[])

        # Then: Only the delayed entry carries _delayed
        document, stylesheet = har["log"]["entries"]
        assert "_delayed" not in document["timings"]
        assert stylesheet["timings"]["_delayed"] == 300
        assert stylesheet["timings"]["wait"] == 3

    def test_page_extra(self) -> None:
        """TC-AU-N-03."""
        har = make_har()
        metrics = {"Nodes": 10.0}
        timing = {"navigationStart": 1}
        paint = [{"name": "first-paint", "startTime": 12.5}]

        result = HarAugmenter(lambda url: None).augment(
            har, metrics=metrics, timing=timing, paint=paint
        )

        assert result is har
        assert har["log"]["pages"][0]["extra"] == {
            "metrics": metrics,
            "timing": timing,
            "paint": paint,
        }

    @pytest.mark.asyncio
    async def test_collect_and_augment(self) -> None:
        """TC-AU-N-04."""
        # Given: A session reporting counters and timing
        session = MagicMock()
        session.performance_counters = AsyncMock(return_value={"Nodes": 4.0})
        session.evaluate = AsyncMock(
            side_effect=lambda script: {"navigationStart": 5}
            if script == NAVIGATION_TIMING_SCRIPT
            else [{"name": "first-contentful-paint"}]
        )
        har = make_har("https://example.com/")

        # When: Collecting and augmenting
        await HarAugmenter(lambda url: None).collect_and_augment(session, har)

        # Then: Both scripts were evaluated and attached
        scripts = [call.args[0] for call in session.evaluate.await_args_list]
        assert scripts == [NAVIGATION_TIMING_SCRIPT, PAINT_TIMING_SCRIPT]
        extra = har["log"]["pages"][0]["extra"]
        assert extra["metrics"] == {"Nodes": 4.0}
        assert extra["timing"] == {"navigationStart": 5}
        assert extra["paint"] == [{"name": "first-contentful-paint"}]

    def test_missing_page_record(self) -> None:
        """TC-AU-B-01."""
        har = {"log": {"entries": []}}

        HarAugmenter(lambda url: None).augment(har, metrics={}, timing={}, paint=[])

        assert len(har["log"]["pages"]) == 1
        assert har["log"]["pages"][0]["extra"]["paint"] == []

    def test_entry_without_timings(self) -> None:
        """TC-AU-B-02."""
        har = {"log": {"pages": [], "entries": [{"request": {"url": "https://a/"}}]}}

        HarAugmenter({"https://a/": 50}.get).augment(har, metrics={}, timing={}, paint=[])

        assert har["log"]["entries"][0]["timings"] == {"_delayed": 50}

    def test_big_delay(self) -> None:
        """TC-AU-B-03."""
        har = make_har("https://example.com/api")

        HarAugmenter({"https://example.com/api": 600_000}.get).augment(
            har, metrics={}, timing={}, paint=[]
        )

        assert har["log"]["entries"][0]["timings"]["_delayed"] == 600_000


class TestWriteArtifact:
    """Tests for write_artifact."""

    def test_write(self, tmp_path: Path) -> None:
        """TC-WA-N-01."""
        har = make_har("https://example.com/日本語")
        path = tmp_path / "nested" / "out.json"

        written = write_artifact(har, path)

        assert written == path
        text = path.read_text(encoding="utf-8")
        assert "日本語" in text
        assert json.loads(text) == har

    def test_reshaped_artifact(self, tmp_path: Path) -> None:
        """TC-WA-B-01."""
        path = tmp_path / "out.json"

        write_artifact({"summary": {"requests": 3}}, path)

        assert json.loads(path.read_text(encoding="utf-8")) == {"summary": {"requests": 3}}
        assert entry_count({"summary": {}}) == 0
        assert entry_count({"log": {"pages": []}}) == 0
        assert entry_count(make_har("https://a/", "https://b/")) == 2
