"""
End-to-end tests against a real headless Chromium.

Requires ``playwright install chromium``. Run with: pytest -m e2e

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-E2E-N-01 | Local page, css delayed, ads blocked | Equivalence – normal | Artifact with _delayed and failed entry | |
"""

import json
import threading
from collections.abc import Generator
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

from harcap.runner import HarcapRunner
from harcap.utils.config import RunOptions, Settings

pytestmark = pytest.mark.e2e

INDEX_HTML = """<!doctype html>
<html><head>
<title>harcap e2e</title>
<link rel="stylesheet" href="/style.css">
<script src="/ads.js"></script>
</head><body><h1>hello</h1></body></html>
"""


@pytest.fixture
def site(tmp_path: Path) -> Generator[str, None, None]:
    root = tmp_path / "site"
    root.mkdir()
    (root / "index.html").write_text(INDEX_HTML, encoding="utf-8")
    (root / "style.css").write_text("h1 { color: red; }", encoding="utf-8")
    (root / "ads.js").write_text("window.ads = true;", encoding="utf-8")

    handler = partial(SimpleHTTPRequestHandler, directory=str(root))
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}/"
    server.shutdown()


@pytest.mark.asyncio
async def test_capture_local_page(site: str, tmp_path: Path) -> None:
    """TC-E2E-N-01."""
    # Given: A local page with a stylesheet and an ad script
    outfile = tmp_path / "out.json"
    options = RunOptions(
        url=site,
        delays=["300:\\.css$", "-1:ads\\.js"],
        headless=True,
        timeout_ms=30_000,
        wait_until="load",
        outfile=str(outfile),
    )

    # When: Running against real Chromium
    result = await HarcapRunner(options, Settings()).run()

    # Then: The stylesheet is annotated and the ad script failed
    saved = json.loads(outfile.read_text(encoding="utf-8"))
    entries = {e["request"]["url"]: e for e in saved["log"]["entries"]}
    assert result.navigation.ok
    assert entries[site + "style.css"]["timings"]["_delayed"] == 300
    assert entries[site + "ads.js"]["response"]["status"] == 0
    assert "metrics" in saved["log"]["pages"][0]["extra"]
