"""
Network activity recorder.

Collects Playwright page network events during the measured load and
builds a HAR 1.2 style log from them:

- one entry per request (a URL fetched twice yields two entries)
- per-entry timing breakdown derived from the browser's resource timing
- failed requests (including blocked ones) kept with status 0

The log is intentionally minimal; it is not validated against the HAR schema.
"""

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from harcap.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Page, Request, Response

logger = get_logger(__name__)

HAR_VERSION = "1.2"
CREATOR_NAME = "harcap"


# =============================================================================
# Resource Data
# =============================================================================


@dataclass
class ResourceInfo:
    """Information about a single request observed on the page.

    Attributes:
        url: Request URL.
        method: HTTP method used.
        resource_type: Resource type (document, script, image, ...).
        start_time: Wall-clock request start (epoch seconds).
        status: HTTP status code (0 if no response was received).
        status_text: HTTP status text.
        http_version: Protocol reported by the response.
        request_headers: Request headers.
        response_headers: Response headers.
        mime_type: MIME type of the response.
        body_size: Response body size in bytes (-1 if unknown).
        timing: Playwright resource timing (ms relative to startTime).
        failure: Failure text for failed requests.
        finished: Whether the request completed (finished or failed).
    """

    url: str
    method: str = "GET"
    resource_type: str = ""
    start_time: float = 0.0
    status: int = 0
    status_text: str = ""
    http_version: str = "HTTP/1.1"
    request_headers: dict[str, str] = field(default_factory=dict)
    response_headers: dict[str, str] = field(default_factory=dict)
    mime_type: str = ""
    body_size: int = -1
    timing: dict[str, float] = field(default_factory=dict)
    failure: str | None = None
    finished: bool = False


def _span(start: float, end: float) -> float:
    """Duration between two timing marks, -1 when either is missing."""
    if start < 0 or end < 0:
        return -1
    return round(max(0.0, end - start), 3)


def timing_breakdown(timing: dict[str, float]) -> dict[str, float]:
    """Convert Playwright resource timing into HAR timings.

    Playwright reports marks in ms relative to ``startTime`` with -1 for
    phases that did not happen (reused connection, cached response, ...).

    Args:
        timing: ``request.timing`` dictionary.

    Returns:
        HAR ``timings`` dict (blocked, dns, connect, ssl, send, wait, receive).
    """
    dns_start = timing.get("domainLookupStart", -1)
    dns_end = timing.get("domainLookupEnd", -1)
    connect_start = timing.get("connectStart", -1)
    connect_end = timing.get("connectEnd", -1)
    ssl_start = timing.get("secureConnectionStart", -1)
    request_start = timing.get("requestStart", -1)
    response_start = timing.get("responseStart", -1)
    response_end = timing.get("responseEnd", -1)

    first_mark = next(
        (mark for mark in (dns_start, connect_start, request_start) if mark >= 0),
        -1,
    )

    return {
        "blocked": round(first_mark, 3) if first_mark >= 0 else -1,
        "dns": _span(dns_start, dns_end),
        "connect": _span(connect_start, connect_end),
        "ssl": _span(ssl_start, connect_end),
        "send": 0 if request_start >= 0 else -1,
        "wait": _span(request_start, response_start),
        "receive": _span(response_start, response_end),
    }


def total_time(timings: dict[str, float]) -> float:
    """Total entry time: sum of known phases (ssl is part of connect)."""
    phases = ("blocked", "dns", "connect", "send", "wait", "receive")
    return round(sum(timings[p] for p in phases if timings.get(p, -1) > 0), 3)


# =============================================================================
# HAR Builder
# =============================================================================


class HARBuilder:
    """Builds the HAR-like log from collected resources."""

    def __init__(self, page_url: str, page_title: str = ""):
        self._page_url = page_url
        self._page_title = page_title
        self._started_datetime = datetime.now(UTC).isoformat()
        self._entries: list[dict[str, Any]] = []

    def add_resource(self, resource: ResourceInfo) -> None:
        """Add a resource as a log entry."""
        request = {
            "method": resource.method,
            "url": resource.url,
            "httpVersion": resource.http_version,
            "cookies": [],
            "headers": [{"name": k, "value": v} for k, v in resource.request_headers.items()],
            "queryString": [],
            "headersSize": -1,
            "bodySize": -1,
        }

        response: dict[str, Any] = {
            "status": resource.status,
            "statusText": resource.status_text,
            "httpVersion": resource.http_version,
            "cookies": [],
            "headers": [{"name": k, "value": v} for k, v in resource.response_headers.items()],
            "content": {
                "size": max(resource.body_size, 0),
                "mimeType": resource.mime_type,
            },
            "redirectURL": resource.response_headers.get("location", ""),
            "headersSize": -1,
            "bodySize": resource.body_size,
        }
        if resource.failure:
            response["_error"] = resource.failure

        started = (
            datetime.fromtimestamp(resource.start_time, tz=UTC).isoformat()
            if resource.start_time
            else self._started_datetime
        )
        timings = timing_breakdown(resource.timing)

        self._entries.append(
            {
                "pageref": "page_1",
                "startedDateTime": started,
                "time": total_time(timings),
                "request": request,
                "response": response,
                "cache": {},
                "timings": timings,
                "_resourceType": resource.resource_type,
            }
        )

    def generate(self) -> dict[str, Any]:
        """Generate the complete log structure."""
        return {
            "log": {
                "version": HAR_VERSION,
                "creator": {"name": CREATOR_NAME, "version": HAR_VERSION},
                "pages": [
                    {
                        "startedDateTime": self._started_datetime,
                        "id": "page_1",
                        "title": self._page_title or self._page_url,
                        "pageTimings": {"onContentLoad": -1, "onLoad": -1},
                    }
                ],
                "entries": list(self._entries),
            }
        }


# =============================================================================
# Activity Recorder
# =============================================================================


class ActivityRecorder:
    """Records page network activity between ``start()`` and ``stop()``.

    Example:
        recorder = ActivityRecorder(page)
        recorder.start(url)
        await page.goto(url)
        har = await recorder.stop(title=await page.title())
    """

    def __init__(self, page: "Page"):
        self._page = page
        self._resources: dict[Any, ResourceInfo] = {}
        self._order: list[Any] = []
        self._main_url = ""
        self._recording = False

    @property
    def recording(self) -> bool:
        return self._recording

    @property
    def resources(self) -> list[ResourceInfo]:
        """Collected resources in request order."""
        return [self._resources[key] for key in self._order]

    def start(self, main_url: str) -> None:
        """Attach listeners and start recording."""
        if self._recording:
            return

        self._resources = {}
        self._order = []
        self._main_url = main_url

        self._page.on("request", self._on_request)
        self._page.on("response", self._on_response)
        self._page.on("requestfinished", self._on_request_finished)
        self._page.on("requestfailed", self._on_request_failed)
        self._recording = True

        logger.debug("Activity recording started", url=main_url)

    async def stop(self, title: str = "") -> dict[str, Any]:
        """Detach listeners and return the HAR-like log."""
        if self._recording:
            self._page.remove_listener("request", self._on_request)
            self._page.remove_listener("response", self._on_response)
            self._page.remove_listener("requestfinished", self._on_request_finished)
            self._page.remove_listener("requestfailed", self._on_request_failed)
            self._recording = False

        builder = HARBuilder(self._main_url, title)
        resources = sorted(self.resources, key=lambda r: r.start_time)
        for resource in resources:
            builder.add_resource(resource)

        logger.debug(
            "Activity recording stopped",
            entries=len(resources),
            unfinished=sum(1 for r in resources if not r.finished),
        )
        return builder.generate()

    def _resource_for(self, request: "Request") -> ResourceInfo:
        key = request
        resource = self._resources.get(key)
        if resource is None:
            # Events for requests issued before recording started
            resource = ResourceInfo(url=request.url, method=request.method, start_time=time.time())
            self._resources[key] = resource
            self._order.append(key)
        return resource

    def _on_request(self, request: "Request") -> None:
        key = request
        self._resources[key] = ResourceInfo(
            url=request.url,
            method=request.method,
            resource_type=request.resource_type,
            start_time=time.time(),
            request_headers=dict(request.headers),
        )
        self._order.append(key)

    async def _on_response(self, response: "Response") -> None:
        resource = self._resource_for(response.request)
        resource.status = response.status
        resource.status_text = response.status_text
        try:
            headers = await response.all_headers()
        except Exception as e:
            logger.debug("Failed to read response headers", url=response.url, error=str(e))
            headers = dict(response.headers)
        resource.response_headers = headers
        resource.mime_type = headers.get("content-type", "")

    async def _on_request_finished(self, request: "Request") -> None:
        resource = self._resource_for(request)
        resource.finished = True
        resource.timing = dict(request.timing)
        if resource.timing.get("startTime", -1) > 0:
            resource.start_time = resource.timing["startTime"] / 1000
        try:
            sizes = await request.sizes()
            resource.body_size = sizes.get("responseBodySize", -1)
        except Exception as e:
            logger.debug("Failed to read request sizes", url=request.url, error=str(e))

    def _on_request_failed(self, request: "Request") -> None:
        resource = self._resource_for(request)
        resource.finished = True
        resource.status = 0
        resource.failure = request.failure or "failed"
        resource.timing = dict(request.timing)
