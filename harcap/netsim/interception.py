"""
Request interception engine.

Applies the rule table to every request the page issues:

1. No matching rule: the request continues untouched.
2. Matching rule: the rule's match count is incremented.
3. Count above the match budget (when one is set): the request continues
   untouched, but stays counted.
4. Otherwise the action is applied. Blocked requests are aborted with a
   network error; delayed requests are continued from a timer task and the
   applied delay is recorded against the URL.

The engine owns its ledger. Readers use ``lookup()`` and the snapshot
properties; only request handling writes to it.
"""

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from harcap.netsim.rules import ActionKind, Decision, RuleTable
from harcap.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Route

logger = get_logger(__name__)


@dataclass
class MatchLedger:
    """Per-run record of rule matches and applied delays.

    Attributes:
        counts: Rule index -> number of matching requests. Counts keep
            increasing past the match budget.
        delays: URL -> delay applied in ms (last write wins).
    """

    counts: dict[int, int] = field(default_factory=dict)
    delays: dict[str, int] = field(default_factory=dict)

    def count(self, rule_index: int) -> int:
        """Increment and return the match count for a rule."""
        self.counts[rule_index] = self.counts.get(rule_index, 0) + 1
        return self.counts[rule_index]


class InterceptionEngine:
    """Decides and applies delay/block actions for intercepted requests.

    Example:
        engine = InterceptionEngine(RuleTable.from_specs(["100:\\.js$"]))
        await page.route("**/*", engine.handle)
        ...
        await engine.settle()
        engine.lookup("https://example.com/app.js")  # -> 100
    """

    def __init__(
        self,
        rules: RuleTable,
        *,
        max_match: int = 0,
        big_delay_ms: int = 600_000,
        block_error_code: str = "failed",
    ):
        """
        Initialize the engine.

        Args:
            rules: Rule table to evaluate requests against.
            max_match: Per-rule match budget, 0 for unlimited.
            big_delay_ms: Delay used for the 0 sentinel.
            block_error_code: Playwright error code used to abort blocked requests.
        """
        if max_match < 0:
            raise ValueError("max_match must be >= 0")
        if big_delay_ms <= 0:
            raise ValueError("big_delay_ms must be > 0")

        self._rules = rules
        self._max_match = max_match
        self._big_delay_ms = big_delay_ms
        self._block_error_code = block_error_code
        self._ledger = MatchLedger()
        self._pending: dict[int, asyncio.Task[None]] = {}
        self._next_id = 0
        self._settled = False

    @property
    def rules(self) -> RuleTable:
        return self._rules

    @property
    def match_counts(self) -> dict[int, int]:
        """Snapshot of rule index -> match count."""
        return dict(self._ledger.counts)

    @property
    def applied_delays(self) -> dict[str, int]:
        """Snapshot of URL -> applied delay in ms."""
        return dict(self._ledger.delays)

    @property
    def pending_count(self) -> int:
        """Number of delayed requests still waiting for their timer."""
        return len(self._pending)

    def decide(self, url: str) -> Decision | None:
        """Return the matching rule for a URL, or None to pass through."""
        return self._rules.decide(url)

    def record(self, url: str, delay_ms: int) -> None:
        """Record the delay applied to a URL."""
        self._ledger.delays[url] = delay_ms

    def lookup(self, url: str) -> int | None:
        """Return the delay applied to a URL, if any."""
        return self._ledger.delays.get(url)

    async def handle(self, route: "Route") -> None:
        """Route handler for ``page.route``. Called once per request."""
        url = route.request.url

        if self._settled:
            await route.continue_()
            return

        decision = self.decide(url)
        if decision is None:
            await route.continue_()
            return

        matched = self._ledger.count(decision.rule_index)
        if self._max_match > 0 and matched > self._max_match:
            logger.debug(
                "Match budget exhausted, passing through",
                url=url,
                rule=decision.rule_index,
                matched=matched,
                max_match=self._max_match,
            )
            await route.continue_()
            return

        action = decision.action
        if action.kind == ActionKind.BLOCK:
            logger.debug("Blocking request", url=url, rule=decision.rule_index)
            await route.abort(self._block_error_code)
            return

        delay_ms = action.resolve_delay(self._big_delay_ms)
        assert delay_ms is not None  # Only BLOCK resolves to None
        self.record(url, delay_ms)
        logger.debug(
            "Delaying request",
            url=url,
            rule=decision.rule_index,
            delay_ms=delay_ms,
        )
        self._schedule(route, delay_ms)

    def _schedule(self, route: "Route", delay_ms: int) -> None:
        request_id = self._next_id
        self._next_id += 1
        task = asyncio.create_task(self._continue_later(route, delay_ms))
        self._pending[request_id] = task
        task.add_done_callback(lambda _: self._pending.pop(request_id, None))

    async def _continue_later(self, route: "Route", delay_ms: int) -> None:
        await asyncio.sleep(delay_ms / 1000)
        try:
            await route.continue_()
        except Exception as e:
            # Page navigated away or closed while the request was held
            logger.debug("Delayed continuation failed", url=route.request.url, error=str(e))

    async def settle(self) -> int:
        """Stop applying rules and cancel outstanding delay timers.

        Called once the measured navigation has settled. Requests arriving
        afterwards are continued untouched.

        Returns:
            Number of delay timers cancelled.
        """
        self._settled = True
        pending = list(self._pending.values())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info("Cancelled outstanding delay timers", count=len(pending))
        return len(pending)
