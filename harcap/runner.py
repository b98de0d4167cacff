"""
Run orchestration.

One run measures one navigation:

1. Build the rule table and plugin registry (fails before any browser work)
2. Open the browser session, run ``setup`` hooks, prewarm
3. Arm tracing, interception and recording, run ``before`` hooks
4. Navigate while the capture loop takes screenshots, then join both
5. Settle interception, run ``after`` hooks, finish screenshots and trace
6. Assemble the artifact, run ``process`` hooks, persist, run ``cleanup``

The session is always closed, whatever happens in between.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from harcap.browser.session import BrowserSession, NavigationResult, PlaywrightSession
from harcap.capture.loop import Capture, CaptureLoop, CaptureSession, format_screenshot_path
from harcap.netsim.interception import InterceptionEngine
from harcap.netsim.rules import RuleTable
from harcap.plugins.pipeline import HookContext, HookStage, PluginRegistry, build_registry
from harcap.report.augmenter import HarAugmenter, entry_count, write_artifact
from harcap.utils.config import BrowserConfig, RunOptions, Settings, get_settings
from harcap.utils.logging import LogContext, get_logger, new_run_id

logger = get_logger(__name__)

SessionFactory = Callable[[RunOptions, BrowserConfig], BrowserSession]


@dataclass
class RunResult:
    """
    Outcome of a run.

    Attributes:
        artifact: Augmented HAR-like log (after ``process`` hooks).
        navigation: Result of the measured navigation.
        captures: Screenshots taken, in capture order.
        outfile: Path the artifact was written to, if any.
        match_counts: Rule index -> number of matching requests.
    """

    artifact: dict[str, Any]
    navigation: NavigationResult
    captures: list[Capture] = field(default_factory=list)
    outfile: Path | None = None
    match_counts: dict[int, int] = field(default_factory=dict)


class HarcapRunner:
    """
    Drives a single measured page load.

    Example:
        options = RunOptions.from_settings(get_settings(), "https://example.com/",
                                           delays=["300:\\.css$"], outfile="out.json")
        result = await HarcapRunner(options).run()
    """

    def __init__(
        self,
        options: RunOptions,
        settings: Settings | None = None,
        *,
        session_factory: SessionFactory | None = None,
        registry: PluginRegistry | None = None,
    ):
        """
        Initialize the runner.

        Args:
            options: Per-run options.
            settings: Loaded settings. Defaults to ``get_settings()``.
            session_factory: Builds the browser session. Defaults to PlaywrightSession.
            registry: Pre-populated plugin registry. When omitted, one is built
                from ``options.plugins``.
        """
        self._options = options
        self._settings = settings or get_settings()
        self._session_factory = session_factory or PlaywrightSession
        self._registry = registry

    def _build_registry(self) -> PluginRegistry:
        loaded = build_registry(
            self._options.plugins, isolate_errors=self._settings.plugins.isolate_errors
        )
        if self._registry is None:
            return loaded
        return self._registry.combined(loaded)

    async def run(self) -> RunResult:
        """
        Execute the run.

        Returns:
            RunResult. Navigation failures are reported in ``navigation``.

        Raises:
            RuleSpecError: If a delay rule is malformed.
            PluginLoadError: If a plugin cannot be loaded.
            PluginHookError: If a hook fails and errors are not isolated.
            BrowserConnectionError: If the browser cannot be started or reached.
        """
        options = self._options
        netsim = self._settings.netsim

        rules = RuleTable.from_specs(options.delays)
        registry = self._build_registry()
        engine = InterceptionEngine(
            rules,
            max_match=options.max_match,
            big_delay_ms=netsim.big_delay_ms,
            block_error_code=netsim.block_error_code,
        )

        with LogContext(run_id=new_run_id(), url=options.url):
            logger.info(
                "Run started",
                rules=len(rules),
                plugins=registry.list_plugins(),
                interval_ms=options.interval_ms,
            )
            session = self._session_factory(options, self._settings.browser)
            try:
                result = await self._execute(session, engine, registry)
            finally:
                await session.close()

            logger.info(
                "Run finished",
                navigation_ok=result.navigation.ok,
                entries=entry_count(result.artifact),
                captures=len(result.captures),
                outfile=str(result.outfile) if result.outfile else None,
            )
            return result

    async def _execute(
        self,
        session: BrowserSession,
        engine: InterceptionEngine,
        registry: PluginRegistry,
    ) -> RunResult:
        options = self._options
        ctx = HookContext(options=options, url=options.url, session=session)

        await session.open()
        await registry.run_stage(HookStage.SETUP, ctx)
        await self._prewarm(session)

        if options.trace:
            await session.start_trace(options.trace)
        await session.enable_interception(engine.handle)
        session.start_recorder(options.url)
        await registry.run_stage(HookStage.BEFORE, ctx)

        capture_session = CaptureSession()

        async def screenshot(path: str) -> str | None:
            return await session.take_screenshot(path, options.full_page)

        loop = CaptureLoop(screenshot, options.screenshot, options.interval_ms, capture_session)
        navigation, _ = await asyncio.gather(
            self._navigate(session, capture_session),
            loop.run(),
        )

        await engine.settle()
        await session.disable_interception()
        await registry.run_stage(HookStage.AFTER, ctx)

        captures = list(loop.captures)
        if options.screenshot and not loop.enabled:
            elapsed_ms = int(navigation.elapsed_ms)
            path = format_screenshot_path(options.screenshot, elapsed_ms)
            if await session.take_screenshot(path, options.full_page):
                captures.append(Capture(elapsed_ms=elapsed_ms, path=path, final=True))
        if options.trace:
            await session.stop_trace()

        har = await session.stop_recorder()
        artifact = await HarAugmenter(engine.lookup).collect_and_augment(session, har)
        ctx.artifact = artifact
        await registry.run_stage(HookStage.PROCESS, ctx)

        outfile = write_artifact(artifact, options.outfile) if options.outfile else None
        await registry.run_stage(HookStage.CLEANUP, ctx)

        return RunResult(
            artifact=artifact,
            navigation=navigation,
            captures=captures,
            outfile=outfile,
            match_counts=engine.match_counts,
        )

    async def _prewarm(self, session: BrowserSession) -> None:
        options = self._options
        for i in range(options.prewarm):
            result = await session.navigate(options.url, options.wait_until, options.timeout_ms)
            logger.debug("Prewarm navigation", round=i + 1, ok=result.ok)
        await session.navigate("about:blank", "load", 0)

    async def _navigate(
        self,
        session: BrowserSession,
        capture_session: CaptureSession,
    ) -> NavigationResult:
        """Measured navigation. Always stops the capture session."""
        options = self._options
        try:
            result = await session.navigate(options.url, options.wait_until, options.timeout_ms)
        except Exception as e:
            result = NavigationResult.failure(options.url, str(e))
        finally:
            capture_session.stop()

        if result.ok:
            logger.info(
                "Navigation complete",
                status=result.status,
                elapsed_ms=result.elapsed_ms,
            )
        elif result.timed_out:
            logger.warning(
                "Navigation timed out",
                timeout_ms=options.timeout_ms,
                elapsed_ms=result.elapsed_ms,
            )
        else:
            logger.error("Navigation failed", error=result.error)
        return result
