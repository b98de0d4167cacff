"""
Plugin pipeline for harcap runs.

A plugin is any object implementing some of the five hooks below. Hooks
may be plain functions or coroutines; each receives a ``HookContext``.

    setup    page is configured, before warmup navigations
    before   interception and recording armed, right before navigation
    after    navigation and capture joined, before screenshot/trace teardown
    process  artifact assembled; may mutate ``ctx.artifact``
    cleanup  after the artifact has been written

Within a stage plugins run in registration order and every hook is awaited
before the next one starts. Example plugin:

    class StripHeaders:
        name = "strip-headers"

        async def process(self, ctx: HookContext) -> None:
            for entry in ctx.artifact["log"]["entries"]:
                entry["request"]["headers"] = []
"""

import importlib
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from harcap.errors import PluginHookError, PluginLoadError
from harcap.utils.logging import get_logger

if TYPE_CHECKING:
    from harcap.browser.session import BrowserSession
    from harcap.utils.config import RunOptions

logger = get_logger(__name__)


class HookStage(str, Enum):
    """Pipeline stages, in invocation order."""

    SETUP = "setup"
    BEFORE = "before"
    AFTER = "after"
    PROCESS = "process"
    CLEANUP = "cleanup"


@dataclass
class HookContext:
    """
    Context passed to every hook.

    Attributes:
        options: Options of the current run.
        url: Target URL of the measured navigation.
        session: Browser session driving the page.
        artifact: Assembled HAR-like artifact (process and cleanup only).
    """

    options: "RunOptions"
    url: str
    session: "BrowserSession"
    artifact: dict[str, Any] | None = None


def plugin_name(plugin: Any) -> str:
    """Best-effort display name for a plugin object."""
    name = getattr(plugin, "name", None)
    if isinstance(name, str) and name:
        return name
    if inspect.ismodule(plugin):
        return plugin.__name__
    return type(plugin).__name__


def implemented_hooks(plugin: Any) -> list[HookStage]:
    """List the stages a plugin implements."""
    return [stage for stage in HookStage if callable(getattr(plugin, stage.value, None))]


def unique_name(name: str, taken: set[str]) -> str:
    """``name``, or ``name#2``, ``name#3``... when already taken."""
    if name not in taken:
        return name
    n = 2
    while f"{name}#{n}" in taken:
        n += 1
    return f"{name}#{n}"


class PluginRegistry:
    """
    Registry of loaded plugins, in registration order.

    Example usage:
        registry = PluginRegistry()
        registry.register(MetricsExporter())
        registry.register(load_plugin("mypkg.plugins:Annotate"))

        await registry.run_stage(HookStage.SETUP, ctx)
    """

    def __init__(self, *, isolate_errors: bool = False):
        """
        Initialize empty registry.

        Args:
            isolate_errors: Log hook failures and continue instead of raising.
        """
        self._plugins: list[tuple[str, Any]] = []
        self._isolate_errors = isolate_errors

    def register(self, plugin: Any, name: str | None = None) -> None:
        """
        Register a plugin.

        Args:
            plugin: Plugin object (instance or module).
            name: Display name. Derived from the plugin if omitted.

        Raises:
            ValueError: If a plugin with the same name is already registered.
        """
        name = name or plugin_name(plugin)

        if any(existing == name for existing, _ in self._plugins):
            raise ValueError(f"Plugin '{name}' already registered")

        self._plugins.append((name, plugin))
        hooks = implemented_hooks(plugin)

        logger.info(
            "Plugin registered",
            plugin=name,
            hooks=[stage.value for stage in hooks],
        )
        if not hooks:
            logger.warning("Plugin implements no hooks", plugin=name)

    def get(self, name: str) -> Any | None:
        """Get a registered plugin by name."""
        for existing, plugin in self._plugins:
            if existing == name:
                return plugin
        return None

    def list_plugins(self) -> list[str]:
        """List registered plugin names in invocation order."""
        return [name for name, _ in self._plugins]

    def combined(self, other: "PluginRegistry") -> "PluginRegistry":
        """
        New registry holding this registry's plugins followed by ``other``'s.

        Neither registry is modified. Clashing names from ``other`` get a
        ``#N`` suffix. The error policy is taken from this registry.
        """
        merged = PluginRegistry(isolate_errors=self._isolate_errors)
        merged._plugins = list(self._plugins)
        taken = set(self.list_plugins())
        for name, plugin in other._plugins:
            name = unique_name(name, taken)
            taken.add(name)
            merged._plugins.append((name, plugin))
        return merged

    def __len__(self) -> int:
        return len(self._plugins)

    async def run_stage(self, stage: HookStage, ctx: HookContext) -> int:
        """
        Invoke every plugin implementing a stage, sequentially.

        Args:
            stage: Stage to run.
            ctx: Hook context.

        Returns:
            Number of hooks invoked.

        Raises:
            PluginHookError: If a hook raises and errors are not isolated.
        """
        invoked = 0

        for name, plugin in self._plugins:
            hook = getattr(plugin, stage.value, None)
            if not callable(hook):
                continue

            invoked += 1
            logger.debug("Running plugin hook", plugin=name, stage=stage.value)
            try:
                result = hook(ctx)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                if not self._isolate_errors:
                    raise PluginHookError(name, stage.value, str(e)) from e
                logger.error(
                    "Plugin hook failed",
                    plugin=name,
                    stage=stage.value,
                    error=str(e),
                )

        return invoked


def load_plugin(spec: str) -> Any:
    """
    Resolve a plugin spec to a plugin object.

    Accepted forms:
        ``package.module``           the module itself (module-level hooks)
        ``package.module:attribute`` an attribute of the module; classes are
                                     instantiated without arguments

    Args:
        spec: Plugin spec.

    Returns:
        Plugin object.

    Raises:
        PluginLoadError: If the module or attribute cannot be resolved.
    """
    module_name, _, attribute = spec.partition(":")
    if not module_name:
        raise PluginLoadError(spec, "empty module name")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise PluginLoadError(spec, str(e)) from e
    except Exception as e:
        raise PluginLoadError(spec, f"error while importing: {e}") from e

    if not attribute:
        return module

    try:
        plugin = getattr(module, attribute)
    except AttributeError as e:
        raise PluginLoadError(spec, f"module has no attribute {attribute!r}") from e

    if inspect.isclass(plugin):
        try:
            plugin = plugin()
        except Exception as e:
            raise PluginLoadError(spec, f"failed to instantiate: {e}") from e

    return plugin


def build_registry(specs: list[str], *, isolate_errors: bool = False) -> PluginRegistry:
    """
    Load every plugin spec into a new registry.

    All specs are resolved before any is registered, so a failing spec
    leaves nothing half-loaded. Repeated specs are all registered; later
    ones are named ``name#2``, ``name#3``...

    Raises:
        PluginLoadError: If any spec fails to load.
    """
    plugins = [(spec, load_plugin(spec)) for spec in specs]

    registry = PluginRegistry(isolate_errors=isolate_errors)
    taken: set[str] = set()
    for spec, plugin in plugins:
        name = getattr(plugin, "name", None)
        name = unique_name(name if isinstance(name, str) and name else spec, taken)
        taken.add(name)
        registry.register(plugin, name)
    return registry
