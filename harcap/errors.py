"""
Error definitions for harcap.

Every error raised by harcap itself carries a code so the CLI and plugins
can react to the condition without parsing messages.

Error codes follow the pattern:
- INVALID_*: Configuration errors (fix the command line or settings)
- *_FAILED: A collaborator (plugin, browser) could not be used
- *_NOT_READY: Infrastructure is unavailable
"""

from enum import Enum
from typing import Any


class HarcapErrorCode(str, Enum):
    """Error codes for harcap runs."""

    INVALID_RULE = "INVALID_RULE"
    """A delay rule specification is malformed.
    Action: Use the form <ms>:<regex>, e.g. 500:\\.js$ or -1:ads\\."""

    INVALID_OPTIONS = "INVALID_OPTIONS"
    """Run options failed validation."""

    PLUGIN_LOAD_FAILED = "PLUGIN_LOAD_FAILED"
    """A plugin could not be imported or resolved.
    Action: Check the module path and that it is importable."""

    PLUGIN_HOOK_FAILED = "PLUGIN_HOOK_FAILED"
    """A plugin hook raised while error isolation was disabled."""

    BROWSER_NOT_READY = "BROWSER_NOT_READY"
    """The browser could not be launched or connected to.
    Action: Check the endpoint, or run `playwright install chromium`."""


class HarcapError(Exception):
    """
    Base exception for harcap errors.
    """

    def __init__(
        self,
        code: HarcapErrorCode,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize harcap error.

        Args:
            code: Error code from HarcapErrorCode enum.
            message: Human-readable error message.
            details: Optional additional error details.
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to a loggable/serializable dictionary."""
        result: dict[str, Any] = {
            "ok": False,
            "error_code": self.code.value,
            "error": self.message,
        }

        if self.details:
            result["details"] = self.details

        return result


class RuleSpecError(HarcapError):
    """Raised when a delay rule specification cannot be parsed."""

    def __init__(self, spec: str, reason: str):
        super().__init__(
            HarcapErrorCode.INVALID_RULE,
            f"Invalid delay rule {spec!r}: {reason}",
            details={"spec": spec, "reason": reason},
        )
        self.spec = spec


class InvalidOptionsError(HarcapError):
    """Raised when run options are invalid."""

    def __init__(self, message: str, *, field: str | None = None):
        details = {"field": field} if field else None
        super().__init__(HarcapErrorCode.INVALID_OPTIONS, message, details=details)


class PluginLoadError(HarcapError):
    """Raised when a plugin spec cannot be resolved to a plugin object."""

    def __init__(self, spec: str, reason: str):
        super().__init__(
            HarcapErrorCode.PLUGIN_LOAD_FAILED,
            f"Failed to load plugin {spec!r}: {reason}",
            details={"plugin": spec},
        )
        self.spec = spec


class PluginHookError(HarcapError):
    """Raised when a plugin hook fails and errors are not isolated."""

    def __init__(self, plugin: str, stage: str, reason: str):
        super().__init__(
            HarcapErrorCode.PLUGIN_HOOK_FAILED,
            f"Plugin {plugin!r} failed in {stage} hook: {reason}",
            details={"plugin": plugin, "stage": stage},
        )
        self.plugin = plugin
        self.stage = stage


class BrowserConnectionError(HarcapError):
    """Raised when the browser cannot be launched or reached."""

    def __init__(self, message: str, *, endpoint: str | None = None):
        details = {"endpoint": endpoint} if endpoint else None
        super().__init__(HarcapErrorCode.BROWSER_NOT_READY, message, details=details)
