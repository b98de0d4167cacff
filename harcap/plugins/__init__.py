"""
Plugin pipeline: hook stages, registry and loader.
"""

from harcap.plugins.pipeline import (
    HookContext,
    HookStage,
    PluginRegistry,
    build_registry,
    load_plugin,
)

__all__ = [
    "HookContext",
    "HookStage",
    "PluginRegistry",
    "build_registry",
    "load_plugin",
]
