"""
Configuration management for harcap.
Loads and validates settings from YAML files and environment variables.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


class GeneralConfig(BaseModel):
    """General configuration."""

    project_name: str = "harcap"
    version: str = "0.4.0"
    log_level: str = "INFO"
    log_json: bool = False
    log_file: str | None = None


class BrowserConfig(BaseModel):
    """Browser configuration.

    When ``endpoint`` is set harcap attaches to an already running browser
    over CDP and leaves it running afterwards. Otherwise a Chromium instance
    is launched for the run and closed at the end.
    """

    endpoint: str | None = None
    headless: bool = False
    chrome_args: list[str] = Field(default_factory=list)
    viewport_width: int = 1280
    viewport_height: int = 800
    screenshot_type: str = "jpeg"
    cache_enabled: bool = False


class NavigationConfig(BaseModel):
    """Navigation configuration."""

    wait_until: str = "networkidle"
    timeout_ms: int = 0  # 0 = no timeout
    prewarm: int = 0


class CaptureConfig(BaseModel):
    """Screenshot capture configuration."""

    interval_ms: int = 0  # 0 = single screenshot after load
    full_page: bool = False


class NetsimConfig(BaseModel):
    """Network condition simulation configuration.

    Notes:
    - A rule delay of 0 is the "very large delay" sentinel; it holds the
      request for ``big_delay_ms``.
    - max_match of 0 means "no limit".
    """

    model_config = ConfigDict(extra="forbid")

    big_delay_ms: int = Field(default=600_000, gt=0)
    max_match: int = 0
    block_error_code: str = "failed"


class PluginsConfig(BaseModel):
    """Plugin pipeline configuration."""

    # False: a failing hook aborts the run. True: log and continue.
    isolate_errors: bool = False


class Settings(BaseModel):
    """Main settings container."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    navigation: NavigationConfig = Field(default_factory=NavigationConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    netsim: NetsimConfig = Field(default_factory=NetsimConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)


class RunOptions(BaseModel):
    """Options for a single measured run.

    Built from Settings defaults overlaid with command line arguments
    (see ``RunOptions.from_settings``).
    """

    model_config = ConfigDict(extra="forbid")

    url: str
    delays: list[str] = Field(default_factory=list)
    max_match: int = Field(default=0, ge=0)
    interval_ms: int = Field(default=0, ge=0)
    screenshot: str | None = None
    full_page: bool = False
    plugins: list[str] = Field(default_factory=list)
    prewarm: int = Field(default=0, ge=0)
    timeout_ms: int = Field(default=0, ge=0)
    wait_until: str = "networkidle"
    outfile: str | None = None
    trace: str | None = None
    endpoint: str | None = None
    headless: bool = False
    chrome_args: list[str] = Field(default_factory=list)
    headers: dict[str, str] = Field(default_factory=dict)
    cache_enabled: bool = False
    device: str | None = None

    @field_validator("wait_until")
    @classmethod
    def _check_wait_until(cls, value: str) -> str:
        allowed = ("load", "domcontentloaded", "networkidle", "commit")
        if value not in allowed:
            raise ValueError(f"wait_until must be one of {', '.join(allowed)}")
        return value

    @classmethod
    def from_settings(cls, settings: "Settings", url: str, **overrides: Any) -> "RunOptions":
        """Create run options using settings as defaults.

        Args:
            settings: Loaded settings.
            url: Target URL of the measured navigation.
            **overrides: Explicit values (None values are ignored).

        Returns:
            Validated RunOptions.
        """
        data: dict[str, Any] = {
            "url": url,
            "max_match": settings.netsim.max_match,
            "interval_ms": settings.capture.interval_ms,
            "full_page": settings.capture.full_page,
            "prewarm": settings.navigation.prewarm,
            "timeout_ms": settings.navigation.timeout_ms,
            "wait_until": settings.navigation.wait_until,
            "endpoint": settings.browser.endpoint,
            "headless": settings.browser.headless,
            "chrome_args": list(settings.browser.chrome_args),
            "cache_enabled": settings.browser.cache_enabled,
        }
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**data)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary.
        override: Override dictionary.

    Returns:
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_config(config_dir: Path) -> dict[str, Any]:
    """Load settings.yaml with local.yaml overrides.

    local.yaml is optional and never committed; it holds developer-specific
    values such as a remote browser endpoint.

    Args:
        config_dir: Configuration directory path.

    Returns:
        Merged configuration dictionary.
    """
    config: dict[str, Any] = {}

    settings_path = config_dir / "settings.yaml"
    if settings_path.exists():
        with open(settings_path, encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}

    local_path = config_dir / "local.yaml"
    if local_path.exists():
        with open(local_path, encoding="utf-8") as f:
            local = yaml.safe_load(f) or {}
        config = _deep_merge(config, local)

    return config


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides.

    Environment variables should be prefixed with HARCAP_ and use
    double underscores for nested keys.

    Example:
        HARCAP_NETSIM__BIG_DELAY_MS=300000

    Args:
        config: Configuration dictionary.

    Returns:
        Configuration with environment overrides.
    """
    prefix = "HARCAP_"

    for key, value in os.environ.items():
        if not key.startswith(prefix) or key == "HARCAP_CONFIG_DIR":
            continue

        key_path = key[len(prefix) :].lower().split("__")

        current = config
        for part in key_path[:-1]:
            if part not in current or not isinstance(current[part], dict):
                current[part] = {}
            current = current[part]

        final_key = key_path[-1]
        try:
            if value.lower() in ("true", "false"):
                current[final_key] = value.lower() == "true"
            elif "." in value:
                current[final_key] = float(value)
            else:
                current[final_key] = int(value)
        except ValueError:
            current[final_key] = value

    return config


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings.

    Settings are loaded from:
    1. Default values
    2. YAML configuration files
    3. Environment variables (highest priority)

    Returns:
        Settings instance.
    """
    config_dir = Path(os.environ.get("HARCAP_CONFIG_DIR", "config"))

    config = _load_yaml_config(config_dir)
    config = _apply_env_overrides(config)

    return Settings(**config)
