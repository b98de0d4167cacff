"""
Browser session: protocol and Playwright implementation.
"""

from harcap.browser.session import (
    BrowserSession,
    NavigationResult,
    PlaywrightSession,
    list_devices,
)

__all__ = [
    "BrowserSession",
    "NavigationResult",
    "PlaywrightSession",
    "list_devices",
]
