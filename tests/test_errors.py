"""
Tests for harcap error definitions.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-ER-N-01 | HarcapErrorCode | Equivalence – normal | All codes defined | |
| TC-ER-N-02 | to_dict with details | Equivalence – normal | ok, error_code, error, details | |
| TC-ER-N-03 | Subclasses | Equivalence – normal | Code and details per subclass | |
| TC-ER-B-01 | to_dict without details | Boundary – empty | No details key | |
"""

import pytest

from harcap.errors import (
    BrowserConnectionError,
    HarcapError,
    HarcapErrorCode,
    InvalidOptionsError,
    PluginHookError,
    PluginLoadError,
    RuleSpecError,
)

pytestmark = pytest.mark.unit


class TestHarcapErrorCode:
    """Tests for HarcapErrorCode."""

    def test_codes(self) -> None:
        """TC-ER-N-01."""
        assert {code.value for code in HarcapErrorCode} == {
            "INVALID_RULE",
            "INVALID_OPTIONS",
            "PLUGIN_LOAD_FAILED",
            "PLUGIN_HOOK_FAILED",
            "BROWSER_NOT_READY",
        }


class TestHarcapError:
    """Tests for HarcapError and subclasses."""

    def test_to_dict(self) -> None:
        """TC-ER-N-02."""
        error = HarcapError(HarcapErrorCode.INVALID_OPTIONS, "bad", details={"field": "url"})

        assert error.to_dict() == {
            "ok": False,
            "error_code": "INVALID_OPTIONS",
            "error": "bad",
            "details": {"field": "url"},
        }
        assert str(error) == "bad"

    def test_to_dict_without_details(self) -> None:
        """TC-ER-B-01."""
        error = InvalidOptionsError("bad")

        assert "details" not in error.to_dict()

    @pytest.mark.parametrize(
        ("error", "code", "details"),
        [
            (RuleSpecError("100", "missing ':'"), HarcapErrorCode.INVALID_RULE,
             {"spec": "100", "reason": "missing ':'"}),
            (PluginLoadError("x.y", "No module named 'x'"), HarcapErrorCode.PLUGIN_LOAD_FAILED,
             {"plugin": "x.y"}),
            (PluginHookError("p", "process", "boom"), HarcapErrorCode.PLUGIN_HOOK_FAILED,
             {"plugin": "p", "stage": "process"}),
            (BrowserConnectionError("refused", endpoint="http://localhost:9222"),
             HarcapErrorCode.BROWSER_NOT_READY, {"endpoint": "http://localhost:9222"}),
        ],
    )
    def test_subclasses(self, error: HarcapError, code: HarcapErrorCode, details: dict) -> None:
        """TC-ER-N-03."""
        assert isinstance(error, HarcapError)
        assert error.code == code
        assert error.details == details
