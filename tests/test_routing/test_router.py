"""Tests for companion-first routing with API fallback."""

from __future__ import annotations

import logging
from typing import Any
from unittest.mock import MagicMock

import pytest

from maascli.companion.detector import CapabilityDetector
from maascli.exceptions import ApiError, CompanionTimeoutError
from maascli.models import CLICapabilities, Outcome
from maascli.routing.router import OperationRouter

USABLE = CLICapabilities(
    available=True, version="1.6.0", mcp_support=True, authenticated=True, protocol_compliant=True
)


def _detector(caps: CLICapabilities) -> MagicMock:
    detector = MagicMock(spec=CapabilityDetector)
    detector.detect.return_value = caps
    return detector


class Backend:
    """Records calls and returns a fixed outcome (or raises)."""

    def __init__(self, outcome: Outcome[Any] | None = None, exc: Exception | None = None) -> None:
        self.outcome = outcome or Outcome(data={"ok": True})
        self.exc = exc
        self.calls = 0

    def __call__(self) -> Outcome[Any]:
        self.calls += 1
        if self.exc is not None:
            raise self.exc
        return self.outcome


class TestShouldUseCompanion:
    def test_usable(self) -> None:
        assert OperationRouter(_detector(USABLE)).should_use_companion()

    def test_preference_off(self) -> None:
        detector = _detector(USABLE)
        assert not OperationRouter(detector, prefer_companion=False).should_use_companion()
        detector.detect.assert_not_called()

    @pytest.mark.parametrize(
        "caps",
        [
            CLICapabilities(),
            CLICapabilities(available=True, version="1.5.0"),
            CLICapabilities(available=True, version="1.6.0", protocol_compliant=True),
        ],
    )
    def test_not_usable(self, caps: CLICapabilities) -> None:
        assert not OperationRouter(_detector(caps)).should_use_companion()


class TestExecute:
    def test_companion_success(self) -> None:
        companion = Backend(Outcome(data=[1, 2]))
        api = Backend()
        result = OperationRouter(_detector(USABLE)).execute("list", companion, api)
        assert result.source == "companion"
        assert result.data == [1, 2]
        assert result.error is None
        assert result.enhanced_channel_used is True
        assert api.calls == 0

    def test_enhanced_flag_follows_mcp_support(self) -> None:
        caps = USABLE.model_copy(update={"mcp_support": False})
        result = OperationRouter(_detector(caps)).execute("list", Backend(), Backend())
        assert result.source == "companion"
        assert result.enhanced_channel_used is False

    def test_unavailable_goes_straight_to_api(self) -> None:
        companion = Backend()
        api = Backend(Outcome(data="from api"))
        result = OperationRouter(_detector(CLICapabilities())).execute("list", companion, api)
        assert result.source == "api"
        assert result.data == "from api"
        assert companion.calls == 0
        assert api.calls == 1

    def test_error_outcome_falls_back_silently(self, caplog) -> None:
        companion = Backend(Outcome(error="companion exploded"))
        api = Backend(Outcome(data="from api"))
        with caplog.at_level(logging.WARNING, logger="maascli.routing.router"):
            result = OperationRouter(_detector(USABLE)).execute("create", companion, api)
        assert result.source == "api"
        assert result.data == "from api"
        assert result.error is None
        assert api.calls == 1
        assert "companion exploded" in caplog.text

    def test_exception_falls_back(self) -> None:
        companion = Backend(exc=CompanionTimeoutError("too slow"))
        api = Backend(Outcome(data="from api"))
        result = OperationRouter(_detector(USABLE)).execute("search", companion, api)
        assert result.source == "api"
        assert result.data == "from api"

    def test_unexpected_exception_falls_back(self) -> None:
        companion = Backend(exc=KeyError("id"))
        result = OperationRouter(_detector(USABLE)).execute("get", companion, Backend())
        assert result.source == "api"

    def test_fallback_disabled_reports_companion_error(self) -> None:
        companion = Backend(Outcome(error="companion exploded"))
        api = Backend()
        result = OperationRouter(_detector(USABLE), fallback_to_api=False).execute("list", companion, api)
        assert result.source == "companion"
        assert result.error == "companion exploded"
        assert api.calls == 0

    def test_fallback_disabled_exception(self) -> None:
        companion = Backend(exc=CompanionTimeoutError("too slow"))
        api = Backend()
        result = OperationRouter(_detector(USABLE), fallback_to_api=False).execute("list", companion, api)
        assert result.source == "companion"
        assert result.error == "too slow"
        assert api.calls == 0

    def test_api_error_outcome_reported(self) -> None:
        api = Backend(Outcome(error="HTTP 500"))
        result = OperationRouter(_detector(CLICapabilities())).execute("list", Backend(), api)
        assert result.source == "api"
        assert result.error == "HTTP 500"

    def test_api_exception_propagates(self) -> None:
        companion = Backend(Outcome(error="nope"))
        api = Backend(exc=ApiError("HTTP 401: Unauthorized", 401))
        with pytest.raises(ApiError):
            OperationRouter(_detector(USABLE)).execute("list", companion, api)
        assert api.calls == 1

    def test_single_attempt_per_path(self) -> None:
        companion = Backend(Outcome(error="nope"))
        api = Backend(Outcome(error="also nope"))
        OperationRouter(_detector(USABLE)).execute("create", companion, api)
        assert companion.calls == 1
        assert api.calls == 1
