"""Unit tests for throttled logging"""

from unittest.mock import MagicMock

from invest_ledger.infrastructure.observability.logging import LogThrottle


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_repeated_warnings_are_suppressed_within_interval():
    clock = FakeClock()
    throttle = LogThrottle(interval_seconds=60, clock=clock)

    assert throttle.should_log("chain.tron") is True
    clock.now += 30
    assert throttle.should_log("chain.tron") is False
    clock.now += 31
    assert throttle.should_log("chain.tron") is True


def test_channels_are_independent():
    throttle = LogThrottle(interval_seconds=60, clock=FakeClock())

    assert throttle.should_log("chain.tron") is True
    assert throttle.should_log("chain.bep20") is True
    assert throttle.should_log("chain.tron") is False


def test_warning_emits_once_per_interval():
    clock = FakeClock()
    throttle = LogThrottle(interval_seconds=60, clock=clock)
    logger = MagicMock()

    assert throttle.warning(logger, "chain.tron", "API down", status=503) is True
    assert throttle.warning(logger, "chain.tron", "API down", status=503) is False

    logger.warning.assert_called_once_with("API down", extra={"channel": "chain.tron", "status": 503})
