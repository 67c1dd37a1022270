"""Tests for PollWaiter."""

from unittest.mock import Mock

import pytest

from tritoncloud.exceptions import TransportError, WaitTimeoutError
from tritoncloud.waiter import PollWaiter


class TestPollWaiter:
    """Test polling, timeouts and error propagation."""

    def test_returns_first_satisfying_value(self, waiter, fake_clock):
        """Test polling stops at the first value the predicate accepts."""
        probe = Mock(side_effect=["provisioning", "provisioning", "running"])

        assert waiter.wait(probe, lambda s: s == "running") == "running"
        assert probe.call_count == 3
        assert fake_clock.state["now"] == 2.0

    def test_immediate_success_does_not_sleep(self, fake_clock):
        """Test no sleep happens when the first probe succeeds."""
        sleep = Mock()
        waiter = PollWaiter(interval=1.0, sleep=sleep, clock=fake_clock)
        waiter.wait(lambda: 1, lambda v: True)
        sleep.assert_not_called()

    def test_timeout(self, waiter):
        """Test the deadline raises WaitTimeoutError with the elapsed time."""
        with pytest.raises(WaitTimeoutError) as exc:
            waiter.wait(lambda: "stopping", lambda s: s == "stopped", timeout=3, description="instance stop")

        assert exc.value.name == "TimeoutError"
        assert exc.value.message == "timeout waiting for instance stop (elapsed 3s)"
        assert exc.value.elapsed == 3.0

    def test_zero_timeout_probes_once(self, waiter):
        """Test timeout=0 fails after a single unsatisfying probe."""
        probe = Mock(return_value="stopping")
        with pytest.raises(WaitTimeoutError):
            waiter.wait(probe, lambda s: s == "stopped", timeout=0)
        assert probe.call_count == 1

    def test_probe_errors_propagate(self, waiter):
        """Test a failing probe aborts the wait unchanged."""
        with pytest.raises(TransportError):
            waiter.wait(Mock(side_effect=TransportError("down")), lambda v: True)

    @pytest.mark.parametrize("interval", [0, -1])
    def test_interval_must_be_positive(self, interval):
        """Test non-positive intervals are refused."""
        with pytest.raises(ValueError):
            PollWaiter(interval=interval)
