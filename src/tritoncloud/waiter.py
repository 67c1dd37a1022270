"""Poll until a condition holds or a deadline passes."""

import time
from collections.abc import Callable
from typing import Any, Optional

from tritoncloud.constants import DEFAULT_POLL_INTERVAL
from tritoncloud.exceptions import WaitTimeoutError
from tritoncloud.logger import get_logger

logger = get_logger(__name__)


class PollWaiter:
    """
    Repeat a probe at a fixed interval until a predicate is satisfied.

    Args:
        interval: Seconds between probes
        sleep: Sleep function, injectable for tests
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be a positive number")
        self.interval = interval
        self._sleep = sleep
        self._clock = clock

    def wait(
        self,
        probe: Callable[[], Any],
        predicate: Callable[[Any], bool],
        timeout: Optional[float] = None,
        description: str = "condition",
    ) -> Any:
        """
        Probe until ``predicate(probe())`` is true.

        Errors raised by ``probe`` propagate unchanged.

        Args:
            probe: Fetches the current value
            predicate: Decides whether the value is terminal
            timeout: Seconds before giving up; None waits forever, 0 gives up
                after the first unsatisfying probe
            description: Used in log events and the timeout message

        Returns:
            The first value satisfying ``predicate``

        Raises:
            WaitTimeoutError: If ``timeout`` elapsed first
        """
        start = self._clock()
        attempt = 0
        while True:
            attempt += 1
            value = probe()
            if predicate(value):
                return value

            elapsed = self._clock() - start
            if timeout is not None and elapsed >= timeout:
                raise WaitTimeoutError(
                    f"timeout waiting for {description} (elapsed {round(elapsed)}s)",
                    elapsed=elapsed,
                )
            logger.debug("waiting", description=description, attempt=attempt, elapsed=round(elapsed, 1))
            self._sleep(self.interval)
