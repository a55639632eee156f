"""Timer-driven polling loop for waiting on remote state transitions."""

import time
from typing import Callable, Optional, TypeVar

from stackup.utils.errors import WaitTimeoutError
from stackup.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')

# Expected cadence between remote polls, in seconds
DEFAULT_POLL_INTERVAL = 5


class Poller:
    """Repeats a tick until it produces a result.

    Each cycle is: tick (one blocking remote poll) -> check for a result ->
    either return it, fail on an expired deadline, or sleep for the interval
    and reschedule.
    """

    def __init__(
        self,
        interval: float = DEFAULT_POLL_INTERVAL,
        timeout: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        """Initialize poller.

        Args:
            interval: Seconds to sleep between ticks
            timeout: Optional overall deadline in seconds
            sleep: Sleep function (injectable for tests)
            clock: Monotonic clock function (injectable for tests)
        """
        self.interval = interval
        self.timeout = timeout
        self.sleep = sleep
        self.clock = clock

    def run(self, tick: Callable[[], Optional[T]], description: str = "operation") -> T:
        """Run ticks until one returns a non-None result.

        Args:
            tick: Callable performing one poll; returns None to keep polling
            description: What is being waited for, used in the timeout message

        Returns:
            The first non-None tick result

        Raises:
            WaitTimeoutError: If the deadline passes before a result appears
        """
        deadline = None if self.timeout is None else self.clock() + self.timeout
        ticks = 0

        while True:
            result = tick()
            ticks += 1
            if result is not None:
                logger.debug(f"{description} settled after {ticks} poll(s)")
                return result

            if deadline is not None and self.clock() >= deadline:
                raise WaitTimeoutError(
                    f"timed out after {self.timeout}s waiting for {description}"
                )

            self.sleep(self.interval)
