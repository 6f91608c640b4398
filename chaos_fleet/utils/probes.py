import time
from typing import Callable, Optional

import httpx

from .constants import HEALTH_PROBE_TIMEOUT, POLL_INTERVAL
from .log import get_logger


logger = get_logger(__name__)


def probe_health(url: str, timeout: float = HEALTH_PROBE_TIMEOUT) -> bool:
    """GET the health endpoint. Any response below 400 within the timeout is healthy."""
    try:
        response = httpx.get(url, timeout=timeout)
    except httpx.HTTPError as e:
        logger.debug(f"Health probe {url} failed: {e}")
        return False
    if response.status_code >= 400:
        logger.debug(f"Health probe {url} returned HTTP {response.status_code}")
        return False
    return True


class Poller:
    """Bounded fixed-interval polling against a wall-clock deadline."""

    def __init__(
        self,
        interval: float = POLL_INTERVAL,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep
    ) -> None:
        self.interval = interval
        self.clock = clock
        self.sleep = sleep

    def wait_for(
        self,
        condition: Callable[[], bool],
        timeout: float,
        description: str = "",
        check_first: bool = True
    ) -> Optional[float]:
        """
        Evaluate ``condition`` until it holds or ``timeout`` seconds pass.

        Args:
            condition: Zero-argument predicate
            timeout: Deadline measured from the call
            description: Label used in debug logs
            check_first: Evaluate before the first sleep; otherwise sleep first

        Returns:
            Elapsed seconds when the condition held, None on timeout
        """
        start = self.clock()
        if check_first and condition():
            return self.clock() - start
        while self.clock() - start < timeout:
            self.sleep(self.interval)
            if condition():
                elapsed = self.clock() - start
                logger.debug(f"{description or 'condition'} satisfied after {elapsed:.1f}s")
                return elapsed
        logger.debug(f"{description or 'condition'} not satisfied within {timeout}s")
        return None
