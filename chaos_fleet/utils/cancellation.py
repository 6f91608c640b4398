import signal
from typing import Callable, Iterable, Optional

from .exceptions import CampaignInterrupted
from .log import get_logger


logger = get_logger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class CleanupScope:
    """
    Runs ``cleanup`` exactly once when the process is interrupted or the
    ``with`` block is left by an exception.

    Inside the ``with`` block SIGINT/SIGTERM are routed to ``interrupt``,
    which runs the cleanup synchronously and then raises CampaignInterrupted.
    Signals arriving while the cleanup runs are ignored. The exception that
    aborted the block still propagates. Previous handlers are reinstated on
    exit.
    """

    def __init__(
        self,
        cleanup: Callable[[], None],
        signals: Iterable[int] = DEFAULT_SIGNALS
    ) -> None:
        self.cleanup = cleanup
        self.signals = tuple(signals)
        self.triggered = False
        self.signum: Optional[int] = None
        self._previous = {}

    def __enter__(self) -> "CleanupScope":
        for signum in self.signals:
            self._previous[signum] = signal.signal(signum, self._handle)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc_type is not None and not self.triggered:
                logger.error(f"Campaign aborted ({exc_type.__name__}: {exc}), restoring all broken modules...")
                self.run_cleanup()
        finally:
            for signum, handler in self._previous.items():
                signal.signal(signum, handler)
            self._previous = {}
        return False

    def _handle(self, signum, frame) -> None:
        self.interrupt(signum)

    def run_cleanup(self) -> bool:
        """Run the cleanup unless it already ran. Returns True if this call ran it."""
        if self.triggered:
            return False
        self.triggered = True
        self.cleanup()
        return True

    def interrupt(self, signum: int = signal.SIGINT) -> None:
        if self.triggered:
            logger.debug(f"Ignoring signal {signum}: cleanup already in progress")
            return
        self.signum = signum
        logger.warning("Interrupted! Restoring all broken modules...")
        self.run_cleanup()
        raise CampaignInterrupted(signum)
