import os
import time
import shutil
import tempfile
from typing import Callable, Optional

from .exceptions import StateStorageError
from .functions import sanitize_filename
from .log import get_logger


logger = get_logger(__name__)


class RunState:
    """
    Run-scoped key-value store backing fault snapshots and alert cooldowns.

    Everything lives in a private temporary directory created on ``open`` and
    removed on ``teardown``:

        <state_dir>/snapshots/<module>/<key>
        <state_dir>/cooldowns/<key>
        <state_dir>/fleet/...
    """

    def __init__(
        self,
        base_dir: Optional[str] = None,
        clock: Callable[[], float] = time.time
    ) -> None:
        self.base_dir = base_dir
        self.clock = clock
        self.state_dir: Optional[str] = None

    def open(self) -> "RunState":
        if self.state_dir is not None:
            return self
        try:
            self.state_dir = tempfile.mkdtemp(prefix="chaos-fleet-", dir=self.base_dir)
            os.chmod(self.state_dir, 0o700)
            for sub in ("snapshots", "cooldowns", "fleet"):
                os.makedirs(os.path.join(self.state_dir, sub), exist_ok=True)
        except OSError as e:
            raise StateStorageError(f"Cannot create state directory: {e}") from e
        logger.debug(f"State directory: {self.state_dir}")
        return self

    def teardown(self) -> None:
        if self.state_dir is not None and os.path.isdir(self.state_dir):
            shutil.rmtree(self.state_dir, ignore_errors=True)
            logger.debug("Cleaned up state directory")
        self.state_dir = None

    @property
    def is_open(self) -> bool:
        return self.state_dir is not None

    def path(self, *parts: str) -> str:
        if self.state_dir is None:
            raise StateStorageError("State directory is not open (never opened or already torn down)")
        return os.path.join(self.state_dir, *parts)

    def _write(self, path: str, value: str) -> None:
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(value)
        except OSError as e:
            raise StateStorageError(f"Cannot write state file {path}: {e}") from e

    def _read(self, path: str) -> Optional[str]:
        if not os.path.isfile(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    #-----------
    # snapshots
    #-----------
    def save_snapshot(self, module: str, key: str, value: str) -> None:
        self._write(self.path("snapshots", sanitize_filename(module), sanitize_filename(key)), value)
        logger.debug(f"Snapshot saved: {module}/{key}")

    def get_snapshot(self, module: str, key: str) -> Optional[str]:
        if self.state_dir is None:
            return None
        return self._read(self.path("snapshots", sanitize_filename(module), sanitize_filename(key)))

    def has_snapshot(self, module: str, key: str) -> bool:
        return self.get_snapshot(module, key) is not None

    #-----------
    # cooldowns
    #-----------
    def check_cooldown(self, key: str, window: float) -> bool:
        """Return True when the key may fire again (expired or never set)."""
        if self.state_dir is None:
            return True
        last = self._read(self.path("cooldowns", sanitize_filename(key)))
        if last is None:
            return True
        try:
            last_ts = float(last.strip())
        except ValueError:
            logger.warning(f"Corrupt cooldown entry for '{key}', ignoring it")
            return True
        return self.clock() - last_ts >= window

    def set_cooldown(self, key: str) -> None:
        self._write(self.path("cooldowns", sanitize_filename(key)), repr(self.clock()))

    #--------------
    # fleet output
    #--------------
    def write_fleet_file(self, name: str, content: str) -> str:
        path = self.path("fleet", sanitize_filename(name))
        self._write(path, content)
        return path
