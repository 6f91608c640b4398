import os
import time
import subprocess
from abc import ABC, abstractmethod
from typing import Callable, Optional

from ..utils.alerts import Alerter, AlertLevel
from ..utils.config import ModuleSettings
from ..utils.functions import run_cmd
from ..utils.runtime import DockerRuntime
from ..utils.state import RunState
from ..utils.log import get_logger


logger = get_logger(__name__)

OPERATIONS = ("describe", "check", "break_", "heal", "restore")


class ModuleContext:
    """Everything a fault module may touch: run state, alerts, docker, its settings."""

    def __init__(
        self,
        state: RunState,
        alerter: Alerter,
        docker: Optional[DockerRuntime] = None,
        settings: Optional[ModuleSettings] = None,
        dry_run: bool = False,
        sleep: Callable[[float], None] = time.sleep
    ) -> None:
        self.state = state
        self.alerter = alerter
        self.docker = docker or DockerRuntime()
        self.settings = settings or ModuleSettings()
        self.dry_run = dry_run
        self.sleep = sleep


class FaultModule(ABC):
    """
    One failure scenario: describe / check / break / heal / restore.

    ``break_`` must snapshot prior state before mutating and only log under
    dry-run. ``heal`` re-verifies through ``check`` before declaring success.
    ``restore`` recovers from the latest snapshot and returns False without
    touching anything when no snapshot exists.

    Subclasses leave an operation out by not overriding it; the registry then
    resolves that operation to None.
    """
    name: str = ""
    # break is a stub that always fails (monitoring only)
    read_only: bool = False
    # breaking this module cuts our own access to the control plane
    blinds_control_plane: bool = False

    def __init__(self, ctx: ModuleContext) -> None:
        self.ctx = ctx

    @abstractmethod
    def describe(self) -> str:
        raise NotImplementedError

    def check(self) -> bool:
        raise NotImplementedError

    def break_(self, dry_run: Optional[bool] = None) -> bool:
        raise NotImplementedError

    def heal(self) -> bool:
        raise NotImplementedError

    def restore(self) -> bool:
        raise NotImplementedError

    @classmethod
    def implements(cls, operation: str) -> bool:
        return getattr(cls, operation) is not getattr(FaultModule, operation)

    #---------
    # helpers
    #---------
    @property
    def docker(self) -> DockerRuntime:
        return self.ctx.docker

    def is_dry_run(self, dry_run: Optional[bool] = None) -> bool:
        return self.ctx.dry_run if dry_run is None else dry_run

    def save_snapshot(self, key: str, value: str) -> None:
        self.ctx.state.save_snapshot(self.name, key, value)

    def get_snapshot(self, key: str) -> Optional[str]:
        value = self.ctx.state.get_snapshot(self.name, key)
        if value is None or not value.strip():
            return None
        return value

    def alert(self, message: str, level: AlertLevel = "info") -> bool:
        return self.ctx.alerter.send(message, level)

    def sleep(self, seconds: float) -> None:
        self.ctx.sleep(seconds)

    def host_cmd(
        self,
        *args: str,
        input: Optional[str] = None,
        privileged: bool = False,
        timeout: float = 30.0
    ) -> subprocess.CompletedProcess:
        """Run a host command, through sudo when privileged and not already root."""
        cmd = list(args)
        if privileged and os.geteuid() != 0:
            cmd = ["sudo"] + cmd
        return run_cmd(cmd, timeout=timeout, input=input)
