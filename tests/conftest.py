from typing import Dict, List, Optional

import pytest

from chaos_fleet.faults.fault_base import FaultModule, ModuleContext
from chaos_fleet.faults.registry import ModuleRegistry
from chaos_fleet.utils.alerts import Alerter
from chaos_fleet.utils.probes import Poller
from chaos_fleet.utils.runtime import ContainerRuntime, DockerRuntime
from chaos_fleet.utils.state import RunState


#--------------
# time control
#--------------
class FakeClock:
    """Manual clock; sleeping advances it instead of blocking."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


#-------------------
# container runtime
#-------------------
class FakeRuntime(ContainerRuntime):
    """
    In-memory fleet. ``recover_after`` maps a container to the seconds it
    needs after a restart before it reports running again; containers
    missing from it come back immediately.
    """

    def __init__(
        self,
        clock: FakeClock,
        running: List[str] = [],
        recover_after: Dict[str, float] = {},
        never_recover: List[str] = []
    ) -> None:
        self.clock = clock
        self.running = list(running)
        self.recover_after = dict(recover_after)
        self.never_recover = set(never_recover)
        self.restarted_at: Dict[str, float] = {}
        self.events: List[tuple] = []

    def ping(self) -> bool:
        return True

    def list_running(self) -> List[str]:
        return [name for name in self.running if self.is_running(name)]

    def is_running(self, name: str) -> bool:
        if name in self.restarted_at:
            if name in self.never_recover:
                return False
            ready = self.clock() - self.restarted_at[name] >= self.recover_after.get(name, 0.0)
            if ready and ("recovered", name) not in [(e[0], e[1]) for e in self.events]:
                self.events.append(("recovered", name, self.clock()))
            return ready
        return name in self.running

    def restart(self, name: str) -> bool:
        self.events.append(("restart", name, self.clock()))
        self.restarted_at[name] = self.clock()
        if name not in self.running:
            self.running.append(name)
        return True

    def kill(self, name: str) -> None:
        if name in self.running:
            self.running.remove(name)
        self.restarted_at.pop(name, None)


class FakeDocker(DockerRuntime):
    """DockerRuntime whose container states live in a dict; records every mutation."""

    def __init__(self, states: Optional[Dict[str, str]] = None, alive: bool = True) -> None:
        super().__init__()
        self.states = dict(states or {})
        self.alive = alive
        self.calls: List[tuple] = []
        self.exec_results: Dict[str, Optional[str]] = {}
        self.log_output = ""

    def ping(self) -> bool:
        return self.alive

    def list_running(self) -> List[str]:
        return [n for n, s in self.states.items() if s in ("running", "paused")]

    def status(self, name: str) -> Optional[str]:
        return self.states.get(name)

    def is_running(self, name: str) -> bool:
        return self.states.get(name) in ("running", "paused")

    def _set(self, op: str, name: str, new_state: Optional[str]) -> bool:
        self.calls.append((op, name))
        if name not in self.states:
            return False
        if new_state is not None:
            self.states[name] = new_state
        return True

    def restart(self, name: str) -> bool:
        return self._set("restart", name, "running")

    def pause(self, name: str) -> bool:
        return self._set("pause", name, "paused")

    def unpause(self, name: str) -> bool:
        return self._set("unpause", name, "running")

    def start(self, name: str) -> bool:
        return self._set("start", name, "running")

    def stop(self, name: str) -> bool:
        return self._set("stop", name, "exited")

    def logs(self, name: str, tail: int = 5) -> str:
        return self.log_output

    def exec(self, name: str, *command: str) -> Optional[str]:
        if self.states.get(name) != "running":
            return None
        return self.exec_results.get(command[0], "")

    def prune(self, what: str, until: Optional[str] = None) -> bool:
        self.calls.append(("prune", what))
        return True


#---------------
# fault modules
#---------------
class FakeModule(FaultModule):
    """
    Scriptable module. After a successful break it stays unhealthy until
    ``recover_after`` seconds pass (None: never on its own) or heal() runs.
    """
    name = "fake"

    def __init__(
        self,
        ctx: ModuleContext,
        name: str = "fake",
        clock: Optional[FakeClock] = None,
        healthy: bool = True,
        break_ok: bool = True,
        recover_after: Optional[float] = None,
        heal_ok: bool = True,
        restore_ok: bool = True,
        events: Optional[list] = None
    ) -> None:
        super().__init__(ctx)
        self.name = name
        self.clock = clock or FakeClock()
        self.healthy = healthy
        self.break_ok = break_ok
        self.recover_after = recover_after
        self.heal_ok = heal_ok
        self.restore_ok = restore_ok
        self.broken_at: Optional[float] = None
        self.events = events if events is not None else []

    def describe(self) -> str:
        return f"Fake module {self.name}"

    def check(self) -> bool:
        if self.broken_at is not None and self.recover_after is not None:
            if self.clock() - self.broken_at >= self.recover_after:
                self.broken_at = None
                self.healthy = True
        return self.healthy

    def break_(self, dry_run: Optional[bool] = None) -> bool:
        self.events.append(("break", self.name))
        if not self.break_ok:
            return False
        if self.is_dry_run(dry_run):
            return True
        self.healthy = False
        self.broken_at = self.clock()
        return True

    def heal(self) -> bool:
        self.events.append(("heal", self.name))
        if self.heal_ok:
            self.healthy = True
            self.broken_at = None
        return self.heal_ok

    def restore(self) -> bool:
        self.events.append(("restore", self.name))
        if self.restore_ok:
            self.healthy = True
            self.broken_at = None
        return self.restore_ok


class ControlPlaneModule(FakeModule):
    blinds_control_plane = True


class ReadOnlyModule(FaultModule):
    name = "monitor"
    read_only = True

    def describe(self) -> str:
        return "Read-only monitor"

    def check(self) -> bool:
        return True

    def break_(self, dry_run: Optional[bool] = None) -> bool:
        return False


class CheckOnlyModule(FaultModule):
    name = "check-only"

    def describe(self) -> str:
        return "Only knows how to check"

    def check(self) -> bool:
        return True


class RecordingSink:
    def __init__(self) -> None:
        self.alerts: List[tuple] = []

    def __call__(self, message: str, level: str) -> None:
        self.alerts.append((message, level))


#----------
# fixtures
#----------
@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(start=1000.0)


@pytest.fixture
def poller(clock: FakeClock) -> Poller:
    return Poller(clock=clock, sleep=clock.sleep)


@pytest.fixture
def state(tmp_path, clock: FakeClock):
    run_state = RunState(base_dir=str(tmp_path), clock=clock).open()
    yield run_state
    run_state.teardown()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def alerter(state: RunState, sink: RecordingSink) -> Alerter:
    return Alerter(state, sink=sink, cooldown=300)


@pytest.fixture
def ctx(state: RunState, alerter: Alerter, clock: FakeClock) -> ModuleContext:
    return ModuleContext(state, alerter, docker=FakeDocker(), sleep=clock.sleep)


@pytest.fixture
def registry() -> ModuleRegistry:
    return ModuleRegistry()
