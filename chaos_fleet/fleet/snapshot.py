from typing import Callable, Dict, Optional

from .graph import FleetGraph
from ..utils.runtime import ContainerRuntime
from ..utils.probes import probe_health
from ..utils.schemas import SteadyStateRecord
from ..utils.state import RunState
from ..utils.log import get_logger


logger = get_logger(__name__)


class SteadyState:
    """Baseline running/healthy status of the fleet, captured before injection."""

    def __init__(self, records: Dict[str, SteadyStateRecord]) -> None:
        self.records = records

    def get(self, name: str) -> Optional[SteadyStateRecord]:
        return self.records.get(name)

    def was_running(self, name: str) -> bool:
        record = self.records.get(name)
        return record is not None and record.running

    def was_healthy(self, name: str) -> bool:
        record = self.records.get(name)
        return record is not None and record.healthy is True

    @property
    def count(self) -> int:
        return len(self.records)

    @property
    def health_count(self) -> int:
        return sum(1 for r in self.records.values() if r.healthy is not None)

    def dumps(self) -> str:
        lines = []
        for name, record in self.records.items():
            healthy = "" if record.healthy is None else str(record.healthy).lower()
            lines.append(f"{name}:{str(record.running).lower()}:{healthy}")
        return "\n".join(lines) + "\n"


class SteadyStateSnapshotter:
    def __init__(
        self,
        runtime: ContainerRuntime,
        state: Optional[RunState] = None,
        prober: Callable[[str], bool] = probe_health
    ) -> None:
        self.runtime = runtime
        self.state = state
        self.prober = prober

    def capture(self, graph: FleetGraph) -> SteadyState:
        records: Dict[str, SteadyStateRecord] = {}
        for container in graph:
            running = self.runtime.is_running(container.name)
            if not running:
                logger.debug(f"snapshot: {container.name} not running at baseline")
            healthy = None
            if running and container.health_url:
                # a failed probe is a baseline fact, not an error
                healthy = self.prober(container.health_url)
                if not healthy:
                    logger.debug(f"snapshot: {container.name} health endpoint failed at baseline ({container.health_url})")
            records[container.name] = SteadyStateRecord(running=running, healthy=healthy)

        steady_state = SteadyState(records)
        if self.state is not None:
            self.state.write_fleet_file("snapshot_state", steady_state.dumps())
        logger.info(f"Fleet snapshot: {steady_state.count} containers ({steady_state.health_count} with health URLs)")
        return steady_state
