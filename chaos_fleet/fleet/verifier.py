from typing import Callable, List

from .graph import FleetGraph
from .snapshot import SteadyState
from ..utils.runtime import ContainerRuntime
from ..utils.probes import probe_health
from ..utils.schemas import ContainerVerification, FleetVerification
from ..utils.log import get_logger


logger = get_logger(__name__)


class FleetVerifier:
    """Diffs the current fleet against its steady state."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        prober: Callable[[str], bool] = probe_health
    ) -> None:
        self.runtime = runtime
        self.prober = prober

    def verify(self, graph: FleetGraph, steady_state: SteadyState) -> FleetVerification:
        results: List[ContainerVerification] = []
        for container in graph:
            name = container.name
            # only containers running at baseline can be damaged
            if not steady_state.was_running(name):
                results.append(ContainerVerification(name=name, status="SKIP"))
                continue

            if not self.runtime.is_running(name):
                logger.debug(f"fleet_verify: {name} not running")
                results.append(ContainerVerification(name=name, status="DAMAGED", reason="not-running"))
                continue

            if container.health_url and steady_state.was_healthy(name):
                if not self.prober(container.health_url):
                    logger.debug(f"fleet_verify: {name} health check failed ({container.health_url})")
                    results.append(ContainerVerification(
                        name=name,
                        status="DAMAGED",
                        reason="health-check-failure"
                    ))
                    continue

            results.append(ContainerVerification(name=name, status="HEALTHY"))
        return FleetVerification(results=results)
