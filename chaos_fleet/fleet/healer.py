from collections import deque
from typing import Callable, Dict, List, Optional

from .graph import FleetGraph
from ..utils.runtime import ContainerRuntime
from ..utils.constants import DEFAULT_CONTAINER_TIMEOUT
from ..utils.probes import probe_health, Poller
from ..utils.schemas import HealReport, RecoveryOutcome
from ..utils.log import get_logger


logger = get_logger(__name__)


def dependency_order(damaged: List[str], graph: FleetGraph) -> List[str]:
    """
    Order damaged containers so parents restart before their dependents.

    Kahn's algorithm over the subgraph induced by ``damaged``; dependencies
    outside the damaged set are ignored. Ready nodes are taken in discovery
    order. Members of a cycle cannot be ordered and are appended at the end,
    again in discovery order.
    """
    order: List[str] = []
    for name in damaged:
        if name not in order:
            order.append(name)
    members = set(order)

    indegree: Dict[str, int] = {}
    children: Dict[str, List[str]] = {name: [] for name in order}
    for name in order:
        parents = {d for d in graph.depends_on(name) if d in members}
        indegree[name] = len(parents)
        for parent in sorted(parents, key=order.index):
            children[parent].append(name)

    queue = deque(name for name in order if indegree[name] == 0)
    placed: List[str] = []
    while queue:
        name = queue.popleft()
        placed.append(name)
        for child in children[name]:
            indegree[child] -= 1
            if indegree[child] == 0:
                queue.append(child)

    placed_set = set(placed)
    cyclic = [name for name in order if name not in placed_set]
    if cyclic:
        logger.warning(f"fleet_heal: circular dependencies among {', '.join(cyclic)}, restarting them last")
    return placed + cyclic


class FleetHealer:
    """Restarts damaged containers in dependency order, one at a time."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        strategy: str = "restart",
        dry_run: bool = False,
        default_timeout: int = DEFAULT_CONTAINER_TIMEOUT,
        prober: Callable[[str], bool] = probe_health,
        poller: Optional[Poller] = None
    ) -> None:
        self.runtime = runtime
        self.strategy = strategy
        self.dry_run = dry_run
        self.default_timeout = default_timeout
        self.prober = prober
        self.poller = poller or Poller()

    def heal(self, damaged: List[str], graph: FleetGraph) -> HealReport:
        report = HealReport(strategy=self.strategy)
        if not damaged:
            return report

        if self.strategy == "report":
            logger.info("Fleet strategy: report-only, skipping restart")
            report.still_broken = list(damaged)
            return report

        ordered = dependency_order(damaged, graph)
        logger.info(f"Fleet heal: restarting {len(ordered)} containers in dependency order")
        for name in ordered:
            outcome = self._heal_one(name, graph)
            report.outcomes.append(outcome)
            if outcome.status == "FAILED":
                report.still_broken.append(name)
        return report

    def _recovered(self, name: str, health_url: Optional[str]) -> bool:
        if not self.runtime.is_running(name):
            return False
        # running is enough without a health endpoint
        if not health_url:
            return True
        return self.prober(health_url)

    def _heal_one(self, name: str, graph: FleetGraph) -> RecoveryOutcome:
        container = graph.get(name)
        timeout = container.timeout if container else self.default_timeout
        health_url = container.health_url if container else None

        if self.dry_run:
            logger.action(f"[DRY RUN] would restart {name} (timeout: {timeout}s)")
            return RecoveryOutcome(name=name, status="RESTARTED", elapsed=0.0)

        logger.action(f"Fleet heal: restarting {name}")
        start = self.poller.clock()
        if not self.runtime.restart(name):
            logger.warning(f"Fleet heal: restart command for {name} failed, polling anyway")

        recovered = self.poller.wait_for(
            lambda: self._recovered(name, health_url),
            timeout=timeout,
            description=f"{name} recovery",
            check_first=False
        )
        if recovered is None:
            logger.error(f"Fleet heal: {name} still broken after {timeout}s")
            return RecoveryOutcome(name=name, status="FAILED")

        elapsed = self.poller.clock() - start
        logger.info(f"Fleet heal: {name} recovered in {elapsed:.0f}s")
        return RecoveryOutcome(name=name, status="RESTARTED", elapsed=elapsed)

