import re
from typing import Dict, Iterator, List, Optional

from ..utils.config import ServiceConfig
from ..utils.constants import DEFAULT_CONTAINER_TIMEOUT
from ..utils.exceptions import ConfigError
from ..utils.log import get_logger
from ..utils.schemas import TrackedContainer


logger = get_logger(__name__)


class FleetGraph:
    """Tracked containers in fleet order, plus their dependency edges."""

    def __init__(self, containers: List[TrackedContainer]) -> None:
        self.containers = containers
        self._by_name: Dict[str, TrackedContainer] = {c.name: c for c in containers}

    def __iter__(self) -> Iterator[TrackedContainer]:
        return iter(self.containers)

    def __len__(self) -> int:
        return len(self.containers)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    @property
    def names(self) -> List[str]:
        return [c.name for c in self.containers]

    @property
    def configured_count(self) -> int:
        return sum(1 for c in self.containers if c.configured)

    def get(self, name: str) -> Optional[TrackedContainer]:
        return self._by_name.get(name)

    def depends_on(self, name: str) -> List[str]:
        container = self._by_name.get(name)
        return list(container.depends_on) if container else []


def build_fleet(
    services: List[ServiceConfig],
    running: List[str],
    skip: Optional[str] = None,
    default_timeout: int = DEFAULT_CONTAINER_TIMEOUT
) -> FleetGraph:
    """
    Build the tracked container set.

    Configured services come first, in configuration order, and are
    authoritative for topology. Running containers that are neither
    configured nor matched by ``skip`` are appended in enumeration order
    with no health endpoint and no dependencies, so they still get
    liveness checks.

    Args:
        services: Configured service records
        running: Live enumeration of running container names
        skip: Regular expression excluding auto-discovered containers
        default_timeout: Recovery timeout for records without one

    Returns:
        The fleet graph
    """
    try:
        skip_pattern = re.compile(skip) if skip else None
    except re.error as e:
        raise ConfigError(f"Invalid fleet skip pattern '{skip}': {e}") from e

    containers: List[TrackedContainer] = []
    configured = set()
    for service in services:
        if service.name in configured:
            logger.warning(f"fleet: {service.name} is configured twice, keeping the first entry")
            continue
        configured.add(service.name)
        containers.append(TrackedContainer(
            name=service.name,
            health_url=service.health_url,
            depends_on=list(service.depends_on),
            timeout=service.timeout or default_timeout,
            configured=True
        ))

    for name in running:
        if skip_pattern is not None and skip_pattern.search(name):
            logger.debug(f"fleet: skipping {name} (matches skip pattern)")
            continue
        if name in configured:
            continue
        configured.add(name)
        containers.append(TrackedContainer(
            name=name,
            timeout=default_timeout,
            configured=False
        ))

    graph = FleetGraph(containers)
    logger.debug(f"fleet: {len(graph)} containers tracked ({graph.configured_count} configured)")
    return graph
