from typing import Dict, List

from .graph import FleetGraph
from ..utils.schemas import BlastRadius
from ..utils.log import get_logger


logger = get_logger(__name__)


def compute_blast_radius(
    broken_modules: List[str],
    module_containers: Dict[str, List[str]],
    graph: FleetGraph
) -> BlastRadius:
    """
    Classify containers into blast zones for the modules broken this round.

    zone0 holds the containers the broken modules map to directly. Modules
    without a mapping are host-level faults and add nothing. zone1 holds
    tracked containers depending on a zone0 member, zone2 those depending on
    a zone1 member. Propagation stops at depth 2.

    Args:
        broken_modules: Modules broken this round
        module_containers: Module name -> directly impacted containers
        graph: The tracked fleet

    Returns:
        Zones as disjoint ordered lists (zone0 in mapping order, zone1 and
        zone2 in fleet order)
    """
    zone0: List[str] = []
    for module in broken_modules:
        containers = module_containers.get(module) or []
        if not containers:
            logger.debug(f"blast_radius: {module} has no container mapping, skipping zone 0")
            continue
        for c in containers:
            if c and c not in zone0:
                zone0.append(c)

    zone0_set = set(zone0)
    zone1 = [
        c.name for c in graph
        if c.name not in zone0_set and zone0_set.intersection(c.depends_on)
    ]

    zone1_set = set(zone1)
    zone2 = [
        c.name for c in graph
        if c.name not in zone0_set and c.name not in zone1_set
        and zone1_set.intersection(c.depends_on)
    ]

    logger.debug(f"blast_radius: zone0={len(zone0)} zone1={len(zone1)} zone2={len(zone2)}")
    return BlastRadius(
        broken_modules=list(broken_modules),
        zone0=zone0,
        zone1=zone1,
        zone2=zone2
    )
