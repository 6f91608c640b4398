from typing import Callable, List, Optional, Tuple

from .faults.registry import ModuleRegistry
from .fleet.graph import build_fleet
from .fleet.snapshot import SteadyStateSnapshotter
from .fleet.verifier import FleetVerifier
from .fleet.healer import FleetHealer
from .utils.config import ChaosFleetConfig
from .utils.probes import Poller, probe_health
from .utils.runtime import ContainerRuntime
from .utils.state import RunState
from .utils.log import get_logger


logger = get_logger(__name__)

# run_module_* return codes
CHECK_OK = 0
CHECK_FAILED = 1
CHECK_UNKNOWN = 2


class SelfHealRunner:
    """
    Watcher-style entry points: one check -> heal sweep over the registered
    modules (and the fleet when services are configured), plus single-module
    check/break/restore for manual use.
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        runtime: ContainerRuntime,
        state: RunState,
        config: Optional[ChaosFleetConfig] = None,
        prober: Callable[[str], bool] = probe_health,
        poller: Optional[Poller] = None
    ) -> None:
        self.registry = registry
        self.runtime = runtime
        self.state = state
        self.config = config or ChaosFleetConfig()
        self.prober = prober
        self.poller = poller or Poller()

    def _check_and_heal(self, name: str) -> bool:
        ops = self.registry.resolve(name)
        if ops.check():
            logger.info(f"PASS: {name}")
            return True
        logger.warning(f"self-heal: {name} is unhealthy, attempting heal")
        if ops.heal is not None and ops.heal():
            logger.info(f"PASS: {name} (healed)")
            return True
        logger.error(f"FAIL: {name} (heal failed)")
        return False

    def heal_fleet(self) -> int:
        """Snapshot, verify and heal the configured fleet. Returns the number of containers still broken."""
        fleet_cfg = self.config.fleet
        graph = build_fleet(
            services=fleet_cfg.services,
            running=self.runtime.list_running(),
            skip=fleet_cfg.skip,
            default_timeout=fleet_cfg.timeout
        )
        steady_state = SteadyStateSnapshotter(self.runtime, state=self.state, prober=self.prober).capture(graph)
        verification = FleetVerifier(self.runtime, prober=self.prober).verify(graph, steady_state)
        if verification.healthy:
            return 0
        logger.warning(f"self-heal: fleet has {len(verification.damaged)} damaged containers")
        healer = FleetHealer(
            self.runtime,
            strategy=fleet_cfg.strategy,
            dry_run=self.config.general.dry_run,
            default_timeout=fleet_cfg.timeout,
            prober=self.prober,
            poller=self.poller
        )
        return len(healer.heal(verification.damaged, graph).still_broken)

    def run_all_health_checks(self) -> int:
        """
        Check every module that has a check operation and heal the unhealthy
        ones, then verify the fleet if services are configured.

        Returns:
            Number of modules (and fleet containers) that could not be healed
        """
        passed, failed = 0, 0
        for name in self.registry.names:
            if self.registry.resolve(name).check is None:
                logger.warning(f"self-heal: no check operation for '{name}', skipping")
                continue
            logger.debug(f"self-heal: checking {name}")
            if self._check_and_heal(name):
                passed += 1
            else:
                failed += 1

        if self.config.fleet.services:
            logger.debug("self-heal: running fleet verification")
            failed += self.heal_fleet()

        logger.info(f"self-heal: summary - {passed} passed, {failed} failed")
        return failed

    def run_module_check(self, name: str) -> int:
        """Check one module and heal it if needed: 0 healthy or healed, 1 heal failed, 2 unknown or no check."""
        if not self.registry.is_registered(name):
            logger.error(f"self-heal: module '{name}' is not registered")
            return CHECK_UNKNOWN
        if self.registry.resolve(name).check is None:
            logger.error(f"self-heal: no check operation for module '{name}'")
            return CHECK_UNKNOWN
        return CHECK_OK if self._check_and_heal(name) else CHECK_FAILED

    def run_module_break(self, name: str, dry_run: Optional[bool] = None) -> int:
        if not self.registry.is_registered(name):
            logger.error(f"self-heal: module '{name}' is not registered")
            return CHECK_UNKNOWN
        ops = self.registry.resolve(name)
        if ops.break_ is None:
            logger.error(f"self-heal: no break operation for module '{name}'")
            return CHECK_UNKNOWN
        logger.action(f"self-heal: injecting chaos into '{name}'")
        return CHECK_OK if ops.break_(dry_run) else CHECK_FAILED

    def run_module_restore(self, name: str) -> int:
        if not self.registry.is_registered(name):
            logger.error(f"self-heal: module '{name}' is not registered")
            return CHECK_UNKNOWN
        ops = self.registry.resolve(name)
        if ops.restore is None:
            logger.error(f"self-heal: no restore operation for module '{name}'")
            return CHECK_UNKNOWN
        logger.action(f"self-heal: emergency restore of '{name}'")
        return CHECK_OK if ops.restore() else CHECK_FAILED

    def list_modules(self) -> List[Tuple[str, str]]:
        """(name, description) of every registered module, in registration order."""
        modules = []
        for name in self.registry.names:
            describe = self.registry.resolve(name).describe
            modules.append((name, describe() if describe is not None else "(no description)"))
        return modules
