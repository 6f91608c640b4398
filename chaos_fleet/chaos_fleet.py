from typing import Callable, Dict, List, Optional

from .faults.registry import ModuleRegistry
from .fleet.graph import FleetGraph, build_fleet
from .fleet.snapshot import SteadyState, SteadyStateSnapshotter
from .fleet.blast_radius import compute_blast_radius
from .fleet.verifier import FleetVerifier
from .fleet.healer import FleetHealer
from .utils.alerts import Alerter
from .utils.callbacks import ChaosFleetCallback
from .utils.cancellation import CleanupScope
from .utils.config import ChaosFleetConfig
from .utils.constants import DEFAULT_ROUND_TIMEOUT
from .utils.probes import Poller, probe_health
from .utils.runtime import ContainerRuntime
from .utils.schemas import (
    CampaignResult,
    FleetTotals,
    ModuleRoundResult,
    ModuleStats,
    RoundResult,
)
from .utils.state import RunState
from .utils.log import get_logger


logger = get_logger(__name__)


class ChaosFleet:
    """
    Round-based campaign: baseline -> ordered break -> bounded recovery poll
    -> fleet verify/heal -> report. Modules left broken are restored when the
    campaign ends or is interrupted.
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        runtime: ContainerRuntime,
        state: RunState,
        alerter: Alerter,
        config: Optional[ChaosFleetConfig] = None,
        self_heal: bool = False,
        fleet_enabled: bool = True,
        poller: Optional[Poller] = None,
        prober: Callable[[str], bool] = probe_health
    ) -> None:
        self.registry = registry
        self.runtime = runtime
        self.state = state
        self.alerter = alerter
        self.config = config or ChaosFleetConfig()
        self.self_heal = self_heal
        self.fleet_enabled = fleet_enabled
        self.poller = poller or Poller()
        self.dry_run = self.config.general.dry_run
        # fleet machinery
        self.snapshotter = SteadyStateSnapshotter(runtime, state=state, prober=prober)
        self.verifier = FleetVerifier(runtime, prober=prober)
        self.healer = FleetHealer(
            runtime,
            strategy=self.config.fleet.strategy,
            dry_run=self.dry_run,
            default_timeout=self.config.fleet.timeout,
            prober=prober,
            poller=self.poller
        )
        self.graph: Optional[FleetGraph] = None
        # modules broken and not yet recovered, consumed by cleanup
        self.currently_broken: List[str] = []

    #---------
    # startup
    #---------
    def init_fleet(self) -> FleetGraph:
        fleet_cfg = self.config.fleet
        self.graph = build_fleet(
            services=fleet_cfg.services,
            running=self.runtime.list_running(),
            skip=fleet_cfg.skip,
            default_timeout=fleet_cfg.timeout
        )
        return self.graph

    #---------
    # cleanup
    #---------
    def restore_broken(self) -> int:
        """Best-effort restore of every module still marked broken. Returns the failure count."""
        failures = 0
        for name in list(self.currently_broken):
            ops = self.registry.resolve(name)
            logger.action(f"Emergency restore: {name}")
            if ops.restore is None:
                logger.warning(f"No restore operation for {name}")
                failures += 1
                continue
            if ops.restore():
                self.currently_broken.remove(name)
            else:
                logger.error(f"Restore failed for {name}")
                failures += 1
        return failures

    def cleanup(self) -> None:
        if self.currently_broken:
            logger.warning(f"Restoring modules still broken: {', '.join(self.currently_broken)}")
            self.restore_broken()
        self.state.teardown()

    #-------
    # round
    #-------
    def baseline(self, modules: List[str], round_no: int) -> List[str]:
        """Modules fit to break this round: breakable and healthy right now."""
        breakable = []
        for name in modules:
            ops = self.registry.resolve(name)
            if ops.read_only:
                logger.debug(f"Round {round_no}: {name} is read-only, skipping")
                continue
            if ops.break_ is None:
                logger.error(f"Round {round_no}: no break operation found for {name}")
                continue
            if ops.check is not None and not ops.check():
                logger.warning(f"Round {round_no}: {name} is already unhealthy, skipping break")
                continue
            breakable.append(name)
        return breakable

    def break_order(self, modules: List[str]) -> List[str]:
        """Registry order, with control-plane-blinding modules moved last."""
        order = self.registry.names
        modules = sorted(modules, key=order.index)
        first = [m for m in modules if not self.registry.get(m).blinds_control_plane]
        last = [m for m in modules if self.registry.get(m).blinds_control_plane]
        return first + last

    def poll_recovery(
        self,
        broken: List[str],
        timeout: float,
        callbacks: List[ChaosFleetCallback] = []
    ) -> Dict[str, ModuleRoundResult]:
        results: Dict[str, ModuleRoundResult] = {}
        pending = []
        for name in broken:
            if self.registry.resolve(name).check is None:
                logger.error(f"{name}: no check operation, recovery cannot be verified")
                results[name] = ModuleRoundResult(module=name, status="FAIL")
            else:
                pending.append(name)

        start = self.poller.clock()
        while pending:
            for name in list(pending):
                ops = self.registry.resolve(name)
                if self.self_heal and ops.heal is not None:
                    ops.heal()
                if ops.check():
                    seconds = self.poller.clock() - start
                    logger.debug(f"poll_recovery: {name} recovered in {seconds:.0f}s")
                    results[name] = ModuleRoundResult(module=name, status="PASS", recovery_seconds=seconds)
                    pending.remove(name)
                    for cb in callbacks:
                        cb.on_module_recovered(name, seconds)
            if not pending or self.poller.clock() - start >= timeout:
                break
            self.poller.sleep(self.poller.interval)

        for name in pending:
            results[name] = ModuleRoundResult(module=name, status="FAIL")
            self.alerter.send(
                f"Chaos round failed: {name} did not recover within {timeout}s",
                "error",
                key=f"recovery-timeout-{name}"
            )
        return results

    def verify_fleet(
        self,
        result: RoundResult,
        steady_state: SteadyState,
        callbacks: List[ChaosFleetCallback] = []
    ) -> None:
        radius = compute_blast_radius(result.broken, self.config.module_containers, self.graph)
        result.blast_radius = radius
        for cb in callbacks:
            cb.on_fleet_verify_start(radius)

        logger.info(f"Round {result.round}: verifying fleet health...")
        verification = self.verifier.verify(self.graph, steady_state)
        result.verification = verification
        for cb in callbacks:
            cb.on_fleet_verify_end(verification)

        if verification.healthy:
            logger.info(f"Round {result.round}: fleet healthy - no collateral damage")
            return

        damaged = verification.damaged
        logger.warning(f"Round {result.round}: collateral damage - {len(damaged)} containers affected")
        unzoned = [name for name in damaged if radius.zone_of(name) is None]
        if unzoned:
            logger.warning(f"Round {result.round}: damage outside the blast radius ({', '.join(unzoned)}), check the dependency configuration")

        if self.self_heal:
            report = self.healer.heal(damaged, self.graph)
            result.heal = report
            result.fleet_still_broken = list(report.still_broken)
            for cb in callbacks:
                cb.on_fleet_heal_end(report)
        else:
            result.fleet_still_broken = list(damaged)

        if result.fleet_still_broken:
            self.alerter.send(
                f"Fleet damage unresolved: {', '.join(result.fleet_still_broken)}",
                "error",
                key="fleet-still-broken"
            )

    def run_round(
        self,
        round_no: int,
        total_rounds: int,
        modules: List[str],
        timeout: float,
        callbacks: List[ChaosFleetCallback] = []
    ) -> RoundResult:
        for cb in callbacks:
            cb.on_round_start(round_no, total_rounds)
        result = RoundResult(round=round_no)

        #-------------------------------------------
        # (a) baseline every module before breaking
        #-------------------------------------------
        breakable = self.break_order(self.baseline(modules, round_no))
        steady_state = None
        if self.fleet_enabled and self.graph is not None and breakable:
            steady_state = self.snapshotter.capture(self.graph)

        #-------------------
        # (b) ordered break
        #-------------------
        for cb in callbacks:
            cb.on_break_start(breakable)
        for name in breakable:
            ops = self.registry.resolve(name)
            logger.action(f"Round {round_no}: breaking {name}")
            # tracked before the break so an interrupt mid-break still restores it
            if name not in self.currently_broken:
                self.currently_broken.append(name)
            if ops.break_(self.dry_run):
                result.broken.append(name)
            else:
                logger.error(f"Round {round_no}: break failed for {name}")
                self.currently_broken.remove(name)
        for cb in callbacks:
            cb.on_break_end(result.broken)

        if not result.broken:
            logger.warning(f"Round {round_no}: no modules were broken, skipping recovery poll")
            result.modules = [ModuleRoundResult(module=m, status="SKIP") for m in modules]
            for cb in callbacks:
                cb.on_round_end(result)
            return result

        #-----------------------------
        # (c) bounded recovery poll
        #-----------------------------
        logger.info(f"Round {round_no}: waiting for recovery (timeout: {timeout}s)...")
        for cb in callbacks:
            cb.on_recovery_start(result.broken, timeout)
        statuses = self.poll_recovery(result.broken, timeout, callbacks)
        for name, status in statuses.items():
            if status.status == "PASS" and name in self.currently_broken:
                self.currently_broken.remove(name)
        result.modules = [
            statuses.get(m) or ModuleRoundResult(module=m, status="SKIP") for m in modules
        ]
        for cb in callbacks:
            cb.on_recovery_end(result)

        #--------------------------
        # (d) fleet verification
        #--------------------------
        if steady_state is not None:
            self.verify_fleet(result, steady_state, callbacks)

        for cb in callbacks:
            cb.on_round_end(result)
        return result

    #----------
    # campaign
    #----------
    def accumulate(self, campaign: CampaignResult, result: RoundResult) -> None:
        for m in result.modules:
            if m.module not in result.broken:
                continue
            stats = campaign.stats[m.module]
            if m.status == "PASS":
                stats.passed += 1
                if m.recovery_seconds is not None:
                    stats.total_recovery += m.recovery_seconds
                    stats.healed += 1
            else:
                stats.failed += 1

        if result.verification is None:
            return
        fleet = campaign.fleet
        fleet.damaged += len(result.verification.damaged)
        if result.heal is not None:
            fleet.restarted += len(result.heal.restarted)
        fleet.still_broken += len(result.fleet_still_broken)
        if result.fleet_passed:
            fleet.rounds_passed += 1
        else:
            fleet.rounds_failed += 1

    def run_campaign(
        self,
        modules: List[str],
        rounds: int = 1,
        timeout: float = DEFAULT_ROUND_TIMEOUT,
        callbacks: List[ChaosFleetCallback] = []
    ) -> CampaignResult:
        """
        Run ``rounds`` rounds over ``modules``.

        Cleanup (restore whatever is still broken, then tear down run state)
        runs exactly once: at the end of the campaign, from the SIGINT /
        SIGTERM handler (CampaignInterrupted propagates), or when an error
        escapes a round (the error propagates).
        """
        modules = self.registry.select(modules)
        campaign = CampaignResult(
            modules=modules,
            stats={m: ModuleStats() for m in modules},
            fleet=FleetTotals(),
            fleet_enabled=self.fleet_enabled
        )

        with CleanupScope(self.cleanup) as scope:
            if self.fleet_enabled:
                if self.graph is None:
                    self.init_fleet()
                campaign.fleet.tracked = len(self.graph)

            for round_no in range(1, rounds + 1):
                result = self.run_round(round_no, rounds, modules, timeout, callbacks)
                campaign.rounds.append(result)
                self.accumulate(campaign, result)

            scope.run_cleanup()

        for cb in callbacks:
            cb.on_campaign_end(campaign)
        return campaign
