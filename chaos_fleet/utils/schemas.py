from typing import Dict, List, Literal, Optional

from .constants import DEFAULT_CONTAINER_TIMEOUT, EXIT_OK, EXIT_FAILURE
from .wrappers import BaseModel


ContainerStatus = Literal["HEALTHY", "DAMAGED", "SKIP"]
DamageReason = Literal["not-running", "health-check-failure"]
RecoveryStatus = Literal["RESTARTED", "FAILED"]
ModuleStatus = Literal["PASS", "FAIL", "SKIP"]


#-------
# fleet
#-------
class TrackedContainer(BaseModel):
    name: str
    health_url: Optional[str] = None
    depends_on: List[str] = []
    timeout: int = DEFAULT_CONTAINER_TIMEOUT
    configured: bool = True # False when auto-discovered


class SteadyStateRecord(BaseModel):
    running: bool
    healthy: Optional[bool] = None # None: not probed (down or no health endpoint)


class BlastRadius(BaseModel):
    broken_modules: List[str] = []
    zone0: List[str] = []
    zone1: List[str] = []
    zone2: List[str] = []

    def zone_of(self, name: str) -> Optional[int]:
        for i, zone in enumerate((self.zone0, self.zone1, self.zone2)):
            if name in zone:
                return i
        return None

    @property
    def is_empty(self) -> bool:
        return not (self.zone0 or self.zone1 or self.zone2)


class ContainerVerification(BaseModel):
    name: str
    status: ContainerStatus
    reason: Optional[DamageReason] = None


class FleetVerification(BaseModel):
    results: List[ContainerVerification] = []

    @property
    def damaged(self) -> List[str]:
        return [r.name for r in self.results if r.status == "DAMAGED"]

    @property
    def healthy(self) -> bool:
        return len(self.damaged) == 0

    def get(self, name: str) -> Optional[ContainerVerification]:
        for r in self.results:
            if r.name == name:
                return r
        return None


class RecoveryOutcome(BaseModel):
    name: str
    status: RecoveryStatus
    elapsed: Optional[float] = None # only on RESTARTED


class HealReport(BaseModel):
    strategy: str = "restart"
    outcomes: List[RecoveryOutcome] = []
    still_broken: List[str] = []

    @property
    def restarted(self) -> List[str]:
        return [o.name for o in self.outcomes if o.status == "RESTARTED"]


#----------
# campaign
#----------
class ModuleRoundResult(BaseModel):
    module: str
    status: ModuleStatus
    recovery_seconds: Optional[float] = None


class RoundResult(BaseModel):
    round: int
    modules: List[ModuleRoundResult] = []
    broken: List[str] = []
    blast_radius: Optional[BlastRadius] = None
    verification: Optional[FleetVerification] = None
    heal: Optional[HealReport] = None
    fleet_still_broken: List[str] = []

    @property
    def fleet_checked(self) -> bool:
        return self.verification is not None

    @property
    def fleet_passed(self) -> bool:
        return self.fleet_checked and len(self.fleet_still_broken) == 0


class ModuleStats(BaseModel):
    passed: int = 0
    failed: int = 0
    total_recovery: float = 0.0
    healed: int = 0 # rounds with a known recovery time

    @property
    def total(self) -> int:
        return self.passed + self.failed

    @property
    def average_recovery(self) -> Optional[float]:
        if self.healed == 0:
            return None
        return self.total_recovery / self.healed


class FleetTotals(BaseModel):
    tracked: int = 0
    damaged: int = 0
    restarted: int = 0
    still_broken: int = 0
    rounds_passed: int = 0
    rounds_failed: int = 0

    @property
    def rounds_checked(self) -> int:
        return self.rounds_passed + self.rounds_failed


class CampaignResult(BaseModel):
    modules: List[str] = []
    stats: Dict[str, ModuleStats] = {}
    fleet: FleetTotals = FleetTotals()
    fleet_enabled: bool = True
    rounds: List[RoundResult] = []

    @property
    def total_pass(self) -> int:
        return sum(s.passed for s in self.stats.values())

    @property
    def total_fail(self) -> int:
        return sum(s.failed for s in self.stats.values())

    @property
    def exit_code(self) -> int:
        if self.total_fail > 0 or self.fleet.still_broken > 0:
            return EXIT_FAILURE
        return EXIT_OK
