from typing import List

from .schemas import (
    BlastRadius,
    CampaignResult,
    FleetVerification,
    HealReport,
    RoundResult,
)


class ChaosFleetCallback:
    def __init__(self):
        pass

    #-------------
    # round phase
    #-------------
    def on_round_start(self, round: int, total_rounds: int):
        pass

    def on_round_end(self, result: RoundResult):
        pass

    #-------------
    # break phase
    #-------------
    def on_break_start(self, modules: List[str]):
        pass

    def on_break_end(self, broken: List[str]):
        pass

    #--------------------
    # recovery poll phase
    #--------------------
    def on_recovery_start(self, modules: List[str], timeout: float):
        pass

    def on_module_recovered(self, module: str, seconds: float):
        pass

    def on_recovery_end(self, result: RoundResult):
        pass

    #-------------
    # fleet phase
    #-------------
    def on_fleet_verify_start(self, blast_radius: BlastRadius):
        pass

    def on_fleet_verify_end(self, verification: FleetVerification):
        pass

    def on_fleet_heal_end(self, report: HealReport):
        pass

    #----------
    # campaign
    #----------
    def on_campaign_end(self, result: CampaignResult):
        pass
