from typing import Callable, Dict, List, Optional

from .graph import FleetGraph
from ..utils.constants import (
    ROUND_TABLE_TEMPLATE_PATH,
    FLEET_REPORT_TEMPLATE_PATH,
    SUMMARY_TEMPLATE_PATH,
    CONFIRMATION_TEMPLATE_PATH,
)
from ..utils.functions import render_jinja_template, format_duration
from ..utils.callbacks import ChaosFleetCallback
from ..utils.schemas import CampaignResult, RoundResult
from ..utils.wrappers import BaseModel


class FleetRow(BaseModel):
    name: str
    status: str
    recovery: str = "-"
    detail: str = ""


def _fleet_status(result: RoundResult) -> Dict[str, FleetRow]:
    rows: Dict[str, FleetRow] = {}
    if result.verification is None:
        return rows
    for v in result.verification.results:
        rows[v.name] = FleetRow(name=v.name, status=v.status, detail=f"({v.reason})" if v.reason else "")
    if result.heal is not None:
        for outcome in result.heal.outcomes:
            row = rows.get(outcome.name)
            if row is None:
                continue
            verification = result.verification.get(outcome.name)
            reason = verification.reason if verification else None
            row.status = outcome.status
            if outcome.status == "RESTARTED":
                row.recovery = f"{outcome.elapsed:.0f}s"
                row.detail = f"({reason} -> restart)" if reason else ""
    return rows


def fleet_rows(result: RoundResult) -> Dict[str, List[FleetRow]]:
    """Group per-container rows by blast zone, plus damage found outside every zone."""
    rows = _fleet_status(result)
    radius = result.blast_radius
    zones: Dict[str, List[FleetRow]] = {"zone0": [], "zone1": [], "zone2": [], "unzoned": []}
    if radius is None:
        return zones
    for key in ("zone0", "zone1", "zone2"):
        for name in getattr(radius, key):
            row = rows.get(name) or FleetRow(name=name, status="SKIP")
            if row.status == "HEALTHY":
                row.detail = "(auto-reconnected)"
            zones[key].append(row)
    if result.verification is not None:
        for name in result.verification.damaged:
            if radius.zone_of(name) is None:
                zones["unzoned"].append(rows[name])
    return zones


def render_round_table(
    result: RoundResult,
    total_rounds: int,
    timeout: int
) -> str:
    return render_jinja_template(
        ROUND_TABLE_TEMPLATE_PATH,
        result=result,
        total_rounds=total_rounds,
        timeout=timeout
    )


def render_fleet_report(result: RoundResult, graph: FleetGraph) -> str:
    zones = fleet_rows(result)
    rows = _fleet_status(result)
    damaged = result.verification.damaged if result.verification else []
    restarted = result.heal.restarted if result.heal else []
    return render_jinja_template(
        FLEET_REPORT_TEMPLATE_PATH,
        total=len(graph),
        zones=zones,
        has_zones=bool(result.blast_radius and not result.blast_radius.is_empty),
        damaged_rows=[rows[name] for name in damaged],
        damaged=damaged,
        restarted=restarted,
        still_broken=result.fleet_still_broken,
        unaffected=sum(1 for r in rows.values() if r.status == "HEALTHY")
    )


def render_summary(result: CampaignResult) -> str:
    grand_total = result.total_pass + result.total_fail
    pct = result.total_pass * 100 // grand_total if grand_total else 0
    return render_jinja_template(
        SUMMARY_TEMPLATE_PATH,
        result=result,
        grand_total=grand_total,
        pct=pct
    )


def render_confirmation(
    rounds: int,
    modules: List[str],
    self_heal: bool,
    dry_run: bool,
    timeout: int,
    fleet_enabled: bool,
    strategy: str
) -> str:
    return render_jinja_template(
        CONFIRMATION_TEMPLATE_PATH,
        rounds=rounds,
        modules=modules,
        self_heal=self_heal,
        dry_run=dry_run,
        timeout=format_duration(timeout),
        fleet_enabled=fleet_enabled,
        strategy=strategy
    )


class ConsoleReporter(ChaosFleetCallback):
    """Prints the round table, fleet report and final summary as the campaign progresses."""

    def __init__(
        self,
        timeout: int,
        graph: Optional[FleetGraph] = None,
        output: Callable[[str], None] = print
    ) -> None:
        self.timeout = timeout
        self.graph = graph
        self.output = output
        self.total_rounds = 0

    def on_round_start(self, round: int, total_rounds: int):
        self.total_rounds = total_rounds

    def on_round_end(self, result: RoundResult):
        if not result.broken:
            return
        self.output(render_round_table(result, self.total_rounds, self.timeout))
        if result.fleet_checked and self.graph is not None:
            self.output(render_fleet_report(result, self.graph))

    def on_campaign_end(self, result: CampaignResult):
        self.output(render_summary(result))
