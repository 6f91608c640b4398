from chaos_fleet.fleet.graph import build_fleet
from chaos_fleet.fleet.snapshot import SteadyStateSnapshotter
from chaos_fleet.fleet.verifier import FleetVerifier
from chaos_fleet.utils.config import ServiceConfig

from conftest import FakeRuntime


def test_down_at_baseline_is_always_skip(clock) -> None:
    runtime = FakeRuntime(clock, running=["app"])
    graph = build_fleet([ServiceConfig(name="serviceX"), ServiceConfig(name="app")], running=runtime.list_running())

    steady_state = SteadyStateSnapshotter(runtime, prober=lambda url: True).capture(graph)
    assert steady_state.was_running("serviceX") is False

    verification = FleetVerifier(runtime, prober=lambda url: True).verify(graph, steady_state)
    assert verification.get("serviceX").status == "SKIP"
    assert verification.get("app").status == "HEALTHY"
    assert verification.healthy


def test_not_running_and_health_failure_reasons(clock, state) -> None:
    runtime = FakeRuntime(clock, running=["db", "api", "web"])
    services = [
        ServiceConfig(name="db"),
        ServiceConfig(name="api", health_url="http://api/health", depends_on=["db"]),
        ServiceConfig(name="web", health_url="http://web/health", depends_on=["api"]),
    ]
    graph = build_fleet(services, running=runtime.list_running())
    health = {"http://api/health": True, "http://web/health": True}
    prober = lambda url: health[url]

    steady_state = SteadyStateSnapshotter(runtime, state=state, prober=prober).capture(graph)
    assert steady_state.health_count == 2

    runtime.kill("db")
    health["http://api/health"] = False
    verification = FleetVerifier(runtime, prober=prober).verify(graph, steady_state)

    assert verification.damaged == ["db", "api"]
    assert verification.get("db").reason == "not-running"
    assert verification.get("api").reason == "health-check-failure"
    assert verification.get("web").status == "HEALTHY"


def test_unhealthy_at_baseline_is_not_health_damage(clock) -> None:
    runtime = FakeRuntime(clock, running=["api"])
    graph = build_fleet([ServiceConfig(name="api", health_url="http://api/health")], running=["api"])

    steady_state = SteadyStateSnapshotter(runtime, prober=lambda url: False).capture(graph)
    assert steady_state.was_healthy("api") is False

    verification = FleetVerifier(runtime, prober=lambda url: False).verify(graph, steady_state)
    assert verification.get("api").status == "HEALTHY"


def test_snapshot_written_to_state(clock, state) -> None:
    runtime = FakeRuntime(clock, running=["db"])
    graph = build_fleet(
        [ServiceConfig(name="db"), ServiceConfig(name="api", health_url="http://api/health")],
        running=["db"]
    )
    SteadyStateSnapshotter(runtime, state=state, prober=lambda url: True).capture(graph)

    with open(state.path("fleet", "snapshot_state")) as f:
        lines = f.read().splitlines()
    assert lines == ["db:true:", "api:false:"]
