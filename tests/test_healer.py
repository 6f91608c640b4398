from chaos_fleet.fleet.graph import build_fleet
from chaos_fleet.fleet.healer import FleetHealer, dependency_order
from chaos_fleet.utils.config import ServiceConfig

from conftest import FakeRuntime


def make_graph(*services: ServiceConfig):
    return build_fleet(list(services), running=[])


#-------------------
# dependency order
#-------------------
def test_parents_before_children() -> None:
    graph = make_graph(
        ServiceConfig(name="web", depends_on=["api"]),
        ServiceConfig(name="api", depends_on=["db"]),
        ServiceConfig(name="db"),
    )
    assert dependency_order(["web", "api", "db"], graph) == ["db", "api", "web"]


def test_siblings_keep_discovery_order() -> None:
    graph = make_graph(
        ServiceConfig(name="db"),
        ServiceConfig(name="worker", depends_on=["db"]),
        ServiceConfig(name="api", depends_on=["db"]),
    )
    assert dependency_order(["worker", "api", "db"], graph) == ["db", "worker", "api"]


def test_dependencies_outside_damaged_set_are_ignored() -> None:
    graph = make_graph(
        ServiceConfig(name="db"),
        ServiceConfig(name="api", depends_on=["db"]),
    )
    assert dependency_order(["api"], graph) == ["api"]


def test_cycle_members_appended_last() -> None:
    graph = make_graph(
        ServiceConfig(name="a", depends_on=["b"]),
        ServiceConfig(name="b", depends_on=["a"]),
        ServiceConfig(name="c"),
    )
    assert dependency_order(["a", "b", "c"], graph) == ["c", "a", "b"]


#---------
# healing
#---------
def test_parent_recovers_before_child_restart(clock, poller) -> None:
    runtime = FakeRuntime(clock, running=[], recover_after={"db": 3.0})
    graph = make_graph(
        ServiceConfig(name="db", timeout=10),
        ServiceConfig(name="app", depends_on=["db"], timeout=10),
    )
    healer = FleetHealer(runtime, prober=lambda url: True, poller=poller)
    report = healer.heal(["app", "db"], graph)

    assert [o.name for o in report.outcomes] == ["db", "app"]
    assert all(o.status == "RESTARTED" for o in report.outcomes)
    assert report.still_broken == []
    # 3s recovery observed on the 2s poll grid
    assert report.outcomes[0].elapsed == 4.0

    events = runtime.events
    db_recovered = next(t for kind, name, t in events if kind == "recovered" and name == "db")
    app_restart = next(t for kind, name, t in events if kind == "restart" and name == "app")
    assert events.index(("recovered", "db", db_recovered)) < events.index(("restart", "app", app_restart))
    assert app_restart >= db_recovered


def test_restart_timeout_marks_still_broken(clock, poller) -> None:
    runtime = FakeRuntime(clock, running=[], never_recover=["db"])
    graph = make_graph(ServiceConfig(name="db", timeout=10))
    report = FleetHealer(runtime, poller=poller).heal(["db"], graph)

    assert report.outcomes[0].status == "FAILED"
    assert report.outcomes[0].elapsed is None
    assert report.still_broken == ["db"]
    assert clock() - 1000.0 >= 10


def test_health_endpoint_must_pass(clock, poller) -> None:
    runtime = FakeRuntime(clock, running=[])
    graph = make_graph(ServiceConfig(name="api", health_url="http://api/health", timeout=6))
    report = FleetHealer(runtime, prober=lambda url: False, poller=poller).heal(["api"], graph)
    assert report.still_broken == ["api"]


def test_report_strategy_leaves_everything_broken(clock, poller) -> None:
    runtime = FakeRuntime(clock, running=[])
    graph = make_graph(ServiceConfig(name="db"), ServiceConfig(name="app", depends_on=["db"]))
    report = FleetHealer(runtime, strategy="report", poller=poller).heal(["app", "db"], graph)

    assert report.outcomes == []
    assert report.still_broken == ["app", "db"]
    assert runtime.events == []


def test_dry_run_touches_nothing(clock, poller) -> None:
    runtime = FakeRuntime(clock, running=[])
    graph = make_graph(ServiceConfig(name="db"), ServiceConfig(name="app", depends_on=["db"]))
    report = FleetHealer(runtime, dry_run=True, poller=poller).heal(["app", "db"], graph)

    assert report.restarted == ["db", "app"]
    assert all(o.elapsed == 0.0 for o in report.outcomes)
    assert runtime.events == []
    assert clock() == 1000.0
