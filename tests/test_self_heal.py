from chaos_fleet.self_heal import CHECK_FAILED, CHECK_OK, CHECK_UNKNOWN, SelfHealRunner
from chaos_fleet.utils.config import ChaosFleetConfig, FleetConfig, ServiceConfig

from conftest import CheckOnlyModule, FakeModule, FakeRuntime


def make_runner(state, registry, runtime, poller, services=()) -> SelfHealRunner:
    config = ChaosFleetConfig(fleet=FleetConfig(services=list(services)))
    return SelfHealRunner(registry, runtime, state, config=config, prober=lambda url: True, poller=poller)


def test_sweep_heals_and_counts_failures(ctx, state, registry, clock, poller) -> None:
    events = []
    registry.register(FakeModule(ctx, name="ok", clock=clock, events=events))
    registry.register(FakeModule(ctx, name="healable", clock=clock, healthy=False, events=events))
    registry.register(FakeModule(ctx, name="hopeless", clock=clock, healthy=False, heal_ok=False, events=events))
    runner = make_runner(state, registry, FakeRuntime(clock), poller)

    assert runner.run_all_health_checks() == 1
    assert ("heal", "ok") not in events
    assert ("heal", "healable") in events
    assert ("heal", "hopeless") in events


def test_sweep_includes_fleet_when_configured(ctx, state, registry, clock, poller) -> None:
    registry.register(FakeModule(ctx, name="ok", clock=clock))
    runtime = FakeRuntime(clock, running=["db"])
    runner = make_runner(state, registry, runtime, poller, services=[ServiceConfig(name="db")])
    assert runner.run_all_health_checks() == 0


def test_module_check_codes(ctx, state, registry, clock, poller) -> None:
    registry.register(FakeModule(ctx, name="healthy", clock=clock))
    registry.register(FakeModule(ctx, name="broken", clock=clock, healthy=False, heal_ok=False))
    runner = make_runner(state, registry, FakeRuntime(clock), poller)

    assert runner.run_module_check("healthy") == CHECK_OK
    assert runner.run_module_check("broken") == CHECK_FAILED
    assert runner.run_module_check("missing") == CHECK_UNKNOWN


def test_break_and_restore_single_module(ctx, state, registry, clock, poller) -> None:
    module = FakeModule(ctx, name="a", clock=clock)
    registry.register(module)
    registry.register(CheckOnlyModule(ctx))
    runner = make_runner(state, registry, FakeRuntime(clock), poller)

    assert runner.run_module_break("a") == CHECK_OK
    assert module.healthy is False
    assert runner.run_module_restore("a") == CHECK_OK
    assert module.healthy is True

    assert runner.run_module_break("check-only") == CHECK_UNKNOWN
    assert runner.run_module_restore("check-only") == CHECK_UNKNOWN
    assert runner.run_module_restore("missing") == CHECK_UNKNOWN


def test_list_modules(ctx, state, registry, clock, poller) -> None:
    registry.register(FakeModule(ctx, name="a", clock=clock))
    registry.register(CheckOnlyModule(ctx))
    runner = make_runner(state, registry, FakeRuntime(clock), poller)
    assert runner.list_modules() == [
        ("a", "Fake module a"),
        ("check-only", "Only knows how to check"),
    ]
