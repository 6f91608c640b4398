import pytest

from chaos_fleet.faults.fault_base import ModuleContext
from chaos_fleet.faults.registry import FACTORY_MAP, build_registry
from chaos_fleet.utils.exceptions import DuplicateModuleError, UnknownModuleError

from conftest import CheckOnlyModule, FakeModule, ReadOnlyModule


class ExplodingModule(FakeModule):
    def check(self) -> bool:
        raise RuntimeError("probe crashed")


def test_registration_order_and_duplicates(ctx, registry) -> None:
    registry.register(FakeModule(ctx, name="b"))
    registry.register(FakeModule(ctx, name="a"))
    assert registry.names == ["b", "a"]

    with pytest.raises(DuplicateModuleError):
        registry.register(FakeModule(ctx, name="a"))
    assert len(registry) == 2


def test_missing_operations_resolve_to_none(ctx, registry) -> None:
    registry.register(CheckOnlyModule(ctx))
    ops = registry.resolve("check-only")
    assert ops.check is not None
    assert ops.break_ is None
    assert ops.heal is None
    assert ops.restore is None
    assert ops.describe() == "Only knows how to check"


def test_read_only_trait_is_exposed(ctx, registry) -> None:
    registry.register(ReadOnlyModule(ctx))
    ops = registry.resolve("monitor")
    assert ops.read_only is True
    assert ops.break_() is False


def test_operation_exception_becomes_failure(ctx, registry) -> None:
    registry.register(ExplodingModule(ctx, name="boom"))
    assert registry.resolve("boom").check() is False


def test_unknown_name_fails_before_anything_else(ctx, registry) -> None:
    registry.register(FakeModule(ctx, name="a"))
    with pytest.raises(UnknownModuleError) as exc_info:
        registry.select(["a", "nope"])
    assert exc_info.value.name == "nope"
    assert exc_info.value.available == ["a"]
    with pytest.raises(UnknownModuleError):
        registry.resolve("nope")


def test_select_defaults_to_all_and_dedupes(ctx, registry) -> None:
    for name in ("a", "b", "c"):
        registry.register(FakeModule(ctx, name=name))
    assert registry.select(None) == ["a", "b", "c"]
    assert registry.select([]) == ["a", "b", "c"]
    assert registry.select(["c", "a", "c"]) == ["c", "a"]


def test_builtin_modules(state, alerter) -> None:
    registry = build_registry(ModuleContext(state, alerter))
    assert registry.names == [
        "cloudflare",
        "disk-space",
        "dns",
        "docker-socket",
        "nvme-health",
        "postgres",
    ]
    assert registry.names == list(FACTORY_MAP.keys())
    assert registry.get("nvme-health").read_only
    assert registry.get("docker-socket").blinds_control_plane
    assert not registry.get("postgres").blinds_control_plane
