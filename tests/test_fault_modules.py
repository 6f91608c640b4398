import os

import pytest

from chaos_fleet.faults.fault_base import ModuleContext
from chaos_fleet.faults.modules.cloudflare import CloudflareTunnel
from chaos_fleet.faults.modules.disk_space import DiskSpace
from chaos_fleet.faults.modules.dns import Dns
from chaos_fleet.faults.modules.docker_socket import DockerSocket
from chaos_fleet.faults.modules.nvme_health import NvmeHealth, parse_smart_issues
from chaos_fleet.faults.modules.postgres import Postgres
from chaos_fleet.utils.config import (
    DiskSpaceSettings,
    DnsSettings,
    DockerSocketSettings,
    ModuleSettings,
)

from conftest import FakeDocker


HEALTHY_SMART = """\
=== START OF SMART DATA SECTION ===
SMART/Health Information (NVMe Log 0x02)
Critical Warning:                   0x00
Temperature:                        45 Celsius
Available Spare:                    100%
Available Spare Threshold:          10%
Percentage Used:                    3%
Data Units Read:                    1,234,567 [632 GB]
Media and Data Integrity Errors:    0
"""

WORN_SMART = """\
SMART/Health Information (NVMe Log 0x02)
Critical Warning:                   0x04
Temperature:                        75 Celsius
Available Spare:                    5%
Available Spare Threshold:          10%
Percentage Used:                    95%
Media and Data Integrity Errors:    12
"""


class RecordingHostCmd:
    def __init__(self) -> None:
        self.calls = []

    def __call__(self, *args, **kwargs):
        self.calls.append(args)
        raise AssertionError(f"unexpected host command: {args}")


def make_ctx(state, alerter, clock, docker=None, dry_run=False, **settings) -> ModuleContext:
    return ModuleContext(
        state,
        alerter,
        docker=docker or FakeDocker(),
        settings=ModuleSettings(**settings),
        dry_run=dry_run,
        sleep=clock.sleep
    )


def snapshot_files(state) -> list:
    found = []
    for _, _, files in os.walk(state.path("snapshots")):
        found.extend(files)
    return found


#----------
# postgres
#----------
@pytest.fixture
def pg_docker() -> FakeDocker:
    docker = FakeDocker(states={"n8n-postgres": "running"})
    docker.exec_results = {"pg_isready": "accepting connections", "psql": " 5\n"}
    return docker


def test_postgres_check(state, alerter, clock, pg_docker) -> None:
    module = Postgres(make_ctx(state, alerter, clock, docker=pg_docker))
    assert module.check() is True

    pg_docker.exec_results["psql"] = "85"
    assert module.check() is False

    pg_docker.states["n8n-postgres"] = "paused"
    assert module.check() is False


def test_postgres_not_running_counts_as_healthy(state, alerter, clock) -> None:
    module = Postgres(make_ctx(state, alerter, clock, docker=FakeDocker()))
    assert module.check() is True


def test_postgres_break_heal_cycle(state, alerter, clock, pg_docker) -> None:
    module = Postgres(make_ctx(state, alerter, clock, docker=pg_docker))
    assert module.break_() is True
    assert pg_docker.states["n8n-postgres"] == "paused"
    assert module.get_snapshot("prior_status") == "running"
    assert module.check() is False

    assert module.heal() is True
    assert pg_docker.states["n8n-postgres"] == "running"
    assert ("unpause", "n8n-postgres") in pg_docker.calls


def test_postgres_dry_run_changes_nothing(state, alerter, clock, pg_docker) -> None:
    module = Postgres(make_ctx(state, alerter, clock, docker=pg_docker, dry_run=True))
    assert module.break_() is True
    assert module.break_(dry_run=True) is True
    assert pg_docker.calls == []
    assert snapshot_files(state) == []

    pg_docker.states["n8n-postgres"] = "paused"
    assert module.heal() is True
    assert pg_docker.calls == []


def test_postgres_restore_without_snapshot(state, alerter, clock, pg_docker) -> None:
    pg_docker.states["n8n-postgres"] = "paused"
    module = Postgres(make_ctx(state, alerter, clock, docker=pg_docker))
    assert module.restore() is False
    assert pg_docker.calls == []
    assert pg_docker.states["n8n-postgres"] == "paused"


#------------
# cloudflare
#------------
def test_cloudflare_check_reads_logs(state, alerter, clock) -> None:
    docker = FakeDocker(states={"cloudflared": "running"})
    module = CloudflareTunnel(make_ctx(state, alerter, clock, docker=docker))
    docker.log_output = "INF Registered tunnel connection"
    assert module.check() is True
    docker.log_output = "ERR failed to connect to edge"
    assert module.check() is False


def test_cloudflare_break_and_restore(state, alerter, clock) -> None:
    docker = FakeDocker(states={"cloudflared": "running"})
    module = CloudflareTunnel(make_ctx(state, alerter, clock, docker=docker))

    assert module.restore() is False
    assert docker.calls == []

    assert module.break_() is True
    assert docker.states["cloudflared"] == "exited"
    assert module.restore() is True
    assert docker.states["cloudflared"] == "running"


def test_cloudflare_dry_run(state, alerter, clock) -> None:
    docker = FakeDocker(states={"cloudflared": "running"})
    module = CloudflareTunnel(make_ctx(state, alerter, clock, docker=docker, dry_run=True))
    assert module.break_() is True
    assert module.heal() is True
    assert docker.calls == []
    assert snapshot_files(state) == []


#------------
# disk space
#------------
def test_disk_space_unreadable_mount_is_not_fatal(state, alerter, clock) -> None:
    module = DiskSpace(make_ctx(
        state, alerter, clock,
        disk_space=DiskSpaceSettings(mounts=["/nonexistent-chaos-fleet-mount"])
    ))
    assert module.check() is True


def test_disk_space_dry_run_and_missing_snapshot(state, alerter, clock) -> None:
    module = DiskSpace(make_ctx(state, alerter, clock, dry_run=True))
    module.host_cmd = RecordingHostCmd()
    assert module.break_() is True
    assert not os.path.exists(state.path("disk-fill"))
    assert snapshot_files(state) == []

    module.ctx.dry_run = False
    assert module.restore() is False


#-----
# dns
#-----
def test_dns_dry_run_and_missing_snapshot(state, alerter, clock, tmp_path) -> None:
    resolv_conf = tmp_path / "resolv.conf"
    resolv_conf.write_text("nameserver 1.1.1.1\n")
    module = Dns(make_ctx(
        state, alerter, clock,
        dry_run=True,
        dns=DnsSettings(resolv_conf=str(resolv_conf))
    ))
    module.host_cmd = RecordingHostCmd()

    assert module.break_() is True
    assert resolv_conf.read_text() == "nameserver 1.1.1.1\n"
    assert snapshot_files(state) == []

    module.ctx.dry_run = False
    assert module.restore() is False
    assert resolv_conf.read_text() == "nameserver 1.1.1.1\n"


#---------------
# docker socket
#---------------
def test_docker_socket_dry_run_and_missing_snapshot(state, alerter, clock, tmp_path) -> None:
    socket = tmp_path / "docker.sock"
    socket.write_text("")
    module = DockerSocket(make_ctx(
        state, alerter, clock,
        dry_run=True,
        docker_socket=DockerSocketSettings(socket=str(socket))
    ))
    module.host_cmd = RecordingHostCmd()

    assert module.break_() is True
    assert snapshot_files(state) == []

    module.ctx.dry_run = False
    assert module.restore() is False
    assert module.host_cmd.calls == []


def test_docker_socket_missing_socket_is_unhealthy(state, alerter, clock, tmp_path) -> None:
    module = DockerSocket(make_ctx(
        state, alerter, clock,
        docker_socket=DockerSocketSettings(socket=str(tmp_path / "missing.sock"))
    ))
    assert module.check() is False
    assert module.break_() is False


#-------------
# nvme health
#-------------
def test_parse_smart_healthy() -> None:
    assert parse_smart_issues(HEALTHY_SMART, pct_warn=90, temp_warn=70) == []


def test_parse_smart_worn_device() -> None:
    issues = parse_smart_issues(WORN_SMART, pct_warn=90, temp_warn=70)
    assert len(issues) == 5
    assert issues[0] == "percentage used 95% >= 90%"
    assert issues[1] == "critical warning 0x04"
    assert issues[2] == "available spare 5% <= 10%"
    assert issues[3] == "temperature 75C >= 70C"
    assert issues[4] == "media and data integrity errors: 12"


def test_nvme_is_read_only(state, alerter, clock) -> None:
    module = NvmeHealth(make_ctx(state, alerter, clock))
    assert module.read_only
    assert module.break_() is False
    assert module.restore() is True


def test_nvme_without_smartctl_passes(state, alerter, clock, monkeypatch) -> None:
    monkeypatch.setattr("chaos_fleet.faults.modules.nvme_health.has_command", lambda name: False)
    assert NvmeHealth(make_ctx(state, alerter, clock)).check() is True
