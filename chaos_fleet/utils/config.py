import os
import re
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import ConfigDict, Field, ValidationError, field_validator

from .constants import (
    DEFAULT_ALERT_COOLDOWN,
    DEFAULT_CONTAINER_TIMEOUT,
)
from .exceptions import ConfigError
from .functions import split_csv
from .log import DEFAULT_LOG_FILE, get_logger
from .wrappers import BaseModel


logger = get_logger(__name__)


#-------
# fleet
#-------
class ServiceConfig(BaseModel):
    name: str
    health_url: Optional[str] = None
    depends_on: List[str] = Field(default_factory=list)
    timeout: Optional[int] = None # falls back to FleetConfig.timeout

    @classmethod
    def from_record(cls, record: str) -> "ServiceConfig":
        """Parse a ``container|health_url|dep1,dep2|timeout`` record. Trailing fields may be omitted."""
        fields = [f.strip() for f in record.split("|")]
        fields += [""] * (4 - len(fields))
        name, health_url, depends, timeout = fields[:4]
        if not name:
            raise ValueError(f"Service record without a container name: '{record}'")
        return cls(
            name=name,
            health_url=health_url or None,
            depends_on=split_csv(depends),
            timeout=int(timeout) if timeout else None
        )

    @field_validator("depends_on", mode="before")
    @classmethod
    def _split_depends(cls, value: Any) -> Any:
        if isinstance(value, str):
            return split_csv(value)
        return value or []


class FleetConfig(BaseModel):
    services: List[ServiceConfig] = Field(default_factory=list)
    skip: Optional[str] = None # regex excluding auto-discovered containers
    timeout: int = DEFAULT_CONTAINER_TIMEOUT
    strategy: Literal["restart", "report"] = "restart"
    runtime: Literal["docker", "kubernetes"] = "docker"
    kube_context: Optional[str] = None
    namespace: str = "default"

    @field_validator("services", mode="before")
    @classmethod
    def _parse_records(cls, value: Any) -> Any:
        if value is None:
            return []
        return [ServiceConfig.from_record(v) if isinstance(v, str) else v for v in value]

    @field_validator("skip")
    @classmethod
    def _compile_skip(cls, value: Optional[str]) -> Optional[str]:
        if value:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"invalid skip pattern '{value}': {e}")
        return value or None

    @field_validator("timeout")
    @classmethod
    def _positive_timeout(cls, value: int) -> int:
        if value < 1:
            raise ValueError("timeout must be at least 1 second")
        return value


#------------------
# module settings
#------------------
class CloudflareSettings(BaseModel):
    container: str = "cloudflared"
    error_pattern: str = "ERR|failed to connect|connection refused|tunnel disconnected|Register tunnel error"
    log_lines: int = 5


class DiskSpaceSettings(BaseModel):
    mounts: List[str] = Field(default_factory=lambda: ["/"])
    warn_pct: int = 90
    crit_pct: int = 95
    reserve_mb: int = 500


class DnsSettings(BaseModel):
    test_host: str = "google.com"
    test_container: Optional[str] = None
    resolv_conf: str = "/etc/resolv.conf"


class DockerSocketSettings(BaseModel):
    socket: str = "/var/run/docker.sock"
    group: str = "docker"


class NvmeHealthSettings(BaseModel):
    device: str = "auto"
    temp_warn: int = 70
    pct_warn: int = 90


class PostgresSettings(BaseModel):
    container: str = "n8n-postgres"
    user: str = "postgres"
    max_conn: int = 100
    conn_threshold: int = 80
    settle_seconds: int = 30


class ModuleSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cloudflare: CloudflareSettings = Field(default_factory=CloudflareSettings)
    disk_space: DiskSpaceSettings = Field(default_factory=DiskSpaceSettings, alias="disk-space")
    dns: DnsSettings = Field(default_factory=DnsSettings)
    docker_socket: DockerSocketSettings = Field(default_factory=DockerSocketSettings, alias="docker-socket")
    nvme_health: NvmeHealthSettings = Field(default_factory=NvmeHealthSettings, alias="nvme-health")
    postgres: PostgresSettings = Field(default_factory=PostgresSettings)


#----------------
# general/alerts
#----------------
class GeneralConfig(BaseModel):
    dry_run: bool = False
    verbose: bool = False
    log_file: Optional[str] = DEFAULT_LOG_FILE
    state_dir: Optional[str] = None # parent of the run-scoped temp directory


class AlertsConfig(BaseModel):
    webhook_url: Optional[str] = None
    cooldown: int = DEFAULT_ALERT_COOLDOWN
    title: str = "Chaos Fleet Alert"


def _default_module_containers() -> Dict[str, List[str]]:
    return {
        "postgres": ["n8n-postgres"],
        "cloudflare": ["cloudflared"],
    }


class ChaosFleetConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    fleet: FleetConfig = Field(default_factory=FleetConfig)
    module_containers: Dict[str, List[str]] = Field(default_factory=_default_module_containers)
    modules: ModuleSettings = Field(default_factory=ModuleSettings)
    alerts: AlertsConfig = Field(default_factory=AlertsConfig)

    @field_validator("module_containers", mode="before")
    @classmethod
    def _split_containers(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {
                k: split_csv(v) if isinstance(v, str) else (v or [])
                for k, v in value.items()
            }
        return value


def load_config(path: Optional[str] = None) -> ChaosFleetConfig:
    """
    Load a YAML config file into a validated ChaosFleetConfig.

    Args:
        path: YAML file path. None yields the defaults.

    Returns:
        The validated configuration

    Raises:
        ConfigError: unreadable file, malformed YAML or failed validation
    """
    if path is None:
        return ChaosFleetConfig()
    if not os.path.isfile(path):
        raise ConfigError(f"Config file not found: {path}")
    logger.info(f"Loading config: {os.path.realpath(path)}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a mapping at the top level")
    try:
        return ChaosFleetConfig.model_validate(data)
    except (ValidationError, ValueError) as e:
        raise ConfigError(f"Invalid config {path}: {e}") from e
