import os
import re
from typing import List, Optional

from ..fault_base import FaultModule
from ...utils.config import NvmeHealthSettings
from ...utils.functions import has_command
from ...utils.log import get_logger


logger = get_logger(__name__)

SPARE_WARN_PCT = 10


def _last_field(output: str, label: str) -> Optional[str]:
    for line in output.splitlines():
        if label.lower() in line.lower():
            fields = line.split()
            if fields:
                return fields[-1]
    return None


def parse_smart_issues(output: str, pct_warn: int, temp_warn: int) -> List[str]:
    """
    Extract warning conditions from ``smartctl -A`` output of an NVMe device.

    Looks at Percentage Used, Critical Warning, Available Spare, Temperature
    and Media and Data Integrity Errors. Fields that are absent or
    unparsable are ignored.
    """
    issues: List[str] = []

    pct_used = (_last_field(output, "Percentage Used") or "").rstrip("%")
    if pct_used.isdigit() and int(pct_used) >= pct_warn:
        issues.append(f"percentage used {pct_used}% >= {pct_warn}%")

    crit_warn = _last_field(output, "Critical Warning")
    if crit_warn and crit_warn not in ("0x00", "0"):
        issues.append(f"critical warning {crit_warn}")

    # the colon keeps "Available Spare Threshold" out
    spare = (_last_field(output, "Available Spare:") or "").rstrip("%")
    if spare.isdigit() and int(spare) <= SPARE_WARN_PCT:
        issues.append(f"available spare {spare}% <= {SPARE_WARN_PCT}%")

    match = re.search(r"^Temperature:\s+(\d+)", output, flags=re.IGNORECASE | re.MULTILINE)
    if match and int(match.group(1)) >= temp_warn:
        issues.append(f"temperature {match.group(1)}C >= {temp_warn}C")

    media_errors = (_last_field(output, "Media and Data Integrity Errors") or "").replace(",", "")
    if media_errors.isdigit() and int(media_errors) > 0:
        issues.append(f"media and data integrity errors: {media_errors}")
    return issues


class NvmeHealth(FaultModule):
    """Read-only SMART monitor; there is nothing to inject."""
    name = "nvme-health"
    read_only = True

    @property
    def settings(self) -> NvmeHealthSettings:
        return self.ctx.settings.nvme_health

    def describe(self) -> str:
        return (
            "Module: nvme-health\n"
            f"Device: {self.settings.device}\n"
            "Mode: read-only (hardware monitoring, no fault injection)\n"
            f"Checks: percentage used (warn >={self.settings.pct_warn}%), critical warning, "
            f"available spare (warn <={SPARE_WARN_PCT}%), temperature (warn >={self.settings.temp_warn}C), media errors"
        )

    def find_device(self) -> Optional[str]:
        if self.settings.device != "auto":
            return self.settings.device
        if os.path.exists("/dev/nvme0n1"):
            return "/dev/nvme0n1"
        res = self.host_cmd("lsblk", "-dno", "NAME,TRAN")
        for line in res.stdout.splitlines():
            fields = line.split()
            if len(fields) == 2 and fields[1] == "nvme":
                return f"/dev/{fields[0]}"
        return None

    def check(self) -> bool:
        if not has_command("smartctl"):
            logger.debug("nvme-health: smartctl not available, skipping")
            return True
        device = self.find_device()
        if device is None:
            logger.debug("nvme-health: no NVMe device found, skipping")
            return True

        logger.debug(f"nvme-health: querying SMART data from {device}")
        res = self.host_cmd("smartctl", "-A", device, privileged=True)
        output = res.stdout + res.stderr
        # smartctl sets status bits even when it printed the health section
        if res.returncode != 0 and "SMART/Health Information" not in output:
            first_line = output.strip().splitlines()[0] if output.strip() else "no output"
            logger.warning(f"nvme-health: smartctl failed on {device}: {first_line}")
            return False

        issues = parse_smart_issues(output, self.settings.pct_warn, self.settings.temp_warn)
        if not issues:
            logger.debug(f"nvme-health: all checks passed for {device}")
            return True

        summary = "; ".join(issues)
        logger.warning(f"nvme-health: {device}: {summary}")
        self.alert(f"NVMe health warning on {device}: {summary}", "warn")
        return False

    def break_(self, dry_run: Optional[bool] = None) -> bool:
        logger.warning("nvme-health is read-only, no break supported")
        return False

    def heal(self) -> bool:
        logger.info("nvme-health: no automated healing for hardware")
        return True

    def restore(self) -> bool:
        logger.info("nvme-health: nothing to restore")
        return True
