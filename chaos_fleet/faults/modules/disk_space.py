import os
import math
import shutil
from typing import Optional

from ..fault_base import FaultModule
from ...utils.config import DiskSpaceSettings
from ...utils.log import get_logger


logger = get_logger(__name__)

FILL_FILE_NAME = "disk-fill"
FILL_TIMEOUT = 600.0  # sec


def usage_pct(mount: str) -> Optional[int]:
    """Usage percentage as df reports it (used / (used + available), rounded up)."""
    try:
        usage = shutil.disk_usage(mount)
    except OSError as e:
        logger.warning(f"disk_space: cannot stat {mount}: {e}")
        return None
    capacity = usage.used + usage.free
    if capacity == 0:
        return None
    return math.ceil(usage.used * 100 / capacity)


def avail_mb(mount: str) -> Optional[int]:
    try:
        return shutil.disk_usage(mount).free // (1024 * 1024)
    except OSError:
        return None


class DiskSpace(FaultModule):
    name = "disk-space"

    @property
    def settings(self) -> DiskSpaceSettings:
        return self.ctx.settings.disk_space

    @property
    def fill_path(self) -> str:
        return self.ctx.state.path(FILL_FILE_NAME)

    def describe(self) -> str:
        return (
            "Module: disk-space\n"
            f"  Chaos: Fills the first configured mount with a large file, leaving only {self.settings.reserve_mb}MB free.\n"
            "  Heals: Removes fill file; prunes Docker images, builders, and networks (no container/volume prune).\n"
            f"  Check: Reads usage % on each mount in {', '.join(self.settings.mounts)}.\n"
            "  Deps:  dd, docker"
        )

    def check(self) -> bool:
        healthy = True
        for mount in self.settings.mounts:
            usage = usage_pct(mount)
            if usage is None:
                logger.warning(f"disk_space_check: could not read usage for {mount}")
                continue
            logger.debug(f"disk_space_check: {mount} usage={usage}%")
            if usage >= self.settings.crit_pct:
                logger.warning(f"disk_space_check: {mount} at {usage}% (>= crit {self.settings.crit_pct}%)")
                healthy = False
            elif usage >= self.settings.warn_pct:
                logger.warning(f"disk_space_check: {mount} at {usage}% (>= warn {self.settings.warn_pct}%)")
        return healthy

    def break_(self, dry_run: Optional[bool] = None) -> bool:
        if self.is_dry_run(dry_run):
            logger.action(f"disk_space_break: [DRY RUN] would fill first mount leaving {self.settings.reserve_mb}MB free")
            return True

        mount = self.settings.mounts[0]
        available = avail_mb(mount)
        if available is None:
            logger.error(f"disk_space_break: could not determine available space on {mount}")
            return False

        fill_mb = available - self.settings.reserve_mb
        if fill_mb <= 0:
            logger.warning(
                f"disk_space_break: already within {self.settings.reserve_mb}MB reserve on {mount} "
                f"(avail={available}MB), skipping"
            )
            return True

        fill_path = self.fill_path
        self.save_snapshot("fill_path", fill_path)
        logger.action(
            f"disk_space_break: filling {fill_mb}MB on {mount} "
            f"(avail={available}MB, reserve={self.settings.reserve_mb}MB)"
        )
        res = self.host_cmd("dd", "if=/dev/zero", f"of={fill_path}", "bs=1M", f"count={fill_mb}", timeout=FILL_TIMEOUT)
        if res.returncode != 0:
            logger.error("disk_space_break: dd failed (disk may have hit actual limit)")

        usage_after = usage_pct(mount)
        logger.info(f"disk_space_break: {mount} now at {usage_after}% after fill")
        if usage_after is not None and usage_after >= self.settings.warn_pct:
            self.alert(f"Chaos injected: disk {mount} filled to {usage_after}% (fill file: {fill_path})", "warn")
        else:
            logger.warning(f"disk_space_break: fill created but usage {usage_after}% still below warn threshold")
        return True

    def _remove_fill(self, path: Optional[str]) -> None:
        if path and os.path.isfile(path):
            logger.action(f"disk_space: removing fill file {path}")
            os.remove(path)

    def heal(self) -> bool:
        if self.ctx.dry_run:
            logger.action("disk_space_heal: [DRY RUN] would prune Docker images/builders/networks and remove fill file")
            return True

        self._remove_fill(self.fill_path)
        for what, until in (("image", "24h"), ("builder", None), ("network", "24h")):
            logger.action(f"disk_space_heal: pruning Docker {what}s")
            self.docker.prune(what, until=until)

        if not self.check():
            logger.warning("disk_space_heal: disk still critical after cleanup")
            self.alert(f"Disk heal incomplete: one or more mounts still above {self.settings.crit_pct}%", "warn")
            return False

        self.alert("Disk healed: Docker prune complete, fill file removed", "info")
        return True

    def restore(self) -> bool:
        saved_path = self.get_snapshot("fill_path")
        if saved_path is None:
            logger.warning("disk_space_restore: no snapshot found, nothing to restore")
            return False

        if self.ctx.dry_run:
            logger.action("disk_space_restore: [DRY RUN] would remove fill file from snapshot path")
            return True

        self._remove_fill(saved_path.strip())
        for mount in self.settings.mounts:
            usage = usage_pct(mount)
            if usage is not None and usage < self.settings.warn_pct:
                logger.info(f"disk_space_restore: {mount} at {usage}% - normal")
            else:
                logger.warning(f"disk_space_restore: {mount} at {usage}% - still elevated")
        return True
