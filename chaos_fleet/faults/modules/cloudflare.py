import re
from typing import Optional

from ..fault_base import FaultModule
from ...utils.config import CloudflareSettings
from ...utils.log import get_logger


logger = get_logger(__name__)


class CloudflareTunnel(FaultModule):
    name = "cloudflare"

    @property
    def settings(self) -> CloudflareSettings:
        return self.ctx.settings.cloudflare

    def describe(self) -> str:
        return f"Cloudflare tunnel container ({self.settings.container}) stop/start"

    def _logs_clean(self) -> bool:
        logs = self.docker.logs(self.settings.container, tail=self.settings.log_lines)
        return re.search(self.settings.error_pattern, logs, flags=re.IGNORECASE) is None

    def check(self) -> bool:
        if not self.docker.is_running(self.settings.container):
            logger.debug("cloudflare: container not running")
            return False
        if not self._logs_clean():
            logger.debug("cloudflare: error pattern found in recent logs")
            return False
        return True

    def break_(self, dry_run: Optional[bool] = None) -> bool:
        container = self.settings.container
        was_running = self.docker.is_running(container)
        if not was_running:
            logger.warning("cloudflare: container already stopped, nothing to break")
            return True

        if self.is_dry_run(dry_run):
            logger.action(f"cloudflare [DRY-RUN]: would docker stop {container}")
            return True

        self.save_snapshot("was_running", "true")
        logger.action(f"cloudflare: stopping {container}")
        if not self.docker.stop(container):
            logger.error("cloudflare: docker stop failed")
            return False
        if self.docker.is_running(container):
            logger.error("cloudflare: container still running after stop")
            return False

        logger.info("cloudflare: container stopped, tunnel is down")
        self.alert(f"Cloudflare tunnel container {container} stopped", "warn")
        return True

    def heal(self) -> bool:
        container = self.settings.container
        if self.ctx.dry_run:
            logger.action(f"cloudflare [DRY-RUN]: would docker start {container} and verify logs")
            return True

        if self.docker.is_running(container):
            logger.action("cloudflare: container already running, restarting to clear error state")
            self.docker.restart(container)
        else:
            logger.action(f"cloudflare: starting {container}")
            if not self.docker.start(container):
                logger.error("cloudflare: docker start failed")
                return False

        self.sleep(5)
        if not self.check():
            logger.error("cloudflare: errors still present after heal")
            return False

        logger.info("cloudflare: heal successful, tunnel logs clean")
        self.alert(f"Cloudflare tunnel container {container} restarted and healthy", "info")
        return True

    def restore(self) -> bool:
        container = self.settings.container
        if self.get_snapshot("was_running") is None:
            logger.warning("cloudflare: no snapshot found, cannot restore")
            return False

        if self.ctx.dry_run:
            logger.action(f"cloudflare [DRY-RUN]: would docker start {container}")
            return True

        if self.docker.is_running(container):
            logger.info("cloudflare: container already running")
            return True

        logger.action(f"cloudflare: emergency restore - starting {container}")
        if not self.docker.start(container):
            logger.error("cloudflare: emergency restore docker start failed")
            return False

        self.sleep(5)
        if not self.docker.is_running(container):
            logger.error("cloudflare: container not running after restore")
            return False
        if self._logs_clean():
            logger.info("cloudflare: emergency restore complete, logs clean")
        else:
            logger.warning("cloudflare: restored but logs show errors - tunnel may need reconnect time")

        self.alert(f"Cloudflare tunnel container {container} emergency restore completed", "info")
        return True
