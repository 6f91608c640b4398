from typing import Optional

from ..fault_base import FaultModule
from ...utils.config import DnsSettings
from ...utils.functions import has_command
from ...utils.log import get_logger


logger = get_logger(__name__)

POISONED_RESOLV_CONF = "nameserver 127.0.0.254\n"


class Dns(FaultModule):
    name = "dns"

    @property
    def settings(self) -> DnsSettings:
        return self.ctx.settings.dns

    def describe(self) -> str:
        return (
            "Module: dns\n"
            f"  Chaos: Overwrites {self.settings.resolv_conf} with an unreachable nameserver to sever host DNS resolution.\n"
            f"  Heals: Restarts systemd-resolved; falls back to restoring {self.settings.resolv_conf} from snapshot.\n"
            "  Check: Verifies host DNS via dig/host; optionally tests container DNS via python3 socket.\n"
            "  Deps:  dig or host (host check), python3 (container check), sudo, systemd-resolved"
        )

    #---------
    # probes
    #---------
    def _host_resolves(self) -> bool:
        host = self.settings.test_host
        if has_command("dig"):
            res = self.host_cmd("dig", "+short", "+timeout=5", host, timeout=15.0)
            return res.returncode == 0 and bool(res.stdout.strip())
        return self.host_cmd("host", host, timeout=15.0).returncode == 0

    def _container_resolves(self) -> bool:
        container = self.settings.test_container
        if not container or not self.docker.is_running(container):
            return False
        script = (
            "import socket; socket.setdefaulttimeout(5); "
            f"socket.gethostbyname('{self.settings.test_host}')"
        )
        return self.docker.exec(container, "python3", "-c", script) is not None

    def _write_resolv_conf(self, content: str) -> bool:
        res = self.host_cmd("tee", self.settings.resolv_conf, input=content, privileged=True)
        return res.returncode == 0

    def _restart_resolved(self) -> bool:
        return self.host_cmd("systemctl", "restart", "systemd-resolved", privileged=True).returncode == 0

    #------------
    # operations
    #------------
    def check(self) -> bool:
        logger.debug(f"dns_check: testing host DNS for {self.settings.test_host}")
        host_ok = self._host_resolves()
        if host_ok:
            logger.debug("dns_check: host DNS OK")
        else:
            logger.warning(f"dns_check: host DNS resolution failed for {self.settings.test_host}")

        container = self.settings.test_container
        if container:
            if not self.docker.is_running(container):
                logger.debug(f"dns_check: container {container} not running, skipping")
            elif self._container_resolves():
                logger.debug(f"dns_check: container DNS OK ({container})")
            else:
                # container DNS is informational only
                logger.warning(f"dns_check: container DNS failed ({container})")
        return host_ok

    def break_(self, dry_run: Optional[bool] = None) -> bool:
        resolv_conf = self.settings.resolv_conf
        if self.is_dry_run(dry_run):
            logger.action(f"dns_break: [DRY RUN] would corrupt {resolv_conf}")
            return True

        logger.action(f"dns_break: saving {resolv_conf} snapshot")
        try:
            with open(resolv_conf, "r") as f:
                original = f.read()
        except OSError:
            original = ""
        if not original.strip():
            logger.error(f"dns_break: {resolv_conf} is empty or unreadable")
            return False
        self.save_snapshot("resolv_conf", original)

        logger.action(f"dns_break: replacing {resolv_conf} with broken nameserver")
        if not self._write_resolv_conf(POISONED_RESOLV_CONF):
            logger.error(f"dns_break: failed to write {resolv_conf}")
            return False

        self.sleep(1)
        if self._host_resolves():
            logger.warning("dns_break: host DNS still resolves after corruption (cached or stub resolver active)")
            self.alert(f"dns_break: DNS still resolving after {resolv_conf} corruption - stub resolver may be caching", "warn")
            return True

        logger.info("dns_break: host DNS is broken")
        self.alert(f"Chaos injected: DNS resolution broken via corrupted {resolv_conf}", "warn")
        return True

    def heal(self) -> bool:
        resolv_conf = self.settings.resolv_conf
        if self.ctx.dry_run:
            logger.action(f"dns_heal: [DRY RUN] would restart systemd-resolved and restore {resolv_conf}")
            return True

        logger.action("dns_heal: restarting systemd-resolved")
        if self._restart_resolved():
            self.sleep(3)
            if self.check():
                logger.info("dns_heal: host DNS restored via systemd-resolved restart")
                self.alert("DNS healed: systemd-resolved restart succeeded", "info")
                self._heal_container()
                return True
            logger.warning("dns_heal: systemd-resolved restart did not restore DNS, falling back to resolv.conf restore")
        else:
            logger.warning("dns_heal: systemd-resolved restart failed, falling back to resolv.conf restore")

        saved = self.get_snapshot("resolv_conf")
        if saved is None:
            logger.error("dns_heal: no resolv.conf snapshot found, cannot restore")
            self.alert("DNS heal failed: no snapshot available", "error")
            return False

        logger.action(f"dns_heal: restoring {resolv_conf} from snapshot")
        if not self._write_resolv_conf(saved):
            logger.error(f"dns_heal: failed to restore {resolv_conf}")
            self.alert(f"DNS heal failed: could not write {resolv_conf}", "error")
            return False

        self.sleep(2)
        if self.check():
            logger.info("dns_heal: host DNS restored via resolv.conf snapshot")
            self.alert(f"DNS healed: {resolv_conf} restored from snapshot", "info")
            self._heal_container()
            return True

        logger.error("dns_heal: host DNS still broken after all recovery attempts")
        self.alert("DNS heal FAILED: host DNS still broken after resolv.conf restore", "error")
        return False

    def _heal_container(self) -> None:
        container = self.settings.test_container
        if not container or not self.docker.is_running(container):
            return
        if self._container_resolves():
            return
        logger.action(f"dns_heal: restarting container {container} for DNS recovery")
        self.docker.restart(container)
        self.sleep(5)
        if self._container_resolves():
            logger.info("dns_heal: container DNS restored after restart")
        else:
            logger.warning("dns_heal: container DNS still failing after restart")

    def restore(self) -> bool:
        resolv_conf = self.settings.resolv_conf
        saved = self.get_snapshot("resolv_conf")
        if saved is None:
            logger.warning(f"dns_restore: no snapshot found, leaving {resolv_conf} untouched")
            return False

        if self.ctx.dry_run:
            logger.action(f"dns_restore: [DRY RUN] would restore {resolv_conf} and restart systemd-resolved")
            return True

        logger.action(f"dns_restore: restoring {resolv_conf} from snapshot")
        if not self._write_resolv_conf(saved):
            logger.error(f"dns_restore: failed to restore {resolv_conf}")
            return False
        logger.info(f"dns_restore: {resolv_conf} restored")

        logger.action("dns_restore: restarting systemd-resolved")
        if self._restart_resolved():
            self.sleep(3)
            if self._host_resolves():
                logger.info("dns_restore: DNS fully operational")
            else:
                logger.warning("dns_restore: DNS still not resolving after restore")
        else:
            logger.warning("dns_restore: systemd-resolved restart failed")
        return True
