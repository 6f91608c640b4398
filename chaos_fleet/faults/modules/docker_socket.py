import os
import grp
import stat
from typing import Optional, Tuple

from ..fault_base import FaultModule
from ...utils.config import DockerSocketSettings
from ...utils.log import get_logger


logger = get_logger(__name__)

BROKEN_GROUP = "nogroup"


class DockerSocket(FaultModule):
    name = "docker-socket"
    blinds_control_plane = True

    @property
    def settings(self) -> DockerSocketSettings:
        return self.ctx.settings.docker_socket

    def describe(self) -> str:
        return "Docker socket permissions (group ownership + chmod)"

    def _socket_owner(self) -> Optional[Tuple[str, str]]:
        """(group name, octal permissions) of the socket, or None if it cannot be stat'ed."""
        try:
            st = os.stat(self.settings.socket)
        except OSError as e:
            logger.error(f"docker-socket: cannot stat {self.settings.socket}: {e}")
            return None
        try:
            group = grp.getgrgid(st.st_gid).gr_name
        except KeyError:
            group = str(st.st_gid)
        return group, format(stat.S_IMODE(st.st_mode), "o")

    def _set_owner(self, group: str, perms: str) -> bool:
        socket = self.settings.socket
        if self.host_cmd("chgrp", group, socket, privileged=True).returncode != 0:
            logger.error(f"docker-socket: chgrp {group} failed")
            return False
        if self.host_cmd("chmod", perms, socket, privileged=True).returncode != 0:
            logger.error(f"docker-socket: chmod {perms} failed")
            return False
        return True

    def check(self) -> bool:
        owner = self._socket_owner()
        if owner is None:
            return False
        group, _ = owner
        if group != self.settings.group:
            logger.debug(f"docker-socket: socket group is '{group}', expected '{self.settings.group}'")
            return False
        if not self.docker.ping():
            logger.debug("docker-socket: group is correct but docker daemon not responding")
            return False
        return True

    def break_(self, dry_run: Optional[bool] = None) -> bool:
        socket = self.settings.socket
        owner = self._socket_owner()
        if owner is None:
            return False

        if self.is_dry_run(dry_run):
            logger.action(f"docker-socket [DRY-RUN]: would chgrp {BROKEN_GROUP} {socket}")
            return True

        group, perms = owner
        self.save_snapshot("group", group)
        self.save_snapshot("perms", perms)
        logger.debug(f"docker-socket: snapshot saved (group={group}, perms={perms})")

        logger.action(f"docker-socket: changing socket group to '{BROKEN_GROUP}'")
        if self.host_cmd("chgrp", BROKEN_GROUP, socket, privileged=True).returncode != 0:
            logger.error(f"docker-socket: chgrp {BROKEN_GROUP} failed")
            return False

        if self.docker.ping():
            logger.warning("docker-socket: group changed but docker info still succeeds (user may be root)")
        else:
            logger.info("docker-socket: break confirmed - docker info now fails")
        self.alert(f"Docker socket group changed to '{BROKEN_GROUP}' on {socket}", "warn")
        return True

    def heal(self) -> bool:
        socket = self.settings.socket
        owner = self._socket_owner()
        if owner is None:
            return False
        if owner[0] == self.settings.group and self.docker.ping():
            logger.info(f"docker-socket: already healthy (group={owner[0]})")
            return True

        if self.ctx.dry_run:
            logger.action(f"docker-socket [DRY-RUN]: would chgrp {self.settings.group} {socket} && chmod 660")
            return True

        logger.action(f"docker-socket: restoring group to '{self.settings.group}' and permissions to 660")
        if not self._set_owner(self.settings.group, "660"):
            return False

        if self.check():
            logger.info("docker-socket: heal successful")
            self.alert(f"Docker socket permissions restored on {socket}", "info")
            return True
        logger.error("docker-socket: group/perms restored but docker info still fails")
        return False

    def restore(self) -> bool:
        socket = self.settings.socket
        saved_group = self.get_snapshot("group")
        saved_perms = self.get_snapshot("perms")
        if saved_group is None or saved_perms is None:
            logger.error("docker-socket: no snapshot found, cannot restore")
            return False
        saved_group, saved_perms = saved_group.strip(), saved_perms.strip()

        if self.ctx.dry_run:
            logger.action(f"docker-socket [DRY-RUN]: would restore group={saved_group} perms={saved_perms}")
            return True

        logger.action(f"docker-socket: emergency restore (group={saved_group}, perms={saved_perms})")
        if not self._set_owner(saved_group, saved_perms):
            return False

        logger.info(f"docker-socket: emergency restore complete (group={saved_group}, perms={saved_perms})")
        self.alert(f"Docker socket emergency restore completed on {socket}", "info")
        return True
