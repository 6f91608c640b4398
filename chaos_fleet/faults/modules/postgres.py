from typing import Optional

from ..fault_base import FaultModule
from ...utils.config import PostgresSettings
from ...utils.log import get_logger


logger = get_logger(__name__)

RESTORE_WAIT_SECONDS = 60
TERMINATE_IDLE_SQL = """SELECT count(*) FROM (
    SELECT pg_terminate_backend(pid)
    FROM pg_stat_activity
    WHERE state = 'idle'
      AND query_start < now() - interval '10 minutes'
      AND pid <> pg_backend_pid()
) t;"""


class Postgres(FaultModule):
    name = "postgres"

    @property
    def settings(self) -> PostgresSettings:
        return self.ctx.settings.postgres

    def describe(self) -> str:
        s = self.settings
        return (
            "Module: postgres\n"
            f"Container: {s.container}\n"
            "Break: docker pause (simulates unresponsive DB)\n"
            "Heal: unpause + idle connection cleanup\n"
            "Restore: unpause/restart + pg_isready wait\n"
            f"Threshold: {s.conn_threshold}/{s.max_conn} connections"
        )

    #---------
    # probes
    #---------
    def _psql(self, sql: str) -> Optional[str]:
        out = self.docker.exec(self.settings.container, "psql", "-U", self.settings.user, "-t", "-c", sql)
        if out is None:
            return None
        return "".join(out.split())

    def _is_ready(self) -> bool:
        return self.docker.exec(self.settings.container, "pg_isready", "-U", self.settings.user) is not None

    def _connection_count(self) -> Optional[int]:
        out = self._psql("SELECT count(*) FROM pg_stat_activity;")
        if out is None or not out.isdigit():
            return None
        return int(out)

    def _wait_ready(self, seconds: int) -> Optional[int]:
        for i in range(seconds):
            if self._is_ready():
                return i
            self.sleep(1)
        return None

    def _terminate_idle_connections(self) -> None:
        terminated = self._psql(TERMINATE_IDLE_SQL)
        logger.info(f"postgres: terminated {terminated or 0} idle connections older than 10 minutes")

    #------------
    # operations
    #------------
    def check(self) -> bool:
        container = self.settings.container
        if not self.docker.is_running(container):
            logger.debug("postgres: container not running, skipping")
            return True
        if self.docker.status(container) == "paused":
            logger.warning("postgres: container is paused")
            return False
        if not self._is_ready():
            logger.warning("postgres: pg_isready failed")
            return False

        conn_count = self._connection_count()
        if conn_count is None:
            logger.warning("postgres: could not read connection count")
            return False
        logger.debug(f"postgres: connections={conn_count} threshold={self.settings.conn_threshold}")
        if conn_count >= self.settings.conn_threshold:
            logger.warning(f"postgres: connection count {conn_count} >= threshold {self.settings.conn_threshold}")
            return False
        return True

    def break_(self, dry_run: Optional[bool] = None) -> bool:
        container = self.settings.container
        if not self.docker.is_running(container):
            logger.warning("postgres: container not running, cannot inject fault")
            return False

        if self.is_dry_run(dry_run):
            logger.action(f"postgres: [dry-run] would pause {container}")
            return True

        prior_status = self.docker.status(container) or ""
        self.save_snapshot("prior_status", prior_status)
        logger.debug(f"postgres: saved prior_status={prior_status}")

        logger.action(f"postgres: pausing container {container}")
        if not self.docker.pause(container):
            logger.error("postgres: failed to pause container")
            return False

        self.sleep(1)
        if self._is_ready():
            logger.warning("postgres: pg_isready still succeeds after pause (unexpected)")
            return False

        logger.info("postgres: fault injected - container paused, pg_isready fails as expected")
        return True

    def heal(self) -> bool:
        container = self.settings.container
        status = self.docker.status(container)
        if status == "paused":
            if self.ctx.dry_run:
                logger.action(f"postgres: [dry-run] would unpause {container}")
                return True
            logger.action(f"postgres: unpausing {container}")
            if not self.docker.unpause(container):
                logger.error("postgres: failed to unpause container")
                self.alert(f"postgres heal failed: could not unpause {container}", "error")
                return False
        elif not self.docker.is_running(container):
            logger.warning("postgres: container not running during heal, nothing to do")
            return False

        logger.debug("postgres: waiting for pg_isready after heal")
        if self._wait_ready(self.settings.settle_seconds) is None:
            logger.error(f"postgres: pg_isready did not recover within {self.settings.settle_seconds}s")
            self.alert(f"postgres heal failed: pg_isready timeout on {container}", "error")
            return False

        conn_count = self._connection_count()
        if conn_count is not None and conn_count >= self.settings.conn_threshold:
            logger.warning(f"postgres: connection count {conn_count} still high after heal, terminating idle")
            self._terminate_idle_connections()

        if not self.check():
            logger.error("postgres: still unhealthy after heal")
            return False
        logger.info(f"postgres: heal complete - pg_isready ok, connections={conn_count if conn_count is not None else '?'}")
        self.alert(f"postgres healed: {container} unpaused and accepting connections", "info")
        return True

    def restore(self) -> bool:
        container = self.settings.container
        if self.get_snapshot("prior_status") is None:
            logger.warning("postgres: no snapshot found, nothing to restore")
            return False

        if self.ctx.dry_run:
            logger.action(f"postgres: [dry-run] would unpause/restart {container}")
            return True

        if self.docker.status(container) == "paused":
            logger.action(f"postgres: unpausing {container} during restore")
            self.docker.unpause(container)

        if not self.docker.is_running(container):
            logger.warning("postgres: container not running after unpause, skipping restore")
            return False

        logger.debug("postgres: waiting for pg_isready during restore")
        waited = self._wait_ready(RESTORE_WAIT_SECONDS)
        if waited is not None:
            logger.info(f"postgres: restore complete - pg_isready ok after {waited}s")
            return True

        logger.warning(f"postgres: pg_isready failed after {RESTORE_WAIT_SECONDS}s, attempting container restart")
        self.docker.restart(container)
        waited = self._wait_ready(RESTORE_WAIT_SECONDS)
        if waited is not None:
            logger.info(f"postgres: restore complete after restart - pg_isready ok after {waited}s")
            return True

        logger.error("postgres: restore failed - pg_isready timeout after restart")
        self.alert(f"postgres restore failed: {container} not accepting connections", "error")
        return False
