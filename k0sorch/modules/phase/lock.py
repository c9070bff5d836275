"""Cluster lock shared by the Lock and Unlock phases.

The lock is a file on every host holding the id of the run that owns it.
The owning run refreshes the file's mtime while it works; a lock that has
not been refreshed for ``Config.LOCK_STALE_AFTER`` seconds belongs to a
run that died and may be taken over.
"""
import logging
import shlex
import threading
import uuid
from typing import List, Optional

from ...config import Config
from ...exceptions import LockContention, OrchestrationError, PhaseError
from ..cluster.models import ClusterSpec, Host
from .base import HostPhase, Phase
from .context import RunContext

logger = logging.getLogger("k0sorch.phase.lock")


class LockToken:
    """Handle to the cluster lock of one run.

    Created before the pipeline is built and given to both Lock and
    Unlock. ``cancel`` and ``release`` are no-ops on a token whose Lock
    never ran.
    """

    def __init__(self, run_id: Optional[str] = None):
        self.run_id = run_id or uuid.uuid4().hex
        self._hosts: List[Host] = []
        self._mutex = threading.Lock()
        self._stop = threading.Event()
        self._keepalive: Optional[threading.Thread] = None

    @property
    def acquired(self) -> bool:
        with self._mutex:
            return bool(self._hosts)

    @property
    def hosts(self) -> List[Host]:
        with self._mutex:
            return list(self._hosts)

    def add_host(self, host: Host) -> None:
        with self._mutex:
            self._hosts.append(host)

    def start_keepalive(self, interval: float = None) -> None:
        interval = Config.LOCK_KEEPALIVE if interval is None else interval
        self._stop.clear()
        self._keepalive = threading.Thread(
            target=self._refresh_loop, args=(interval,), name=f"k0sorch-lock-{self.run_id[:8]}", daemon=True
        )
        self._keepalive.start()

    def _refresh_loop(self, interval: float) -> None:
        path = shlex.quote(Config.LOCK_PATH)
        while not self._stop.wait(interval):
            for host in self.hosts:
                conn = host.connection
                if conn is None:
                    continue
                try:
                    conn.exec(f"touch {path}", sudo=True)
                except OrchestrationError as e:
                    logger.debug(f"Lock keepalive failed on {host.identity}: {e}")

    def cancel(self) -> None:
        """Stop refreshing the lock; it goes stale after ``LOCK_STALE_AFTER``."""
        self._stop.set()
        thread = self._keepalive
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join()
        self._keepalive = None

    def release(self, sink=None) -> None:
        """Stop the keepalive and remove the lock files this run owns."""
        self.cancel()
        path = shlex.quote(Config.LOCK_PATH)
        with self._mutex:
            hosts, self._hosts = self._hosts, []
        for host in hosts:
            conn = host.connection
            if conn is None:
                continue
            try:
                conn.exec(
                    f'if [ "$(cat {path} 2>/dev/null)" = "{self.run_id}" ]; then rm -f {path}; fi',
                    sudo=True,
                )
            except OrchestrationError as e:
                if sink is not None:
                    sink.warning("Failed to remove cluster lock", host=host.identity, error=e)


class Lock(HostPhase):
    """Acquire the cluster lock on every host before anything is mutated."""
    title = "Acquire exclusive host lock"

    def __init__(self, token: LockToken):
        self.token = token

    def select_hosts(self, cluster: ClusterSpec) -> List[Host]:
        return [h for h in cluster.hosts if h.connection is not None]

    def run(self, ctx: RunContext, cluster: ClusterSpec) -> None:
        try:
            super().run(ctx, cluster)
        except PhaseError:
            # never keep a partial lock
            self.token.release(ctx.sink)
            raise
        if self.token.acquired:
            self.token.start_keepalive()
            ctx.sink.debug("Cluster lock acquired", run_id=self.token.run_id)

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        conn = host.connection
        path = shlex.quote(Config.LOCK_PATH)
        create = f"mkdir -p $(dirname {path}) && (set -C; echo {self.token.run_id} > {path})"

        if not conn.exec_ok(create, sudo=True):
            owner = conn.exec(f"cat {path} 2>/dev/null || true", sudo=True).strip()
            if owner != self.token.run_id:
                age = int(conn.exec(f"echo $(( $(date +%s) - $(stat -c %Y {path}) ))", sudo=True))
                if age <= Config.LOCK_STALE_AFTER:
                    raise LockContention(
                        f"another run ({owner or 'unknown'}) holds the cluster lock, refreshed {age}s ago"
                    )
                ctx.sink.warning("Taking over stale cluster lock", host=host.identity, owner=owner, age=age)
                conn.exec(f"rm -f {path}", sudo=True)
                if not conn.exec_ok(create, sudo=True):
                    raise LockContention("another run took the cluster lock")
        self.token.add_host(host)


class Unlock(Phase):
    """Release the cluster lock taken by the matching Lock phase."""
    title = "Release exclusive host lock"

    def __init__(self, token: LockToken):
        self.token = token

    def run(self, ctx: RunContext, cluster: ClusterSpec) -> None:
        if not self.token.acquired:
            ctx.sink.debug("Cluster lock was not held; nothing to release")
        self.token.release(ctx.sink)
