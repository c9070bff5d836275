"""Restore a cluster from a k0s backup archive."""
import os
import posixpath
import shlex
from typing import Optional

from ...exceptions import PreconditionError
from .. import k0s
from ..cluster.models import ClusterSpec
from .base import Phase
from .context import RunContext


class Restore(Phase):
    """Rehydrate the leader from a backup before the cluster is initialized.

    Does nothing without a restore source or when the leader already runs
    k0s.
    """
    title = "Restore cluster state"

    def __init__(self, restore_from: Optional[str] = None):
        self.restore_from = restore_from

    def run(self, ctx: RunContext, cluster: ClusterSpec) -> None:
        if not self.restore_from:
            return

        if not os.path.isfile(self.restore_from):
            raise PreconditionError(f"restore source not found: {self.restore_from}")

        leader = cluster.leader()
        if leader.is_running:
            ctx.sink.warning("leader is already running k0s, not restoring", host=leader.identity,
                             source=self.restore_from)
            return

        remote = posixpath.join('/tmp', os.path.basename(self.restore_from))
        ctx.sink.info("uploading backup", host=leader.identity, source=self.restore_from)
        leader.connection.upload(self.restore_from, remote, perm='0600')
        try:
            k0s.restore(leader, remote)
        finally:
            leader.connection.exec(f"rm -f {shlex.quote(remote)}", sudo=True)
        cluster.metadata.extras['restored_from'] = self.restore_from
        ctx.sink.info("restored cluster state", host=leader.identity)
