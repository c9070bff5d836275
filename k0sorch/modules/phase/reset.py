"""Phases that uninstall k0s from hosts.

A host's ``reset`` flag is set only after k0s was actually removed from
it, which is how callers learn that the fleet drifted away from the
declared inventory.
"""
from typing import List, Optional

from ...exceptions import CommandError
from .. import k0s
from ..cluster.models import ClusterSpec, Host, HostRole
from .base import HostPhase
from .context import RunContext


def has_k0s(host: Host) -> bool:
    return host.is_running or host.binary_version is not None


def uninstall(ctx: RunContext, host: Host) -> None:
    if host.is_running:
        k0s.stop(host)
    k0s.reset(host)
    host.reset = True
    host.facts['k0s_running_version'] = None
    host.facts['k0s_binary_version'] = None
    host.facts['k0s_role'] = None
    ctx.sink.info("k0s uninstalled", host=host.identity)


def usable_leader(cluster: ClusterSpec, host: Host) -> Optional[Host]:
    """The leader when it can still run kubectl on behalf of ``host``."""
    leader = cluster.leader()
    if leader is host or not leader.is_running or leader.reset:
        return None
    return leader


class ResetWorkers(HostPhase):
    """Uninstall workers marked for removal (or every worker on full reset)."""
    title = "Reset workers"

    def __init__(self, no_drain: bool = False, all_hosts: bool = False):
        self.no_drain = no_drain
        self.all_hosts = all_hosts

    def select_hosts(self, cluster: ClusterSpec) -> List[Host]:
        return [
            h for h in cluster.hosts
            if h.role is HostRole.WORKER and (h.uninstall or self.all_hosts) and has_k0s(h)
        ]

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        leader = usable_leader(cluster, host)
        if leader is not None and host.is_running:
            if not self.no_drain:
                ctx.sink.debug("draining node", host=host.identity)
                k0s.drain(leader, host.hostname)
            try:
                k0s.delete_node(leader, host.hostname)
            except CommandError as e:
                ctx.sink.warning("failed to delete node object", host=host.identity, error=e)
        uninstall(ctx, host)


class ResetControllers(HostPhase):
    """Uninstall controllers marked for removal, one at a time.

    On a full reset the leader goes last and skips leaving etcd since no
    peer remains.
    """
    title = "Reset controllers"

    def __init__(self, no_drain: bool = False, all_hosts: bool = False):
        self.no_drain = no_drain
        self.all_hosts = all_hosts

    def select_hosts(self, cluster: ClusterSpec) -> List[Host]:
        hosts = [h for h in cluster.controllers() if (h.uninstall or self.all_hosts) and has_k0s(h)]
        leader = cluster.leader()
        if not self.all_hosts:
            return [h for h in hosts if h is not leader]
        # the leader serves kubectl and etcd for everyone else
        return [h for h in hosts if h is not leader] + [h for h in hosts if h is leader]

    def run_hosts(self, ctx: RunContext, cluster: ClusterSpec, hosts: List[Host]) -> None:
        self.run_serially(ctx, cluster, hosts)

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        leader = usable_leader(cluster, host)
        if leader is not None and host.is_running:
            if host.is_worker and not self.no_drain:
                ctx.sink.debug("draining node", host=host.identity)
                k0s.drain(leader, host.hostname)
            ctx.sink.info("leaving etcd cluster", host=host.identity)
            k0s.etcd_leave(leader, host.address)
        uninstall(ctx, host)
