"""Phases that move running hosts to the target version."""
from typing import List

from ...exceptions import ExecutionError
from .. import k0s
from ..cluster.models import ClusterSpec, Host, HostRole
from .base import HostPhase
from .context import RunContext
from .install import mark_running, wait_for_controller, wait_for_node


def needs_upgrade(cluster: ClusterSpec, host: Host) -> bool:
    return host.is_running and not host.uninstall and host.running_version < cluster.version


def swap_binary(cluster: ClusterSpec, host: Host) -> None:
    staged = host.facts.pop('k0s_binary_tempfile', None)
    if staged is None:
        if host.binary_version == cluster.version:
            return
        raise ExecutionError(f"no k0s {cluster.version} binary staged on {host.address}")
    k0s.replace_binary(host, staged)
    host.facts['k0s_binary_version'] = str(cluster.version)


class UpgradeControllers(HostPhase):
    """Upgrade running controllers one at a time."""
    title = "Upgrade controllers"

    def __init__(self, no_wait: bool = False):
        self.no_wait = no_wait

    def select_hosts(self, cluster: ClusterSpec) -> List[Host]:
        return [h for h in cluster.controllers() if needs_upgrade(cluster, h)]

    def run_hosts(self, ctx: RunContext, cluster: ClusterSpec, hosts: List[Host]) -> None:
        self.run_serially(ctx, cluster, hosts)

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        ctx.sink.info(f"upgrading controller {host.running_version} -> {cluster.version}", host=host.identity)
        k0s.stop(host)
        swap_binary(cluster, host)
        k0s.start(host)
        if not self.no_wait:
            wait_for_controller(ctx, host)
        mark_running(cluster, host)


class UpgradeWorkers(HostPhase):
    """Upgrade running workers through the worker pool, draining them first."""
    title = "Upgrade workers"

    def __init__(self, no_drain: bool = False, no_wait: bool = False):
        self.no_drain = no_drain
        self.no_wait = no_wait

    def select_hosts(self, cluster: ClusterSpec) -> List[Host]:
        return [h for h in cluster.hosts if h.role is HostRole.WORKER and needs_upgrade(cluster, h)]

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        leader = cluster.leader()
        ctx.sink.info(f"upgrading worker {host.running_version} -> {cluster.version}", host=host.identity)
        if not self.no_drain:
            ctx.sink.debug("draining node", host=host.identity)
            k0s.drain(leader, host.hostname)
        k0s.stop(host)
        swap_binary(cluster, host)
        k0s.start(host)
        if not self.no_wait:
            wait_for_node(ctx, leader, host)
        if not self.no_drain:
            k0s.uncordon(leader, host.hostname)
        mark_running(cluster, host)
