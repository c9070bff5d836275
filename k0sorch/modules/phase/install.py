"""Phases that bring new hosts into the cluster."""
from typing import List

from .. import k0s
from ..cluster.models import ClusterSpec, Host, HostRole
from .base import HostPhase
from .context import RunContext


def mark_running(cluster: ClusterSpec, host: Host) -> None:
    host.facts['k0s_running_version'] = str(cluster.version)
    host.facts['k0s_binary_version'] = str(cluster.version)
    host.facts['k0s_role'] = host.install_role()


def wait_for_controller(ctx: RunContext, host: Host) -> None:
    ctx.wait_until(lambda: k0s.controller_ready(host), f"k0s controller on {host.address} to become ready")


def wait_for_node(ctx: RunContext, leader: Host, host: Host) -> None:
    ctx.wait_until(lambda: k0s.node_ready(leader, host.hostname), f"node {host.hostname} to become ready")


class InitializeK0s(HostPhase):
    """Install and start k0s on the leader of a new cluster."""
    title = "Initialize the k0s cluster"

    def __init__(self, no_wait: bool = False):
        self.no_wait = no_wait

    def select_hosts(self, cluster: ClusterSpec) -> List[Host]:
        leader = cluster.leader()
        return [] if leader.is_running else [leader]

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        ctx.sink.info(f"installing k0s {cluster.version} as the first controller", host=host.identity)
        k0s.install(cluster, host)
        k0s.start(host)
        if not self.no_wait:
            wait_for_controller(ctx, host)
        mark_running(cluster, host)
        cluster.metadata.leader_address = host.address


class InstallControllers(HostPhase):
    """Join additional controllers, one at a time to keep etcd quorum safe."""
    title = "Install controllers"

    def __init__(self, no_wait: bool = False):
        self.no_wait = no_wait

    def select_hosts(self, cluster: ClusterSpec) -> List[Host]:
        leader = cluster.leader()
        return [
            h for h in cluster.controllers()
            if h is not leader and not h.is_running and not h.uninstall
        ]

    def run_hosts(self, ctx: RunContext, cluster: ClusterSpec, hosts: List[Host]) -> None:
        self.run_serially(ctx, cluster, hosts)

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        leader = cluster.leader()
        token = k0s.create_token(leader, 'controller')
        token_file = k0s.write_token(host, token)
        try:
            ctx.sink.info("installing k0s controller", host=host.identity)
            k0s.install(cluster, host, token_file=token_file)
            k0s.start(host)
            if not self.no_wait:
                wait_for_controller(ctx, host)
        finally:
            k0s.remove_token(host)
        mark_running(cluster, host)


class InstallWorkers(HostPhase):
    """Join new workers in parallel with a shared join token."""
    title = "Install workers"

    def __init__(self, no_wait: bool = False):
        self.no_wait = no_wait
        self._token = None

    def select_hosts(self, cluster: ClusterSpec) -> List[Host]:
        return [
            h for h in cluster.hosts
            if h.role is HostRole.WORKER and not h.is_running and not h.uninstall
        ]

    def run_hosts(self, ctx: RunContext, cluster: ClusterSpec, hosts: List[Host]) -> None:
        leader = cluster.leader()
        ctx.sink.debug("creating worker join token", host=leader.identity)
        self._token = k0s.create_token(leader, 'worker')
        try:
            super().run_hosts(ctx, cluster, hosts)
        finally:
            self._token = None

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        token_file = k0s.write_token(host, self._token)
        try:
            ctx.sink.info("installing k0s worker", host=host.identity)
            k0s.install(cluster, host, token_file=token_file)
            k0s.start(host)
            if not self.no_wait:
                wait_for_node(ctx, cluster.leader(), host)
        finally:
            k0s.remove_token(host)
        mark_running(cluster, host)
