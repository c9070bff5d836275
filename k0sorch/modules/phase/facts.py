"""Fact gathering and validation phases."""
from collections import defaultdict
from typing import Dict, List

from ...exceptions import PhaseError, PreconditionError
from .. import k0s
from ..cluster.models import ClusterSpec, Host, HostRole
from .base import HostPhase, Phase
from .context import RunContext


class GatherFacts(HostPhase):
    """Collect architecture and hostname of every host."""
    title = "Gather host facts"

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        conn = host.connection
        machine = conn.exec("uname -m")
        arch = k0s.ARCH_MAP.get(machine)
        if arch is None:
            raise PreconditionError(f"unsupported architecture {machine!r}")
        host.facts['arch'] = arch
        host.facts['hostname'] = conn.exec("hostname -s").lower()
        ctx.sink.debug("gathered facts", host=host.identity, arch=arch, hostname=host.facts['hostname'])


class ValidateHosts(Phase):
    """Check the inventory is consistent before anything is installed."""
    title = "Validate hosts"

    def run(self, ctx: RunContext, cluster: ClusterSpec) -> None:
        failures: Dict[str, Exception] = {}

        by_hostname: Dict[str, List[Host]] = defaultdict(list)
        for host in cluster.hosts:
            by_hostname[host.hostname].append(host)
        for hostname, hosts in by_hostname.items():
            if len(hosts) > 1:
                for host in hosts:
                    failures[host.identity] = PreconditionError(f"hostname '{hostname}' is not unique")

        if failures:
            raise PhaseError(self.title, failures)

        if not cluster.controllers():
            raise PreconditionError("at least one controller host is required")
        if all(h.uninstall for h in cluster.controllers()):
            raise PreconditionError("cannot uninstall every controller; use reset instead")
        singles = [h for h in cluster.hosts if h.role is HostRole.SINGLE]
        if singles and len(cluster.hosts) > 1:
            raise PreconditionError("a 'single' role host cannot be combined with other hosts")


class GatherK0sFacts(HostPhase):
    """Find out which k0s version is installed and running on each host."""
    title = "Gather k0s facts"

    def run(self, ctx: RunContext, cluster: ClusterSpec) -> None:
        super().run(ctx, cluster)
        leader = cluster.leader()
        cluster.metadata.leader_address = leader.address
        ctx.sink.info("cluster leader", host=leader.identity, running=leader.is_running)

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        host.facts['k0s_binary_version'] = k0s.binary_version(host)
        state = k0s.status(host)
        if state:
            host.facts['k0s_running_version'] = state.get('Version')
            host.facts['k0s_role'] = state.get('Role')
            ctx.sink.info(f"is running k0s {state.get('Role')} version {state.get('Version')}", host=host.identity)
        else:
            host.facts['k0s_running_version'] = None
            host.facts['k0s_role'] = None


class ValidateFacts(Phase):
    """Refuse downgrades unless explicitly allowed."""
    title = "Validate facts"

    def __init__(self, skip_downgrade_check: bool = False):
        self.skip_downgrade_check = skip_downgrade_check

    def run(self, ctx: RunContext, cluster: ClusterSpec) -> None:
        newer = [h for h in cluster.hosts if h.is_running and h.running_version > cluster.version]
        if not newer:
            return
        if self.skip_downgrade_check:
            for host in newer:
                ctx.sink.warning(
                    f"running version {host.running_version} is newer than {cluster.version}, downgrade check skipped",
                    host=host.identity,
                )
            return
        raise PhaseError(self.title, {
            host.identity: PreconditionError(
                f"can't downgrade k0s from {host.running_version} to {cluster.version}"
            )
            for host in newer
        })
