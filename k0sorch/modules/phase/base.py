"""Phase contract."""
from typing import List

from ...exceptions import PhaseError
from ..cluster.models import ClusterSpec, Host
from .context import RunContext


class Phase:
    """One ordered step of a pipeline.

    ``run`` either returns normally or raises. Phases hand information to
    later phases only by mutating hosts and ``cluster.metadata``.
    """
    title = "Phase"
    uploads = False

    def run(self, ctx: RunContext, cluster: ClusterSpec) -> None:
        raise NotImplementedError

    def __str__(self):
        return self.title

    def __repr__(self):
        return f"<{type(self).__name__} {self.title!r}>"


class HostPhase(Phase):
    """A phase that fans out over a subset of hosts.

    Subclasses pick their hosts in ``select_hosts`` (evaluated when the
    phase starts) and do the work for one host in ``run_host``. All
    selected hosts are processed; the phase fails afterwards if any of
    them failed.
    """

    def select_hosts(self, cluster: ClusterSpec) -> List[Host]:
        return list(cluster.hosts)

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        raise NotImplementedError

    def run(self, ctx: RunContext, cluster: ClusterSpec) -> None:
        hosts = self.select_hosts(cluster)
        if not hosts:
            ctx.sink.debug("no hosts need processing", phase=self.title)
            return
        self.run_hosts(ctx, cluster, hosts)

    def run_hosts(self, ctx: RunContext, cluster: ClusterSpec, hosts: List[Host]) -> None:
        failures = ctx.parallel(
            hosts,
            lambda host: self.run_host(ctx, cluster, host),
            uploads=self.uploads,
        )
        for identity, exc in sorted(failures.items()):
            ctx.sink.error(f"{self.title} failed", host=identity, error=exc)
        if failures:
            raise PhaseError(self.title, failures)

    def run_serially(self, ctx: RunContext, cluster: ClusterSpec, hosts: List[Host]) -> None:
        """Process hosts one at a time, stopping at the first failure."""
        for host in hosts:
            ctx.check_cancelled()
            try:
                self.run_host(ctx, cluster, host)
            except Exception as e:
                ctx.sink.error(f"{self.title} failed", host=host.identity, error=e)
                raise PhaseError(self.title, {host.identity: e}) from e
