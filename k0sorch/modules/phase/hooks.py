"""User-declared command hooks."""
from typing import List

from ..cluster.models import ClusterSpec, Host
from .base import HostPhase
from .context import RunContext


class RunHooks(HostPhase):
    """Run the ``hooks[action][stage]`` commands of every host, in order.

    A pipeline may contain several instances; the ``(stage, action)`` tag
    tells them apart.
    """

    def __init__(self, stage: str, action: str):
        if stage not in ('before', 'after'):
            raise ValueError(f"Unknown hook stage: {stage}")
        self.stage = stage
        self.action = action
        self.title = f"Run {stage} {action} hooks"

    def select_hosts(self, cluster: ClusterSpec) -> List[Host]:
        return [h for h in cluster.hosts if h.hook_commands(self.action, self.stage)]

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        for command in host.hook_commands(self.action, self.stage):
            ctx.check_cancelled()
            ctx.sink.info(f"running {self.stage}-{self.action} hook", host=host.identity, command=command)
            host.connection.exec(command)
