"""Session bracketing phases."""
from typing import Dict

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ...config import Config
from ...exceptions import ConnectivityError, PreconditionError
from ..cluster.models import ClusterSpec, Host
from .base import HostPhase, Phase
from .context import RunContext


class Connect(HostPhase):
    """Open a session to every host, retrying unreachable ones."""
    title = "Connect to hosts"

    def select_hosts(self, cluster: ClusterSpec):
        return [h for h in cluster.hosts if h.connection is None or not h.connection.is_connected]

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        conn = ctx.connector(host)
        for attempt in Retrying(
            stop=stop_after_attempt(Config.MAX_RETRIES),
            wait=wait_exponential(multiplier=Config.RETRY_DELAY, max=30),
            retry=retry_if_exception_type(ConnectivityError),
            sleep=ctx.cancel.wait,
            reraise=True,
        ):
            with attempt:
                ctx.check_cancelled()
                conn.connect()
        host.connection = conn
        ctx.sink.info("connected", host=host.identity)


class Disconnect(Phase):
    """Close every open session. Never fails."""
    title = "Disconnect from hosts"

    def run(self, ctx: RunContext, cluster: ClusterSpec) -> None:
        for host in cluster.hosts:
            if host.connection is not None:
                host.connection.close()
                host.connection = None


def parse_os_release(content: str) -> Dict[str, str]:
    values = {}
    for line in content.splitlines():
        if '=' not in line or line.startswith('#'):
            continue
        key, _, value = line.partition('=')
        values[key.strip()] = value.strip().strip('"\'')
    return values


class DetectOS(HostPhase):
    """Identify the operating system of every host."""
    title = "Detect host operating systems"

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        conn = host.connection
        kernel = conn.exec("uname -s")
        if kernel != 'Linux':
            raise PreconditionError(f"unsupported kernel {kernel!r}, k0s requires Linux")
        release = parse_os_release(conn.exec("cat /etc/os-release"))
        host.facts['os'] = release.get('ID', 'linux')
        host.facts['os_version'] = release.get('VERSION_ID', '')
        ctx.sink.info(f"is running {release.get('PRETTY_NAME', host.facts['os'])}", host=host.identity)
