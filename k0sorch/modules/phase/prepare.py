"""Host preparation phases."""
from typing import List

from ...exceptions import PreconditionError
from ..cluster.models import ClusterSpec, Host
from .base import HostPhase
from .context import RunContext

PACKAGE_INSTALL = {
    'ubuntu': "apt-get update -qq && DEBIAN_FRONTEND=noninteractive apt-get install -y -qq {packages}",
    'debian': "apt-get update -qq && DEBIAN_FRONTEND=noninteractive apt-get install -y -qq {packages}",
    'centos': "yum install -y {packages}",
    'rhel': "yum install -y {packages}",
    'rocky': "dnf install -y {packages}",
    'almalinux': "dnf install -y {packages}",
    'fedora': "dnf install -y {packages}",
    'alpine': "apk add --no-cache {packages}",
    'sles': "zypper --non-interactive install {packages}",
    'opensuse-leap': "zypper --non-interactive install {packages}",
}


class PrepareHosts(HostPhase):
    """Install the tools the later phases rely on and create k0s directories."""
    title = "Prepare hosts"

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        conn = host.connection
        missing = []
        if not host.upload_binary and not conn.exec_ok("command -v curl"):
            missing.append('curl')
        if missing:
            os_id = host.facts.get('os', '')
            template = PACKAGE_INSTALL.get(os_id)
            if template is None:
                raise PreconditionError(f"missing {', '.join(missing)} and no known package manager for '{os_id}'")
            ctx.sink.info(f"installing {', '.join(missing)}", host=host.identity)
            conn.exec(template.format(packages=' '.join(missing)), sudo=True)
        conn.exec("mkdir -p /etc/k0s", sudo=True)


class PrepareArm(HostPhase):
    """Let etcd start on 32-bit ARM controllers."""
    title = "Prepare ARM nodes"

    def select_hosts(self, cluster: ClusterSpec) -> List[Host]:
        return [h for h in cluster.controllers() if h.facts.get('arch') == 'arm' and not h.is_running]

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        host.environment.setdefault('ETCD_UNSUPPORTED_ARCH', 'arm')
        ctx.sink.debug("enabled ETCD_UNSUPPORTED_ARCH", host=host.identity)
