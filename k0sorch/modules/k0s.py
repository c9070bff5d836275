"""Remote k0s operations.

Thin wrappers that build the k0s command lines used by the phases and
interpret their output. Every function takes a connected ``Host``.
"""
import json
import logging
import shlex
from typing import Any, Dict, List, Optional

from ..config import Config
from ..exceptions import CommandError
from .cluster.models import ClusterSpec, Host

logger = logging.getLogger("k0sorch.k0s")

K0S = Config.K0S_BINARY_PATH
TOKEN_PATH = "/etc/k0s/k0stoken"

ARCH_MAP = {
    'x86_64': 'amd64',
    'amd64': 'amd64',
    'aarch64': 'arm64',
    'arm64': 'arm64',
    'armv7l': 'arm',
    'armv8l': 'arm',
    'armhf': 'arm',
}


def binary_version(host: Host) -> Optional[str]:
    """Version of the installed k0s binary, or None when absent."""
    conn = host.connection
    if not conn.exec_ok(f"test -x {K0S}", sudo=True):
        return None
    return conn.exec(f"{K0S} version", sudo=True) or None


def status(host: Host) -> Optional[Dict[str, Any]]:
    """Parsed ``k0s status`` output, or None when k0s is not running."""
    try:
        output = host.connection.exec(f"{K0S} status -o json", sudo=True)
    except CommandError:
        return None
    try:
        return json.loads(output)
    except ValueError:
        logger.debug(f"Unparseable k0s status on {host.address}: {output!r}")
        return None


def api_ready(host: Host) -> bool:
    return host.connection.exec_ok(f"{K0S} kubectl get --raw=/readyz", sudo=True)


def controller_ready(host: Host) -> bool:
    return status(host) is not None and api_ready(host)


def install_flags(cluster: ClusterSpec, host: Host) -> List[str]:
    """Flags for ``k0s install`` from cluster flags, host flags and role."""
    flags = list(cluster.flags.get('install_flags', []))
    flags.extend(host.install_flags)
    flags.extend(host.role_flags())
    if host.is_controller and cluster.flags.get('dynamic_config'):
        flags.append('--enable-dynamic-config')
    for key, value in sorted(host.environment.items()):
        flags.append(f"--env={key}={value}")
    return flags


def install_command(cluster: ClusterSpec, host: Host, token_file: Optional[str] = None) -> str:
    parts = [K0S, 'install', host.install_role()]
    if host.is_controller:
        parts.append(f"--config={Config.K0S_CONFIG_PATH}")
    if token_file:
        parts.append(f"--token-file={token_file}")
    parts.extend(install_flags(cluster, host))
    return ' '.join(shlex.quote(p) for p in parts)


def install(cluster: ClusterSpec, host: Host, token_file: Optional[str] = None) -> None:
    host.connection.exec(install_command(cluster, host, token_file), sudo=True)


def start(host: Host) -> None:
    host.connection.exec(f"{K0S} start", sudo=True)


def stop(host: Host) -> None:
    host.connection.exec(f"{K0S} stop", sudo=True)


def reset(host: Host) -> None:
    host.connection.exec(f"{K0S} reset", sudo=True)


def replace_binary(host: Host, source: str) -> None:
    host.connection.exec(f"install -m 0755 {shlex.quote(source)} {K0S} && rm -f {shlex.quote(source)}", sudo=True)


def create_token(leader: Host, role: str, expiry: str = '1h') -> str:
    return leader.connection.exec(f"{K0S} token create --role={role} --expiry={expiry}", sudo=True)


def write_token(host: Host, token: str) -> str:
    host.connection.write_file(TOKEN_PATH, token, perm='0600')
    return TOKEN_PATH


def remove_token(host: Host) -> None:
    host.connection.exec(f"rm -f {TOKEN_PATH}", sudo=True)


def kubectl(leader: Host, args: str) -> str:
    return leader.connection.exec(f"{K0S} kubectl {args}", sudo=True)


def node_ready(leader: Host, node_name: str) -> bool:
    """True when the node reports the Ready condition."""
    try:
        output = kubectl(leader, f"get node {shlex.quote(node_name)} -o json")
    except CommandError:
        return False
    try:
        conditions = json.loads(output).get('status', {}).get('conditions', [])
    except ValueError:
        return False
    return any(c.get('type') == 'Ready' and c.get('status') == 'True' for c in conditions)


def drain(leader: Host, node_name: str) -> None:
    kubectl(
        leader,
        f"drain --grace-period=120 --force --timeout=300s --ignore-daemonsets "
        f"--delete-emptydir-data {shlex.quote(node_name)}",
    )


def uncordon(leader: Host, node_name: str) -> None:
    kubectl(leader, f"uncordon {shlex.quote(node_name)}")


def delete_node(leader: Host, node_name: str) -> None:
    kubectl(leader, f"delete node {shlex.quote(node_name)}")


def etcd_leave(leader: Host, peer_address: str) -> None:
    leader.connection.exec(f"{K0S} etcd leave --peer-address={peer_address}", sudo=True)


def admin_kubeconfig(leader: Host) -> str:
    return leader.connection.exec(f"{K0S} kubeconfig admin", sudo=True)


def restore(host: Host, archive: str) -> None:
    host.connection.exec(f"{K0S} restore {shlex.quote(archive)}", sudo=True)
