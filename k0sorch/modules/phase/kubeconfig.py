"""Admin kubeconfig retrieval."""
from typing import Optional
from urllib.parse import urlsplit

import yaml

from ...exceptions import ExecutionError
from .. import k0s
from ..cluster.models import ClusterSpec
from .base import Phase
from .context import RunContext

API_PORT = 6443


def server_url(address: str, port: int = API_PORT) -> str:
    """Normalize an API address to an ``https://host:port`` URL."""
    if '://' in address:
        return address
    host = f"[{address}]" if ':' in address and not address.startswith('[') else address
    return f"https://{host}:{port}"


def rewrite_server(kubeconfig: str, address: str) -> str:
    """Point every cluster entry of a kubeconfig at ``address``, keeping its port."""
    try:
        document = yaml.safe_load(kubeconfig)
    except yaml.YAMLError as e:
        raise ExecutionError(f"leader returned an unparseable kubeconfig: {e}") from e
    if not isinstance(document, dict):
        raise ExecutionError("leader returned an empty kubeconfig")

    for entry in document.get('clusters') or []:
        cluster = entry.get('cluster') or {}
        port = urlsplit(cluster.get('server') or '').port or API_PORT
        cluster['server'] = server_url(address, port)
        entry['cluster'] = cluster
    return yaml.safe_dump(document, default_flow_style=False, sort_keys=False)


class GetKubeconfig(Phase):
    """Fetch the admin kubeconfig from the leader into the cluster metadata."""
    title = "Get admin kubeconfig"

    def __init__(self, api_address: Optional[str] = None):
        self.api_address = api_address

    def run(self, ctx: RunContext, cluster: ClusterSpec) -> None:
        leader = cluster.leader()
        raw = k0s.admin_kubeconfig(leader)
        cluster.metadata.kubeconfig = rewrite_server(raw, self.api_address or leader.address)
        ctx.sink.info("fetched admin kubeconfig", host=leader.identity)
