"""k0s configuration rendering."""
import copy
from typing import Any, Dict, List

import yaml

from ...config import Config
from ..cluster.config import validate_k0s_config
from ..cluster.models import ClusterSpec, Host
from .base import HostPhase
from .context import RunContext

DEFAULT_API_VERSION = "k0s.k0sproject.io/v1beta1"


def render_k0s_config(cluster: ClusterSpec) -> Dict[str, Any]:
    """Merge the declared k0s config with what the inventory implies.

    The API address defaults to the leader and every controller address is
    added to the certificate SANs.
    """
    document = copy.deepcopy(cluster.k0s_config) or {}
    document.setdefault('apiVersion', DEFAULT_API_VERSION)
    document.setdefault('kind', 'ClusterConfig')
    document.setdefault('metadata', {}).setdefault('name', cluster.name)
    spec = document.setdefault('spec', {}) or {}
    document['spec'] = spec
    api = spec.setdefault('api', {}) or {}
    spec['api'] = api

    api.setdefault('address', cluster.leader().address)
    sans = list(api.get('sans') or [])
    for host in cluster.controllers():
        if host.uninstall:
            continue
        if host.address not in sans:
            sans.append(host.address)
    api['sans'] = sans

    validate_k0s_config(document)
    return document


class ConfigureK0s(HostPhase):
    """Write the k0s config to every controller whose copy differs."""
    title = "Configure k0s"

    def __init__(self):
        self.rendered = ''

    def select_hosts(self, cluster: ClusterSpec) -> List[Host]:
        return [h for h in cluster.controllers() if not h.uninstall]

    def run(self, ctx: RunContext, cluster: ClusterSpec) -> None:
        self.rendered = yaml.safe_dump(render_k0s_config(cluster), default_flow_style=False, sort_keys=False)
        cluster.metadata.extras['k0s_config'] = self.rendered
        super().run(ctx, cluster)

    def run_host(self, ctx: RunContext, cluster: ClusterSpec, host: Host) -> None:
        conn = host.connection
        current = conn.read_file(Config.K0S_CONFIG_PATH) if conn.file_exists(Config.K0S_CONFIG_PATH) else None
        changed = current is None or current.strip() != self.rendered.strip()
        host.facts['k0s_config_changed'] = changed
        if changed:
            conn.write_file(Config.K0S_CONFIG_PATH, self.rendered, perm='0600')
            ctx.sink.info("wrote k0s configuration", host=host.identity)
            if host.is_running:
                ctx.sink.warning("k0s configuration changed on a running controller; it takes effect on restart",
                                 host=host.identity)
