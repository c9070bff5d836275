import json
from datetime import datetime, timezone

from .config import Config
from .modules.cluster.models import ClusterSpec


def load_registry():
    if Config.REGISTRY_PATH.exists():
        with open(Config.REGISTRY_PATH, "r") as f:
            return json.load(f)
    return {}


def save_registry(data):
    Config.REGISTRY_PATH.parent.mkdir(parents=True, exist_ok=True)
    with open(Config.REGISTRY_PATH, "w") as f:
        json.dump(data, f, indent=2)


def cluster_state(cluster: ClusterSpec, status: str, error: str = None):
    """Serializable snapshot of a cluster after a run, successful or not."""
    return {
        "version": str(cluster.version),
        "status": status,
        "error": error,
        "updated": datetime.now(timezone.utc).isoformat(),
        "leader": cluster.metadata.leader_address,
        "kubeconfig": cluster.metadata.kubeconfig,
        "hosts": [
            {
                "address": host.address,
                "port": host.port,
                "role": host.role.value,
                "reset": host.reset,
                "facts": {k: v for k, v in host.facts.items() if not k.endswith(("_tempfile", "_local"))},
            }
            for host in cluster.hosts
        ],
    }


def record_run(cluster: ClusterSpec, status: str, error: str = None):
    data = load_registry()
    data[cluster.name] = cluster_state(cluster, status, error)
    save_registry(data)
    return data[cluster.name]
