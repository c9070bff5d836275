"""Cluster data model: hosts, desired state and run options."""

from .models import (
    ClusterMetadata, ClusterSpec, Host, HostRole, K0sVersion, RunOptions, UploadFile,
)
from .config import cluster_spec_from_dict, load_cluster_spec, validate_k0s_config

__all__ = [
    'ClusterMetadata',
    'ClusterSpec',
    'Host',
    'HostRole',
    'K0sVersion',
    'RunOptions',
    'UploadFile',
    'cluster_spec_from_dict',
    'load_cluster_spec',
    'validate_k0s_config',
]
