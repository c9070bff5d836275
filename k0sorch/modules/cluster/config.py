"""Cluster definition loading.

A cluster file is YAML with the following shape::

    name: my-cluster
    version: v1.27.4+k0s.0
    hosts:
      - address: 10.0.0.1
        role: controller
        hooks:
          apply:
            before: ["echo hi"]
    flags:
      install_flags: ["--debug"]
    k0s_config:
      apiVersion: k0s.k0sproject.io/v1beta1
      kind: ClusterConfig
      spec: {}

The file is validated with pydantic and converted into the dataclasses in
``models`` that the phases share.
"""
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from jsonschema import ValidationError as SchemaError, validate
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .models import ClusterSpec, Host, HostRole, K0sVersion, UploadFile

logger = logging.getLogger("k0sorch.cluster.config")

K0S_CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "apiVersion": {"type": "string", "pattern": "^k0s\\.k0sproject\\.io/"},
        "kind": {"const": "ClusterConfig"},
        "metadata": {"type": "object"},
        "spec": {
            "type": "object",
            "properties": {
                "api": {"type": "object"},
                "network": {"type": "object"},
                "storage": {"type": "object"},
            },
        },
    },
    "required": ["apiVersion", "kind"],
}

CLUSTER_FLAG_KEYS = ("install_flags", "dynamic_config")


class UploadFileConfig(BaseModel):
    model_config = ConfigDict(extra='forbid')

    src: str
    dst_dir: str
    name: Optional[str] = None
    perm: str = '0644'


class HostConfig(BaseModel):
    """One inventory entry."""
    model_config = ConfigDict(extra='forbid')

    address: str
    role: HostRole
    user: str = 'root'
    port: int = Field(default=22, gt=0, lt=65536)
    key_path: Optional[str] = None
    install_flags: List[str] = Field(default_factory=list)
    environment: Dict[str, str] = Field(default_factory=dict)
    hooks: Dict[str, Dict[str, List[str]]] = Field(default_factory=dict)
    files: List[UploadFileConfig] = Field(default_factory=list)
    upload_binary: bool = False
    uninstall: bool = False

    @field_validator('hooks')
    @classmethod
    def known_stages(cls, v: Dict[str, Dict[str, List[str]]]) -> Dict[str, Dict[str, List[str]]]:
        for action, stages in v.items():
            unknown = set(stages) - {'before', 'after'}
            if unknown:
                raise ValueError(f"unknown hook stage(s) for '{action}': {', '.join(sorted(unknown))}")
        return v


class ClusterFile(BaseModel):
    """Top level cluster definition."""
    model_config = ConfigDict(extra='forbid')

    name: str = Field(min_length=1)
    version: str
    hosts: List[HostConfig] = Field(min_length=1)
    flags: Dict[str, Any] = Field(default_factory=dict)
    k0s_config: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('version')
    @classmethod
    def valid_version(cls, v: str) -> str:
        K0sVersion(v)
        return v

    @field_validator('k0s_config')
    @classmethod
    def valid_k0s_config(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        if v:
            validate_k0s_config(v)
        return v

    @model_validator(mode='after')
    def unique_hosts(self) -> 'ClusterFile':
        identities = [f"{h.address}:{h.port}" for h in self.hosts]
        duplicates = sorted({i for i in identities if identities.count(i) > 1})
        if duplicates:
            raise ValueError(f"duplicate hosts: {', '.join(duplicates)}")
        if not any(h.role is not HostRole.WORKER for h in self.hosts):
            raise ValueError("at least one controller host is required")
        return self


def validate_k0s_config(document: Dict[str, Any]) -> None:
    """Check the basic shape of a k0s ClusterConfig document.

    Raises:
        ValueError: If the document does not look like a k0s ClusterConfig
    """
    try:
        validate(instance=document, schema=K0S_CONFIG_SCHEMA)
    except SchemaError as e:
        raise ValueError(f"invalid k0s_config: {e.message}") from e


def cluster_spec_from_dict(data: Dict[str, Any]) -> ClusterSpec:
    """Validate a parsed cluster definition and build the shared model.

    Raises:
        ValueError: If the definition is invalid
    """
    try:
        parsed = ClusterFile.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid cluster definition:\n{e}") from e

    unknown_flags = set(parsed.flags) - set(CLUSTER_FLAG_KEYS)
    if unknown_flags:
        logger.warning(f"Ignoring unknown cluster flags: {', '.join(sorted(unknown_flags))}")

    hosts = [
        Host(
            address=h.address,
            role=h.role,
            user=h.user,
            port=h.port,
            key_path=h.key_path,
            install_flags=list(h.install_flags),
            environment=dict(h.environment),
            hooks={action: {stage: list(cmds) for stage, cmds in stages.items()}
                   for action, stages in h.hooks.items()},
            files=[UploadFile(**f.model_dump()) for f in h.files],
            upload_binary=h.upload_binary,
            uninstall=h.uninstall,
        )
        for h in parsed.hosts
    ]
    return ClusterSpec(
        name=parsed.name,
        version=K0sVersion(parsed.version),
        hosts=hosts,
        flags=dict(parsed.flags),
        k0s_config=dict(parsed.k0s_config),
    )


def load_cluster_spec(path: Union[str, Path]) -> ClusterSpec:
    """Load a cluster definition from a YAML file."""
    path = Path(path).expanduser()
    logger.info(f"Loading cluster definition from: {path}")
    if not path.exists():
        raise FileNotFoundError(f"Cluster definition not found at {path}")

    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid cluster definition: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Invalid cluster definition format: expected dict, got {type(data).__name__}")

    return cluster_spec_from_dict(data)
