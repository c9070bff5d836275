"""Data models for k0s cluster orchestration."""
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from functools import total_ordering
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ...config import Config


class HostRole(str, Enum):
    """Host roles in a k0s cluster."""
    CONTROLLER = 'controller'
    WORKER = 'worker'
    CONTROLLER_WORKER = 'controller+worker'
    SINGLE = 'single'

    @property
    def is_controller(self) -> bool:
        return self is not HostRole.WORKER

    @property
    def is_worker(self) -> bool:
        return self is not HostRole.CONTROLLER


_VERSION_RE = re.compile(
    r'^v?(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)'
    r'(?:-(?P<pre>[0-9A-Za-z.-]+))?'
    r'(?:\+k0s\.(?P<build>\d+))?$'
)


@total_ordering
class K0sVersion:
    """A k0s release version such as ``v1.27.4+k0s.0``.

    Pre-releases sort before the release they precede; the ``k0s.N`` build
    suffix orders rebuilds of the same Kubernetes version.
    """

    def __init__(self, value: str):
        match = _VERSION_RE.match(value.strip())
        if not match:
            raise ValueError(f"Invalid k0s version: {value!r}")
        self.major = int(match.group('major'))
        self.minor = int(match.group('minor'))
        self.patch = int(match.group('patch'))
        self.pre = match.group('pre') or ''
        self.build = int(match.group('build') or 0)

    def _pre_key(self):
        # numeric identifiers compare as integers and sort before alphanumeric ones
        return tuple(
            (0, int(part), '') if part.isdigit() else (1, 0, part)
            for part in self.pre.split('.')
        ) if self.pre else ()

    def _key(self):
        # a release (no pre) sorts after any of its pre-releases
        return (self.major, self.minor, self.patch, self.pre == '', self._pre_key(), self.build)

    def __eq__(self, other):
        if not isinstance(other, K0sVersion):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other):
        if not isinstance(other, K0sVersion):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self):
        return hash(self._key())

    def __str__(self):
        value = f"v{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            value += f"-{self.pre}"
        return f"{value}+k0s.{self.build}"

    def __repr__(self):
        return f"K0sVersion('{self}')"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional['K0sVersion']:
        """Parse a version, returning None for empty or unparseable input."""
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass
class UploadFile:
    """A local file to place on a host before k0s is configured."""
    src: str
    dst_dir: str
    name: Optional[str] = None
    perm: str = '0644'

    @property
    def destination(self) -> str:
        return f"{self.dst_dir.rstrip('/')}/{self.name or os.path.basename(self.src)}"


@dataclass(eq=False)
class Host:
    """A machine in the managed fleet.

    The host set is the only mutable resource shared between phases:
    phases populate ``facts``, flip ``reset`` and hold the live session in
    ``connection``.
    """
    address: str
    role: HostRole
    user: str = 'root'
    port: int = 22
    key_path: Optional[str] = None
    install_flags: List[str] = field(default_factory=list)
    environment: Dict[str, str] = field(default_factory=dict)
    hooks: Dict[str, Dict[str, List[str]]] = field(default_factory=dict)
    files: List[UploadFile] = field(default_factory=list)
    upload_binary: bool = False
    uninstall: bool = False
    facts: Dict[str, Any] = field(default_factory=dict)
    reset: bool = False
    connection: Any = field(default=None, repr=False)

    @property
    def identity(self) -> str:
        return f"{self.address}:{self.port}"

    def __str__(self):
        return f"[ssh] {self.user}@{self.identity}"

    @property
    def is_controller(self) -> bool:
        return self.role.is_controller

    @property
    def is_worker(self) -> bool:
        return self.role.is_worker

    @property
    def hostname(self) -> str:
        return self.facts.get('hostname') or self.address

    @property
    def running_version(self) -> Optional[K0sVersion]:
        return K0sVersion.parse(self.facts.get('k0s_running_version'))

    @property
    def binary_version(self) -> Optional[K0sVersion]:
        return K0sVersion.parse(self.facts.get('k0s_binary_version'))

    @property
    def is_running(self) -> bool:
        return self.running_version is not None

    def hook_commands(self, action: str, stage: str) -> List[str]:
        return list(self.hooks.get(action, {}).get(stage, []))

    def install_role(self) -> str:
        """Role argument for ``k0s install``."""
        return 'worker' if self.role is HostRole.WORKER else 'controller'

    def role_flags(self) -> List[str]:
        if self.role is HostRole.CONTROLLER_WORKER:
            return ['--enable-worker']
        if self.role is HostRole.SINGLE:
            return ['--single']
        return []


@dataclass
class ClusterMetadata:
    """Outputs derived by phases during a run."""
    kubeconfig: str = ''
    leader_address: Optional[str] = None
    extras: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ClusterSpec:
    """Declarative desired state of a cluster."""
    name: str
    version: K0sVersion
    hosts: List[Host] = field(default_factory=list)
    flags: Dict[str, Any] = field(default_factory=dict)
    k0s_config: Dict[str, Any] = field(default_factory=dict)
    metadata: ClusterMetadata = field(default_factory=ClusterMetadata)

    def __post_init__(self):
        seen = set()
        for host in self.hosts:
            if host.identity in seen:
                raise ValueError(f"Duplicate host in inventory: {host.identity}")
            seen.add(host.identity)

    def controllers(self) -> List[Host]:
        return [h for h in self.hosts if h.is_controller]

    def workers(self) -> List[Host]:
        return [h for h in self.hosts if h.is_worker]

    def find(self, identity: str) -> Optional[Host]:
        return next((h for h in self.hosts if h.identity == identity), None)

    def leader(self) -> Host:
        """First controller already running k0s, else the first controller.

        Controllers marked for uninstall are only considered when nothing
        else is left.
        """
        controllers = [h for h in self.controllers() if not h.uninstall] or self.controllers()
        if not controllers:
            raise ValueError(f"Cluster '{self.name}' has no controller hosts")
        return next((h for h in controllers if h.is_running and not h.reset), controllers[0])

    def binary_url(self, arch: str) -> str:
        return Config.K0S_DOWNLOAD_URL.format(version=str(self.version), arch=arch)


class RunOptions(BaseModel):
    """Run-scoped options threaded into the phases of one run."""
    skip_downgrade_check: bool = False
    no_drain: bool = False
    no_wait: bool = False
    restore_from: Optional[str] = None
    kubeconfig_api_address: Optional[str] = None
    concurrency: int = Field(default=Config.DEFAULT_CONCURRENCY, gt=0)
    concurrent_uploads: int = Field(default=Config.DEFAULT_CONCURRENT_UPLOADS, gt=0)
