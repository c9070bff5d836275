import json
import re
import shlex
import threading
from types import SimpleNamespace

import pytest

from k0sorch.config import Config
from k0sorch.exceptions import CommandError, ConnectivityError
from k0sorch.modules.cluster import ClusterSpec, Host, HostRole, K0sVersion

K0S = Config.K0S_BINARY_PATH
RELEASE = "v1.28.4+k0s.0"

UBUNTU = 'ID=ubuntu\nVERSION_ID="22.04"\nPRETTY_NAME="Ubuntu 22.04.3 LTS"\n'

KUBECONFIG = """apiVersion: v1
clusters:
- cluster:
    certificate-authority-data: Zm9v
    server: https://localhost:6443
  name: local
contexts:
- context:
    cluster: local
    user: user
  name: Default
current-context: Default
kind: Config
users:
- name: user
  user:
    client-certificate-data: YmFy
"""


def ok(out=""):
    return 0, out, ""


def fail(err="", status=1):
    return status, "", err


class FakeMachine:
    """Remote state of one simulated host, kept across sessions."""

    def __init__(self, fleet, address, hostname=None, machine="x86_64", os_release=UBUNTU,
                 version=None, running=False, role=None):
        self.fleet = fleet
        self.address = address
        self.hostname = hostname or address.replace('.', '-')
        self.machine = machine
        self.os_release = os_release
        self.binary = version
        self.running = version if running else None
        self.role = role
        self.files = {}
        self.uploads = {}
        self.lock_owner = None
        self.lock_age = 0
        self.failures = {}
        self.unreachable = False
        self.connect_attempts = 0
        self.commands = []

    def handle(self, command):
        for needle, err in self.failures.items():
            if needle in command:
                return fail(err)

        lock = Config.LOCK_PATH
        if "set -C" in command:
            if self.lock_owner is not None:
                return fail("cannot overwrite existing file")
            self.lock_owner = re.search(r"echo (\S+) >", command).group(1)
            self.lock_age = 0
            return ok()
        if command == f"cat {lock} 2>/dev/null || true":
            return ok(self.lock_owner or "")
        if "stat -c %Y" in command:
            return ok(str(self.lock_age))
        if command == f"touch {lock}":
            self.lock_age = 0
            return ok()
        if command == f"rm -f {lock}":
            self.lock_owner = None
            return ok()
        if command.startswith('if [ "$(cat'):
            if self.lock_owner == re.search(r'= "(\S+)" \]', command).group(1):
                self.lock_owner = None
            return ok()

        if command == "uname -s":
            return ok("Linux")
        if command == "uname -m":
            return ok(self.machine)
        if command == "hostname -s":
            return ok(self.hostname)
        if command == "cat /etc/os-release":
            return ok(self.os_release)
        if command == "command -v curl":
            return ok("/usr/bin/curl")

        if command == f"test -x {K0S}":
            return ok() if self.binary else fail()
        if command == f"{K0S} version":
            return ok(self.binary)
        if command == f"{K0S} status -o json":
            if not self.running:
                return fail("k0s is not running")
            return ok(json.dumps({"Version": self.running, "Role": self.role}))
        if command == f"{K0S} kubectl get --raw=/readyz":
            return ok("ok") if self.running and self.role != "worker" else fail()
        if command.startswith(f"{K0S} install "):
            self.role = shlex.split(command)[2]
            return ok()
        if command == f"{K0S} start":
            self.running = self.binary
            return ok()
        if command == f"{K0S} stop":
            self.running = None
            return ok()
        if command == f"{K0S} reset":
            self.binary = None
            self.role = None
            self.files.pop(Config.K0S_CONFIG_PATH, None)
            return ok()
        if command.startswith(f"{K0S} token create"):
            role = re.search(r"--role=(\w+)", command).group(1)
            return ok(f"token-{role}")
        if command.startswith(f"{K0S} kubectl get node "):
            node = self.fleet.by_hostname(shlex.split(command)[4])
            ready = "True" if node is not None and node.running else "False"
            return ok(json.dumps({"status": {"conditions": [{"type": "Ready", "status": ready}]}}))
        if command == f"{K0S} kubeconfig admin":
            return ok(KUBECONFIG)
        if command.startswith(f"{K0S} "):
            return ok()

        if command.startswith("curl -sSLf -o "):
            self.files[shlex.split(command)[3]] = self.fleet.release
            return ok()
        if command.startswith("install -m 0755 "):
            self.binary = self.files.pop(shlex.split(command)[3])
            return ok()
        if command.startswith("test -e "):
            return ok() if shlex.split(command)[2] in self.files else fail()
        if command.startswith("cat "):
            path = shlex.split(command)[1]
            return ok(self.files[path]) if path in self.files else fail("No such file or directory")
        if command.startswith("rm -f "):
            for path in shlex.split(command)[2:]:
                self.files.pop(path, None)
            return ok()
        return ok()


class FakeConnection:
    """In-memory stand-in for SSHConnection."""

    def __init__(self, machine):
        self.machine = machine
        self.connected = False

    @property
    def identity(self):
        return f"{self.machine.address}:22"

    def connect(self):
        self.machine.connect_attempts += 1
        if self.machine.unreachable:
            raise ConnectivityError(self.identity, "connection refused")
        self.connected = True

    def close(self):
        self.connected = False

    @property
    def is_connected(self):
        return self.connected

    def _run(self, command):
        self.machine.commands.append(command)
        self.machine.fleet.record(self.machine.address, command)
        return self.machine.handle(command)

    def exec(self, command, sudo=False, timeout=None):
        status, out, err = self._run(command)
        if status != 0:
            raise CommandError(self.identity, command, status, err)
        return out.strip()

    def exec_ok(self, command, sudo=False):
        return self._run(command)[0] == 0

    def upload(self, local_path, remote_path, perm='0644', sudo=True):
        self.machine.uploads[remote_path] = local_path
        if remote_path.startswith(f"{K0S}."):
            self.machine.files[remote_path] = self.machine.fleet.release
        else:
            self.machine.files[remote_path] = f"<{local_path}>"

    def write_file(self, remote_path, content, perm='0600', sudo=True):
        self.machine.files[remote_path] = content

    def read_file(self, remote_path, sudo=True):
        return self.exec(f"cat {shlex.quote(remote_path)}", sudo=sudo)

    def file_exists(self, remote_path, sudo=True):
        return self.exec_ok(f"test -e {shlex.quote(remote_path)}", sudo=sudo)


class FakeFleet:
    """A set of simulated hosts plus a global command log."""

    def __init__(self, release=RELEASE):
        self.release = release
        self.machines = {}
        self.log = []
        self._mutex = threading.Lock()

    def add(self, address, **kwargs):
        machine = FakeMachine(self, address, **kwargs)
        self.machines[address] = machine
        return machine

    def record(self, address, command):
        with self._mutex:
            self.log.append((address, command))

    def by_hostname(self, name):
        return next((m for m in self.machines.values() if m.hostname == name), None)

    def connector(self, host):
        return FakeConnection(self.machines[host.address])

    def cluster(self, roles, version=None, **host_kwargs):
        """Build a cluster spec with one host per ``(address, role)`` pair."""
        hosts = [Host(address=address, role=HostRole(role), **host_kwargs) for address, role in roles]
        for host in hosts:
            if host.address not in self.machines:
                self.add(host.address)
        return ClusterSpec(name="test", version=K0sVersion(version or self.release), hosts=hosts)

    def commands_matching(self, needle):
        return [(address, command) for address, command in self.log if needle in command]


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    monkeypatch.setattr(Config, "REGISTRY_PATH", tmp_path / "clusters" / "cluster-registry.json")
    monkeypatch.setattr(Config, "BINARY_CACHE_DIR", tmp_path / "cache")
    monkeypatch.setattr(Config, "RETRY_DELAY", 0)
    monkeypatch.setattr(Config, "POLL_INTERVAL", 0.01)
    monkeypatch.setattr(Config, "WAIT_TIMEOUT", 1)


@pytest.fixture
def fleet():
    return FakeFleet()


@pytest.fixture
def ssh_fleet(monkeypatch, fleet):
    """Route the default session factory to the fake fleet."""
    from k0sorch.modules.phase import manager
    monkeypatch.setattr(manager, "SSHConnection", SimpleNamespace(from_host=fleet.connector))
    return fleet
