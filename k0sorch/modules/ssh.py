"""
SSH transport for host sessions, built on paramiko.
"""
import io
import logging
import os
import posixpath
import shlex
import socket
import threading
import uuid
from typing import Optional, Protocol, Tuple

import paramiko

from ..config import Config
from ..exceptions import CommandError, ConnectivityError

logger = logging.getLogger("k0sorch.ssh")


class Connection(Protocol):
    """Operations the phases need from a host session."""

    def connect(self) -> None: ...

    def close(self) -> None: ...

    @property
    def is_connected(self) -> bool: ...

    def exec(self, command: str, sudo: bool = False, timeout: Optional[int] = None) -> str: ...

    def exec_ok(self, command: str, sudo: bool = False) -> bool: ...

    def upload(self, local_path: str, remote_path: str, perm: str = '0644', sudo: bool = True) -> None: ...

    def write_file(self, remote_path: str, content: str, perm: str = '0600', sudo: bool = True) -> None: ...

    def read_file(self, remote_path: str, sudo: bool = True) -> str: ...

    def file_exists(self, remote_path: str, sudo: bool = True) -> bool: ...


class SSHConnection:
    """SSH session to one host.

    Commands run through a single paramiko client; file transfers go
    through SFTP into a temporary path and are then moved into place with
    ``install`` so the final write can run under sudo.
    """

    def __init__(self, host: str, username: str, key_path: str = None, port: int = 22,
                 timeout: int = None):
        """Initialize SSH connection settings.

        Args:
            host: Remote host to connect to
            username: Username for authentication
            key_path: Path to SSH private key (optional, agent and default keys are tried otherwise)
            port: SSH port (default: 22)
            timeout: Connection timeout in seconds (default: Config.SSH_TIMEOUT)
        """
        self.host = host
        self.username = username
        self.key_path = key_path
        self.port = port
        self.timeout = timeout or Config.SSH_TIMEOUT
        self._client: Optional[paramiko.SSHClient] = None
        self._lock = threading.Lock()

    @classmethod
    def from_host(cls, host) -> 'SSHConnection':
        key_path = os.path.expanduser(host.key_path) if host.key_path else None
        return cls(host.address, host.user, key_path=key_path, port=host.port)

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def is_connected(self) -> bool:
        if self._client is None:
            return False
        transport = self._client.get_transport()
        return transport is not None and transport.is_active()

    def connect(self) -> None:
        """Open the session.

        Raises:
            ConnectivityError: If the host cannot be reached or authenticated
        """
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        logger.debug(f"Connecting to {self.username}@{self.address}")
        try:
            client.connect(
                hostname=self.host,
                port=self.port,
                username=self.username,
                key_filename=self.key_path,
                timeout=self.timeout,
                banner_timeout=self.timeout,
                auth_timeout=self.timeout,
            )
        except paramiko.AuthenticationException as e:
            client.close()
            raise ConnectivityError(self.address, f"authentication failed for {self.username}: {e}") from e
        except (paramiko.SSHException, socket.error) as e:
            client.close()
            raise ConnectivityError(self.address, f"connection failed: {e}") from e
        self._client = client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def _wrap(self, command: str, sudo: bool) -> str:
        if sudo and self.username != 'root':
            return f"sudo -n -- sh -c {shlex.quote(command)}"
        return command

    def execute(self, command: str, timeout: int = None) -> Tuple[int, str, str]:
        """Run a command and return ``(exit_status, stdout, stderr)``."""
        if self._client is None:
            raise ConnectivityError(self.address, "not connected")
        timeout = timeout or Config.COMMAND_TIMEOUT
        try:
            _, stdout, stderr = self._client.exec_command(command, timeout=timeout)
            out = stdout.read().decode('utf-8', errors='replace')
            err = stderr.read().decode('utf-8', errors='replace')
            status = stdout.channel.recv_exit_status()
        except socket.timeout:
            return 255, '', f"Command timed out after {timeout} seconds"
        except paramiko.SSHException as e:
            raise ConnectivityError(self.address, f"session lost: {e}") from e
        return status, out, err

    def exec(self, command: str, sudo: bool = False, timeout: Optional[int] = None) -> str:
        """Run a command, returning stripped stdout.

        Raises:
            CommandError: If the command exits non-zero
        """
        logger.debug(f"[{self.address}] $ {command}")
        status, out, err = self.execute(self._wrap(command, sudo), timeout=timeout)
        if status != 0:
            raise CommandError(self.address, command, status, err)
        return out.strip()

    def exec_ok(self, command: str, sudo: bool = False) -> bool:
        status, _, _ = self.execute(self._wrap(command, sudo))
        return status == 0

    def _put(self, fileobj_or_path, remote_path: str, perm: str, sudo: bool) -> None:
        tmp = posixpath.join('/tmp', f"k0sorch-{uuid.uuid4().hex}")
        with self._lock:
            sftp = self._client.open_sftp()
            try:
                if isinstance(fileobj_or_path, str):
                    sftp.put(fileobj_or_path, tmp)
                else:
                    sftp.putfo(fileobj_or_path, tmp)
            finally:
                sftp.close()
        directory = posixpath.dirname(remote_path)
        self.exec(
            f"mkdir -p {shlex.quote(directory)} && "
            f"install -m {perm} {tmp} {shlex.quote(remote_path)} && rm -f {tmp}",
            sudo=sudo,
        )

    def upload(self, local_path: str, remote_path: str, perm: str = '0644', sudo: bool = True) -> None:
        """Upload a local file to the host."""
        logger.debug(f"[{self.address}] upload {local_path} -> {remote_path}")
        try:
            self._put(local_path, remote_path, perm, sudo)
        except (IOError, paramiko.SSHException) as e:
            raise ConnectivityError(self.address, f"failed to upload {local_path}: {e}") from e

    def write_file(self, remote_path: str, content: str, perm: str = '0600', sudo: bool = True) -> None:
        """Write text content to a remote file."""
        try:
            self._put(io.BytesIO(content.encode('utf-8')), remote_path, perm, sudo)
        except (IOError, paramiko.SSHException) as e:
            raise ConnectivityError(self.address, f"failed to write {remote_path}: {e}") from e

    def read_file(self, remote_path: str, sudo: bool = True) -> str:
        return self.exec(f"cat {shlex.quote(remote_path)}", sudo=sudo)

    def file_exists(self, remote_path: str, sudo: bool = True) -> bool:
        return self.exec_ok(f"test -e {shlex.quote(remote_path)}", sudo=sudo)
