"""Error taxonomy for cluster orchestration runs."""
from typing import Dict, Optional


class OrchestrationError(Exception):
    """Base class for every failure an orchestration run can report."""
    category = "error"


class ConnectivityError(OrchestrationError):
    """A host could not be reached or authenticated."""
    category = "connectivity"

    def __init__(self, host: str, message: str):
        self.host = host
        super().__init__(message)


class PreconditionError(OrchestrationError):
    """The run cannot proceed without operator action (e.g. a downgrade)."""
    category = "precondition"


class ExecutionError(OrchestrationError):
    """A remote step failed on a host."""
    category = "execution"


class CommandError(ExecutionError):
    """A remote command exited non-zero."""

    def __init__(self, host: str, command: str, exit_status: int, stderr: str = ""):
        self.host = host
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr
        message = f"command failed with status {exit_status}: {command}"
        if stderr.strip():
            message += f"\n{stderr.strip()}"
        super().__init__(message)


class WaitTimeout(ExecutionError):
    """A condition did not become true in time."""


class LockContention(OrchestrationError):
    """Another orchestration run holds the cluster lock."""
    category = "lock"


class RunCancelled(OrchestrationError):
    """The run was interrupted by the cancellation signal."""
    category = "cancelled"


class PhaseError(OrchestrationError):
    """A phase failed; carries the per-host causes.

    Args:
        phase: Title of the failing phase
        failures: Mapping of host identity to the exception raised for it
        cause: Phase-level cause when the failure is not host specific
    """

    def __init__(self, phase: str, failures: Optional[Dict[str, Exception]] = None,
                 cause: Optional[Exception] = None):
        self.phase = phase
        self.failures = dict(failures or {})
        self.cause = cause
        super().__init__(self._describe())

    @property
    def hosts(self):
        return sorted(self.failures)

    @property
    def category(self) -> str:
        causes = [self.failures[host] for host in self.hosts] + ([self.cause] if self.cause else [])
        for exc in causes:
            if isinstance(exc, OrchestrationError):
                return exc.category
        return ExecutionError.category

    def _describe(self) -> str:
        if self.failures:
            details = "; ".join(f"{host}: {exc}" for host, exc in sorted(self.failures.items()))
            return f"phase '{self.phase}' failed on {len(self.failures)} host(s): {details}"
        return f"phase '{self.phase}' failed: {self.cause}"
