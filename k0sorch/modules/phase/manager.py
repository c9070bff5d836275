"""Phase manager: runs an ordered list of phases against a cluster."""
import threading
import time
from typing import Callable, List, Optional

from ...config import Config
from ...exceptions import OrchestrationError, PhaseError, RunCancelled
from ...logging import LoggingSink
from ..cluster.models import ClusterSpec, Host
from ..ssh import SSHConnection
from .base import Phase
from .context import RunContext
from .pool import WorkerPool


class Manager:
    """Executes phases strictly in order until done or the first failure.

    Phases after a failing one never run; there is no rollback and no
    implicit teardown, so Unlock and Disconnect placed at the tail are
    skipped when an earlier phase fails. Whatever the outcome, ``cluster``
    keeps every mutation made by the phases that did run.
    """

    def __init__(
        self,
        cluster: ClusterSpec,
        concurrency: int = Config.DEFAULT_CONCURRENCY,
        concurrent_uploads: int = Config.DEFAULT_CONCURRENT_UPLOADS,
        phases: Optional[List[Phase]] = None,
        sink=None,
        connector: Optional[Callable[[Host], object]] = None,
        cancel: Optional[threading.Event] = None,
    ):
        """Initialize the manager.

        Args:
            cluster: Desired state; mutated in place by the phases
            concurrency: Maximum concurrent per-host tasks for most phases
            concurrent_uploads: Maximum concurrent per-host tasks for upload phases
            phases: Initial ordered phases
            sink: Event sink (default: LoggingSink)
            connector: Session factory used by Connect (default: SSH)
            cancel: Cancellation signal; set it to stop the run
        """
        if concurrency < 1 or concurrent_uploads < 1:
            raise ValueError("concurrency and concurrent_uploads must be positive")
        self.cluster = cluster
        self.concurrency = concurrency
        self.concurrent_uploads = concurrent_uploads
        self.sink = sink or LoggingSink()
        self.connector = connector or SSHConnection.from_host
        self.cancel = cancel or threading.Event()
        self._phases: List[Phase] = list(phases or [])
        self.completed: List[str] = []

    @property
    def phases(self) -> List[Phase]:
        return list(self._phases)

    def add_phase(self, *phases: Phase) -> None:
        self._phases.extend(phases)

    def run(self) -> None:
        """Run all phases.

        Raises:
            PhaseError: The first failing phase, with per-host causes
            RunCancelled: If the cancellation signal was set
        """
        self.completed = []
        pool = WorkerPool(self.concurrency, "k0sorch-host")
        upload_pool = WorkerPool(self.concurrent_uploads, "k0sorch-upload")
        ctx = RunContext(
            pool=pool,
            upload_pool=upload_pool,
            connector=self.connector,
            sink=self.sink,
            cancel=self.cancel,
        )
        total = len(self._phases)
        started = time.time()
        try:
            for index, phase in enumerate(self._phases, 1):
                if self.cancel.is_set():
                    self.sink.warning("Run cancelled", next_phase=phase.title)
                    raise RunCancelled(f"run cancelled before phase '{phase.title}'")

                self.sink.info(f"==> Running phase: {phase.title}", step=f"{index}/{total}")
                phase_started = time.time()
                self._run_phase(ctx, phase)
                self.completed.append(phase.title)
                self.sink.debug(f"Phase '{phase.title}' finished in {time.time() - phase_started:.1f}s")

            self.sink.info(f"✅ Finished {total} phases in {time.time() - started:.1f}s", cluster=self.cluster.name)
        finally:
            pool.shutdown()
            upload_pool.shutdown()

    def _run_phase(self, ctx: RunContext, phase: Phase) -> None:
        try:
            phase.run(ctx, self.cluster)
        except RunCancelled:
            raise
        except OrchestrationError as e:
            if self.cancel.is_set():
                raise RunCancelled(f"run cancelled during phase '{phase.title}'") from e
            if isinstance(e, PhaseError):
                self.sink.error(f"❌ Phase '{phase.title}' failed", error=e, category=e.category)
                raise
            error = PhaseError(phase.title, cause=e)
            self.sink.error(f"❌ Phase '{phase.title}' failed", error=error, category=error.category)
            raise error from e
        except Exception as e:
            error = PhaseError(phase.title, cause=e)
            self.sink.error(f"❌ Phase '{phase.title}' failed unexpectedly", error=e)
            raise error from e
