"""Run-scoped state handed to every phase."""
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Optional

from tenacity import (
    RetryError, Retrying, retry_if_exception_type, retry_if_result, stop_after_delay, wait_fixed,
)

from ...config import Config
from ...exceptions import ExecutionError, RunCancelled, WaitTimeout
from ...logging import EventSink, LoggingSink
from ..cluster.models import Host
from .pool import WorkerPool


@dataclass
class RunContext:
    """What a phase may use besides the cluster it mutates.

    Attributes:
        pool: General per-host worker pool
        upload_pool: Worker pool for upload-class phases
        connector: Builds an unconnected session for a host
        sink: Event sink for progress and errors
        cancel: Cancellation signal shared by the whole run
    """
    pool: WorkerPool
    upload_pool: WorkerPool
    connector: Callable[[Host], object]
    sink: EventSink = field(default_factory=LoggingSink)
    cancel: threading.Event = field(default_factory=threading.Event)

    def check_cancelled(self) -> None:
        if self.cancel.is_set():
            raise RunCancelled("run cancelled")

    def parallel(self, hosts: Iterable[Host], task: Callable[[Host], None],
                 uploads: bool = False) -> Dict[str, Exception]:
        """Run ``task`` for every host on the matching pool and collect failures."""
        pool = self.upload_pool if uploads else self.pool
        return pool.map_hosts(hosts, task, self.cancel)

    def wait_until(self, condition: Callable[[], bool], what: str,
                   timeout: Optional[float] = None, interval: Optional[float] = None) -> None:
        """Poll ``condition`` until it returns True.

        Execution errors raised by the condition count as "not yet". The
        wait wakes up early when the run is cancelled.

        Raises:
            WaitTimeout: If the condition is still false after ``timeout``
            RunCancelled: If the run was cancelled while waiting
        """
        timeout = Config.WAIT_TIMEOUT if timeout is None else timeout
        interval = Config.POLL_INTERVAL if interval is None else interval

        def _attempt() -> bool:
            self.check_cancelled()
            return condition()

        retrying = Retrying(
            stop=stop_after_delay(timeout),
            wait=wait_fixed(interval),
            retry=retry_if_result(lambda ok: not ok) | retry_if_exception_type(ExecutionError),
            sleep=self.cancel.wait,
        )
        try:
            retrying(_attempt)
        except RetryError as e:
            last = e.last_attempt
            if last.failed:
                raise WaitTimeout(f"timed out after {timeout}s waiting for {what}: {last.exception()}") from e
            raise WaitTimeout(f"timed out after {timeout}s waiting for {what}") from e
