"""Bounded worker pool for per-host fan-out."""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, Iterable

from ...exceptions import RunCancelled
from ..cluster.models import Host

logger = logging.getLogger("k0sorch.phase.pool")


class WorkerPool:
    """Runs one task per host with at most ``size`` tasks active at a time.

    Every host is processed even when others fail; failures are returned
    keyed by host identity. Tasks that have not started when the
    cancellation event is set fail with ``RunCancelled`` without running.
    """

    def __init__(self, size: int, name: str = "k0sorch"):
        if size < 1:
            raise ValueError(f"Worker pool size must be positive, got {size}")
        self.size = size
        self.name = name
        self._executor = ThreadPoolExecutor(max_workers=size, thread_name_prefix=name)

    def map_hosts(self, hosts: Iterable[Host], task: Callable[[Host], None],
                  cancel: threading.Event) -> Dict[str, Exception]:
        future_to_host = {
            self._executor.submit(self._guarded, task, host, cancel): host
            for host in hosts
        }

        failures: Dict[str, Exception] = {}
        for future in as_completed(future_to_host):
            host = future_to_host[future]
            try:
                future.result()
            except Exception as e:
                logger.debug(f"Task for {host.identity} failed: {e}")
                failures[host.identity] = e
        return failures

    @staticmethod
    def _guarded(task: Callable[[Host], None], host: Host, cancel: threading.Event) -> None:
        if cancel.is_set():
            raise RunCancelled(f"cancelled before processing {host.identity}")
        task(host)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
