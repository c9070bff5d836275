import threading
import time

import pytest

from k0sorch.exceptions import RunCancelled
from k0sorch.modules.cluster import Host, HostRole
from k0sorch.modules.phase import WorkerPool


def make_hosts(count):
    return [Host(address=f"10.0.0.{i}", role=HostRole.WORKER) for i in range(1, count + 1)]


def test_pool_bounds_concurrency_and_runs_every_host():
    hosts = make_hosts(7)
    active = 0
    peak = 0
    seen = []
    mutex = threading.Lock()

    def task(host):
        nonlocal active, peak
        with mutex:
            active += 1
            peak = max(peak, active)
            seen.append(host.identity)
        time.sleep(0.05)
        with mutex:
            active -= 1

    pool = WorkerPool(2)
    try:
        failures = pool.map_hosts(hosts, task, threading.Event())
    finally:
        pool.shutdown()

    assert failures == {}
    assert peak <= 2
    assert sorted(seen) == sorted(h.identity for h in hosts)


def test_pool_collects_every_failure():
    hosts = make_hosts(4)

    def task(host):
        if host.address.endswith(("1", "3")):
            raise RuntimeError(f"boom {host.address}")

    pool = WorkerPool(4)
    try:
        failures = pool.map_hosts(hosts, task, threading.Event())
    finally:
        pool.shutdown()

    assert sorted(failures) == ["10.0.0.1:22", "10.0.0.3:22"]
    assert "boom 10.0.0.1" in str(failures["10.0.0.1:22"])


def test_pool_skips_tasks_after_cancel():
    hosts = make_hosts(3)
    cancel = threading.Event()
    ran = []

    def task(host):
        ran.append(host.identity)
        cancel.set()

    pool = WorkerPool(1)
    try:
        failures = pool.map_hosts(hosts, task, cancel)
    finally:
        pool.shutdown()

    assert len(ran) == 1
    assert len(failures) == 2
    assert all(isinstance(e, RunCancelled) for e in failures.values())


def test_pool_size_must_be_positive():
    with pytest.raises(ValueError):
        WorkerPool(0)


def test_shutdown_after_run_refuses_new_work():
    pool = WorkerPool(2)
    assert pool.map_hosts(make_hosts(3), lambda host: None, threading.Event()) == {}
    pool.shutdown()
    with pytest.raises(RuntimeError):
        pool.map_hosts(make_hosts(1), lambda host: None, threading.Event())
