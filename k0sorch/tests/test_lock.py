import pytest

from k0sorch.exceptions import LockContention, PhaseError
from k0sorch.logging import RecordingSink
from k0sorch.modules.phase import Connect, Lock, LockToken, Manager, Unlock


def run(fleet, cluster, *phases):
    Manager(cluster, phases=[Connect(), *phases], sink=RecordingSink(), connector=fleet.connector).run()


def test_lock_and_unlock(fleet):
    cluster = fleet.cluster([("10.0.0.1", "controller"), ("10.0.0.2", "worker")])
    token = LockToken()
    run(fleet, cluster, Lock(token))
    try:
        assert token.acquired
        assert all(m.lock_owner == token.run_id for m in fleet.machines.values())
    finally:
        token.cancel()

    run(fleet, cluster, Unlock(token))
    assert all(m.lock_owner is None for m in fleet.machines.values())
    assert not token.acquired


def test_contention_fails_and_releases_partial_lock(fleet):
    cluster = fleet.cluster([("10.0.0.1", "controller"), ("10.0.0.2", "worker")])
    busy = fleet.machines["10.0.0.2"]
    busy.lock_owner = "other-run"
    busy.lock_age = 5

    token = LockToken()
    with pytest.raises(PhaseError) as excinfo:
        run(fleet, cluster, Lock(token))

    assert excinfo.value.category == "lock"
    assert excinfo.value.hosts == ["10.0.0.2:22"]
    assert isinstance(excinfo.value.failures["10.0.0.2:22"], LockContention)
    assert fleet.machines["10.0.0.1"].lock_owner is None
    assert busy.lock_owner == "other-run"
    assert not token.acquired


def test_stale_lock_is_taken_over(fleet):
    cluster = fleet.cluster([("10.0.0.1", "controller")])
    machine = fleet.machines["10.0.0.1"]
    machine.lock_owner = "dead-run"
    machine.lock_age = 600

    token = LockToken()
    try:
        run(fleet, cluster, Lock(token))
        assert machine.lock_owner == token.run_id
    finally:
        token.release()
    assert machine.lock_owner is None


def test_unlock_without_lock_is_noop(fleet):
    cluster = fleet.cluster([("10.0.0.1", "controller")])
    run(fleet, cluster, Unlock(LockToken()))
    assert not any("rm -f" in command for command in fleet.machines["10.0.0.1"].commands)


def test_release_leaves_foreign_lock(fleet):
    cluster = fleet.cluster([("10.0.0.1", "controller")])
    token = LockToken()
    try:
        run(fleet, cluster, Lock(token))
    finally:
        token.cancel()
    fleet.machines["10.0.0.1"].lock_owner = "someone-else"
    token.release()
    assert fleet.machines["10.0.0.1"].lock_owner == "someone-else"


def test_cancel_is_idempotent():
    token = LockToken()
    token.start_keepalive(interval=0.01)
    token.cancel()
    token.cancel()
