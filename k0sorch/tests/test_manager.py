import threading

import pytest

from k0sorch.exceptions import CommandError, PhaseError, PreconditionError, RunCancelled
from k0sorch.logging import RecordingSink
from k0sorch.modules.cluster import ClusterSpec, Host, HostRole, K0sVersion
from k0sorch.modules.phase import HostPhase, Manager, Phase


class Recorder(Phase):
    def __init__(self, title, calls, error=None, action=None):
        self.title = title
        self.calls = calls
        self.error = error
        self.action = action

    def run(self, ctx, cluster):
        self.calls.append(self.title)
        if self.action:
            self.action(ctx, cluster)
        if self.error:
            raise self.error


class FailOn(HostPhase):
    title = "Per host"

    def __init__(self, failing):
        self.failing = failing

    def run_host(self, ctx, cluster, host):
        if host.address in self.failing:
            raise CommandError(host.identity, "false", 1)
        host.facts["visited"] = True


@pytest.fixture
def cluster():
    return ClusterSpec(name="c", version=K0sVersion("1.28.4"), hosts=[
        Host(address="10.0.0.1", role=HostRole.CONTROLLER),
        Host(address="10.0.0.2", role=HostRole.WORKER),
        Host(address="10.0.0.3", role=HostRole.WORKER),
    ])


def test_phases_run_in_order(cluster):
    calls = []
    manager = Manager(cluster, phases=[Recorder("one", calls), Recorder("two", calls)], sink=RecordingSink())
    manager.add_phase(Recorder("three", calls))
    manager.run()
    assert calls == ["one", "two", "three"]
    assert manager.completed == ["one", "two", "three"]


def test_run_stops_at_first_failure(cluster):
    calls = []
    manager = Manager(cluster, phases=[
        Recorder("one", calls),
        Recorder("two", calls, error=PreconditionError("nope")),
        Recorder("three", calls),
    ], sink=RecordingSink())
    with pytest.raises(PhaseError) as excinfo:
        manager.run()
    assert calls == ["one", "two"]
    assert excinfo.value.phase == "two"
    assert excinfo.value.category == "precondition"
    assert manager.completed == ["one"]


def test_unexpected_exception_is_wrapped(cluster):
    manager = Manager(cluster, phases=[Recorder("bad", [], error=KeyError("arch"))], sink=RecordingSink())
    with pytest.raises(PhaseError) as excinfo:
        manager.run()
    assert isinstance(excinfo.value.cause, KeyError)
    assert excinfo.value.category == "execution"


def test_host_phase_processes_all_hosts_before_failing(cluster):
    sink = RecordingSink()
    manager = Manager(cluster, concurrency=1, phases=[FailOn({"10.0.0.1", "10.0.0.3"})], sink=sink)
    with pytest.raises(PhaseError) as excinfo:
        manager.run()
    assert excinfo.value.hosts == ["10.0.0.1:22", "10.0.0.3:22"]
    assert cluster.find("10.0.0.2:22").facts["visited"]
    assert "10.0.0.1:22" in str(excinfo.value)


def test_state_survives_failure(cluster):
    def mutate(ctx, c):
        c.metadata.extras["seen"] = True

    manager = Manager(cluster, phases=[
        Recorder("mutate", [], action=mutate),
        Recorder("fail", [], error=PreconditionError("stop")),
    ], sink=RecordingSink())
    with pytest.raises(PhaseError):
        manager.run()
    assert cluster.metadata.extras["seen"] is True


def test_cancel_before_next_phase(cluster):
    calls = []
    cancel = threading.Event()
    manager = Manager(cluster, phases=[
        Recorder("one", calls, action=lambda ctx, c: cancel.set()),
        Recorder("two", calls),
    ], sink=RecordingSink(), cancel=cancel)
    with pytest.raises(RunCancelled):
        manager.run()
    assert calls == ["one"]


def test_failure_after_cancel_reports_cancellation(cluster):
    cancel = threading.Event()

    def cancel_and_fail(ctx, c):
        cancel.set()
        raise CommandError("10.0.0.1:22", "k0s start", 130)

    manager = Manager(cluster, phases=[Recorder("one", [], action=cancel_and_fail)],
                      sink=RecordingSink(), cancel=cancel)
    with pytest.raises(RunCancelled):
        manager.run()


@pytest.mark.parametrize("kwargs", [{"concurrency": 0}, {"concurrent_uploads": 0}])
def test_concurrency_must_be_positive(cluster, kwargs):
    with pytest.raises(ValueError):
        Manager(cluster, **kwargs)


def test_phase_start_is_logged(cluster):
    sink = RecordingSink()
    Manager(cluster, phases=[Recorder("Connect to hosts", [])], sink=sink).run()
    assert "==> Running phase: Connect to hosts" in sink.messages()
