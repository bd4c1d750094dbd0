import numpy as np

from wplace_fill.core_types import Charges, Coords
from wplace_fill.protection import ProtectionMonitor
from wplace_fill.scheduler import PlacementScheduler, SchedulerSettings
from wplace_fill.template import Template

from conftest import FakeCanvasClient, RecordingSleeper, make_template, rgba


def _paint(client):
    img = client.blank((0, 0))
    img[0, 0] = rgba(1)
    img[0, 1] = rgba(5)


def _setup(statuses, charges=None, painted=False):
    client = FakeCanvasClient(charges=charges)
    template = make_template([[1, 5]])
    if painted:
        _paint(client)
    sched = PlacementScheduler(
        client,
        template,
        SchedulerSettings(),
        status=statuses.append,
        sleeper=RecordingSleeper(),
        rng=np.random.default_rng(0),
    )
    return client, sched, ProtectionMonitor(sched, period_s=3600.0)


def _armed(statuses, charges=None):
    """Scheduler whose run completed on an intact canvas, leaving a live monitor."""
    client = FakeCanvasClient(charges=charges or Charges(3.0, 10, 30_000))
    _paint(client)
    sched = PlacementScheduler(
        client,
        make_template([[1, 5]]),
        SchedulerSettings(protect=True, protect_period_s=3600.0),
        status=statuses.append,
        sleeper=RecordingSleeper(),
        rng=np.random.default_rng(0),
    )
    sched.run()
    assert sched.protecting
    return client, sched


def test_intact_template(statuses):
    _client, _sched, monitor = _setup(statuses, painted=True)
    assert monitor.check_once() == "intact"
    assert monitor.last_remaining == 0
    assert "intact" in statuses[-1]


def test_drift_without_charges_alerts(statuses):
    _client, _sched, monitor = _setup(statuses, charges=Charges(0.6, 10, 30_000))
    assert monitor.check_once() == "alert"
    assert monitor.last_remaining == 2
    assert any("alert" in s for s in statuses)


def test_drift_with_charges_rearms(statuses):
    _client, sched, monitor = _setup(statuses, charges=Charges(1.0, 10, 30_000))
    calls = []
    sched.resume_from_protection = lambda m: calls.append(m) or True
    monitor.start()
    assert monitor.check_once() == "rearmed"
    assert calls == [monitor]
    assert not monitor.active


def test_diff_ignores_submitted_set(statuses):
    _client, sched, monitor = _setup(statuses, charges=Charges(0.0, 10, 30_000))
    sched.submitted.update({(0, 0, 0, 0), (0, 0, 1, 0)})
    assert monitor.check_once() == "alert"
    assert monitor.last_remaining == 2


def test_errors_are_reported_and_counted(statuses):
    _client, sched, monitor = _setup(statuses)
    sched.template = Template(coords=Coords(0, 0, 0, 0))
    assert monitor.check_once() == "error"
    assert monitor.errors == 1
    assert "Protection check failed" in statuses[-1]


def test_unexpected_errors_keep_monitoring(statuses):
    client, _sched, monitor = _setup(statuses)

    def _broken():
        raise RuntimeError("backend exploded")

    client.query_user_state = _broken
    assert monitor.check_once() == "error"
    assert monitor.check_once() == "error"
    assert monitor.errors == 2
    assert "backend exploded" in statuses[-1]


def test_skipped_without_template(statuses):
    _client, sched, monitor = _setup(statuses)
    sched.template = None
    assert monitor.check_once() == "skipped"
    assert monitor.checks == 0


def test_rearm_restarts_placement(statuses):
    client, sched = _armed(statuses)
    monitor = sched.monitor
    client.blank((0, 0))
    sched.submitted.add((0, 0, 0, 0))

    assert monitor.check_once() == "rearmed"
    sched._thread.join(timeout=5.0)
    assert sched.monitor is not monitor
    assert [b.pixels for b in client.submitted] == [((0, 0, 1), (1, 0, 5))]
    assert sched.submitted == {(0, 0, 0, 0), (0, 0, 1, 0)}
    sched.stop()
    assert not sched.running and not sched.protecting


def test_stop_during_check_prevents_restart(statuses):
    client, sched = _armed(statuses)
    monitor = sched.monitor
    client.blank((0, 0))
    fetch = client.fetch_chunk

    def _fetch_then_stop(chunk_x, chunk_y):
        sched.stop()
        return fetch(chunk_x, chunk_y)

    client.fetch_chunk = _fetch_then_stop
    assert monitor.check_once() == "skipped"
    assert client.submitted == []
    assert not sched.running and not sched.protecting
    assert sched.state == "idle"


def test_stale_monitor_cannot_resume(statuses):
    client, sched = _armed(statuses)
    stale = sched.monitor
    sched.stop()

    assert sched.resume_from_protection(stale) is False
    assert not sched.running
    assert client.submitted == []
    assert "monitor no longer active" in statuses[-1]
