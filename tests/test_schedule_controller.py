from datetime import datetime, timedelta, timezone

import pytest

from strata.errors import AgentError
from strata.operator.controllers.schedule import SnapshotScheduleReconciler
from strata.operator.models import ObjectMeta, Phase, SnapshotSchedule


class Clock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock(datetime(2026, 1, 1, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def reconciler(store, secrets, agents, clock):
    return SnapshotScheduleReconciler(store, secrets, agents, clock=clock)


def _schedule(store, **spec):
    data = {"nodeName": "nas1", "datasetName": "tank/media", "schedule": "*/2 * * * *",
            "namePrefix": "auto", "format": "%Y%m%d-%H%M", "retention": {"keepLast": 3}}
    data.update(spec)
    store.create(SnapshotSchedule.model_validate({"metadata": {"name": "media"}, "spec": data}))


def _status(store):
    return store.get(SnapshotSchedule, "default", "media").status


def test_ten_runs_keep_last_three(store, agent, reconciler, clock):
    agent.snapshots.append("tank/media@manual-keep")
    _schedule(store)

    for _ in range(10):
        result = reconciler.reconcile("default", "media")
        assert result.requeue_after == 120
        clock.advance(minutes=2)

    managed = [s for s in agent.snapshots if "@auto-" in s]
    assert managed == [
        "tank/media@auto-20260101-0014",
        "tank/media@auto-20260101-0016",
        "tank/media@auto-20260101-0018",
    ]
    assert "tank/media@manual-keep" in agent.snapshots
    assert len(agent.called("create_snapshot")) == 10
    assert len(agent.called("destroy_snapshot")) == 7

    status = _status(store)
    assert status.phase == Phase.READY
    assert status.last_snapshot_name == "tank/media@auto-20260101-0018"
    assert status.last_run_time == "2026-01-01T00:18:00Z"
    assert status.next_run_time == "2026-01-01T00:20:00Z"


def test_not_due_waits_for_next_occurrence(store, agent, reconciler, clock):
    _schedule(store, schedule="0 * * * *")
    reconciler.reconcile("default", "media")
    clock.advance(minutes=59)

    result = reconciler.reconcile("default", "media")

    assert len(agent.called("create_snapshot")) == 1
    assert result.requeue_after == 60


def test_requeue_is_clamped_to_minimum(store, agent, reconciler, clock):
    _schedule(store, schedule="* * * * *")
    reconciler.reconcile("default", "media")
    clock.advance(seconds=58)

    assert reconciler.reconcile("default", "media").requeue_after == 5


def test_invalid_cron_is_reported(store, agent, reconciler):
    _schedule(store, schedule="every hour")

    result = reconciler.reconcile("default", "media")

    status = _status(store)
    assert status.phase == Phase.ERROR
    assert "invalid schedule" in status.message
    assert status.next_run_time == ""
    assert result.requeue_after == 300
    assert agent.called("create_snapshot") == []


def test_missing_dataset(store, reconciler):
    _schedule(store, datasetName=" ")
    assert reconciler.reconcile("default", "media").requeue_after == 20
    assert _status(store).phase == Phase.ERROR


def test_snapshot_failure_leaves_last_run(store, agent, reconciler):
    agent.failures["create_snapshot"] = AgentError("zfs snapshot failed", output="out of space")
    _schedule(store)

    result = reconciler.reconcile("default", "media")

    status = _status(store)
    assert result.requeue_after == 30
    assert status.phase == Phase.ERROR
    assert status.last_run_time == ""
    assert "zfs snapshot failed" in status.message


def test_prune_failure_is_not_fatal(store, agent, reconciler):
    agent.failures["list_snapshots"] = AgentError("list failed")
    _schedule(store)

    reconciler.reconcile("default", "media")

    assert _status(store).phase == Phase.READY
    assert len(agent.snapshots) == 1


def test_unreadable_last_run_counts_as_due(store, agent, reconciler):
    _schedule(store)
    record = store.get(SnapshotSchedule, "default", "media")
    record.status.last_run_time = "yesterday"
    store.update_status(record)

    reconciler.reconcile("default", "media")

    assert len(agent.called("create_snapshot")) == 1
