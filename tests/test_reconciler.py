from unittest.mock import patch

from strata.operator.models import Dataset, Phase
from strata.operator.reconciler import REQUEUE_CONFLICT, REQUEUE_ERROR, Reconciler, Result


class StubReconciler(Reconciler):
    kind = Dataset
    finalizer = "strata.io/test-finalizer"

    def __init__(self, store, action=None, cleanup=None):
        super().__init__(store)
        self.action = action
        self.cleanup = cleanup

    def reconcile_record(self, record):
        if self.action:
            self.action(self, record)
        return Result(600)

    def finalize(self, record):
        if self.cleanup:
            self.cleanup(record)


def _dataset(store, finalizers=()):
    record = Dataset.model_validate({
        "metadata": {"name": "media", "finalizers": list(finalizers)},
        "spec": {"datasetName": "tank/media"},
    })
    return store.create(record)


def _touch(store):
    # A concurrent writer bumps the resource version
    current = store.get(Dataset, "default", "media")
    current.metadata.labels["touched"] = "yes"
    store.update(current)


def test_disallowed_phase_move_is_reported(store):
    _dataset(store)
    record = store.get(Dataset, "default", "media")
    record.status.set_phase(Phase.READY, "OK")
    store.update_status(record)

    def succeed(_, rec):
        rec.status.set_phase(Phase.SUCCEEDED, "done")

    result = StubReconciler(store, action=succeed).reconcile("default", "media")

    status = store.get(Dataset, "default", "media").status
    assert result.requeue_after == REQUEUE_ERROR
    assert status.phase == Phase.ERROR
    assert "Ready -> Succeeded" in status.message


def test_finalizer_conflict_still_writes_status(store):
    _dataset(store)

    def add_finalizer(reconciler, rec):
        rec.status.set_phase(Phase.CREATING, "working")
        _touch(store)
        reconciler.ensure_finalizer(rec)

    reconciler = StubReconciler(store, action=add_finalizer)
    with patch.object(store, "update_status", wraps=store.update_status) as mock_status:
        result = reconciler.reconcile("default", "media")

    assert result.requeue_after == REQUEUE_CONFLICT
    mock_status.assert_called_once()
    assert store.get(Dataset, "default", "media").metadata.finalizers == []


def test_finalizer_release_conflict_retries(store):
    _dataset(store, finalizers=[StubReconciler.finalizer])
    store.delete(Dataset, "default", "media")

    result = StubReconciler(store, cleanup=lambda _: _touch(store)).reconcile("default", "media")

    record = store.get(Dataset, "default", "media")
    assert result.requeue_after == REQUEUE_CONFLICT
    assert record.metadata.finalizers == [StubReconciler.finalizer]


def test_finalizer_released_after_cleanup(store):
    _dataset(store, finalizers=[StubReconciler.finalizer])
    store.delete(Dataset, "default", "media")
    cleaned = []

    result = StubReconciler(store, cleanup=cleaned.append).reconcile("default", "media")

    assert result == Result()
    assert [r.name for r in cleaned] == ["media"]
    assert store.get(Dataset, "default", "media") is None
