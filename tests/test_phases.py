import pytest

from strata.errors import InvalidPhaseTransition
from strata.operator.models import Phase, Status, can_transition, record_from_manifest


@pytest.mark.parametrize("current", [None, Phase.PENDING, Phase.CREATING, Phase.ERROR, Phase.FAILED])
def test_unsettled_phases_move_anywhere(current):
    assert all(can_transition(current, new) for new in Phase)


def test_ready_cannot_become_succeeded_or_failed():
    assert can_transition(Phase.READY, Phase.ERROR)
    assert can_transition(Phase.READY, Phase.CREATING)
    assert not can_transition(Phase.READY, Phase.SUCCEEDED)
    assert not can_transition(Phase.READY, Phase.FAILED)


def test_succeeded_cannot_become_ready():
    assert can_transition(Phase.SUCCEEDED, Phase.FAILED)
    assert not can_transition(Phase.SUCCEEDED, Phase.READY)


def test_set_phase():
    status = Status()
    status.set_phase(Phase.READY, "OK")
    assert (status.phase, status.message) == (Phase.READY, "OK")

    status.set_phase(Phase.READY)
    assert status.message == "OK"

    with pytest.raises(InvalidPhaseTransition, match="Ready -> Succeeded"):
        status.set_phase(Phase.SUCCEEDED)
    assert status.phase == Phase.READY


def test_status_serializes_phase_names():
    status = Status()
    status.set_phase(Phase.CREATING, "waiting")
    assert status.model_dump(by_alias=True, mode="json")["phase"] == "Creating"


def test_record_from_manifest():
    record = record_from_manifest({
        "kind": "Dataset",
        "metadata": {"name": "media", "namespace": "nas"},
        "spec": {"datasetName": "tank/media", "mountpoint": "/mnt/media"},
    })
    assert record.key == ("Dataset", "nas", "media")
    assert record.spec.dataset_name == "tank/media"

    with pytest.raises(ValueError, match="unknown kind"):
        record_from_manifest({"kind": "Deployment", "metadata": {"name": "x"}})
