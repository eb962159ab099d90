from datetime import datetime

from strata.schedule.retention import (
    RetentionPolicy,
    effective_keep,
    managed_snapshots,
    select_prunable,
    snapshot_name,
)

SNAPSHOTS = [
    "tank/media@auto-2026.01.03-00.00.00",
    "tank/media@auto-2026.01.01-00.00.00",
    "tank/media@manual-before-upgrade",
    "tank/media@auto-2026.01.05-00.00.00",
    "tank/media/child@auto-2026.01.01-00.00.00",
    "tank/media@auto-2026.01.02-00.00.00",
    "tank/media@auto-2026.01.04-00.00.00",
    "tank/mediax@auto-2026.01.01-00.00.00",
]


def test_prune_keeps_newest():
    prunable = select_prunable(SNAPSHOTS, "tank/media", "auto", 3)
    assert prunable == [
        "tank/media@auto-2026.01.01-00.00.00",
        "tank/media@auto-2026.01.02-00.00.00",
    ]


def test_unmanaged_and_other_datasets_are_untouched():
    managed = managed_snapshots(SNAPSHOTS, "tank/media", "auto")
    assert "tank/media@manual-before-upgrade" not in managed
    assert "tank/media/child@auto-2026.01.01-00.00.00" not in managed
    assert "tank/mediax@auto-2026.01.01-00.00.00" not in managed
    assert len(managed) == 5


def test_keep_zero_or_fewer_snapshots_prunes_nothing():
    assert select_prunable(SNAPSHOTS, "tank/media", "auto", 0) == []
    assert select_prunable(SNAPSHOTS, "tank/media", "auto", 10) == []


def test_default_prefix():
    snapshots = ["tank/a@GMT-2026.01.01-00.00.00", "tank/a@GMT-2026.01.02-00.00.00"]
    assert select_prunable(snapshots, "tank/a", "", 1) == ["tank/a@GMT-2026.01.01-00.00.00"]


def test_snapshot_name():
    now = datetime(2026, 2, 3, 4, 5, 6)
    assert snapshot_name("", "", now) == "GMT-2026.02.03-04.05.06"
    assert snapshot_name("daily", "%Y%m%d", now) == "daily-20260203"


def test_effective_keep():
    assert effective_keep(RetentionPolicy()) == 0
    assert effective_keep(RetentionPolicy.model_validate({"keepLast": 3, "keepHourly": 5})) == 5
    assert effective_keep(RetentionPolicy.model_validate({"keepDaily": 7})) == 0
