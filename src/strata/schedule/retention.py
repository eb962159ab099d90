from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

DEFAULT_PREFIX = "GMT"
DEFAULT_FORMAT = "%Y.%m.%d-%H.%M.%S"


class RetentionPolicy(BaseModel):
    """
    Retention tiers. Only keep_last and keep_hourly are enforced; the daily,
    weekly and monthly tiers are accepted and stored but not yet acted on.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    keep_last: int = 0
    keep_hourly: int = 0
    keep_daily: int = 0
    keep_weekly: int = 0
    keep_monthly: int = 0


def effective_keep(policy: RetentionPolicy) -> int:
    return max(policy.keep_last, policy.keep_hourly, 0)


def snapshot_name(prefix: str, fmt: str, now: datetime) -> str:
    return f"{prefix or DEFAULT_PREFIX}-{now.strftime(fmt or DEFAULT_FORMAT)}"


def managed_snapshots(snapshots: List[str], dataset: str, prefix: str) -> List[str]:
    """Snapshots of exactly `dataset` whose name starts with `prefix-`, oldest first."""
    marker = f"{prefix or DEFAULT_PREFIX}-"
    managed = []
    for full in snapshots:
        ds, sep, name = full.partition("@")
        if sep and ds == dataset and name.startswith(marker):
            managed.append(full)
    return sorted(managed)


def select_prunable(snapshots: List[str], dataset: str, prefix: str, keep: int) -> List[str]:
    """Managed snapshots beyond the newest `keep`, oldest first."""
    if keep <= 0:
        return []
    managed = managed_snapshots(snapshots, dataset, prefix)
    return managed[:max(len(managed) - keep, 0)]
