import logging
from datetime import datetime, timezone
from typing import Callable

from strata.errors import AgentError, SpecError
from strata.operator.client import NodeAgentClient
from strata.operator.models import Phase, SnapshotSchedule
from strata.operator.reconciler import (
    REQUEUE_POOL_STEADY,
    REQUEUE_VALIDATION,
    SCHEDULE_MAX,
    SCHEDULE_MIN,
    Reconciler,
    Result,
)
from strata.schedule.cron import CronSchedule, format_time, parse_time
from strata.schedule.retention import DEFAULT_PREFIX, effective_keep, select_prunable, snapshot_name

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotScheduleReconciler(Reconciler):
    """
    Takes a snapshot whenever the cron schedule says one is due, then prunes
    the schedule's own snapshots down to the retention count.
    """

    kind = SnapshotSchedule

    def __init__(self, *args, clock: Callable[[], datetime] = utcnow, **kwargs):
        super().__init__(*args, **kwargs)
        self.clock = clock

    def reconcile_record(self, sched: SnapshotSchedule) -> Result:
        spec, status = sched.spec, sched.status
        now = self.clock()

        dataset = spec.dataset_name.strip()
        if not dataset:
            return self.fail(sched, SpecError("datasetName is required"), requeue=REQUEUE_VALIDATION)
        try:
            cron = CronSchedule(spec.schedule)
        except SpecError as e:
            status.next_run_time = ""
            return self.fail(sched, e, requeue=REQUEUE_POOL_STEADY)

        upcoming = cron.next_after(now)
        status.next_run_time = format_time(upcoming) if upcoming else ""

        if cron.is_due(now, parse_time(status.last_run_time)):
            prefix = spec.name_prefix or DEFAULT_PREFIX
            name = snapshot_name(prefix, spec.format, now)
            agent = self.agent_for(spec.node_name)
            try:
                agent.create_snapshot(dataset, name, spec.recursive)
            except AgentError as e:
                return self.fail(sched, e)
            status.last_run_time = format_time(now)
            status.last_snapshot_name = f"{dataset}@{name}"
            logger.info(f"schedule {sched.namespace}/{sched.name}: created {status.last_snapshot_name}")

            keep = effective_keep(spec.retention)
            if keep > 0:
                self.prune(agent, dataset, prefix, keep)

        status.set_phase(Phase.READY, "OK")
        if upcoming is None:
            return Result(SCHEDULE_MAX)
        wait = (upcoming - now).total_seconds()
        return Result(min(max(wait, SCHEDULE_MIN), SCHEDULE_MAX))

    def prune(self, agent: NodeAgentClient, dataset: str, prefix: str, keep: int):
        try:
            snapshots = agent.list_snapshots(dataset)
        except AgentError as e:
            logger.warning(f"retention skipped for {dataset}: {e}")
            return
        for snapshot in select_prunable(snapshots, dataset, prefix, keep):
            try:
                agent.destroy_snapshot(snapshot)
                logger.info(f"retention: destroyed {snapshot}")
            except AgentError as e:
                logger.warning(f"retention: could not destroy {snapshot}: {e}")
