import logging

from strata.errors import AgentError, SpecError
from strata.operator.models import Phase, Pool, PoolUsage
from strata.operator.reconciler import REQUEUE_POOL_STEADY, Reconciler, Result

logger = logging.getLogger(__name__)

VDEV_TYPES = {"stripe", "mirror", "raidz1", "raidz2", "log", "cache", "spare"}


def vdev_groups(pool: Pool):
    groups = []
    for i, group in enumerate(pool.spec.vdevs):
        vtype = (group.type or "stripe").strip().lower()
        if vtype not in VDEV_TYPES:
            raise SpecError(f"vdevs[{i}]: unsupported type {group.type!r}")
        devices = [d.strip() for d in group.devices if d and d.strip()]
        if not devices:
            raise SpecError(f"vdevs[{i}]: at least one device is required")
        groups.append((vtype, devices))
    if not groups:
        raise SpecError("at least one vdev group is required")
    return groups


class PoolReconciler(Reconciler):
    kind = Pool

    def reconcile_record(self, pool: Pool) -> Result:
        name = (pool.spec.pool_name or pool.name).strip()
        groups = vdev_groups(pool)
        agent = self.agent_for(pool.spec.node_name)

        if name not in agent.list_pools():
            logger.info(f"creating pool {name} on {pool.spec.node_name or 'default node'}")
            agent.create_pool(name, groups, pool.spec.properties)

        message = "OK"
        try:
            status = agent.pool_status(name)
        except AgentError as e:
            logger.warning(f"pool {name}: status unavailable: {e}")
        else:
            pool.status.health = status.get("state", "")
            if status.get("usage"):
                pool.status.usage = PoolUsage.model_validate(status["usage"])
            if pool.status.health and pool.status.health != "ONLINE":
                message = f"pool is {pool.status.health}: {status.get('status') or ''}".strip()

        pool.status.set_phase(Phase.READY, message)
        return Result(REQUEUE_POOL_STEADY)
