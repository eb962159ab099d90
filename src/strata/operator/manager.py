from typing import Dict, Optional

from strata.operator.client import NodeAgentClient
from strata.operator.controllers.dataset import DatasetReconciler
from strata.operator.controllers.directory import DirectoryReconciler
from strata.operator.controllers.pool import PoolReconciler
from strata.operator.controllers.restore import SnapshotRestoreReconciler
from strata.operator.controllers.schedule import SnapshotScheduleReconciler
from strata.operator.controllers.share import ShareReconciler
from strata.operator.controllers.smbshare import SMBShareReconciler
from strata.operator.controllers.snapshot import SnapshotReconciler
from strata.operator.reconciler import AgentFactory, Reconciler
from strata.operator.store import RecordStore, SecretStore

CONTROLLERS = [
    PoolReconciler,
    DatasetReconciler,
    SnapshotReconciler,
    SnapshotScheduleReconciler,
    SnapshotRestoreReconciler,
    ShareReconciler,
    SMBShareReconciler,
    DirectoryReconciler,
]


def build_controllers(store: RecordStore, secrets: Optional[SecretStore] = None,
                      agents: AgentFactory = NodeAgentClient.for_node) -> Dict[str, Reconciler]:
    """One reconciler per managed kind, keyed by kind name."""
    return {cls.kind.kind: cls(store, secrets, agents) for cls in CONTROLLERS}
