import logging

from strata.errors import AgentError
from strata.operator.models import Descriptor, DescriptorSpec, ObjectMeta, Phase, Snapshot
from strata.operator.reconciler import (
    REQUEUE_ERROR,
    REQUEUE_POLL,
    REQUEUE_STEADY,
    REQUEUE_VALIDATION,
    Reconciler,
    Result,
)

logger = logging.getLogger(__name__)

FINALIZER = "strata.io/snapshot-finalizer"
DEFAULT_SNAPSHOT_CLASS = "strata-zfspv-snapclass"


class SnapshotReconciler(Reconciler):
    """
    Point-in-time snapshots, either of a dataset (`dataset@name` through the
    executor) or of a volume claim (a VolumeSnapshot descriptor).
    """

    kind = Snapshot
    finalizer = FINALIZER

    def full_name(self, snap: Snapshot) -> str:
        return f"{snap.spec.dataset_name.strip()}@{(snap.spec.snapshot_name or snap.name).strip()}"

    def finalize(self, snap: Snapshot):
        if snap.spec.dataset_name.strip():
            self.agent_for(snap.spec.node_name).destroy_snapshot(self.full_name(snap))

    def reconcile_record(self, snap: Snapshot) -> Result:
        if snap.spec.dataset_name.strip():
            return self.reconcile_dataset(snap)
        if snap.spec.pvc_name.strip():
            return self.reconcile_volume(snap)
        snap.status.set_phase(Phase.PENDING, "datasetName or pvcName is required")
        return Result(REQUEUE_VALIDATION)

    def reconcile_dataset(self, snap: Snapshot) -> Result:
        if snap.spec.destroy_on_delete:
            self.ensure_finalizer(snap)
        elif FINALIZER in snap.metadata.finalizers:
            self.remove_finalizer(snap)

        dataset = snap.spec.dataset_name.strip()
        full = self.full_name(snap)
        agent = self.agent_for(snap.spec.node_name)
        try:
            if full not in agent.list_snapshots(dataset):
                agent.create_snapshot(dataset, full.partition("@")[2], snap.spec.recursive)
        except AgentError as e:
            return self.fail(snap, e, Phase.FAILED, REQUEUE_ERROR)

        snap.status.snapshot = full
        snap.status.set_phase(Phase.SUCCEEDED, "OK")
        return Result(REQUEUE_STEADY)

    def reconcile_volume(self, snap: Snapshot) -> Result:
        desc = Descriptor(
            metadata=ObjectMeta(name=snap.name),
            spec=DescriptorSpec(
                type="VolumeSnapshot",
                data={
                    "volumeSnapshotClassName": snap.spec.snapshot_class_name or DEFAULT_SNAPSHOT_CLASS,
                    "source": {"persistentVolumeClaimName": snap.spec.pvc_name.strip()},
                },
            ),
        )
        desc.owned_by(snap)
        stored = self.store.upsert(desc)
        snap.status.volume_snapshot_name = stored.name

        if stored.status.get("readyToUse"):
            snap.status.set_phase(Phase.SUCCEEDED, "OK")
        else:
            snap.status.set_phase(Phase.CREATING, "waiting for volume snapshot")
        return Result(REQUEUE_POLL)
