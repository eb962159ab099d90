import logging

from strata.errors import SpecError
from strata.operator.models import Descriptor, DescriptorSpec, ObjectMeta, Phase, SnapshotRestore
from strata.operator.reconciler import REQUEUE_POLL, REQUEUE_STEADY, REQUEUE_VALIDATION, Reconciler, Result

logger = logging.getLogger(__name__)

MODE_CLONE = "clone"
MODE_CSI = "csi"
DEFAULT_STORAGE_CLASS = "strata-zfspv"


class SnapshotRestoreReconciler(Reconciler):
    """
    Restores a snapshot by cloning it into a new dataset, rolling its dataset
    back in place (requires the snapshot name as confirmation token), or by
    requesting a volume claim sourced from a volume snapshot.
    """

    kind = SnapshotRestore

    def reconcile_record(self, restore: SnapshotRestore) -> Result:
        mode = (restore.spec.mode or MODE_CLONE).strip().lower()
        if mode not in (MODE_CLONE, MODE_CSI):
            restore.status.set_phase(Phase.FAILED, f"unsupported mode: {restore.spec.mode}")
            return Result()

        if (restore.status.phase == Phase.SUCCEEDED
                and restore.status.observed_generation == restore.metadata.generation):
            return Result(REQUEUE_STEADY)

        if mode == MODE_CLONE:
            return self.restore_dataset(restore)
        return self.restore_claim(restore)

    def restore_dataset(self, restore: SnapshotRestore) -> Result:
        spec = restore.spec
        source = spec.source_snapshot.strip()
        dataset, sep, snap = source.partition("@")
        if not source:
            restore.status.set_phase(Phase.PENDING, "sourceSnapshot is required")
            return Result(REQUEUE_VALIDATION)
        if not sep or not dataset or not snap:
            raise SpecError(f"sourceSnapshot must be dataset@name: {source!r}")

        agent = self.agent_for(spec.node_name)
        if spec.force_rollback:
            if spec.confirmation_token.strip() != source:
                restore.status.set_phase(Phase.PENDING, "forceRollback requires confirmationToken equal to sourceSnapshot")
                return Result(REQUEUE_VALIDATION)
            logger.warning(f"rolling back {dataset} to {source}")
            agent.rollback_snapshot(source, force=True)
            restore.status.result_dataset = dataset
        else:
            target = spec.target_dataset.strip()
            if not target:
                restore.status.set_phase(Phase.PENDING, "targetDataset is required")
                return Result(REQUEUE_VALIDATION)
            agent.clone_snapshot(source, target)
            restore.status.result_dataset = target

        restore.status.set_phase(Phase.SUCCEEDED, "restored")
        return Result(REQUEUE_STEADY)

    def restore_claim(self, restore: SnapshotRestore) -> Result:
        spec = restore.spec
        source = spec.source_volume_snapshot.strip()
        claim_name = spec.target_pvc.strip()
        if not source or not claim_name:
            restore.status.set_phase(Phase.PENDING, "sourceVolumeSnapshot and targetPVC are required")
            return Result(REQUEUE_VALIDATION)

        claim = self.store.get(Descriptor, restore.namespace, claim_name)
        if claim is None:
            resources = spec.resources.model_dump() if spec.resources else {"requests": {"storage": "1Gi"}}
            claim = self.store.create(Descriptor(
                metadata=ObjectMeta(name=claim_name, namespace=restore.namespace),
                spec=DescriptorSpec(
                    type="VolumeClaim",
                    data={
                        "storageClassName": spec.storage_class_name or DEFAULT_STORAGE_CLASS,
                        "accessModes": spec.access_modes or ["ReadWriteOnce"],
                        "resources": resources,
                        "dataSource": {"kind": "VolumeSnapshot", "name": source},
                    },
                ),
            ))
            logger.info(f"restore {restore.name}: requested volume claim {claim_name}")
        elif claim.spec.type != "VolumeClaim":
            raise SpecError(f"{claim_name} exists and is not a volume claim")

        restore.status.result_pvc = claim_name
        if claim.status.get("phase") == "Bound":
            restore.status.set_phase(Phase.SUCCEEDED, "restored")
            return Result(REQUEUE_STEADY)
        restore.status.set_phase(Phase.CREATING, "waiting for volume claim to bind")
        return Result(REQUEUE_POLL)
