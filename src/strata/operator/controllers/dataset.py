from strata.agent.zfs import normalize_properties
from strata.errors import SpecError
from strata.operator.models import Dataset, Phase
from strata.operator.reconciler import REQUEUE_STEADY, Reconciler, Result


class DatasetReconciler(Reconciler):
    kind = Dataset

    def reconcile_record(self, dataset: Dataset) -> Result:
        full_name = (dataset.spec.dataset_name or dataset.name).strip()
        if "/" not in full_name:
            raise SpecError(f"datasetName must be pool-qualified: {full_name!r}")
        agent = self.agent_for(dataset.spec.node_name)
        agent.ensure_dataset(full_name, dataset.spec.mountpoint or None, normalize_properties(dataset.spec.properties))
        dataset.status.set_phase(Phase.READY, "OK")
        return Result(REQUEUE_STEADY)
