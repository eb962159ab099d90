from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from strata.errors import InvalidPhaseTransition
from strata.renderers.directory import DirectorySpec
from strata.renderers.options import SMBShareOptions
from strata.schedule.retention import DEFAULT_FORMAT, DEFAULT_PREFIX, RetentionPolicy


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Phase(str, Enum):
    PENDING = "Pending"
    CREATING = "Creating"
    READY = "Ready"
    SUCCEEDED = "Succeeded"
    ERROR = "Error"
    FAILED = "Failed"


_ANY = frozenset(Phase)

ALLOWED_TRANSITIONS = {
    None: _ANY,
    Phase.PENDING: _ANY,
    Phase.CREATING: _ANY,
    Phase.READY: frozenset({Phase.READY, Phase.CREATING, Phase.PENDING, Phase.ERROR}),
    Phase.SUCCEEDED: frozenset({Phase.SUCCEEDED, Phase.CREATING, Phase.PENDING, Phase.ERROR, Phase.FAILED}),
    Phase.ERROR: _ANY,
    Phase.FAILED: _ANY,
}


def can_transition(current: Optional[Phase], new: Phase) -> bool:
    return new in ALLOWED_TRANSITIONS[current]


def now_rfc3339() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class OwnerReference(CamelModel):
    kind: str
    name: str


class ObjectMeta(CamelModel):
    name: str
    namespace: str = "default"
    resource_version: int = 0
    generation: int = 1
    deletion_timestamp: Optional[str] = None
    finalizers: List[str] = []
    owner_reference: Optional[OwnerReference] = None
    labels: Dict[str, str] = {}
    annotations: Dict[str, str] = {}


class Condition(CamelModel):
    type: str
    status: str
    reason: str = ""
    message: str = ""
    last_transition_time: str = Field(default_factory=now_rfc3339)


class Status(CamelModel):
    phase: Optional[Phase] = None
    message: str = ""
    observed_generation: int = 0

    def set_phase(self, phase: Phase, message: Optional[str] = None):
        if not can_transition(self.phase, phase):
            raise InvalidPhaseTransition(f"{self.phase.value} -> {phase.value}")
        self.phase = phase
        if message is not None:
            self.message = message


class Record(CamelModel):
    kind: ClassVar[str] = ""

    metadata: ObjectMeta
    spec: Any = None
    status: Status = Field(default_factory=Status)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.kind, self.metadata.namespace, self.metadata.name)

    @property
    def deleting(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    def owned_by(self, owner: "Record"):
        self.metadata.owner_reference = OwnerReference(kind=owner.kind, name=owner.name)
        self.metadata.namespace = owner.namespace


# Pool

class VdevGroup(CamelModel):
    type: str = "stripe"
    devices: List[str] = []


class PoolSpec(CamelModel):
    node_name: str = ""
    pool_name: str = ""
    vdevs: List[VdevGroup] = []
    properties: Dict[str, str] = {}


class PoolUsage(CamelModel):
    total: int = 0
    used: int = 0
    available: int = 0


class PoolStatus(Status):
    health: str = ""
    usage: Optional[PoolUsage] = None


class Pool(Record):
    kind: ClassVar[str] = "Pool"
    spec: PoolSpec = Field(default_factory=PoolSpec)
    status: PoolStatus = Field(default_factory=PoolStatus)


# Dataset

class DatasetSpec(CamelModel):
    node_name: str = ""
    dataset_name: str = ""
    mountpoint: str = ""
    properties: Dict[str, str] = {}


class Dataset(Record):
    kind: ClassVar[str] = "Dataset"
    spec: DatasetSpec = Field(default_factory=DatasetSpec)


# Snapshot

class SnapshotSpec(CamelModel):
    node_name: str = ""
    dataset_name: str = ""
    snapshot_name: str = ""
    recursive: bool = False
    destroy_on_delete: bool = False
    pvc_name: str = Field(default="", alias="pvcName")
    snapshot_class_name: str = ""


class SnapshotStatus(Status):
    snapshot: str = ""
    volume_snapshot_name: str = ""


class Snapshot(Record):
    kind: ClassVar[str] = "Snapshot"
    spec: SnapshotSpec = Field(default_factory=SnapshotSpec)
    status: SnapshotStatus = Field(default_factory=SnapshotStatus)


# Snapshot schedule

class SnapshotScheduleSpec(CamelModel):
    node_name: str = ""
    dataset_name: str = ""
    schedule: str = ""
    name_prefix: str = DEFAULT_PREFIX
    format: str = DEFAULT_FORMAT
    recursive: bool = False
    retention: RetentionPolicy = Field(default_factory=RetentionPolicy)


class SnapshotScheduleStatus(Status):
    last_snapshot_name: str = ""
    last_run_time: str = ""
    next_run_time: str = ""


class SnapshotSchedule(Record):
    kind: ClassVar[str] = "SnapshotSchedule"
    spec: SnapshotScheduleSpec = Field(default_factory=SnapshotScheduleSpec)
    status: SnapshotScheduleStatus = Field(default_factory=SnapshotScheduleStatus)


# Snapshot restore

class ClaimResources(CamelModel):
    requests: Dict[str, str] = Field(default_factory=lambda: {"storage": "1Gi"})


class SnapshotRestoreSpec(CamelModel):
    mode: str = "clone"
    node_name: str = ""
    source_snapshot: str = ""
    target_dataset: str = ""
    force_rollback: bool = False
    confirmation_token: str = ""
    source_volume_snapshot: str = ""
    target_pvc: str = Field(default="", alias="targetPVC")
    storage_class_name: str = ""
    access_modes: List[str] = []
    resources: Optional[ClaimResources] = None


class SnapshotRestoreStatus(Status):
    result_dataset: str = ""
    result_pvc: str = Field(default="", alias="resultPVC")


class SnapshotRestore(Record):
    kind: ClassVar[str] = "SnapshotRestore"
    spec: SnapshotRestoreSpec = Field(default_factory=SnapshotRestoreSpec)
    status: SnapshotRestoreStatus = Field(default_factory=SnapshotRestoreStatus)


# Shares

class PrincipalSelector(CamelModel):
    users: List[str] = []
    groups: List[str] = []


class NFSSettings(CamelModel):
    clients: List[str] = []
    options: str = ""


class ShareSpec(CamelModel):
    protocol: str = ""
    node_name: str = ""
    dataset_name: str = ""
    pvc_name: str = Field(default="", alias="pvcName")
    mount_path: str = ""
    share_name: str = ""
    read_only: bool = False
    service_type: str = "ClusterIP"
    node_port: int = 0
    directory_ref: str = ""
    users: PrincipalSelector = Field(default_factory=PrincipalSelector)
    options: Dict[str, Any] = {}
    nfs: NFSSettings = Field(default_factory=NFSSettings)


class ShareStatus(Status):
    endpoint: str = ""


class Share(Record):
    kind: ClassVar[str] = "Share"
    spec: ShareSpec = Field(default_factory=ShareSpec)
    status: ShareStatus = Field(default_factory=ShareStatus)


class SMBUser(CamelModel):
    username: str
    password_secret: str


class SMBShareSpec(CamelModel):
    share_name: str
    mount_path: str = ""
    pvc_name: str = Field(default="", alias="pvcName")
    read_only: bool = False
    service_type: str = "ClusterIP"
    node_port: int = 0
    directory_ref: str = ""
    users: List[SMBUser] = []
    options: SMBShareOptions = Field(default_factory=SMBShareOptions)


class SMBShare(Record):
    kind: ClassVar[str] = "SMBShare"
    spec: SMBShareSpec
    status: ShareStatus = Field(default_factory=ShareStatus)


# Identity

class SecretRef(CamelModel):
    name: str = ""


class UserSpec(CamelModel):
    username: str = ""
    password_secret_ref: SecretRef = Field(default_factory=SecretRef)
    directory_ref: str = ""


class User(Record):
    kind: ClassVar[str] = "User"
    spec: UserSpec = Field(default_factory=UserSpec)


class GroupSpec(CamelModel):
    members: List[str] = []
    directory_ref: str = ""


class Group(Record):
    kind: ClassVar[str] = "Group"
    spec: GroupSpec = Field(default_factory=GroupSpec)


class DirectoryStatus(Status):
    applied_hash: str = ""
    conditions: List[Condition] = []

    def set_condition(self, type_: str, status: str, reason: str, message: str):
        for cond in self.conditions:
            if cond.type == type_:
                if cond.status != status:
                    cond.last_transition_time = now_rfc3339()
                cond.status, cond.reason, cond.message = status, reason, message
                return
        self.conditions.append(Condition(type=type_, status=status, reason=reason, message=message))


class Directory(Record):
    kind: ClassVar[str] = "Directory"
    spec: DirectorySpec = Field(default_factory=DirectorySpec)
    status: DirectoryStatus = Field(default_factory=DirectoryStatus)


# Derived deployment descriptors

class DescriptorSpec(CamelModel):
    type: str
    data: Dict[str, Any] = {}


class Descriptor(Record):
    """
    A generic derived artifact: a config bundle, a workload, a service
    endpoint, a volume claim or a volume snapshot. Whatever runs workloads
    consumes these; `status` is written back by it.
    """

    kind: ClassVar[str] = "Descriptor"
    spec: DescriptorSpec
    status: Dict[str, Any] = {}


RECORD_KINDS = {
    cls.kind: cls
    for cls in (Pool, Dataset, Snapshot, SnapshotSchedule, SnapshotRestore, Share, SMBShare,
                User, Group, Directory, Descriptor)
}


def record_from_manifest(doc: Dict[str, Any]) -> Record:
    kind = doc.get("kind", "")
    if kind not in RECORD_KINDS:
        raise ValueError(f"unknown kind: {kind!r}")
    return RECORD_KINDS[kind].model_validate({k: v for k, v in doc.items() if k != "kind"})
