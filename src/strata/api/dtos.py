from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from strata.agent.models import Disk, NFSExport, PoolStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OpResponse(BaseModel):
    ok: bool = True
    output: Optional[str] = None
    error: Optional[str] = None


class PoolCreateResponse(OpResponse):
    pool: Optional[PoolStatus] = None


class PoolListResponse(OpResponse):
    pools: List[str] = []


class SnapshotListResponse(OpResponse):
    items: List[str] = []


class ExportListResponse(OpResponse):
    items: List[NFSExport] = []


class DisksResponse(BaseModel):
    disks: List[Disk]


class VdevGroup(BaseModel):
    type: str = ""
    devices: List[str] = []


class PoolCreate(CamelModel):
    name: str
    layout: str = "stripe"
    devices: List[str] = []
    vdevs: List[VdevGroup] = []
    properties: Dict[str, str] = {}

    def groups(self):
        return [(v.type, v.devices) for v in self.vdevs]


class PoolDestroy(CamelModel):
    name: str


class DatasetEnsure(CamelModel):
    pool: str
    name: str
    mountpoint: Optional[str] = None
    properties: Dict[str, Any] = {}

    @property
    def full_name(self) -> str:
        return f"{self.pool.strip().strip('/')}/{self.name.strip().strip('/')}"


class DatasetMount(CamelModel):
    dataset: str
    mountpoint: Optional[str] = None
    mode: Optional[str] = None
    recursive: bool = False


class SnapshotCreate(CamelModel):
    dataset: str
    name: str
    recursive: bool = False


class SnapshotDestroy(CamelModel):
    snapshot: str


class SnapshotClone(CamelModel):
    source_snapshot: str
    target_dataset: str


class SnapshotRollback(CamelModel):
    snapshot: str
    force: bool = False


class ExportEnsure(CamelModel):
    path: str
    clients: List[str] = []
    options: str = ""


class ExportDelete(CamelModel):
    path: str


class SSSDApply(CamelModel):
    config: str
    ca_bundle: Optional[str] = None


# Legacy request shapes
class LegacyPoolCreate(CamelModel):
    pool_name: str
    vdev_type: str = ""
    vdevs: List[VdevGroup] = []

    def groups(self):
        # Every entry's devices form one vdev of vdevType
        return [(self.vdev_type, [d for v in self.vdevs for d in v.devices])]


class LegacyPoolDestroy(CamelModel):
    pool_name: str


class LegacyDatasetEnsure(CamelModel):
    dataset: str
    mountpoint: Optional[str] = None
    properties: Dict[str, Any] = Field(default_factory=dict)
