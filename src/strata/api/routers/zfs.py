from typing import Optional

from fastapi import APIRouter
from fastapi.logger import logger
from fastapi.responses import JSONResponse

from strata.agent.zfs import DatasetManager
from strata.agent.zpool import PoolManager
from strata.api.dtos import (
    DatasetEnsure,
    DatasetMount,
    LegacyDatasetEnsure,
    LegacyPoolCreate,
    LegacyPoolDestroy,
    OpResponse,
    PoolCreate,
    PoolCreateResponse,
    PoolDestroy,
    PoolListResponse,
    SnapshotClone,
    SnapshotCreate,
    SnapshotDestroy,
    SnapshotListResponse,
    SnapshotRollback,
)
from strata.api.errors import failure
from strata.errors import CommandError, CommandTimeout

router = APIRouter(prefix="/v1/zfs", tags=["ZFS"])


def _create_pool(name, layout, devices, properties, vdevs):
    manager = PoolManager()
    try:
        output = manager.create_pool(name, layout, devices, properties, vdevs)
    except (ValueError, CommandError) as e:
        return failure(e, f"creating pool {name}")
    try:
        pool = manager.pool_status(name)
    except CommandError as e:
        logger.warning(f"pool {name} created but status failed: {e}")
        pool = None
    return PoolCreateResponse(ok=True, output=output, pool=pool)


@router.post("/zpools/create", response_model=PoolCreateResponse, response_model_exclude_none=True)
def create_pool_endpoint(req: PoolCreate):
    return _create_pool(req.name, req.layout, req.devices, req.properties, req.groups())


@router.get("/zpools/status")
def pool_status_endpoint(name: Optional[str] = None):
    manager = PoolManager()
    if name:
        try:
            return manager.pool_status(name)
        except CommandTimeout as e:
            return failure(e, f"reading status of pool {name}")
        except CommandError as e:
            return JSONResponse(
                status_code=404,
                content=OpResponse(ok=False, output=e.output, error=f"pool {name}: {e}").model_dump(exclude_none=True),
            )
    try:
        return {"pools": manager.all_pool_status()}
    except CommandError as e:
        return failure(e, "listing pool status")


@router.post("/zpools/destroy", response_model=OpResponse, response_model_exclude_none=True)
def destroy_pool_endpoint(req: PoolDestroy):
    try:
        return OpResponse(output=PoolManager().destroy_pool(req.name))
    except (ValueError, CommandError) as e:
        return failure(e, f"destroying pool {req.name}")


@router.post("/zdatasets/ensure", response_model=OpResponse, response_model_exclude_none=True)
def ensure_dataset_endpoint(req: DatasetEnsure):
    try:
        output = DatasetManager().ensure_dataset(req.full_name, req.mountpoint, req.properties)
        return OpResponse(output=output)
    except (ValueError, CommandError) as e:
        return failure(e, f"ensuring dataset {req.full_name}")


@router.post("/dataset/mount", response_model=OpResponse, response_model_exclude_none=True)
def mount_dataset_endpoint(req: DatasetMount):
    try:
        output = DatasetManager().mount_dataset(req.dataset, req.mountpoint, req.mode, req.recursive)
        return OpResponse(output=output)
    except (ValueError, CommandError) as e:
        return failure(e, f"mounting dataset {req.dataset}")


@router.get("/snapshot/list", response_model=SnapshotListResponse, response_model_exclude_none=True)
def list_snapshots_endpoint(dataset: Optional[str] = None):
    try:
        return SnapshotListResponse(items=DatasetManager().list_snapshots(dataset))
    except (ValueError, CommandError) as e:
        return failure(e, "listing snapshots")


@router.post("/snapshot/create", response_model=OpResponse, response_model_exclude_none=True)
def create_snapshot_endpoint(req: SnapshotCreate):
    try:
        return OpResponse(output=DatasetManager().create_snapshot(req.dataset, req.name, req.recursive))
    except (ValueError, CommandError) as e:
        return failure(e, f"creating snapshot {req.dataset}@{req.name}")


@router.post("/snapshot/destroy", response_model=OpResponse, response_model_exclude_none=True)
def destroy_snapshot_endpoint(req: SnapshotDestroy):
    try:
        return OpResponse(output=DatasetManager().destroy_snapshot(req.snapshot))
    except (ValueError, CommandError) as e:
        return failure(e, f"destroying snapshot {req.snapshot}")


@router.post("/snapshot/clone", response_model=OpResponse, response_model_exclude_none=True)
def clone_snapshot_endpoint(req: SnapshotClone):
    try:
        return OpResponse(output=DatasetManager().clone_snapshot(req.source_snapshot, req.target_dataset))
    except (ValueError, CommandError) as e:
        return failure(e, f"cloning {req.source_snapshot}")


@router.post("/snapshot/rollback", response_model=OpResponse, response_model_exclude_none=True)
def rollback_snapshot_endpoint(req: SnapshotRollback):
    try:
        return OpResponse(output=DatasetManager().rollback_snapshot(req.snapshot, req.force))
    except (ValueError, CommandError) as e:
        return failure(e, f"rolling back to {req.snapshot}")


# Backward-compatible aliases

@router.get("/pool/list", response_model=PoolListResponse, response_model_exclude_none=True)
def legacy_list_pools_endpoint():
    try:
        return PoolListResponse(pools=PoolManager().list_pools())
    except CommandError as e:
        return failure(e, "listing pools")


@router.post("/pool/create", response_model=PoolCreateResponse, response_model_exclude_none=True)
def legacy_create_pool_endpoint(req: LegacyPoolCreate):
    return _create_pool(req.pool_name, "", [], {"ashift": "12"}, req.groups())


@router.post("/pool/destroy", response_model=OpResponse, response_model_exclude_none=True)
def legacy_destroy_pool_endpoint(req: LegacyPoolDestroy):
    return destroy_pool_endpoint(PoolDestroy(name=req.pool_name))


@router.post("/dataset/ensure", response_model=OpResponse, response_model_exclude_none=True)
def legacy_ensure_dataset_endpoint(req: LegacyDatasetEnsure):
    try:
        output = DatasetManager().ensure_dataset(req.dataset, req.mountpoint, req.properties)
        return OpResponse(output=output)
    except (ValueError, CommandError) as e:
        return failure(e, f"ensuring dataset {req.dataset}")
