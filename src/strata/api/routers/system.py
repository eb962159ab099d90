from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from strata.agent.disks import DiskCache
from strata.api.dtos import DisksResponse
from strata.api.errors import failure
from strata.errors import CommandError
from strata.version import get_version

router = APIRouter(tags=["System"])


@router.get("/health", response_class=PlainTextResponse)
def health_endpoint():
    return "ok"


@router.get("/version")
def version_endpoint():
    return {"version": get_version()}


@router.get("/v1/disks", response_model=DisksResponse)
def list_disks_endpoint(refresh: bool = False):
    cache = DiskCache()
    try:
        return DisksResponse(disks=cache.refresh() if refresh else cache.get())
    except (CommandError, OSError) as e:
        return failure(e, "listing disks")


@router.post("/v1/disks/refresh", response_model=DisksResponse)
def refresh_disks_endpoint():
    try:
        return DisksResponse(disks=DiskCache().refresh())
    except (CommandError, OSError) as e:
        return failure(e, "refreshing disks")
