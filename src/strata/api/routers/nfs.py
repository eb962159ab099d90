from fastapi import APIRouter

from strata.agent.nfs import ExportsManager
from strata.agent.sssd import apply_sssd_config
from strata.api.dtos import ExportDelete, ExportEnsure, ExportListResponse, OpResponse, SSSDApply
from strata.api.errors import failure
from strata.errors import CommandError

router = APIRouter(prefix="/v1/nfs", tags=["NFS"])


@router.post("/export/ensure", response_model=OpResponse, response_model_exclude_none=True)
def ensure_export_endpoint(req: ExportEnsure):
    try:
        changed = ExportsManager().ensure_export(req.path, req.clients, req.options)
        return OpResponse(output="updated" if changed else "unchanged")
    except (ValueError, CommandError, OSError) as e:
        return failure(e, f"exporting {req.path}")


@router.post("/export/delete", response_model=OpResponse, response_model_exclude_none=True)
def delete_export_endpoint(req: ExportDelete):
    try:
        changed = ExportsManager().delete_export(req.path)
        return OpResponse(output="removed" if changed else "not exported")
    except (CommandError, OSError) as e:
        return failure(e, f"unexporting {req.path}")


@router.get("/exports", response_model=ExportListResponse)
def list_exports_endpoint():
    try:
        return ExportListResponse(items=ExportsManager().list_exports())
    except OSError as e:
        return failure(e, "reading exports")


@router.post("/sssd/apply", response_model=OpResponse, response_model_exclude_none=True)
def apply_sssd_endpoint(req: SSSDApply):
    try:
        return OpResponse(output=apply_sssd_config(req.config, req.ca_bundle))
    except OSError as e:
        return failure(e, "applying sssd config")
