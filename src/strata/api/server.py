from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from strata.api.dtos import OpResponse
from strata.api.routers import nfs, system, zfs
from strata.version import get_version

app = FastAPI(
    title="Strata Storage Executor",
    description="Node-local API driving the ZFS, NFS and identity-cache toolchain.",
    version=get_version(),
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = "; ".join(f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors())
    return JSONResponse(status_code=400, content=OpResponse(ok=False, error=errors).model_dump(exclude_none=True))


app.include_router(system.router)
app.include_router(zfs.router)
app.include_router(nfs.router)
