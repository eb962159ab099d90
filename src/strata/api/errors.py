import traceback

from fastapi.logger import logger
from fastapi.responses import JSONResponse

from strata.api.dtos import OpResponse
from strata.errors import CommandError, CommandTimeout


def failure(e: Exception, action: str) -> JSONResponse:
    """Map an executor exception to an `{ok: false}` response."""
    if isinstance(e, ValueError):
        return JSONResponse(status_code=400, content=OpResponse(ok=False, error=str(e)).model_dump(exclude_none=True))

    status_code = 504 if isinstance(e, CommandTimeout) else 500
    output = e.output if isinstance(e, CommandError) else None
    logger.error(f"Error {action}: {e}\n{traceback.format_exc()}")
    body = OpResponse(ok=False, output=output, error=str(e))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))
