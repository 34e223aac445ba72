'''
Translates scheduling errors into JSON responses.
'''
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ..common.exceptions import SchedulingError
from ..common.logger import log


def _error_body(exc: SchedulingError) -> dict:
    body = {"detail": exc.message, "error": exc.error_code}
    if exc.details:
        body["details"] = jsonable_encoder(exc.details)
    return body


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(SchedulingError)
    async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
        if exc.status_code >= 500:
            log.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            log.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
        headers = {"Retry-After": "1"} if exc.status_code == 503 else None
        return JSONResponse(_error_body(exc), status_code=exc.status_code, headers=headers)
