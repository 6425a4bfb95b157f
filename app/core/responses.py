# =====================================================
# FILE: app/core/responses.py
# Uniform response envelope {success, message, data?, error?}
# =====================================================

from typing import Any, Optional
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.core.exceptions import SigningWorkflowError


def success_response(data: Any = None, message: str = "Success", status_code: int = 200) -> JSONResponse:
    body = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def error_response(
    exc: SigningWorkflowError,
    message: Optional[str] = None,
) -> JSONResponse:
    body = exc.to_dict()
    if message:
        body["message"] = message
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(body))
