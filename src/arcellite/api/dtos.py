from typing import Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from arcellite.storage.errors import StorageError


class ErrorResponse(BaseModel):
    error: str
    requires_auth: Optional[bool] = Field(default=None, alias="requiresAuth")


class VersionInfo(BaseModel):
    version: str


def error_response(exc: StorageError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def internal_error(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": message})
