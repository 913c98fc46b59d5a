"""API router for browsing and serving files on external mounts."""

import traceback

from fastapi import APIRouter, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.logger import logger
from fastapi.responses import StreamingResponse

from arcellite.api.dtos import ErrorResponse, error_response, internal_error
from arcellite.explorer.lister import list_directory
from arcellite.explorer.models import DirListing, ExternalPathRequest, RenameRequest, RenameResult
from arcellite.explorer.operations import delete_external, mkdir_external, rename_external
from arcellite.explorer.streamer import StreamSource, open_stream, resolve_stream_target, stream_headers
from arcellite.storage.errors import StorageError
from arcellite.storage.models import OkResult

router = APIRouter(prefix="/api/files", tags=["Files"])


class ExternalFileResponse(StreamingResponse):
    """Streams a StreamSource and always releases it, even if the client left before the body started."""

    def __init__(self, source: StreamSource, **kwargs):
        super().__init__(source, **kwargs)
        self.source = source

    async def __call__(self, scope, receive, send):
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.source.aclose()


OPERATION_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Bad Request"},
    403: {"model": ErrorResponse, "description": "Path not allowed"},
    404: {"model": ErrorResponse, "description": "Not found"},
    500: {"model": ErrorResponse, "description": "Internal Server Error"},
}


@router.get(
    "/list-external",
    response_model=DirListing,
    responses={
        403: {"model": ErrorResponse, "description": "Path not allowed"},
        500: {"model": ErrorResponse, "description": "Internal Server Error"},
    },
)
def list_external(path: str = Query("", description="Absolute directory path on an external mount")):
    """
    Lists a directory on a removable or external mount.
    """
    try:
        return list_directory(path)
    except StorageError as e:
        if e.status_code == 403:
            logger.warning(f"list-external blocked for {path!r}")
        return error_response(e)
    except Exception as e:
        logger.error(f"Error listing {path!r}: {e}\n{traceback.format_exc()}")
        return internal_error(str(e))


@router.get("/serve-external", responses=OPERATION_RESPONSES)
async def serve_external(path: str = Query("", description="Absolute file path on an external mount")):
    """
    Streams a file from an external mount. Falls back to a privileged reader
    for files the service user cannot access.
    """
    try:
        target = await run_in_threadpool(resolve_stream_target, path)
        body = await open_stream(target)
    except StorageError as e:
        if e.status_code >= 500:
            logger.error(f"Error serving {path!r}: {e}")
        else:
            logger.warning(f"serve-external refused {path!r}: {e.message}")
        return error_response(e)
    except Exception as e:
        logger.error(f"Error serving {path!r}: {e}\n{traceback.format_exc()}")
        return internal_error("Error reading file")

    headers = stream_headers(target)
    return ExternalFileResponse(body, media_type=headers.pop("Content-Type"), headers=headers)


@router.post("/delete-external", response_model=OkResult, responses=OPERATION_RESPONSES)
def delete_external_file(request: ExternalPathRequest):
    """Deletes a file or folder (recursively) on an external mount."""
    try:
        delete_external(request.path)
        return OkResult()
    except StorageError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error deleting {request.path!r}: {e}\n{traceback.format_exc()}")
        return internal_error(str(e))


@router.post("/rename-external", response_model=RenameResult, responses=OPERATION_RESPONSES)
def rename_external_file(request: RenameRequest):
    """Renames a file or folder in place on an external mount."""
    try:
        new_path = rename_external(request.path, request.new_name)
        return RenameResult(new_path=new_path)
    except StorageError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error renaming {request.path!r}: {e}\n{traceback.format_exc()}")
        return internal_error(str(e))


@router.post("/mkdir-external", response_model=OkResult, responses=OPERATION_RESPONSES)
def mkdir_external_folder(request: ExternalPathRequest):
    """Creates a folder on an external mount."""
    try:
        mkdir_external(request.path)
        return OkResult()
    except StorageError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error creating {request.path!r}: {e}\n{traceback.format_exc()}")
        return internal_error(str(e))
