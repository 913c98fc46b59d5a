"""API router for removable storage: enumeration, hot-plug events, mount/unmount."""

import traceback

from fastapi import APIRouter
from fastapi.logger import logger
from fastapi.responses import StreamingResponse

from arcellite.api.dtos import ErrorResponse, VersionInfo, error_response, internal_error
from arcellite.storage.errors import StorageError
from arcellite.storage.hotplug import HotplugNotifier
from arcellite.storage.manager import StorageManager
from arcellite.storage.models import DeviceRequest, MountResult, OkResult, StorageOverview

router = APIRouter(prefix="/api/system", tags=["System"])
manager = StorageManager()
notifier = HotplugNotifier()

AUTH_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid device or no partition"},
    401: {"model": ErrorResponse, "description": "Password required or incorrect"},
    409: {"model": ErrorResponse, "description": "Device busy"},
    500: {"model": ErrorResponse, "description": "Internal Server Error"},
}


@router.get(
    "/storage",
    response_model=StorageOverview,
    responses={500: {"model": ErrorResponse, "description": "Internal Server Error"}},
)
def get_storage():
    """
    Root filesystem usage plus the removable devices currently attached.
    """
    try:
        return manager.get_overview()
    except StorageError as e:
        return error_response(e)
    except Exception as e:
        logger.error(f"Error reading storage: {e}\n{traceback.format_exc()}")
        return internal_error(str(e))


@router.get("/version", response_model=VersionInfo)
def get_version_endpoint():
    from arcellite.version import get_version
    try:
        return VersionInfo(version=get_version())
    except Exception as e:
        logger.error(f"Error getting version info: {e}\n{traceback.format_exc()}")
        return internal_error(str(e))


@router.get("/usb-events")
async def usb_events():
    """
    Server-Sent Events stream: one `init` event on connect, then a `change`
    event whenever the set of attached devices differs between polls.
    """
    return StreamingResponse(
        notifier.stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.post("/mount", response_model=MountResult, responses=AUTH_RESPONSES)
def mount_device(request: DeviceRequest):
    """
    Mounts the first partition of a device. Runs in the threadpool since the
    privileged commands can take a long time on large volumes.
    """
    try:
        mountpoint = manager.mount(request.device, request.password)
        return MountResult(mountpoint=mountpoint)
    except StorageError as e:
        if e.status_code >= 500:
            logger.error(f"Error mounting {request.device}: {e}")
        return error_response(e)
    except Exception as e:
        logger.error(f"Error mounting {request.device}: {e}\n{traceback.format_exc()}")
        return internal_error(str(e))


@router.post("/unmount", response_model=OkResult, responses=AUTH_RESPONSES)
def unmount_device(request: DeviceRequest):
    """
    Unmounts a device. A device that is not mounted counts as success.
    """
    try:
        manager.unmount(request.device, request.password)
        return OkResult()
    except StorageError as e:
        if e.status_code >= 500:
            logger.error(f"Error unmounting {request.device}: {e}")
        return error_response(e)
    except Exception as e:
        logger.error(f"Error unmounting {request.device}: {e}\n{traceback.format_exc()}")
        return internal_error(str(e))
