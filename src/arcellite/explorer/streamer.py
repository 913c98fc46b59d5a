"""Streaming of files that live on external mounts.

Files readable by the service user are streamed straight from disk. Files the
service user cannot stat are streamed through `sudo -n cat`. Everything that
can fail with a clean HTTP status happens before the response starts; once
bytes are flowing, a failure only ends the stream.
"""

import asyncio
import logging
import os
import stat
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple

from arcellite.config.settings import config
from arcellite.explorer.models import StreamTarget
from arcellite.explorer.paths import confirm_privileged_path, validate_external_path
from arcellite.storage.errors import (
    NotFoundError,
    UnsupportedOperationError,
    UpstreamUnavailableError,
)
from arcellite.storage.privileged import run_sudo_noninteractive

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".bmp": "image/bmp",
    ".heic": "image/heic",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".flac": "audio/flac",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",
    ".html": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".json": "application/json",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def content_type_for(path: str) -> str:
    ext = os.path.splitext(path)[1].lower()
    return CONTENT_TYPES.get(ext, DEFAULT_CONTENT_TYPE)


def privileged_stat(path: str) -> Optional[Tuple[int, bool]]:
    """Returns (size, is_directory) from `sudo -n stat`, or None if that fails."""
    try:
        result = run_sudo_noninteractive(["stat", "--format=%s %F", path], timeout=config.stat_timeout)
    except UpstreamUnavailableError as e:
        logger.warning(f"sudo stat unavailable for {path}: {e}")
        return None
    if not result.ok:
        return None

    size_str, _, file_type = result.stdout.strip().partition(" ")
    try:
        size = int(size_str)
    except ValueError:
        return None
    return size, file_type == "directory"


def resolve_stream_target(path: str) -> StreamTarget:
    resolved = validate_external_path(path)

    direct = True
    try:
        st = os.stat(resolved)
        size, is_dir = st.st_size, stat.S_ISDIR(st.st_mode)
    except FileNotFoundError:
        raise NotFoundError("File not found")
    except PermissionError:
        real = confirm_privileged_path(resolved)
        found = privileged_stat(real) if real else None
        if found is None:
            # Absent and inaccessible look the same from here
            raise NotFoundError("File not found")
        resolved = real
        size, is_dir = found
        direct = False

    if is_dir:
        raise UnsupportedOperationError("Cannot serve a directory")

    return StreamTarget(
        absolute_path=resolved,
        size_bytes=size,
        is_directory=is_dir,
        content_type=content_type_for(resolved),
        direct=direct,
    )


def stream_headers(target: StreamTarget) -> Dict[str, str]:
    return {
        "Content-Type": target.content_type,
        "Content-Length": str(target.size_bytes),
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Headers": "Range, Accept, Content-Type",
        "Cache-Control": "public, max-age=31536000",
    }


class StreamSource:
    """
    Bytes of one file response. `aclose` releases the open file or the `cat`
    process whether or not the body was ever iterated; it is safe to call
    more than once.
    """

    def __init__(self, chunks: AsyncIterator[bytes], release: Callable[[], Awaitable[None]]):
        self._chunks = chunks
        self._release = release
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._chunks:
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self):
        if self.closed:
            return
        self.closed = True
        try:
            await self._chunks.aclose()
        finally:
            await self._release()


async def _read_file(handle, path: str) -> AsyncIterator[bytes]:
    try:
        while True:
            chunk = await asyncio.to_thread(handle.read, CHUNK_SIZE)
            if not chunk:
                break
            yield chunk
    except OSError as e:
        logger.error(f"Read error while streaming {path}: {e}")


async def _read_process(process: asyncio.subprocess.Process, path: str) -> AsyncIterator[bytes]:
    while True:
        chunk = await process.stdout.read(CHUNK_SIZE)
        if not chunk:
            break
        yield chunk
    returncode = await process.wait()
    if returncode != 0:
        stderr = await process.stderr.read()
        logger.error(f"sudo cat {path} exited {returncode}: {stderr.decode(errors='replace').strip()}")


def _file_source(handle, path: str) -> StreamSource:
    async def release():
        handle.close()

    return StreamSource(_read_file(handle, path), release)


def _process_source(process: asyncio.subprocess.Process, path: str) -> StreamSource:
    async def release():
        # Client went away mid-stream: do not leave cat running
        if process.returncode is None:
            process.kill()
            await process.wait()

    return StreamSource(_read_process(process, path), release)


async def open_stream(target: StreamTarget) -> StreamSource:
    """
    Opens the byte source for `target`. Opening errors raise here, before any
    response has been started.
    """
    if target.direct:
        handle = await asyncio.to_thread(open, target.absolute_path, "rb")
        return _file_source(handle, target.absolute_path)

    try:
        process = await asyncio.create_subprocess_exec(
            "sudo", "-n", "cat", "--", target.absolute_path,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise UpstreamUnavailableError(f"Could not start privileged reader: {e}") from e
    return _process_source(process, target.absolute_path)
