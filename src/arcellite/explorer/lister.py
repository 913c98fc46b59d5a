import logging
import os
import stat
import subprocess
import time
from typing import List

from arcellite.config.settings import config
from arcellite.explorer.ls_parser import parse_ls_output
from arcellite.explorer.models import DirEntry, DirListing
from arcellite.explorer.paths import confirm_privileged_path, resolve_listing_path
from arcellite.storage.errors import ForbiddenError, PathNotAllowedError, UpstreamUnavailableError
from arcellite.storage.privileged import run_sudo_noninteractive

logger = logging.getLogger(__name__)

LS_ARGS = ["ls", "-la", "--time-style=+%s"]


def _has_subfolders(path: str):
    try:
        with os.scandir(path) as it:
            return any(child.is_dir() for child in it)
    except OSError:
        return None


def read_direct(path: str) -> List[DirEntry]:
    """
    Tier 1: readdir + stat. A failing stat on one entry yields a bare entry
    instead of aborting the listing.
    """
    entries = []
    for name in os.listdir(path):
        full = os.path.join(path, name)
        try:
            st = os.stat(full)
        except OSError:
            entries.append(DirEntry(name=name, is_folder=False, mtime_ms=time.time() * 1000))
            continue

        is_dir = stat.S_ISDIR(st.st_mode)
        entries.append(DirEntry(
            name=name,
            is_folder=is_dir,
            mtime_ms=st.st_mtime * 1000,
            size_bytes=st.st_size if stat.S_ISREG(st.st_mode) else None,
            has_subfolders=_has_subfolders(full) if is_dir else None,
        ))
    return entries


def read_with_sudo_ls(path: str) -> List[DirEntry]:
    """Tier 2: `sudo -n ls` for directories owned by another user."""
    try:
        real = confirm_privileged_path(path)
    except ForbiddenError:
        raise PathNotAllowedError()
    if real is None:
        return []

    result = run_sudo_noninteractive(LS_ARGS + [real], timeout=config.list_timeout)
    if not result.ok:
        logger.debug(f"sudo ls {path} failed: {result.message}")
        return []
    return parse_ls_output(result.stdout)


def read_with_ls(path: str) -> List[DirEntry]:
    """Tier 3: plain `ls`, for hosts without sudo rules on world-readable dirs."""
    try:
        result = subprocess.run(
            LS_ARGS + [path],
            capture_output=True,
            text=True,
            timeout=config.list_timeout,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"ls {path} failed: {e}")
        return []
    if result.returncode != 0:
        logger.debug(f"ls {path} failed: {result.stderr.strip()}")
        return []
    return parse_ls_output(result.stdout)


def _split(entries: List[DirEntry]) -> DirListing:
    key = lambda e: e.name.lower()
    return DirListing(
        folders=sorted((e for e in entries if e.is_folder), key=key),
        files=sorted((e for e in entries if not e.is_folder), key=key),
    )


def list_directory(path: str) -> DirListing:
    """
    Lists a directory below one of the allowed mount roots, trying a direct
    read, then `sudo -n ls`, then plain `ls`. A path that does not exist is
    reported as empty. Symlinks are resolved before the allow-list check, so
    a link on the media cannot point the listing elsewhere.
    """
    resolved = resolve_listing_path(path)

    entries: List[DirEntry] = []
    try:
        entries = read_direct(resolved)
    except (FileNotFoundError, NotADirectoryError):
        return DirListing()
    except OSError as e:
        logger.warning(f"Direct read of {resolved} failed: {e}")

    if not entries:
        try:
            entries = read_with_sudo_ls(resolved)
        except UpstreamUnavailableError as e:
            logger.warning(f"sudo ls fallback for {resolved} unavailable: {e}")
        if entries:
            logger.info(f"sudo ls fallback found {len(entries)} entries in {resolved}")

    if not entries:
        entries = read_with_ls(resolved)
        if entries:
            logger.info(f"ls fallback found {len(entries)} entries in {resolved}")

    return _split(entries)
