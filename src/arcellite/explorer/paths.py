import logging
import os
from typing import Iterable, List, Optional

from arcellite.config.settings import config
from arcellite.storage.errors import ForbiddenError, PathNotAllowedError, UpstreamUnavailableError
from arcellite.storage.privileged import run_sudo_noninteractive

logger = logging.getLogger(__name__)


def allowed_roots() -> List[str]:
    """The configured roots plus their symlink-free spellings."""
    roots = list(config.allowed_roots)
    for root in config.allowed_roots:
        real = os.path.realpath(root)
        if real not in roots and real + "/" not in roots:
            roots.append(real)
    return roots


def is_under_allowed_root(path: str, roots: Optional[Iterable[str]] = None) -> bool:
    """True when `path` is one of the allowed roots or lies below one."""
    for root in roots if roots is not None else config.allowed_roots:
        prefix = root if root.endswith("/") else root + "/"
        if path.startswith(prefix) or path == prefix.rstrip("/"):
            return True
    return False


def is_allowed_root(path: str, roots: Optional[Iterable[str]] = None) -> bool:
    for root in roots if roots is not None else allowed_roots():
        if path == root.rstrip("/"):
            return True
    return False


def _realpath(path: str, follow_final: bool) -> str:
    if follow_final:
        return os.path.realpath(path)
    # Resolve the parent only, so a symlink itself is the target and not what it points at
    parent, name = os.path.split(path)
    return os.path.join(os.path.realpath(parent), name)


def resolve_listing_path(path: str) -> str:
    """
    Normalises a listing path and checks it against the allowed roots, both as
    written and with symlinks resolved. Returns the resolved path.
    """
    resolved = os.path.abspath(os.path.normpath(path or ""))
    if not path or not is_under_allowed_root(resolved):
        raise PathNotAllowedError()

    real = os.path.realpath(resolved)
    if not is_under_allowed_root(real, allowed_roots()):
        logger.warning(f"{resolved} resolves to {real}, outside the allowed roots")
        raise PathNotAllowedError()
    return real


def validate_external_path(path: str, follow_final: bool = True) -> str:
    """
    Checks a path used to serve or modify a file: it must be absolute, free
    of `..` segments and under one of the allowed roots once symlinks are
    resolved. With `follow_final=False` a trailing symlink is kept as is.
    """
    if not path or not path.startswith("/"):
        raise ForbiddenError("Forbidden")
    if ".." in path.split("/"):
        raise ForbiddenError("Forbidden")

    resolved = os.path.normpath(path)
    if not is_under_allowed_root(resolved):
        raise ForbiddenError("Forbidden")

    real = _realpath(resolved, follow_final)
    if not is_under_allowed_root(real, allowed_roots()):
        logger.warning(f"{resolved} resolves to {real}, outside the allowed roots")
        raise ForbiddenError("Forbidden")
    return real


def privileged_realpath(path: str, must_exist: bool = True) -> Optional[str]:
    """Resolves `path` as root with `sudo -n realpath`. None when that fails."""
    flag = "-e" if must_exist else "-m"
    try:
        result = run_sudo_noninteractive(["realpath", flag, "--", path], timeout=config.stat_timeout)
    except UpstreamUnavailableError as e:
        logger.warning(f"sudo realpath unavailable for {path}: {e}")
        return None
    if not result.ok:
        return None
    return result.stdout.strip() or None


def confirm_privileged_path(path: str, must_exist: bool = True, follow_final: bool = True) -> Optional[str]:
    """
    Re-checks a path as root before a `sudo -n` fallback touches it. The
    service user cannot see symlinks inside directories it may not read, so
    the unprivileged check alone is not enough. Returns the resolved path,
    None if root could not resolve it, and raises ForbiddenError when it
    leaves the allowed roots.
    """
    if follow_final:
        real = privileged_realpath(path, must_exist)
    else:
        parent, name = os.path.split(path)
        real_parent = privileged_realpath(parent, must_exist=True)
        real = os.path.join(real_parent, name) if real_parent else None

    if real is None:
        return None
    if not is_under_allowed_root(real, allowed_roots()):
        logger.warning(f"{path} resolves to {real} as root, outside the allowed roots")
        raise ForbiddenError("Forbidden")
    return real
