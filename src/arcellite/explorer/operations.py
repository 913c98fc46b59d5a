import logging
import os
import shutil

from arcellite.explorer.paths import confirm_privileged_path, is_allowed_root, validate_external_path
from arcellite.storage.errors import (
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    PrivilegedCommandError,
)
from arcellite.storage.privileged import public_message, run_sudo_noninteractive

logger = logging.getLogger(__name__)


def _target(path: str, follow_final: bool = False) -> str:
    if not path:
        raise InvalidInputError("Missing path")
    resolved = validate_external_path(path, follow_final=follow_final)
    if is_allowed_root(resolved):
        raise ForbiddenError("Cannot modify a mount root")
    return resolved


def _privileged_target(path: str, action: str, must_exist: bool = True, follow_final: bool = False) -> str:
    """The path as root resolves it, checked again before any `sudo -n` command."""
    real = confirm_privileged_path(path, must_exist=must_exist, follow_final=follow_final)
    if real is None:
        raise PrivilegedCommandError(f"{action} failed")
    if is_allowed_root(real):
        raise ForbiddenError("Cannot modify a mount root")
    return real


def _sudo_fallback(args, action: str):
    result = run_sudo_noninteractive(args)
    if not result.ok:
        logger.error(f"sudo {' '.join(args)} failed: {result.message}")
        raise PrivilegedCommandError(public_message(result, f"{action} failed"))


def delete_external(path: str):
    # A symlink is deleted itself, never what it points at
    target = _target(path)
    if not os.path.lexists(target):
        raise NotFoundError("File not found")

    logger.info(f"Deleting {target}")
    try:
        if os.path.isdir(target) and not os.path.islink(target):
            shutil.rmtree(target)
        else:
            os.remove(target)
    except PermissionError:
        real = _privileged_target(target, "Delete")
        _sudo_fallback(["rm", "-rf", "--", real], "Delete")


def rename_external(path: str, new_name: str) -> str:
    target = _target(path)
    new_name = (new_name or "").strip()
    if not new_name or "/" in new_name or new_name in (".", ".."):
        raise InvalidInputError("Invalid new name")
    if not os.path.lexists(target):
        raise NotFoundError("File not found")

    new_path = os.path.join(os.path.dirname(target), new_name)
    if os.path.lexists(new_path):
        raise InvalidInputError(f"{new_name} already exists")

    logger.info(f"Renaming {target} to {new_path}")
    try:
        os.rename(target, new_path)
    except PermissionError:
        real = _privileged_target(target, "Rename")
        new_path = os.path.join(os.path.dirname(real), new_name)
        # -T: never move into a directory (or a link to one) that appeared at new_path
        _sudo_fallback(["mv", "-n", "-T", "--", real, new_path], "Rename")
    return new_path


def mkdir_external(path: str):
    target = _target(path, follow_final=True)
    logger.info(f"Creating directory {target}")
    try:
        os.makedirs(target, exist_ok=True)
    except FileExistsError:
        raise InvalidInputError("A file with that name already exists")
    except PermissionError:
        real = _privileged_target(target, "Create folder", must_exist=False, follow_final=True)
        _sudo_fallback(["mkdir", "-p", "--", real], "Create folder")
