import logging
import os
import re
from typing import Optional

from arcellite.config.settings import config
from arcellite.storage.devices import (
    get_first_partition,
    get_partition_info,
    is_valid_device_name,
    list_devices,
)
from arcellite.storage.errors import (
    InvalidInputError,
    NoPartitionError,
    PasswordRequiredError,
    PrivilegedCommandError,
)
from arcellite.storage.locks import KeyedLock
from arcellite.storage.models import PartitionInfo, StorageOverview
from arcellite.storage.privileged import CommandResult, public_message, raise_for_auth, run_sudo

logger = logging.getLogger(__name__)

SAFE_LABEL_RE = re.compile(r"^[a-zA-Z0-9_\-. ]+$")
SAFE_UUID_RE = re.compile(r"^[a-zA-Z0-9_\-]+$")

UNSUPPORTED_OPTION_MARKERS = ("bad option", "unrecognized mount option")
ALREADY_MOUNTED_MARKERS = ("already mounted",)
NOT_MOUNTED_MARKERS = ("not mounted", "not found")


def derive_mount_name(info: PartitionInfo) -> str:
    """Volume label (spaces -> underscores), else UUID, else partition name."""
    label = (info.label or "").strip()
    if label and SAFE_LABEL_RE.match(label) and label not in (".", ".."):
        return re.sub(r"\s+", "_", label)

    uuid = (info.uuid or "").strip()
    if uuid and SAFE_UUID_RE.match(uuid):
        return uuid

    return info.name


class StorageManager:
    def __init__(self, device_locks: Optional[KeyedLock] = None):
        self.device_locks = device_locks or KeyedLock()

    def get_overview(self) -> StorageOverview:
        root, removable = list_devices()
        return StorageOverview(root_storage=root, removable=removable)

    def _validate(self, device: str, password: str) -> str:
        device = (device or "").strip()
        if not is_valid_device_name(device):
            raise InvalidInputError("Missing or invalid device name")
        if not password:
            raise PasswordRequiredError()
        return device

    def mount(self, device: str, password: str) -> str:
        """
        Mounts the first partition of `device` under the mount root.
        Returns the mountpoint. A device that is already mounted is returned
        as-is without touching it.
        """
        device = self._validate(device, password)

        with self.device_locks.hold(device, timeout=config.lock_timeout):
            partition = get_first_partition(device)
            if not partition:
                raise NoPartitionError("No partition found to mount")

            info = get_partition_info(partition)
            if info.mountpoint:
                logger.info(f"{partition} already mounted at {info.mountpoint}")
                return info.mountpoint

            mount_dir = os.path.join(config.mount_root, derive_mount_name(info))
            logger.info(f"Mounting /dev/{partition} at {mount_dir}")

            # The service user has to be able to traverse the mount root
            chmod = run_sudo(["chmod", "755", config.mount_root], password)
            raise_for_auth(chmod)

            mkdir = run_sudo(["mkdir", "-p", mount_dir], password)
            if not mkdir.ok:
                raise_for_auth(mkdir)
                self._fail("Failed to create mount directory", mkdir)

            options = (
                f"uid={config.service_uid},gid={config.service_gid},dmask=022,fmask=133"
            )
            result = run_sudo(["mount", "-o", options, f"/dev/{partition}", mount_dir], password)
            if result.ok:
                return mount_dir

            raise_for_auth(result)
            if self._matches(result, ALREADY_MOUNTED_MARKERS):
                return mount_dir
            if not self._matches(result, UNSUPPORTED_OPTION_MARKERS):
                self._fail("Mount failed", result)

            # Native Linux filesystems (ext4, btrfs, ...) reject ownership options
            logger.info(f"/dev/{partition} rejected ownership options, mounting plain")
            retry = run_sudo(["mount", f"/dev/{partition}", mount_dir], password)
            if not retry.ok:
                raise_for_auth(retry)
                self._fail("Mount failed", retry)

            owner = f"{config.service_user}:{config.service_user}"
            chown = run_sudo(["chown", "-R", owner, mount_dir], password)
            if not chown.ok:
                logger.warning(f"chown {owner} {mount_dir} failed: {chown.message}")

            return mount_dir

    def unmount(self, device: str, password: str):
        device = self._validate(device, password)

        with self.device_locks.hold(device, timeout=config.lock_timeout):
            partition = get_first_partition(device)
            if not partition:
                raise NoPartitionError("No partition found to unmount")

            mountpoint = get_partition_info(partition).mountpoint
            if not mountpoint:
                logger.info(f"{partition} is not mounted, nothing to do")
                return

            logger.info(f"Unmounting {mountpoint}")
            result = run_sudo(["umount", mountpoint], password)
            if not result.ok:
                raise_for_auth(result)
                if self._matches(result, NOT_MOUNTED_MARKERS):
                    return
                logger.warning(f"umount {mountpoint} failed ({result.message}), trying lazy unmount")
                result = run_sudo(["umount", "-l", mountpoint], password)

            if not result.ok:
                raise_for_auth(result)
                if self._matches(result, NOT_MOUNTED_MARKERS):
                    return
                self._fail("Unmount failed", result)

            self._remove_mount_dir(mountpoint, password)

    def _remove_mount_dir(self, mountpoint: str, password: str):
        root = os.path.normpath(config.mount_root)
        if os.path.dirname(os.path.normpath(mountpoint)) != root:
            # Mounted by someone else (desktop automounter, fstab); leave it alone
            return
        result = run_sudo(["rmdir", mountpoint], password)
        if not result.ok:
            logger.warning(f"Could not remove mount directory {mountpoint}: {result.message}")

    @staticmethod
    def _matches(result: CommandResult, markers) -> bool:
        return any(marker in result.message for marker in markers)

    @staticmethod
    def _fail(default: str, result: CommandResult):
        logger.error(
            f"Privileged command failed ({result.returncode}): "
            f"{' '.join(result.args[4:])}\nstdout: {result.stdout}\nstderr: {result.stderr}"
        )
        raise PrivilegedCommandError(public_message(result, default))
