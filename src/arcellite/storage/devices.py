import json
import logging
import re
import subprocess
from typing import Any, Dict, List, Optional, Tuple

from arcellite.hwosinfo.hw import get_disks as get_raw_disks
from arcellite.hwosinfo.hw import get_partition as get_raw_partition
from arcellite.hwosinfo.hw import get_root_usage
from arcellite.storage.errors import UpstreamUnavailableError
from arcellite.storage.models import Device, DeviceType, PartitionInfo, RootStorage

logger = logging.getLogger(__name__)

DEVICE_NAME_RE = re.compile(r"^[a-z0-9]+$")

SYSTEM_MOUNTS = {
    "/", "/boot", "/boot/efi", "/boot/firmware", "/efi",
    "/home", "/var", "/usr", "/tmp", "/snap", "[SWAP]",
}
CRITICAL_MOUNTS = {"/", "/boot", "/boot/efi", "/boot/firmware"}


def is_valid_device_name(name: Optional[str]) -> bool:
    return bool(name) and DEVICE_NAME_RE.match(name) is not None


def format_bytes(size: int) -> str:
    if size >= 1024 ** 4:
        return f"{size / 1024 ** 4:.1f}TB"
    if size >= 1024 ** 3:
        return f"{size / 1024 ** 3:.1f}GB"
    if size >= 1024 ** 2:
        return f"{size / 1024 ** 2:.1f}MB"
    if size >= 1024:
        return f"{size / 1024:.1f}KB"
    return f"{size}B"


def _to_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _text(value: Any) -> str:
    return str(value).strip() if value else ""


def _is_removable(raw: Dict[str, Any]) -> bool:
    return raw.get("rm") in (True, "1", 1)


def _mounts(raw: Dict[str, Any]) -> List[str]:
    mounts = [raw.get("mountpoint")]
    mounts += [child.get("mountpoint") for child in raw.get("children") or []]
    return [m for m in mounts if m]


def _hosts_mount(raw: Dict[str, Any], targets) -> bool:
    for mount in _mounts(raw):
        if mount in targets or mount.startswith("/snap/"):
            return True
    return False


def parse_device(raw: Dict[str, Any]) -> Optional[Device]:
    """
    Turns one lsblk disk record into a Device, or None when the disk is not
    something a user would plug in (loop devices, system disks, ...).
    """
    name = _text(raw.get("name"))
    if not name or name.startswith("loop") or name.startswith("ram"):
        return None

    removable = _is_removable(raw)
    if not removable and not name.startswith("sd"):
        return None

    # Fixed sd* disks hosting any system mount are internal disks
    if not removable and _hosts_mount(raw, SYSTEM_MOUNTS):
        return None
    # Some boards flag their boot media as removable
    if removable and _hosts_mount(raw, CRITICAL_MOUNTS):
        return None

    children = raw.get("children") or []
    first = children[0] if children else {}

    label = _text(raw.get("label")) or _text(first.get("label"))
    uuid = _text(raw.get("uuid")) or _text(first.get("uuid"))
    fstype = _text(raw.get("fstype")) or _text(first.get("fstype"))
    mountpoint = _text(raw.get("mountpoint")) or _text(first.get("mountpoint"))

    # Filesystem usage lives on the partition, not the disk
    fs_used = raw.get("fsused") or first.get("fsused")
    fs_avail = raw.get("fsavail") or first.get("fsavail")
    fs_size = raw.get("fssize") or first.get("fssize")

    if mountpoint in SYSTEM_MOUNTS:
        return None

    size_bytes = _to_int(raw.get("size"))
    fs_used_percent = None
    if mountpoint and _to_int(fs_size) > 0:
        fs_used_percent = round(_to_int(fs_used) / _to_int(fs_size) * 100)

    return Device(
        name=name,
        model=label or _text(raw.get("model")) or name,
        label=label or uuid,
        size_human=format_bytes(size_bytes),
        device_type=DeviceType.REMOVABLE if removable else DeviceType.FIXED,
        size_bytes=size_bytes,
        mountpoint=mountpoint,
        uuid=uuid or None,
        fstype=fstype or None,
        fs_used_human=format_bytes(_to_int(fs_used)) if fs_used is not None else None,
        fs_avail_human=format_bytes(_to_int(fs_avail)) if fs_avail is not None else None,
        fs_size_human=format_bytes(_to_int(fs_size)) if fs_size is not None else None,
        fs_used_percent=fs_used_percent,
    )


def get_removable_devices() -> List[Device]:
    """Returns devices a user can mount, in lsblk order."""
    try:
        raw_data = get_raw_disks()
    except (OSError, subprocess.SubprocessError, json.JSONDecodeError) as e:
        logger.error(f"Failed to enumerate block devices: {e}")
        raise UpstreamUnavailableError(f"Failed to enumerate block devices: {e}")

    devices = []
    for raw in raw_data:
        device = parse_device(raw)
        if device is not None:
            devices.append(device)
    return devices


def get_root_storage() -> Optional[RootStorage]:
    try:
        usage = get_root_usage("/")
    except OSError as e:
        logger.error(f"Failed to read root filesystem usage: {e}")
        return None

    return RootStorage(
        total_bytes=usage.total,
        used_bytes=usage.used,
        available_bytes=usage.free,
        used_percent=round(usage.percent),
        total_human=format_bytes(usage.total),
        used_human=format_bytes(usage.used),
        available_human=format_bytes(usage.free),
    )


def list_devices() -> Tuple[Optional[RootStorage], List[Device]]:
    return get_root_storage(), get_removable_devices()


def get_first_partition(device: str) -> Optional[str]:
    """First partition name for a disk (sdb -> sdb1), or None."""
    if not is_valid_device_name(device):
        return None

    try:
        raw_data = get_raw_disks()
    except (OSError, subprocess.SubprocessError, json.JSONDecodeError) as e:
        logger.error(f"Failed to resolve partition for {device}: {e}")
        return None

    for raw in raw_data:
        if _text(raw.get("name")) != device:
            continue
        for child in raw.get("children") or []:
            name = _text(child.get("name"))
            if name:
                return name
    return None


def get_partition_info(partition: str) -> PartitionInfo:
    """
    Queries the live mount table for a partition. lsblk is asked every time;
    mount state is never cached here.
    """
    try:
        raw = get_raw_partition(partition)
    except (OSError, subprocess.SubprocessError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to query partition {partition}: {e}")
        return PartitionInfo(name=partition)

    return PartitionInfo(
        name=partition,
        label=_text(raw.get("label")) or None,
        uuid=_text(raw.get("uuid")) or None,
        mountpoint=_text(raw.get("mountpoint")) or None,
    )
