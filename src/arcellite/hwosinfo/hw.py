import json
import subprocess
from typing import Any, Dict, List

import psutil

from arcellite.config.settings import config

DEVICE_COLUMNS = "NAME,SIZE,MODEL,MOUNTPOINT,RM,LABEL,UUID,FSTYPE,FSUSED,FSAVAIL,FSSIZE"


def _lsblk(args: List[str]) -> Dict[str, Any]:
    cmd = ["lsblk", "-J"] + args
    output = subprocess.check_output(cmd, timeout=config.lsblk_timeout).decode()
    return json.loads(output)


def get_disks() -> List[Dict[str, Any]]:
    """Return block devices with their partitions nested under 'children'."""
    # -b: sizes in bytes
    data = _lsblk(["-b", "-o", DEVICE_COLUMNS])
    return data.get("blockdevices", [])


def get_partition(partition: str) -> Dict[str, Any]:
    """Return the lsblk record for a single partition, e.g. 'sdb1'."""
    data = _lsblk(["-o", "NAME,LABEL,UUID,MOUNTPOINT", f"/dev/{partition}"])
    devices = data.get("blockdevices", [])
    return devices[0] if devices else {}


def get_root_usage(path: str = "/"):
    """Return psutil's usage tuple (total, used, free, percent) for a mount."""
    return psutil.disk_usage(path)
