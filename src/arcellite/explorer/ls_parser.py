"""Parser for `ls -la --time-style=+%s` output.

Only used for the privileged and plain `ls` fallback tiers. Each line looks
like::

    drwxr-xr-x  2 user group 4096 1700000000 Holiday Photos
    lrwxrwxrwx  1 user group   11 1700000000 latest -> Holiday Photos

Anything that does not parse is skipped.
"""

import time
from typing import List, Optional

from arcellite.explorer.models import DirEntry


def parse_ls_line(line: str) -> Optional[DirEntry]:
    if not line.strip() or line.startswith("total "):
        return None

    # perms, links, owner, group, size, mtime, name (name may contain spaces)
    parts = line.split(None, 6)
    if len(parts) < 7:
        return None

    perms, _links, _owner, _group, size_str, mtime_str, name = parts
    if size_str.endswith(","):
        # Device nodes print "major, minor" which shifts every column
        return None
    if perms.startswith("l") and " -> " in name:
        name = name.split(" -> ", 1)[0]
    if name in (".", ".."):
        return None

    is_folder = perms.startswith("d")
    try:
        mtime_ms = int(mtime_str) * 1000
    except ValueError:
        mtime_ms = int(time.time() * 1000)

    size_bytes = None
    if not is_folder:
        try:
            size_bytes = int(size_str)
        except ValueError:
            size_bytes = None

    return DirEntry(name=name, is_folder=is_folder, mtime_ms=mtime_ms, size_bytes=size_bytes)


def parse_ls_output(output: str) -> List[DirEntry]:
    entries = []
    for line in output.splitlines():
        try:
            entry = parse_ls_line(line)
        except ValueError:
            continue
        if entry is not None:
            entries.append(entry)
    return entries
