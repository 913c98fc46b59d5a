from typing import List, Optional

from pydantic import BaseModel

from arcellite.storage.models import CamelModel


class DirEntry(CamelModel):
    name: str
    is_folder: bool
    mtime_ms: float
    size_bytes: Optional[int] = None
    has_subfolders: Optional[bool] = None


class DirListing(CamelModel):
    folders: List[DirEntry] = []
    files: List[DirEntry] = []


class StreamTarget(CamelModel):
    absolute_path: str
    size_bytes: int
    is_directory: bool
    content_type: str
    # True when the unprivileged stat worked, so the file can be read directly
    direct: bool = True


class ExternalPathRequest(BaseModel):
    path: str = ""


class RenameRequest(CamelModel):
    path: str = ""
    new_name: str = ""


class RenameResult(CamelModel):
    ok: bool = True
    new_path: str
