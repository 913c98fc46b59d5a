from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DeviceType(str, Enum):
    REMOVABLE = "removable"
    FIXED = "fixed"


class Device(CamelModel):
    name: str
    model: str
    label: str = ""
    size_human: str
    device_type: DeviceType
    size_bytes: int = 0
    mountpoint: str = ""
    uuid: Optional[str] = None
    fstype: Optional[str] = None
    fs_used_human: Optional[str] = None
    fs_avail_human: Optional[str] = None
    fs_size_human: Optional[str] = None
    fs_used_percent: Optional[int] = None

    def summary(self) -> dict:
        """Short form used in hot-plug `added` lists."""
        return self.model_dump(
            by_alias=True,
            include={"name", "model", "label", "size_human", "device_type"},
            mode="json",
        )


class RootStorage(CamelModel):
    total_bytes: int
    used_bytes: int
    available_bytes: int
    used_percent: int
    total_human: str
    used_human: str
    available_human: str


class PartitionInfo(BaseModel):
    name: str
    label: Optional[str] = None
    uuid: Optional[str] = None
    mountpoint: Optional[str] = None


class StorageOverview(CamelModel):
    root_storage: Optional[RootStorage] = None
    removable: List[Device] = []


class DeviceRequest(BaseModel):
    device: str = ""
    password: str = ""


class MountResult(BaseModel):
    ok: bool = True
    mountpoint: str


class OkResult(BaseModel):
    ok: bool = True
