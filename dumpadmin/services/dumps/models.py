from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, Field

from dumpadmin.core.identifiers import DumpIdentifier


def _ensure_utc(value: datetime) -> datetime:
    # 存量文件里的时间可能不带时区，统一视为 UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(_ensure_utc)]


class BundleMetainfo(BaseModel):
    """
    一次上传（bundle）的元信息，对应 bundleinfo.json。
    """

    bundle_id: str
    created: UtcDatetime
    original_filename: Optional[str] = None
    custom_properties: Dict[str, str] = Field(default_factory=dict)


class DumpMetainfo(BaseModel):
    """
    单个 dump 的元信息，对应 dumpinfo.json。
    """

    bundle_id: str
    dump_id: str
    created: UtcDatetime
    filename: Optional[str] = None
    sha256: Optional[str] = None

    @property
    def id(self) -> DumpIdentifier:
        return DumpIdentifier(self.bundle_id, self.dump_id)


class ThreadInfo(BaseModel):
    thread_id: int
    is_crashed: bool = False
    frames: List[str] = Field(default_factory=list, description="调用栈，栈顶在前")


class ExceptionInfo(BaseModel):
    type: str
    message: Optional[str] = None


class ModuleInfo(BaseModel):
    name: str
    version: Optional[str] = None


class DumpResult(BaseModel):
    """
    dump 分析结果，对应 result.json。
    """

    threads: List[ThreadInfo] = Field(default_factory=list)
    exception: Optional[ExceptionInfo] = None
    modules: List[ModuleInfo] = Field(default_factory=list)
    system_info: Dict[str, str] = Field(default_factory=dict)

    def crashing_thread(self) -> Optional[ThreadInfo]:
        for thread in self.threads:
            if thread.is_crashed:
                return thread
        return None
