"""
Dump 存储（只读）

目录结构：
    <root>/<bundle_id>/bundleinfo.json
    <root>/<bundle_id>/<dump_id>/dumpinfo.json
    <root>/<bundle_id>/<dump_id>/result.json
"""
from __future__ import annotations

from dumpadmin.services.dumps.models import (
    BundleMetainfo,
    DumpMetainfo,
    DumpResult,
    ExceptionInfo,
    ModuleInfo,
    ThreadInfo,
)
from dumpadmin.services.dumps.repository import DumpRepository

__all__ = [
    "BundleMetainfo",
    "DumpMetainfo",
    "DumpRepository",
    "DumpResult",
    "ExceptionInfo",
    "ModuleInfo",
    "ThreadInfo",
]
