from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")

# 没有时间窗口时使用的下界
EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class DumpIdentifier:
    """
    Dump 的复合主键：bundle_id + dump_id，作为去重键使用。
    """

    bundle_id: str
    dump_id: str

    def __post_init__(self) -> None:
        for name in ("bundle_id", "dump_id"):
            value = getattr(self, name)
            if not isinstance(value, str) or not _ID_PATTERN.match(value):
                raise ValueError(f"Malformed {name}: {value!r}")
            # 会被直接拼进存储路径
            if value in (".", ".."):
                raise ValueError(f"Malformed {name}: {value!r}")

    def __str__(self) -> str:
        return f"{self.bundle_id}:{self.dump_id}"


def not_before_from_days(days: int, *, now: datetime | None = None) -> datetime:
    """
    days <= 0 表示不限时间窗口。
    """
    if days <= 0:
        return EPOCH
    return (now or datetime.now(timezone.utc)) - timedelta(days=days)


def max_age_from_days(days: int) -> timedelta | None:
    return timedelta(days=days) if days > 0 else None
