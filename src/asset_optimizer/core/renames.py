"""运行期重命名表。"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Iterator, Optional

from asset_optimizer.core.exceptions import DuplicateRenameError
from asset_optimizer.core.models import RenameRecord


def normalize_path(path: Path | str) -> Path:
    """转为绝对路径并折叠 ``..``，不解析符号链接。"""

    return Path(os.path.normpath(os.path.abspath(path)))


class RenameTable:
    """原始路径 -> 最终路径的映射，生命周期为单次运行。

    每个原始路径最多登记一次，登记后不可修改。
    """

    def __init__(self) -> None:
        self._records: dict[Path, RenameRecord] = {}
        self._lock = threading.Lock()

    def add(self, record: RenameRecord) -> RenameRecord:
        key = normalize_path(record.original)
        stored = RenameRecord(original=key, final=normalize_path(record.final))
        with self._lock:
            if key in self._records:
                raise DuplicateRenameError(f"重复登记的原始路径: {key}")
            self._records[key] = stored
        return stored

    def lookup(self, original: Path | str) -> Optional[Path]:
        record = self._records.get(normalize_path(original))
        return record.final if record else None

    def __contains__(self, original: object) -> bool:
        if not isinstance(original, (str, Path)):
            return False
        return normalize_path(original) in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[RenameRecord]:
        return iter(list(self._records.values()))
