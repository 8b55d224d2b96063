"""核心数据模型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

MediaKind = str  # raster | vector
KIND_RASTER: MediaKind = "raster"
KIND_VECTOR: MediaKind = "vector"

TransformPath = str  # convert | optimize | unchanged
PATH_CONVERT: TransformPath = "convert"
PATH_OPTIMIZE: TransformPath = "optimize"
PATH_UNCHANGED: TransformPath = "unchanged"

# 决策依据标签
REASON_SIZE = "size-threshold"
REASON_INLINE_ASSET = "inline-asset"
REASON_RATIO = "ratio-test"
REASON_NONE = "none"

STATUS_CONVERTED = "converted"
STATUS_OPTIMIZED = "optimized"
STATUS_UNCHANGED = "unchanged"


@dataclass(slots=True)
class Asset:
    """扫描阶段得到的单个图片文件，内容按需读取。"""

    path: Path
    root: Path
    relative_path: Path
    kind: MediaKind

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


@dataclass(slots=True)
class TransformDecision:
    """策略引擎针对单个文件给出的处理决定。"""

    path: TransformPath
    reason: str = REASON_NONE
    resize_width: Optional[int] = None
    quality: Optional[int] = None
    # 试转换已通过比例测试时复用的编码结果
    payload: Optional[bytes] = field(default=None, repr=False)

    @property
    def is_convert(self) -> bool:
        return self.path == PATH_CONVERT


@dataclass(frozen=True, slots=True)
class RenameRecord:
    """原始绝对路径到最终绝对路径的映射，登记后不可修改。"""

    original: Path
    final: Path


@dataclass(slots=True)
class FileOutcome:
    """记录单个文件的处理结果（用于统计、报告与日志）。"""

    source_path: Path
    status: str
    kind: MediaKind = KIND_RASTER
    output_path: Optional[Path] = None
    original_size: int = 0
    new_size: int = 0
    fingerprint: Optional[str] = None
    reason: Optional[str] = None
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status in {STATUS_CONVERTED, STATUS_OPTIMIZED}

    @property
    def failed(self) -> bool:
        return self.status.startswith("error")

    def rename_record(self) -> Optional[RenameRecord]:
        if self.status != STATUS_CONVERTED or self.output_path is None:
            return None
        return RenameRecord(original=self.source_path, final=self.output_path)


@dataclass(slots=True)
class DocumentOutcome:
    """单个文档的链接改写结果。"""

    path: Path
    replacements: int = 0
    message: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.message is not None
