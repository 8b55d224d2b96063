"""处理任务的配置模型。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from asset_optimizer.core.exceptions import InvalidConfigurationError
from asset_optimizer.utils.colors import parse_hex_color

KIB = 1024

# libavif speed：0 最慢、压缩率最高，10 最快；sharp effort 9 对应 speed 0
DEFAULT_AVIF_SPEED = 2
DEFAULT_IGNORE_PATTERNS: tuple[str, ...] = ("node_modules/**", ".git/**")


@dataclass(slots=True)
class PolicyConfig:
    """转换决策使用的阈值。

    所有阈值均为字节数，比例为“编码结果 / 原始大小”的上限（不含）。
    """

    raster_max_width: int = 2560
    vector_force_bytes: int = 100 * KIB
    vector_inspect_bytes: int = 40 * KIB
    vector_trial_bytes: int = 10 * KIB
    large_vector_ratio: float = 0.5
    small_vector_ratio: float = 0.2
    vector_max_width: int = 1080
    vector_scale: float = 2.0
    vector_default_width: int = 1000


@dataclass(slots=True)
class EncodeConfig:
    """AVIF 编码参数。"""

    raster_quality: int = 65
    vector_quality: int = 60
    speed: int = DEFAULT_AVIF_SPEED
    background_color: str = "#FFFFFF"


@dataclass(slots=True)
class JobConfig:
    """单次运行的配置集合。"""

    root: Path
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    encode: EncodeConfig = field(default_factory=EncodeConfig)
    ignore_patterns: Sequence[str] = field(default_factory=tuple)
    max_workers: int = 1
    report_path: Optional[Path] = None

    @property
    def all_ignore_patterns(self) -> tuple[str, ...]:
        return (*DEFAULT_IGNORE_PATTERNS, *self.ignore_patterns)

    def validate(self) -> None:
        """检查配置是否合法，不合法时抛出 InvalidConfigurationError。"""

        if not self.root.exists() or not self.root.is_dir():
            raise InvalidConfigurationError(f"目标路径不存在或不是目录: {self.root}")

        policy = self.policy
        if policy.raster_max_width <= 0 or policy.vector_max_width <= 0:
            raise InvalidConfigurationError("最大宽度必须大于 0")
        if not (policy.vector_trial_bytes <= policy.vector_inspect_bytes <= policy.vector_force_bytes):
            raise InvalidConfigurationError("SVG 阈值必须满足 trial <= inspect <= force")
        for ratio in (policy.large_vector_ratio, policy.small_vector_ratio):
            if not 0 < ratio <= 1:
                raise InvalidConfigurationError(f"压缩比例必须位于 (0, 1]: {ratio}")

        encode = self.encode
        for quality in (encode.raster_quality, encode.vector_quality):
            if not 0 <= quality <= 100:
                raise InvalidConfigurationError(f"quality 必须位于 0~100: {quality}")
        if not 0 <= encode.speed <= 10:
            raise InvalidConfigurationError(f"speed 必须位于 0~10: {encode.speed}")
        parse_hex_color(encode.background_color)

        if self.max_workers < 1:
            raise InvalidConfigurationError("并发进程数量至少为 1")
