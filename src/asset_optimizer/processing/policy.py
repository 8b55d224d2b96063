"""转换决策引擎：决定每个文件是转换为 AVIF、原地优化还是保持不变。

栅格图总是转换；SVG 按大小分层决策：
1. >= vector_force_bytes：强制转换；
2. >= vector_inspect_bytes 且内嵌位图/字体：强制转换；
3. >= vector_trial_bytes：试转换，压缩比达标才采用；
4. 其余情况原地优化。

所有 SVG 转换使用同一组编码参数，试转换达标时直接复用试转换结果。
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from asset_optimizer.core.config import EncodeConfig, PolicyConfig
from asset_optimizer.core.exceptions import CodecError
from asset_optimizer.core.models import (
    PATH_CONVERT,
    PATH_OPTIMIZE,
    REASON_INLINE_ASSET,
    REASON_NONE,
    REASON_RATIO,
    REASON_SIZE,
    TransformDecision,
)
from asset_optimizer.processing.codec import Codec

LOGGER = logging.getLogger(__name__)

INLINE_ASSET_RE = re.compile(rb"data:image/|@font-face|<font", re.IGNORECASE)


def has_inline_assets(data: bytes) -> bool:
    """SVG 中是否含有内嵌位图（data URI）或字体声明。"""

    return INLINE_ASSET_RE.search(data) is not None


def decide_raster(width: int, policy: PolicyConfig, encode: EncodeConfig) -> TransformDecision:
    """栅格图总是转换，宽度超过上限时等比缩放。"""

    resize_width = policy.raster_max_width if width > policy.raster_max_width else None
    return TransformDecision(
        path=PATH_CONVERT,
        reason=REASON_NONE,
        resize_width=resize_width,
        quality=encode.raster_quality,
    )


def vector_target_width(intrinsic_width: Optional[int], policy: PolicyConfig) -> int:
    """SVG 栅格化宽度：固有宽度的两倍，且不超过 vector_max_width。"""

    base = intrinsic_width or policy.vector_default_width
    return max(1, min(round(base * policy.vector_scale), policy.vector_max_width))


def ratio_limit(original_size: int, policy: PolicyConfig) -> float:
    """试转换结果需要低于的比例；大文件放宽，小文件要求更显著的收益。"""

    if original_size >= policy.vector_inspect_bytes:
        return policy.large_vector_ratio
    return policy.small_vector_ratio


def decide_vector(
    data: bytes,
    codec: Codec,
    policy: PolicyConfig,
    encode: EncodeConfig,
) -> TransformDecision:
    """按大小分层决定 SVG 的处理方式。"""

    size = len(data)

    if size >= policy.vector_force_bytes:
        LOGGER.info("大小 >= %d 字节，强制转换为 AVIF", policy.vector_force_bytes)
        return _convert(data, codec, policy, encode, REASON_SIZE)

    if size >= policy.vector_inspect_bytes and has_inline_assets(data):
        LOGGER.info("包含内嵌资源，强制转换为 AVIF")
        return _convert(data, codec, policy, encode, REASON_INLINE_ASSET)

    if size >= policy.vector_trial_bytes:
        decision = _trial(data, codec, policy, encode)
        if decision is not None:
            return decision

    return TransformDecision(path=PATH_OPTIMIZE, reason=REASON_NONE)


def _convert(
    data: bytes,
    codec: Codec,
    policy: PolicyConfig,
    encode: EncodeConfig,
    reason: str,
) -> TransformDecision:
    return TransformDecision(
        path=PATH_CONVERT,
        reason=reason,
        resize_width=vector_target_width(_intrinsic_width(data, codec), policy),
        quality=encode.vector_quality,
    )


def _trial(
    data: bytes,
    codec: Codec,
    policy: PolicyConfig,
    encode: EncodeConfig,
) -> Optional[TransformDecision]:
    """试转换并测量压缩比，未达标或失败时返回 None。"""

    size = len(data)
    width = vector_target_width(_intrinsic_width(data, codec), policy)
    LOGGER.info("尝试 SVG -> AVIF 试转换（宽度 %dpx）", width)

    try:
        trial = codec.encode_vector(data, resize_width=width, quality=encode.vector_quality)
    except CodecError as exc:
        LOGGER.warning("试转换失败，回退到 SVG 优化: %s", exc)
        return None

    ratio = len(trial) / size
    limit = ratio_limit(size, policy)
    if trial and len(trial) < size * limit:
        LOGGER.info("压缩比达标 (%.2fx < %.2f)，保留 AVIF", ratio, limit)
        return TransformDecision(
            path=PATH_CONVERT,
            reason=REASON_RATIO,
            resize_width=width,
            quality=encode.vector_quality,
            payload=trial,
        )

    LOGGER.info("压缩比未达标 (%.2fx >= %.2f)，回退到 SVG 优化", ratio, limit)
    return None


def _intrinsic_width(data: bytes, codec: Codec) -> Optional[int]:
    try:
        width, _ = codec.read_dimensions(data)
    except CodecError as exc:
        LOGGER.debug("无法读取 SVG 尺寸，使用默认宽度: %s", exc)
        return None
    return width or None
