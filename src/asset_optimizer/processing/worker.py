"""单个文件的处理单元：读取 -> 决策 -> 编码 -> 提交。"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from asset_optimizer.core.committer import commit_converted, write_in_place
from asset_optimizer.core.config import EncodeConfig, PolicyConfig
from asset_optimizer.core.exceptions import AssetError, CodecError, CommitError
from asset_optimizer.core.models import (
    KIND_RASTER,
    STATUS_CONVERTED,
    STATUS_OPTIMIZED,
    STATUS_UNCHANGED,
    Asset,
    FileOutcome,
)
from asset_optimizer.core.report import format_kib
from asset_optimizer.processing.codec import Codec
from asset_optimizer.processing.policy import decide_raster, decide_vector

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ProcessingTask:
    """描述单个文件的处理任务，可在工作进程中执行。"""

    asset: Asset
    codec: Codec
    policy: PolicyConfig
    encode: EncodeConfig


def run_task(task: ProcessingTask) -> FileOutcome:
    """执行完整的处理流程；单个文件的错误转换为失败记录而不向外抛出。"""

    asset = task.asset
    try:
        data = load_asset(asset)
    except AssetError as exc:
        return _failure(asset, "error-load", exc)

    LOGGER.info("%s (%s)", asset.relative_path, format_kib(len(data)))
    try:
        if asset.kind == KIND_RASTER:
            return _process_raster(task, data)
        return _process_vector(task, data)
    except CodecError as exc:
        return _failure(asset, "error-codec", exc)
    except CommitError as exc:
        return _failure(asset, "error-commit", exc)
    except OSError as exc:
        return _failure(asset, "error-io", exc)
    except Exception as exc:  # noqa: BLE001
        return _failure(asset, "error-unexpected", exc)


def load_asset(asset: Asset) -> bytes:
    """读取文件内容；不可读或空文件视为单文件错误。"""

    try:
        data = asset.read_bytes()
    except OSError as exc:
        raise AssetError(f"无法读取文件: {exc}") from exc
    if not data:
        raise AssetError("文件为空")
    return data


def _process_raster(task: ProcessingTask, data: bytes) -> FileOutcome:
    width, _ = task.codec.read_dimensions(data)
    decision = decide_raster(width, task.policy, task.encode)
    encoded = task.codec.encode_raster(
        data,
        max_width=decision.resize_width,
        flatten_background=task.encode.background_color,
        quality=decision.quality or task.encode.raster_quality,
    )
    return _commit(task.asset, data, encoded, decision.reason)


def _process_vector(task: ProcessingTask, data: bytes) -> FileOutcome:
    asset = task.asset
    decision = decide_vector(data, task.codec, task.policy, task.encode)

    if decision.is_convert:
        encoded = decision.payload
        if encoded is None:
            assert decision.resize_width is not None
            encoded = task.codec.encode_vector(
                data,
                resize_width=decision.resize_width,
                quality=decision.quality or task.encode.vector_quality,
            )
        return _commit(asset, data, encoded, decision.reason)

    optimized = task.codec.optimize_vector(data)
    if not optimized:
        LOGGER.info("优化器无输出，保持原文件: %s", asset.relative_path)
        return FileOutcome(
            source_path=asset.path,
            status=STATUS_UNCHANGED,
            kind=asset.kind,
            output_path=asset.path,
            original_size=len(data),
            new_size=len(data),
            reason=decision.reason,
        )

    new_size = write_in_place(asset.path, optimized)
    LOGGER.info("SVGO: %s", format_kib(new_size))
    return FileOutcome(
        source_path=asset.path,
        status=STATUS_OPTIMIZED,
        kind=asset.kind,
        output_path=asset.path,
        original_size=len(data),
        new_size=new_size,
        reason=decision.reason,
    )


def _commit(asset: Asset, data: bytes, encoded: bytes, reason: str) -> FileOutcome:
    result = commit_converted(asset.path, encoded)
    LOGGER.info("AVIF: %s [sha:%s]", format_kib(result.size), result.fingerprint)
    return FileOutcome(
        source_path=asset.path,
        status=STATUS_CONVERTED,
        kind=asset.kind,
        output_path=result.final,
        original_size=len(data),
        new_size=result.size,
        fingerprint=result.fingerprint,
        reason=reason,
    )


def _failure(asset: Asset, status: str, exc: Exception) -> FileOutcome:
    LOGGER.error("处理失败 %s: %s", asset.relative_path, exc)
    return FileOutcome(
        source_path=asset.path,
        status=status,
        kind=asset.kind,
        message=str(exc),
    )
