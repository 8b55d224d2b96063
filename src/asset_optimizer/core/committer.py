"""原子写入：临时文件 -> 指纹命名 -> 替换原文件。"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from asset_optimizer.core.exceptions import CommitError
from asset_optimizer.core.identity import fingerprint_file, fingerprinted_path

LOGGER = logging.getLogger(__name__)

OUTPUT_SUFFIX = ".avif"
TEMP_SUFFIX = ".tmp"


@dataclass(slots=True)
class CommitResult:
    """一次成功提交的结果。"""

    original: Path
    final: Path
    fingerprint: str
    size: int


def temp_path_for(original: Path, suffix: str = OUTPUT_SUFFIX) -> Path:
    """原文件旁的临时路径，例如 a.png -> a.png.avif.tmp。"""

    return original.with_name(f"{original.name}{suffix}{TEMP_SUFFIX}")


def commit_converted(original: Path, data: bytes, suffix: str = OUTPUT_SUFFIX) -> CommitResult:
    """以带指纹的新文件名替换原文件。

    顺序固定：写临时文件、计算指纹、重命名为最终路径、删除原文件。
    删除原文件之前最终文件必须已就位，任何一步失败都会清理本次产生的文件。
    """

    if not data:
        raise CommitError(f"编码结果为空: {original.name}")

    tmp_path = temp_path_for(original, suffix)
    try:
        _write_fully(tmp_path, data)
        token = fingerprint_file(tmp_path)
        final_path = fingerprinted_path(original, token, suffix)
        os.replace(tmp_path, final_path)
    except OSError as exc:
        _remove_quietly(tmp_path)
        raise CommitError(f"写入临时文件失败: {tmp_path.name}: {exc}") from exc

    try:
        size = final_path.stat().st_size
        if final_path != original:
            original.unlink()
    except OSError as exc:
        _remove_quietly(final_path)
        raise CommitError(f"删除原文件失败: {original.name}: {exc}") from exc

    LOGGER.debug("已提交 %s -> %s", original, final_path)
    return CommitResult(original=original, final=final_path, fingerprint=token, size=size)


def write_in_place(path: Path, data: bytes) -> int:
    """通过临时文件原地覆盖并保留原文件权限位，返回新文件大小。"""

    tmp_path = path.with_name(f"{path.name}{TEMP_SUFFIX}")
    try:
        _write_fully(tmp_path, data)
        shutil.copymode(path, tmp_path)
        os.replace(tmp_path, path)
        return path.stat().st_size
    except OSError as exc:
        _remove_quietly(tmp_path)
        raise CommitError(f"覆盖写入失败: {path.name}: {exc}") from exc


def _write_fully(path: Path, data: bytes) -> None:
    with path.open("wb") as handle:
        handle.write(data)
        handle.flush()
        os.fsync(handle.fileno())


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        LOGGER.warning("无法清理临时文件 %s: %s", path, exc)
