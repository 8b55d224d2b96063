"""内容指纹：用于生成带哈希的输出文件名。"""

from __future__ import annotations

import hashlib
from pathlib import Path

FINGERPRINT_LENGTH = 7


def fingerprint(data: bytes) -> str:
    """返回 SHA-256 十六进制摘要的后 7 位。"""

    return hashlib.sha256(data).hexdigest()[-FINGERPRINT_LENGTH:]


def fingerprint_file(path: Path) -> str:
    """按块读取文件并计算指纹，结果与 fingerprint(path.read_bytes()) 一致。"""

    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            digest.update(chunk)
    return digest.hexdigest()[-FINGERPRINT_LENGTH:]


def fingerprinted_path(original: Path, token: str, suffix: str) -> Path:
    """在原始扩展名前插入 -<token>，并替换为新的扩展名。

    例如 /foo/image-1.png + a3f8c2d -> /foo/image-1-a3f8c2d.avif
    """

    return original.with_name(f"{original.stem}-{token}{suffix}")
