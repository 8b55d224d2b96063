"""文档图片链接改写。

识别 Markdown 图片语法 ``![alt](path "title")``、``![alt](<path>)`` 与 HTML
``<img src="path">``，跳过带协议或 ``//`` 开头的外部地址。只替换路径本身，
链接文字、标题与属性引号保持原样。
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Optional
from urllib.parse import quote, unquote

from asset_optimizer.core.committer import write_in_place
from asset_optimizer.core.renames import RenameTable, normalize_path

LOGGER = logging.getLogger(__name__)

IMAGE_EXT = r"\.(?:png|jpe?g|webp|gif|svg)"
NOT_EXTERNAL = r"(?![a-zA-Z][a-zA-Z0-9+.\-]*:|//)"

REFERENCE_RE = re.compile(
    r"!\[[^\]]*\]\(\s*"
    r"(?:<" + NOT_EXTERNAL + r"(?P<md_angle>[^<>\n]+?" + IMAGE_EXT + r")>"
    r"|" + NOT_EXTERNAL + r"(?P<md_path>[^()\s<>]+?" + IMAGE_EXT + r"))"
    r"(?:\s+(?:\"[^\"\n]*\"|'[^'\n]*'))?\s*\)"
    r"|<img\b[^>]*?\bsrc\s*=\s*(?P<quote>[\"'])" + NOT_EXTERNAL + r"(?P<html_path>[^\"'<>]*?" + IMAGE_EXT + r")(?P=quote)[^>]*>",
    re.IGNORECASE,
)

PATH_GROUPS = ("md_angle", "md_path", "html_path")


def rewrite_references(text: str, document_dir: Path, renames: RenameTable) -> tuple[str, int]:
    """将文本中指向已转换图片的相对路径替换为新路径，返回新文本与替换次数。"""

    replaced = 0

    def _replace(match: re.Match[str]) -> str:
        nonlocal replaced
        group = next(name for name in PATH_GROUPS if match.group(name) is not None)
        new_path = _new_reference(match.group(group), document_dir, renames)
        if new_path is None:
            return match.group(0)

        replaced += 1
        full = match.group(0)
        start = match.start(group) - match.start()
        end = match.end(group) - match.start()
        return full[:start] + new_path + full[end:]

    return REFERENCE_RE.sub(_replace, text), replaced


def rewrite_document(path: Path, renames: RenameTable) -> int:
    """改写单个文档，内容有变化时原子写回，返回替换次数。"""

    raw = path.read_bytes()
    text = raw.decode("utf-8")
    updated, replaced = rewrite_references(text, path.parent, renames)
    if updated != text:
        write_in_place(path, updated.encode("utf-8"))
    return replaced


def _new_reference(raw: str, document_dir: Path, renames: RenameTable) -> Optional[str]:
    decoded = unquote(raw)
    final = renames.lookup(normalize_path(document_dir / decoded))
    if final is None:
        return None

    relative = os.path.relpath(final, normalize_path(document_dir)).replace(os.sep, "/")
    if raw.startswith("./"):
        relative = "./" + relative
    if decoded != raw:
        relative = quote(relative, safe="/.")
    LOGGER.debug("链接改写 %s -> %s", raw, relative)
    return relative
