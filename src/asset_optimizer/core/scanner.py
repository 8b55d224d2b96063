"""文件扫描与筛选逻辑。"""

from __future__ import annotations

import os
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath
from typing import Iterator, Sequence

from asset_optimizer.core.models import KIND_RASTER, KIND_VECTOR, Asset, MediaKind

RASTER_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp", ".gif"}
VECTOR_EXTENSIONS = {".svg"}
DOCUMENT_EXTENSIONS = {".md"}

EXTENSIONS_BY_KIND: dict[MediaKind, set[str]] = {
    KIND_RASTER: RASTER_EXTENSIONS,
    KIND_VECTOR: VECTOR_EXTENSIONS,
}


def is_ignored(relative: PurePosixPath, patterns: Sequence[str]) -> bool:
    """判断相对路径是否命中忽略规则。

    ``dir/**`` 形式的规则同时忽略该目录本身，开头的 ``**/`` 可匹配零层目录，
    ``*`` 可跨越目录分隔符。
    """

    text = relative.as_posix()
    for pattern in patterns:
        for candidate in _pattern_variants(pattern):
            if fnmatch(text, candidate):
                return True
            if candidate.endswith("/**") and fnmatch(text, candidate[:-3]):
                return True
    return False


def _pattern_variants(pattern: str) -> Iterator[str]:
    yield pattern
    while pattern.startswith("**/"):
        pattern = pattern[3:]
        yield pattern


def _iter_files(root: Path, patterns: Sequence[str]) -> Iterator[tuple[Path, PurePosixPath]]:
    """遍历根目录下的文件，命中忽略规则的目录不再深入。"""

    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        rel_dir = PurePosixPath(current.relative_to(root).as_posix())

        kept = []
        for name in sorted(dirnames):
            if not is_ignored(rel_dir / name, patterns):
                kept.append(name)
        dirnames[:] = kept

        for name in sorted(filenames):
            relative = rel_dir / name
            if is_ignored(relative, patterns):
                continue
            yield current / name, relative


def collect_assets(root: Path, kind: MediaKind, ignore_patterns: Sequence[str]) -> list[Asset]:
    """扫描根目录，返回指定类型的图片列表（按路径排序）。"""

    extensions = EXTENSIONS_BY_KIND[kind]
    collected: list[Asset] = []
    for candidate, relative in _iter_files(root, ignore_patterns):
        if candidate.suffix.lower() not in extensions:
            continue
        collected.append(Asset(path=candidate, root=root, relative_path=Path(relative), kind=kind))

    collected.sort(key=lambda x: str(x.path).lower())
    return collected


def collect_documents(root: Path, ignore_patterns: Sequence[str]) -> list[Path]:
    """扫描需要更新图片链接的文档。"""

    documents = [
        candidate
        for candidate, _ in _iter_files(root, ignore_patterns)
        if candidate.suffix.lower() in DOCUMENT_EXTENSIONS
    ]
    documents.sort(key=lambda x: str(x).lower())
    return documents
