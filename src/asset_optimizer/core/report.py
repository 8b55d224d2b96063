"""运行统计与报告生成工具。"""

from __future__ import annotations

import csv
import json
import os
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from asset_optimizer.core.models import STATUS_CONVERTED, STATUS_OPTIMIZED, FileOutcome

HEADER = [
    "source_path",
    "output_path",
    "status",
    "kind",
    "reason",
    "original_size",
    "new_size",
    "fingerprint",
    "message",
]

GITHUB_OUTPUT_KEY = "summary"
GITHUB_ENV_KEY = "IMAGE_COMPRESSION_SUMMARY"


def format_kib(size: int) -> str:
    return f"{size / 1024:.2f} KB"


def format_mib(size: int) -> str:
    return f"{size / 1024 / 1024:.2f} MB"


@dataclass(slots=True)
class RunStatistics:
    """单调累加的运行统计，只在文件成功处理后更新。"""

    converted: int = 0
    optimized: int = 0
    original_bytes: int = 0
    new_bytes: int = 0
    documents_updated: int = 0
    references_rewritten: int = 0

    @property
    def processed(self) -> int:
        return self.converted + self.optimized

    @property
    def saved_bytes(self) -> int:
        return self.original_bytes - self.new_bytes

    @property
    def saved_percent(self) -> float:
        if self.original_bytes <= 0:
            return 0.0
        return self.saved_bytes / self.original_bytes * 100

    def record(self, outcome: FileOutcome) -> bool:
        """累加一个文件的结果，未成功的结果不计入，返回是否计入。"""

        if outcome.status == STATUS_CONVERTED:
            self.converted += 1
        elif outcome.status == STATUS_OPTIMIZED:
            self.optimized += 1
        else:
            return False
        self.original_bytes += outcome.original_size
        self.new_bytes += outcome.new_size
        return True

    def record_document(self, replacements: int) -> None:
        if replacements <= 0:
            return
        self.documents_updated += 1
        self.references_rewritten += replacements

    def to_dict(self, failed: int = 0) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "converted": self.converted,
            "optimized": self.optimized,
            "failed": failed,
            "original_bytes": self.original_bytes,
            "new_bytes": self.new_bytes,
            "saved_bytes": self.saved_bytes,
            "saved_percent": round(self.saved_percent, 2),
            "documents_updated": self.documents_updated,
            "references_rewritten": self.references_rewritten,
        }


def render_markdown(stats: RunStatistics, failed: int = 0) -> str:
    """生成人类可读的 Markdown 摘要。"""

    lines = [
        "### Image Compression Summary",
        "",
        f"- **Total Processed:** {stats.processed} files",
        "",
        f"  - Converted (to AVIF): {stats.converted}",
        "",
        f"  - SVGs (Optimized in place): {stats.optimized}",
        "",
    ]
    if failed:
        lines += [f"- **Failed:** {failed} files", ""]
    lines += [
        f"- **Storage Saved:** {format_mib(stats.saved_bytes)} ({stats.saved_percent:.2f}%)",
        "",
        f"- **Original Total Size:** {format_mib(stats.original_bytes)}",
        "",
        f"- **New Total Size:** {format_mib(stats.new_bytes)}",
        "",
        f"- **Documents Updated:** {stats.documents_updated} ({stats.references_rewritten} links)",
    ]
    return "\n".join(lines) + "\n"


def render_json(stats: RunStatistics, failed: int = 0) -> str:
    """生成机器可读的 JSON 摘要。"""

    return json.dumps(stats.to_dict(failed), ensure_ascii=False, indent=2)


def write_csv_report(outcomes: Iterable[FileOutcome], report_path: Path) -> Path:
    """将逐文件处理结果写入 CSV 报告。"""

    report_path.parent.mkdir(parents=True, exist_ok=True)
    with report_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(HEADER)
        for record in outcomes:
            writer.writerow(
                [
                    str(record.source_path),
                    str(record.output_path) if record.output_path else "",
                    record.status,
                    record.kind,
                    record.reason or "",
                    record.original_size,
                    record.new_size,
                    record.fingerprint or "",
                    record.message or "",
                ]
            )
    return report_path


def publish_github_outputs(summary: str, environ: Optional[Mapping[str, str]] = None) -> list[Path]:
    """GitHub Actions 环境下将摘要追加到 GITHUB_OUTPUT / GITHUB_ENV，返回写入的文件。"""

    env = os.environ if environ is None else environ
    delimiter = f"EOF_{secrets.token_hex(6)}"
    written: list[Path] = []

    for env_name, key in (("GITHUB_OUTPUT", GITHUB_OUTPUT_KEY), ("GITHUB_ENV", GITHUB_ENV_KEY)):
        target = env.get(env_name)
        if not target:
            continue
        path = Path(target)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(f"{key}<<{delimiter}\n{summary}\n{delimiter}\n")
        written.append(path)
    return written
