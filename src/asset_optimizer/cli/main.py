"""命令行入口。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from asset_optimizer.core.config import DEFAULT_AVIF_SPEED, EncodeConfig, JobConfig, PolicyConfig
from asset_optimizer.core.exceptions import AssetOptimizerError
from asset_optimizer.core.progress import ProgressUpdate
from asset_optimizer.core.report import publish_github_outputs, render_json, render_markdown
from asset_optimizer.processing.pipeline import process_tree
from asset_optimizer.utils.logging import setup_logging

LOGGER = logging.getLogger(__name__)

app = typer.Typer(help="将目录中的图片转换为 AVIF / 优化 SVG，并同步更新 Markdown 中的图片链接。")

PHASE_LABELS = {
    "raster": "栅格图 -> AVIF",
    "vector": "SVG",
    "documents": "Markdown 链接",
}


def _split_patterns(values: List[str]) -> list[str]:
    patterns: list[str] = []
    for value in values:
        patterns.extend(line.strip() for line in value.splitlines() if line.strip())
    return patterns


def _build_progress_callback(progress: Progress):
    task_ids: Dict[str, int] = {}

    def callback(update: ProgressUpdate) -> None:
        if update.total == 0:
            return
        task_id = task_ids.get(update.phase)
        if task_id is None:
            task_id = progress.add_task(PHASE_LABELS.get(update.phase, update.phase), total=update.total)
            task_ids[update.phase] = task_id
        progress.update(task_id, completed=update.completed)

    return callback


@app.command("run")
def run_cli(  # noqa: PLR0913
    workspace: Optional[Path] = typer.Option(
        None, "--workspace", envvar="GITHUB_WORKSPACE", help="工作区根目录，默认当前目录"
    ),
    path: str = typer.Option(".", "--path", "-p", envvar="INPUT_PATH", help="相对工作区的目标目录"),
    ignore: Optional[List[str]] = typer.Option(
        None, "--ignore", "-i", envvar="INPUT_IGNORE", help="额外的忽略规则（glob），可指定多次"
    ),
    max_workers: int = typer.Option(4, "--workers", "-w", help="并发进程数量"),
    raster_quality: int = typer.Option(65, "--raster-quality", help="栅格图 AVIF 质量"),
    vector_quality: int = typer.Option(60, "--vector-quality", help="SVG 转 AVIF 质量"),
    speed: int = typer.Option(DEFAULT_AVIF_SPEED, "--speed", help="AVIF 编码速度 0~10，越小压缩率越高"),
    summary_json: Optional[Path] = typer.Option(None, "--summary-json", help="写入 JSON 摘要的文件"),
    report: Optional[Path] = typer.Option(None, "--report", help="写入逐文件 CSV 报告的文件"),
    progress_bar: bool = typer.Option(True, "--progress/--no-progress", help="是否显示进度条"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """执行一次完整的压缩与链接更新。"""

    setup_logging(logging.DEBUG if verbose else logging.INFO)

    base = (workspace or Path.cwd()).expanduser()
    root = (base / path).resolve()
    LOGGER.info("工作区: %s", base)

    job = JobConfig(
        root=root,
        policy=PolicyConfig(),
        encode=EncodeConfig(raster_quality=raster_quality, vector_quality=vector_quality, speed=speed),
        ignore_patterns=tuple(_split_patterns(ignore or [])),
        max_workers=max_workers,
        report_path=report.expanduser().resolve() if report else None,
    )

    try:
        if progress_bar:
            progress = Progress(
                SpinnerColumn(),
                TextColumn("[bold blue]{task.description}"),
                BarColumn(),
                TimeElapsedColumn(),
            )
            with progress:
                result = process_tree(job, progress_callback=_build_progress_callback(progress))
        else:
            result = process_tree(job)
    except AssetOptimizerError as exc:
        LOGGER.error("[FATAL] %s", exc)
        raise typer.Exit(code=1) from exc
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("[FATAL] 未预期的错误: %s", exc)
        raise typer.Exit(code=1) from exc

    failed = len(result.failed)
    summary = render_markdown(result.stats, failed=failed)
    typer.echo("\n" + summary)

    if summary_json:
        summary_json.parent.mkdir(parents=True, exist_ok=True)
        summary_json.write_text(render_json(result.stats, failed=failed), encoding="utf-8")
    publish_github_outputs(summary)


if __name__ == "__main__":
    app()
