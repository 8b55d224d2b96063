"""处理流水线：栅格图 -> SVG -> 文档链接改写，按固定顺序执行。"""

from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from asset_optimizer.core.config import JobConfig
from asset_optimizer.core.exceptions import DuplicateRenameError
from asset_optimizer.core.models import KIND_RASTER, KIND_VECTOR, DocumentOutcome, FileOutcome, MediaKind
from asset_optimizer.core.progress import ProgressUpdate
from asset_optimizer.core.renames import RenameTable
from asset_optimizer.core.report import RunStatistics, write_csv_report
from asset_optimizer.core.scanner import collect_assets, collect_documents
from asset_optimizer.processing.codec import Codec, PillowCodec
from asset_optimizer.processing.rewriter import rewrite_document
from asset_optimizer.processing.worker import ProcessingTask, run_task

LOGGER = logging.getLogger(__name__)

PHASE_RASTER = "raster"
PHASE_VECTOR = "vector"
PHASE_DOCUMENTS = "documents"

ProgressCallback = Optional[Callable[[ProgressUpdate], None]]


@dataclass(slots=True)
class RunContext:
    """单次运行的共享状态，重命名表与统计只在主进程中修改。"""

    config: JobConfig
    root: Path
    codec: Codec
    renames: RenameTable = field(default_factory=RenameTable)
    stats: RunStatistics = field(default_factory=RunStatistics)
    outcomes: list[FileOutcome] = field(default_factory=list)
    documents: list[DocumentOutcome] = field(default_factory=list)
    progress_callback: ProgressCallback = None


@dataclass(slots=True)
class RunResult:
    """一次运行的最终产出。"""

    root: Path
    stats: RunStatistics
    renames: RenameTable
    outcomes: list[FileOutcome]
    documents: list[DocumentOutcome]

    @property
    def succeeded(self) -> list[FileOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> list[FileOutcome]:
        return [o for o in self.outcomes if o.failed]


def process_tree(
    config: JobConfig,
    codec: Optional[Codec] = None,
    progress_callback: ProgressCallback = None,
) -> RunResult:
    """入口：校验配置后依次执行各阶段。配置错误直接抛出，单文件错误只记录。"""

    config.validate()
    root = config.root.resolve()
    context = RunContext(
        config=config,
        root=root,
        codec=codec or PillowCodec(speed=config.encode.speed),
        progress_callback=progress_callback,
    )

    LOGGER.info("目标路径: %s", root)
    if config.ignore_patterns:
        LOGGER.info("忽略规则: %s", ", ".join(config.ignore_patterns))

    # 文档改写依赖前两个阶段填充完整的重命名表
    for phase in PHASES:
        phase(context)

    result = RunResult(
        root=root,
        stats=context.stats,
        renames=context.renames,
        outcomes=context.outcomes,
        documents=context.documents,
    )
    if config.report_path:
        _write_report(config.report_path, result)
    LOGGER.info("全部任务完成")
    return result


def run_raster_phase(context: RunContext) -> None:
    _run_image_phase(context, PHASE_RASTER, KIND_RASTER)


def run_vector_phase(context: RunContext) -> None:
    _run_image_phase(context, PHASE_VECTOR, KIND_VECTOR)


def run_document_phase(context: RunContext) -> None:
    """在所有图片阶段完成后改写文档中的图片链接。"""

    documents = collect_documents(context.root, context.config.all_ignore_patterns)
    total = len(documents)
    LOGGER.info("检查 %d 个 Markdown 文件的图片链接", total)
    _emit_progress(context, PHASE_DOCUMENTS, 0, total)

    for index, path in enumerate(documents, start=1):
        relative = path.relative_to(context.root)
        if len(context.renames) == 0:
            outcome = DocumentOutcome(path=path)
        else:
            try:
                replaced = rewrite_document(path, context.renames)
            except (OSError, UnicodeDecodeError) as exc:
                LOGGER.error("更新链接失败 %s: %s", relative, exc)
                outcome = DocumentOutcome(path=path, message=str(exc))
            else:
                if replaced:
                    LOGGER.info("已更新 %s 中的 %d 处链接", relative, replaced)
                outcome = DocumentOutcome(path=path, replacements=replaced)

        context.documents.append(outcome)
        context.stats.record_document(outcome.replacements)
        _emit_progress(context, PHASE_DOCUMENTS, index, total, str(relative))


PHASES: tuple[Callable[[RunContext], None], ...] = (
    run_raster_phase,
    run_vector_phase,
    run_document_phase,
)


def _run_image_phase(context: RunContext, phase: str, kind: MediaKind) -> None:
    config = context.config
    assets = collect_assets(context.root, kind, config.all_ignore_patterns)
    total = len(assets)
    LOGGER.info("[%s] 待处理文件 %d 个", phase, total)
    _emit_progress(context, phase, 0, total)
    if total == 0:
        return

    tasks = [
        ProcessingTask(asset=asset, codec=context.codec, policy=config.policy, encode=config.encode)
        for asset in assets
    ]
    completed = 0

    if config.max_workers <= 1 or total == 1:
        for task in tasks:
            _record_outcome(context, run_task(task))
            completed += 1
            _emit_progress(context, phase, completed, total, str(task.asset.relative_path))
        return

    with ProcessPoolExecutor(max_workers=config.max_workers) as executor:
        future_map = {executor.submit(run_task, task): task for task in tasks}
        for future in as_completed(future_map):
            task = future_map[future]
            try:
                outcome = future.result()
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("任务执行异常 %s: %s", task.asset.relative_path, exc)
                outcome = FileOutcome(
                    source_path=task.asset.path,
                    status="error-worker",
                    kind=task.asset.kind,
                    message=str(exc),
                )
            _record_outcome(context, outcome)
            completed += 1
            _emit_progress(context, phase, completed, total, str(task.asset.relative_path))


def _record_outcome(context: RunContext, outcome: FileOutcome) -> None:
    """登记重命名记录并累加统计，仅在主进程调用。"""

    record = outcome.rename_record()
    if record is not None:
        try:
            context.renames.add(record)
        except DuplicateRenameError as exc:
            LOGGER.error("%s", exc)
            outcome.status = "error-duplicate"
            outcome.message = str(exc)
            context.outcomes.append(outcome)
            return

    context.stats.record(outcome)
    context.outcomes.append(outcome)


def _emit_progress(
    context: RunContext,
    phase: str,
    completed: int,
    total: int,
    message: Optional[str] = None,
) -> None:
    if not context.progress_callback:
        return
    context.progress_callback(ProgressUpdate(phase=phase, total=total, completed=completed, message=message))


def _write_report(report_path: Path, result: RunResult) -> None:
    try:
        write_csv_report(result.outcomes, report_path)
    except OSError as exc:
        LOGGER.error("写入报告失败：%s", exc)
