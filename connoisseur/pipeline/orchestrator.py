"""
Analysis Orchestrator（核心流程编排）。

- 单文件：读取新旧版本 -> Diff Reducer -> 4 个分析器（依次执行）-> AnalysisBundle
- 批量：Change-Set Resolver -> 严格按选择顺序逐个文件分析；单个文件失败只跳过，不中断批次

约定：
- 分析器自身的失败都在分析器内部降级，bundle 的产出对“可读文件”永不失败
- 只有单文件的 FileUnreadable、批量的 NoCandidates 会向上抛
- 中断时停止派发新文件；已经产出的 bundle 保持有效
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from dataclasses import dataclass

import anyio

from connoisseur.config import ReviewSettings
from connoisseur.errors import FileUnreadableError
from connoisseur.errors import NoCandidatesError
from connoisseur.errors import VcsUnavailableError
from connoisseur.files import read_text
from connoisseur.pipeline.change_set import resolve_change_set
from connoisseur.pipeline.coverage import estimate_test_coverage
from connoisseur.pipeline.dependencies import CachingGraphBuilder
from connoisseur.pipeline.dependencies import GraphBuilder
from connoisseur.pipeline.dependencies import ProjectGraphBuilder
from connoisseur.pipeline.dependencies import resolve_dependencies
from connoisseur.pipeline.diff_reducer import NEW_FILE_PLACEHOLDER
from connoisseur.pipeline.diff_reducer import reduce_diff
from connoisseur.pipeline.edge_cases import suggest_edge_cases
from connoisseur.pipeline.models import AnalysisBundle
from connoisseur.pipeline.models import BatchReport
from connoisseur.pipeline.models import SkippedFile
from connoisseur.pipeline.static_analysis import LintEngine
from connoisseur.pipeline.static_analysis import build_lint_engine
from connoisseur.pipeline.static_analysis import run_static_analysis
from connoisseur.review.language import infer_language_from_path
from connoisseur.vcs.git import GitBridge
from connoisseur.vcs.git import VersionControl

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisPipeline:
    """流水线运行时依赖集合（全部可注入，便于测试）。"""

    settings: ReviewSettings
    lint_engine: LintEngine
    graph_builder: GraphBuilder
    vcs: VersionControl


def build_analysis_pipeline(
    settings: ReviewSettings,
    project_root: str | None = None,
    share_graph: bool = False,
    vcs: VersionControl | None = None,
) -> AnalysisPipeline:
    """
    创建流水线。

    - share_graph=False：每次查询都重建依赖图（单文件 review）
    - share_graph=True：一次运行内只构建一次并只读共享（批量 review）
    """
    builder: GraphBuilder = ProjectGraphBuilder()
    if share_graph:
        builder = CachingGraphBuilder(ProjectGraphBuilder())
    return AnalysisPipeline(
        settings=settings,
        lint_engine=build_lint_engine(settings.lint_engine, project_root=project_root),
        graph_builder=builder,
        vcs=vcs or GitBridge(),
    )


async def build_bundle(
    pipeline: AnalysisPipeline,
    file_path: str,
    old_text: str,
    new_text: str,
    project_root: str,
) -> AnalysisBundle:
    """对一个文件跑完整分析，聚合为只读的 AnalysisBundle。"""
    changes = reduce_diff(old_text=old_text, new_text=new_text)
    lint_issues = await run_static_analysis(code=new_text, file_path=file_path, engine=pipeline.lint_engine)
    dependencies = await resolve_dependencies(
        file_path=file_path,
        project_root=project_root,
        builder=pipeline.graph_builder,
    )
    coverage = await estimate_test_coverage(
        file_path=file_path,
        changes=changes,
        project_root=project_root,
        test_dirs=pipeline.settings.test_dirs,
    )
    edge_cases = suggest_edge_cases(new_text)
    return AnalysisBundle(
        path=file_path,
        language=infer_language_from_path(file_path),
        changes=tuple(changes),
        lintIssues=tuple(lint_issues),
        dependencies=dependencies,
        coverage=coverage,
        edgeCases=tuple(edge_cases),
    )


async def load_previous_version(pipeline: AnalysisPipeline, file_path: str, old_path: str | None = None) -> str:
    """
    取文件的旧版本。

    - 指定了 old_path：读取它；读不了抛 FileUnreadableError
    - 否则取 git HEAD 中的版本；版本控制不可用时当作新文件（占位文本）
    """
    if old_path is not None:
        return await anyio.to_thread.run_sync(read_text, os.path.abspath(old_path))
    try:
        return await anyio.to_thread.run_sync(pipeline.vcs.show_at_head, file_path)
    except VcsUnavailableError as exc:
        logger.warning(f"No previous version of {file_path} in version control, treating as new file: {exc}")
        return NEW_FILE_PLACEHOLDER


async def analyze_file(
    pipeline: AnalysisPipeline,
    file_path: str,
    project_root: str,
    old_path: str | None = None,
) -> AnalysisBundle:
    """
    单文件分析入口。

    - 失败：目标文件或 project_root 不存在时抛 FileUnreadableError（终止性错误）
    """
    target = os.path.abspath(file_path)
    root = os.path.abspath(project_root)
    if not os.path.isdir(root):
        raise FileUnreadableError(root, "project root directory not found")
    new_text = await anyio.to_thread.run_sync(read_text, target)
    old_text = await load_previous_version(pipeline=pipeline, file_path=target, old_path=old_path)
    return await build_bundle(
        pipeline=pipeline,
        file_path=target,
        old_text=old_text,
        new_text=new_text,
        project_root=root,
    )


async def iter_directory_analysis(
    pipeline: AnalysisPipeline,
    directory: str,
    project_root: str | None = None,
) -> AsyncIterator[AnalysisBundle | SkippedFile]:
    """
    批量分析：按 change set 顺序逐个产出 bundle（或跳过记录）。

    - 失败：目录不存在抛 FileUnreadableError；没有候选文件抛 NoCandidatesError
    - 单个文件的任何异常：记录日志、产出 SkippedFile，继续下一个
    """
    target_dir = os.path.abspath(directory)
    if not os.path.isdir(target_dir):
        raise FileUnreadableError(target_dir, "directory not found")
    root = os.path.abspath(project_root) if project_root is not None else target_dir

    selected = await resolve_change_set(directory=target_dir, settings=pipeline.settings, vcs=pipeline.vcs)
    if not selected:
        raise NoCandidatesError(target_dir)

    for index, path in enumerate(selected, start=1):
        logger.info(f"[{index}/{len(selected)}] Analyzing {path}")
        try:
            bundle = await analyze_file(pipeline=pipeline, file_path=path, project_root=root)
        except Exception as exc:
            logger.warning(f"Skipping {path}: {exc}")
            yield SkippedFile(path=path, reason=str(exc) or type(exc).__name__)
            continue
        yield bundle


async def analyze_directory(
    pipeline: AnalysisPipeline,
    directory: str,
    project_root: str | None = None,
    report: BatchReport | None = None,
) -> BatchReport:
    """
    跑完整个批次并汇总为 BatchReport。

    传入 report 时会就地追加结果：调用方在中断后仍然持有已完成的部分。
    """
    if report is None:
        report = BatchReport(directory=os.path.abspath(directory))
    try:
        async for item in iter_directory_analysis(pipeline=pipeline, directory=directory, project_root=project_root):
            if isinstance(item, SkippedFile):
                report.skipped.append(item)
            else:
                report.bundles.append(item)
    except anyio.get_cancelled_exc_class():
        report.interrupted = True
        raise
    return report
