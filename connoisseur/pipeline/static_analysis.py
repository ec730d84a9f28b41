"""
Static Analysis Adapter。

职责：
- 把注入的 lint 引擎结果归一化为 `LintIssue` 列表（保持引擎原始顺序）
- 引擎失败（解析错误/不支持的语法/工具崩溃）**不向上抛**：返回一条合成的 warning，
  保证下游聚合永远不会被一个坏文件阻塞
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Literal, Protocol

import anyio

from connoisseur.pipeline.lint_engine import EslintCommandEngine
from connoisseur.pipeline.lint_engine import TreeSitterLintEngine
from connoisseur.pipeline.models import LintIssue

logger = logging.getLogger(__name__)


class LintEngine(Protocol):
    """lint 引擎接口协议：返回结构化问题，或者抛错。"""

    def lint(self, code: str, file_path: str) -> Sequence[LintIssue]: ...


def build_lint_engine(kind: Literal["tree-sitter", "eslint"], project_root: str | None = None) -> LintEngine:
    if kind == "eslint":
        return EslintCommandEngine(cwd=project_root)
    return TreeSitterLintEngine()


def analysis_unavailable_issue(reason: str) -> LintIssue:
    """引擎失败时的合成问题：固定 warning @ 1:1。"""
    return LintIssue(
        message=f"Static analysis currently unavailable: {reason}",
        severity="warning",
        line=1,
        column=1,
    )


async def run_static_analysis(code: str, file_path: str, engine: LintEngine) -> list[LintIssue]:
    """
    对单个文件运行静态分析。

    - 输入：文件内容、文件路径（用于按文件类型选择规则）、lint 引擎
    - 输出：LintIssue 列表；引擎无结果时为空列表
    - 失败：永不抛错，降级为一条 `analysis_unavailable_issue`
    """
    logger.info(f"Running static analysis on {file_path}")
    try:
        issues = await anyio.to_thread.run_sync(engine.lint, code, file_path)
    except Exception as exc:
        logger.warning(f"Static analysis failed for {file_path}: {exc}")
        return [analysis_unavailable_issue(str(exc) or type(exc).__name__)]
    return list(issues)
