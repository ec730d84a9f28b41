"""
Prompt 构建（确定性，不依赖 LLM）。

把 AnalysisBundle 渲染成 reviewer 的 system/user prompt：
- diff（截断，避免超出模型上下文/预算）
- 静态分析问题、一跳依赖、覆盖率估计（明确标注为估计）、边界用例建议
"""

from __future__ import annotations

import os

from connoisseur.pipeline.diff_reducer import render_unified
from connoisseur.pipeline.models import AnalysisBundle

MAX_DIFF_CHARS = 12000
MAX_LISTED_PATHS = 20

STACK_HINTS: dict[str, str] = {
    "mean": "The project uses the MEAN/MERN stack (MongoDB, Express, Angular/React, Node.js).",
    "mern": "The project uses the MEAN/MERN stack (MongoDB, Express, Angular/React, Node.js).",
    "java": "The project is a Java codebase; pay attention to exceptions, null safety and resource handling.",
    "python": "The project is a Python codebase; follow PEP 8 and idiomatic Python conventions.",
}


def truncate_text(text: str, max_chars: int) -> str:
    """控制输入长度，避免超出模型上下文/预算。"""
    if max_chars <= 0:
        raise ValueError("max_chars must be > 0")
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "\n...TRUNCATED..."


def build_system_prompt(stack: str | None = None) -> str:
    """reviewer 的 system prompt；stack 给出技术栈提示（MEAN/MERN、Java、Python）。"""
    lines = [
        "You are Code Connoisseur, a senior engineer performing a focused code review.",
        "Review only the changes shown. Be specific and actionable; point out bugs, risks and fixes.",
        "Static analysis, dependency and test information below is advisory and may be incomplete.",
    ]
    if stack:
        hint = STACK_HINTS.get(stack.strip().lower().split("/")[0])
        lines.append(hint or f"The project technology stack is: {stack}.")
    return "\n".join(lines)


def build_review_prompt(bundle: AnalysisBundle, project_root: str | None = None) -> str:
    """把一个 bundle 渲染成 user prompt。"""
    sections: list[str] = [
        f"path: {_display(bundle.path, project_root)}",
        f"language: {bundle.language}",
        f"changes: +{bundle.added_line_count} / -{bundle.removed_line_count} lines",
        "",
        "## Diff",
        truncate_text(render_unified(list(bundle.changes)) or "(no changes)", MAX_DIFF_CHARS),
        "",
        "## Static analysis",
    ]
    if bundle.lintIssues:
        for issue in bundle.lintIssues:
            rule = f" ({issue.ruleId})" if issue.ruleId else ""
            sections.append(f"- [{issue.severity}] {issue.line}:{issue.column} {issue.message}{rule}")
    else:
        sections.append("- no issues reported")

    sections.append("")
    sections.append("## Dependencies")
    sections.append(f"- imports: {_paths(bundle.dependencies.dependencies, project_root)}")
    sections.append(f"- imported by: {_paths(bundle.dependencies.dependents, project_root)}")

    coverage = bundle.coverage
    sections.append("")
    sections.append("## Test coverage (estimate from test-file presence, not measured)")
    sections.append(f"- estimated coverage: {coverage.coverage:.0%}")
    if coverage.testFiles:
        sections.append(f"- candidate test files: {_paths(coverage.testFiles, project_root)}")
    if coverage.untested:
        ranges = ", ".join(f"{r.start}-{r.end}" for r in coverage.untested)
        sections.append(f"- added lines to verify: {ranges}")
    sections.append(f"- {coverage.suggestion}")

    sections.append("")
    sections.append("## Suggested edge cases")
    if bundle.edgeCases:
        sections.extend(f"- {case}" for case in bundle.edgeCases)
    else:
        sections.append("- none")
    return "\n".join(sections)


def _display(path: str, project_root: str | None) -> str:
    if project_root is None:
        return path
    relative = os.path.relpath(path, project_root)
    return path if relative.startswith("..") else relative


def _paths(paths, project_root: str | None) -> str:
    if not paths:
        return "none"
    shown = sorted(_display(p, project_root) for p in paths)
    more = len(shown) - MAX_LISTED_PATHS
    text = ", ".join(shown[:MAX_LISTED_PATHS])
    return f"{text} (+{more} more)" if more > 0 else text
