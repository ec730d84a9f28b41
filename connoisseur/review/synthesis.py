from __future__ import annotations

"""
Synthesis（汇总输出）。

注意：
- 这里是**确定性输出**（不依赖 LLM）
- 批量报告按 bundle 顺序（= change set 发现顺序）输出，不按完成顺序
"""

import os
from collections.abc import Mapping

from connoisseur.pipeline.models import AnalysisBundle
from connoisseur.pipeline.models import BatchReport


def synthesize_bundle_section(bundle: AnalysisBundle, review: str | None = None, project_root: str | None = None) -> str:
    """单个文件的 markdown 小节：分析摘要 + （可选）LLM 审查文本。"""
    path = os.path.relpath(bundle.path, project_root) if project_root else bundle.path
    errors = sum(1 for i in bundle.lintIssues if i.severity == "error")
    warnings = len(bundle.lintIssues) - errors

    lines: list[str] = []
    lines.append(f"## `{path}`")
    lines.append("")
    lines.append(f"- Changes: **+{bundle.added_line_count} / -{bundle.removed_line_count}** lines")
    lines.append(f"- Static analysis: **{errors}** error(s), **{warnings}** warning(s)")
    lines.append(
        f"- Dependencies: imports **{len(bundle.dependencies.dependencies)}**, "
        f"imported by **{len(bundle.dependencies.dependents)}**"
    )
    lines.append(f"- Estimated test coverage: **{bundle.coverage.coverage:.0%}** (from test-file presence, not measured)")
    lines.append(f"- {bundle.coverage.suggestion}")

    if bundle.lintIssues:
        lines.append("")
        lines.append("### Issues")
        for issue in bundle.lintIssues:
            rule = f" `{issue.ruleId}`" if issue.ruleId else ""
            lines.append(f"- **[{issue.severity}]** line {issue.line}:{issue.column} {issue.message}{rule}")

    if bundle.edgeCases:
        lines.append("")
        lines.append("### Edge cases to test")
        lines.extend(f"- {case}" for case in bundle.edgeCases)

    if review:
        lines.append("")
        lines.append("### Review")
        lines.append(review.strip())
    return "\n".join(lines)


def synthesize_batch_report(
    report: BatchReport,
    reviews: Mapping[str, str] | None = None,
    project_root: str | None = None,
) -> str:
    """
    把一次批量 review 拼成 markdown 报告。

    - reviews：path -> LLM 审查文本（只做分析时为 None）
    - 被跳过的文件和中断状态都会显式列出，不静默丢弃
    """
    reviews = reviews or {}
    root = project_root or report.directory
    lines: list[str] = []
    lines.append(f"# Code Connoisseur Review: `{report.directory}`")
    lines.append("")
    lines.append(f"- Files reviewed: **{len(report.bundles)}**")
    if report.skipped:
        lines.append(f"- Files skipped: **{len(report.skipped)}**")
    if report.interrupted:
        lines.append("- **Interrupted**: results below are partial.")
    lines.append("")

    for bundle in report.bundles:
        lines.append(synthesize_bundle_section(bundle, review=reviews.get(bundle.path), project_root=root))
        lines.append("")

    if report.skipped:
        lines.append("## Skipped files")
        for skipped in report.skipped:
            lines.append(f"- `{os.path.relpath(skipped.path, root)}`: {skipped.reason}")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"
