from __future__ import annotations

"""
Diff Reducer：把新旧两份全文转换为行级 ChangeRecord 序列。

说明：
- 纯函数，无 I/O，永不失败
- 基于 difflib 的最长公共子序列匹配；连续插入/删除的行合并成一条记录
- added/unchanged 的行号以新文本为准，removed 的行号以旧文本为准
- 两份文本完全相同时返回空序列（没有变更就没有记录，包括 unchanged）
"""

import difflib

from connoisseur.pipeline.models import ChangeRecord

# 拿不到旧版本时（新文件 / 不在 git 中）用来占位的旧文本
NEW_FILE_PLACEHOLDER = "// New file"


def is_new_file_sentinel(text: str) -> bool:
    """空文本或占位文本都视为“没有旧版本”。"""
    stripped = text.strip()
    return not stripped or stripped == NEW_FILE_PLACEHOLDER


def reduce_diff(old_text: str, new_text: str) -> list[ChangeRecord]:
    """
    计算两份文本的行级 diff。

    - 输入：旧文本、新文本（同一逻辑文件）
    - 输出：按出现顺序排列的 ChangeRecord 列表
    - 旧文本是占位符时，整个新文件是一条 added 记录
    """
    old_lines = [] if is_new_file_sentinel(old_text) else old_text.splitlines()
    new_lines = new_text.splitlines()
    if old_lines == new_lines:
        return []

    matcher = difflib.SequenceMatcher(a=old_lines, b=new_lines, autojunk=False)
    records: list[ChangeRecord] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            records.append(_record("unchanged", start=j1, lines=new_lines[j1:j2]))
            continue
        # replace = 先删后加
        if tag in ("delete", "replace"):
            records.append(_record("removed", start=i1, lines=old_lines[i1:i2]))
        if tag in ("insert", "replace"):
            records.append(_record("added", start=j1, lines=new_lines[j1:j2]))
    return records


def _record(kind: str, start: int, lines: list[str]) -> ChangeRecord:
    # start 是 0-based 下标
    return ChangeRecord(kind=kind, lineNumber=start + 1, lineCount=len(lines), text="\n".join(lines))


def added_ranges(changes: list[ChangeRecord]) -> list[tuple[int, int]]:
    """所有 added 记录对应的 (start, end) 行号区间（闭区间）。"""
    return [(c.lineNumber, c.end_line) for c in changes if c.kind == "added"]


def render_unified(changes: list[ChangeRecord]) -> str:
    """把 ChangeRecord 渲染成类似 unified diff 的文本（供 prompt 使用）。"""
    lines: list[str] = []
    for change in changes:
        prefix = {"added": "+", "removed": "-", "unchanged": " "}[change.kind]
        lines.append(f"@@ {change.kind} line {change.lineNumber} ({change.lineCount}) @@")
        lines.extend(f"{prefix}{line}" for line in change.text.split("\n"))
    return "\n".join(lines)
