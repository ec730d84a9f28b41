"""
分析流水线领域模型（Pydantic）。

用途：
- 明确每个分析器的输入/输出结构
- 所有模型都是 frozen：AnalysisBundle 产出后只读，重试时重新构建，不原地修改
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class FileRecord(BaseModel):
    """一个已读取的文件（绝对路径 + 文本内容）。"""

    model_config = ConfigDict(frozen=True)

    path: str
    content: str


class ChangeRecord(BaseModel):
    """diff 中一段连续的行级变更。"""

    model_config = ConfigDict(frozen=True)

    kind: Literal["added", "removed", "unchanged"]
    lineNumber: int = Field(ge=1)
    lineCount: int = Field(ge=1)
    text: str

    @property
    def end_line(self) -> int:
        return self.lineNumber + self.lineCount - 1


class LintIssue(BaseModel):
    """静态分析问题（与具体 lint 引擎无关的统一格式）。"""

    model_config = ConfigDict(frozen=True)

    message: str
    severity: Literal["warning", "error"]
    line: int = Field(ge=1)
    column: int = Field(ge=1)
    ruleId: str | None = None


class DependencyResult(BaseModel):
    """单个文件的一跳依赖关系（都是绝对路径）。"""

    model_config = ConfigDict(frozen=True)

    dependencies: frozenset[str] = frozenset()
    dependents: frozenset[str] = frozenset()


class LineRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: int
    end: int


class CoverageEstimate(BaseModel):
    """
    测试覆盖率估计。

    注意：这是基于“测试文件是否存在”的启发式估计（presence heuristic），
    不是执行测试得到的覆盖率。`method` 字段始终标明这一点。
    """

    model_config = ConfigDict(frozen=True)

    coverage: float = Field(ge=0.0, le=1.0)
    testFiles: tuple[str, ...] = ()
    untested: tuple[LineRange, ...] = ()
    suggestion: str
    method: Literal["presence-heuristic"] = "presence-heuristic"


class AnalysisBundle(BaseModel):
    """单个文件所有分析结果的聚合，交给下游 prompt/LLM 阶段。"""

    model_config = ConfigDict(frozen=True)

    path: str
    language: str
    changes: tuple[ChangeRecord, ...] = ()
    lintIssues: tuple[LintIssue, ...] = ()
    dependencies: DependencyResult = DependencyResult()
    coverage: CoverageEstimate
    edgeCases: tuple[str, ...] = ()

    @property
    def added_line_count(self) -> int:
        return sum(c.lineCount for c in self.changes if c.kind == "added")

    @property
    def removed_line_count(self) -> int:
        return sum(c.lineCount for c in self.changes if c.kind == "removed")


class SkippedFile(BaseModel):
    """批量 review 中被跳过的文件及原因。"""

    model_config = ConfigDict(frozen=True)

    path: str
    reason: str


class BatchReport(BaseModel):
    """
    一次批量 review 的结果。

    - bundles：按 change set 的发现顺序排列（不是完成顺序）
    - interrupted：被中断时为 True，已完成的 bundle 依然有效
    """

    directory: str
    bundles: list[AnalysisBundle] = Field(default_factory=list)
    skipped: list[SkippedFile] = Field(default_factory=list)
    interrupted: bool = False
