"""
错误类型（流水线的错误分类）。

传播策略：
- 分析器内部的失败（AnalyzerUnavailable / GraphBuildFailed / VcsUnavailable）就地降级，不向上抛
- 只有单文件 review 的 FileUnreadable 和批量 review 的 NoCandidates 会终止本次运行
"""

from __future__ import annotations


class ConnoisseurError(Exception):
    """所有业务错误的基类。"""

    pass


class AnalyzerUnavailableError(ConnoisseurError):
    """lint 引擎崩溃或不支持该语法。"""

    pass


class GraphBuildFailedError(ConnoisseurError):
    """依赖图无法构建。"""

    pass


class VcsUnavailableError(ConnoisseurError):
    """不是 git 仓库、git 不可用、或没有提交历史。"""

    pass


class FileUnreadableError(ConnoisseurError):
    """文件不存在或无权限读取。"""

    def __init__(self, path: str, reason: str = "file not found") -> None:
        super().__init__(f"Cannot read {path}: {reason}")
        self.path = path
        self.reason = reason


class NoCandidatesError(ConnoisseurError):
    """change set 解析结果为空：没有可 review 的文件。"""

    def __init__(self, directory: str) -> None:
        super().__init__(f"No reviewable files found in {directory}")
        self.directory = directory
