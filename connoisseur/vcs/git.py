from __future__ import annotations

import logging
import os
import subprocess
from typing import Protocol

from connoisseur.errors import VcsUnavailableError

logger = logging.getLogger(__name__)


class VersionControl(Protocol):
    """版本控制桥接接口（便于在测试中替换）。"""

    def changed_files(self, scope_path: str) -> list[str]: ...

    def show_at_head(self, file_path: str) -> str: ...


class GitBridge:
    """
    基于 git CLI 的版本控制桥接。

    两个操作都可能抛 `VcsUnavailableError`（不是仓库 / 没有 git / 没有 HEAD），
    调用方应把它当作可恢复的正常情况处理。
    """

    def __init__(self, git_bin: str = "git") -> None:
        self._git_bin = git_bin

    def changed_files(self, scope_path: str) -> list[str]:
        """
        相对上一次提交（HEAD）有变更的文件，路径相对于 scope_path，顺序同 git 输出。

        包括已暂存和未暂存的修改；未跟踪的新文件不在其中。
        """
        args = ["-c", "core.quotePath=false", "diff", "--name-only", "--relative", "HEAD", "--", "."]
        output = _run_git(self._git_bin, args, scope_path)
        return [line.strip() for line in output.splitlines() if line.strip()]

    def show_at_head(self, file_path: str) -> str:
        """读取文件在 HEAD 中的内容（file_path 可以是绝对路径）。"""
        directory = os.path.dirname(os.path.abspath(file_path))
        name = os.path.basename(file_path)
        # `HEAD:./name` 相对于 cwd 解析
        return _run_git(self._git_bin, ["show", f"HEAD:./{name}"], directory)


def _run_git(git_bin: str, args: list[str], cwd: str) -> str:
    cmd = [git_bin] + args
    try:
        result = subprocess.run(cmd, cwd=cwd, capture_output=True, encoding="utf-8", errors="replace")
    except OSError as exc:
        raise VcsUnavailableError(f"git not runnable: {exc}") from exc
    if result.returncode != 0:
        logger.debug(f"git failed: {' '.join(cmd)}\nstdout={result.stdout}\nstderr={result.stderr}")
        raise VcsUnavailableError(f"git command failed: {' '.join(cmd)}: {result.stderr.strip()}")
    return result.stdout
