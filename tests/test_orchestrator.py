from __future__ import annotations

import shutil
import subprocess
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import anyio
import pytest

from connoisseur.config import ReviewSettings
from connoisseur.errors import FileUnreadableError
from connoisseur.errors import NoCandidatesError
from connoisseur.errors import VcsUnavailableError
from connoisseur.pipeline.dependencies import ProjectGraphBuilder
from connoisseur.pipeline.lint_engine import TreeSitterLintEngine
from connoisseur.pipeline.models import BatchReport
from connoisseur.pipeline.models import LintIssue
from connoisseur.pipeline.orchestrator import AnalysisPipeline
from connoisseur.pipeline.orchestrator import analyze_directory
from connoisseur.pipeline.orchestrator import analyze_file
from connoisseur.pipeline.orchestrator import build_analysis_pipeline
from connoisseur.vcs.git import GitBridge

T = TypeVar("T")


class _FakeVcs:
    """changed=None 表示“不是仓库”；heads 是 HEAD 中的旧内容（按文件名）。"""

    def __init__(self, changed: list[str] | None = None, heads: dict[str, str] | None = None) -> None:
        self._changed = changed
        self._heads = heads or {}

    def changed_files(self, scope_path: str) -> list[str]:
        if self._changed is None:
            raise VcsUnavailableError("not a git repository")
        return list(self._changed)

    def show_at_head(self, file_path: str) -> str:
        name = Path(file_path).name
        if name == "broken.js":
            raise RuntimeError("object store corrupted")
        if name not in self._heads:
            raise VcsUnavailableError(f"{name} is not in HEAD")
        return self._heads[name]


def _pipeline(vcs: _FakeVcs, **settings: object) -> AnalysisPipeline:
    return build_analysis_pipeline(settings=ReviewSettings(**settings), vcs=vcs)


def _run(func: Callable[[], Awaitable[T]]) -> T:
    return anyio.run(func)


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def test_single_file_with_explicit_old_version(tmp_path: Path) -> None:
    target = _write(tmp_path / "src" / "f.js", "function f(){return 1;}\n")
    old = _write(tmp_path / "old" / "f.js", "function f(){}\n")
    pipeline = _pipeline(_FakeVcs())

    bundle = _run(lambda: analyze_file(pipeline=pipeline, file_path=str(target), project_root=str(tmp_path), old_path=str(old)))

    assert bundle.path == str(target)
    assert bundle.language == "javascript"
    assert sorted(c.kind for c in bundle.changes) == ["added", "removed"]
    assert bundle.lintIssues == ()
    assert bundle.edgeCases == ()
    assert bundle.dependencies.dependencies == frozenset()
    assert bundle.coverage.coverage == 0
    assert [(r.start, r.end) for r in bundle.coverage.untested] == [(1, 1)]


def test_missing_target_is_terminal(tmp_path: Path) -> None:
    pipeline = _pipeline(_FakeVcs())
    with pytest.raises(FileUnreadableError):
        _run(lambda: analyze_file(pipeline=pipeline, file_path=str(tmp_path / "nope.js"), project_root=str(tmp_path)))


def test_missing_old_version_is_terminal(tmp_path: Path) -> None:
    target = _write(tmp_path / "f.js", "const a = 1;\n")
    pipeline = _pipeline(_FakeVcs())
    with pytest.raises(FileUnreadableError):
        _run(
            lambda: analyze_file(
                pipeline=pipeline,
                file_path=str(target),
                project_root=str(tmp_path),
                old_path=str(tmp_path / "gone.js"),
            )
        )


def test_missing_project_root_is_terminal(tmp_path: Path) -> None:
    target = _write(tmp_path / "f.js", "const a = 1;\n")
    pipeline = _pipeline(_FakeVcs())
    with pytest.raises(FileUnreadableError):
        _run(lambda: analyze_file(pipeline=pipeline, file_path=str(target), project_root=str(tmp_path / "missing")))


def test_without_version_control_file_is_treated_as_new(tmp_path: Path) -> None:
    target = _write(tmp_path / "f.js", "const a = 1;\nconst b = 2;\n")
    pipeline = _pipeline(_FakeVcs())
    bundle = _run(lambda: analyze_file(pipeline=pipeline, file_path=str(target), project_root=str(tmp_path)))
    assert [(c.kind, c.lineNumber, c.lineCount) for c in bundle.changes] == [("added", 1, 2)]


def test_previous_version_comes_from_head(tmp_path: Path) -> None:
    target = _write(tmp_path / "f.js", "const a = 1;\nconst b = 2;\n")
    pipeline = _pipeline(_FakeVcs(heads={"f.js": "const a = 1;\n"}))
    bundle = _run(lambda: analyze_file(pipeline=pipeline, file_path=str(target), project_root=str(tmp_path)))
    assert bundle.added_line_count == 1
    assert bundle.removed_line_count == 0


def test_batch_skips_failing_file_and_keeps_order(tmp_path: Path) -> None:
    for name in ("a.js", "broken.js", "c.js"):
        _write(tmp_path / name, "const x = 1;\n")
    vcs = _FakeVcs(changed=["c.js", "broken.js", "a.js"], heads={"a.js": "", "c.js": ""})
    pipeline = _pipeline(vcs)

    report = _run(lambda: analyze_directory(pipeline=pipeline, directory=str(tmp_path)))

    assert [Path(b.path).name for b in report.bundles] == ["c.js", "a.js"]
    assert [Path(s.path).name for s in report.skipped] == ["broken.js"]
    assert "object store corrupted" in report.skipped[0].reason
    assert report.interrupted is False


def test_batch_on_empty_directory_raises_no_candidates(tmp_path: Path) -> None:
    pipeline = _pipeline(_FakeVcs())
    with pytest.raises(NoCandidatesError):
        _run(lambda: analyze_directory(pipeline=pipeline, directory=str(tmp_path)))


def test_batch_on_missing_directory_raises(tmp_path: Path) -> None:
    pipeline = _pipeline(_FakeVcs())
    with pytest.raises(FileUnreadableError):
        _run(lambda: analyze_directory(pipeline=pipeline, directory=str(tmp_path / "missing")))


def test_batch_respects_max_files(tmp_path: Path) -> None:
    for index in range(5):
        _write(tmp_path / f"m{index}.js", "const x = 1;\n")
    pipeline = _pipeline(_FakeVcs(), max_files=2)
    report = _run(lambda: analyze_directory(pipeline=pipeline, directory=str(tmp_path)))
    assert len(report.bundles) == 2
    assert report.skipped == []


class _CancellingEngine:
    """lint 到指定文件时取消外层 cancel scope，模拟用户中断。"""

    def __init__(self, trigger: str) -> None:
        self.trigger = trigger
        self.scope: anyio.CancelScope | None = None

    def lint(self, code: str, file_path: str) -> list[LintIssue]:
        if Path(file_path).name == self.trigger and self.scope is not None:
            anyio.from_thread.run_sync(self.scope.cancel)
        return []


def test_interrupted_batch_keeps_completed_bundles(tmp_path: Path) -> None:
    for name in ("a.js", "b.js", "c.js"):
        _write(tmp_path / name, "const x = 1;\n")
    engine = _CancellingEngine(trigger="b.js")
    pipeline = AnalysisPipeline(
        settings=ReviewSettings(),
        lint_engine=engine,
        graph_builder=ProjectGraphBuilder(),
        vcs=_FakeVcs(),
    )
    report = BatchReport(directory=str(tmp_path))

    async def run() -> None:
        with anyio.CancelScope() as scope:
            engine.scope = scope
            await analyze_directory(pipeline=pipeline, directory=str(tmp_path), report=report)

    anyio.run(run)
    assert report.interrupted is True
    assert [Path(b.path).name for b in report.bundles] == ["a.js"]


def test_lint_issues_flow_into_bundle(tmp_path: Path) -> None:
    target = _write(tmp_path / "f.js", "function f(a){\n  debugger;\n  return a == 1;\n}\n")
    pipeline = AnalysisPipeline(
        settings=ReviewSettings(),
        lint_engine=TreeSitterLintEngine(),
        graph_builder=ProjectGraphBuilder(),
        vcs=_FakeVcs(),
    )
    bundle = _run(lambda: analyze_file(pipeline=pipeline, file_path=str(target), project_root=str(tmp_path)))
    assert [i.ruleId for i in bundle.lintIssues] == ["no-debugger", "eqeqeq"]


def _git(cwd: Path, *args: str) -> None:
    subprocess.run(
        ["git", "-c", "user.name=Reviewer", "-c", "user.email=reviewer@example.com", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
    )


@pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
def test_latin1_file_tracked_in_git_still_produces_bundle(tmp_path: Path) -> None:
    target = tmp_path / "f.js"
    target.write_bytes(b"// caf\xe9\nconst a = 1;\n")
    _git(tmp_path, "init", "-q")
    _git(tmp_path, "add", ".")
    _git(tmp_path, "commit", "-q", "-m", "initial")
    target.write_bytes(b"// caf\xe9\nconst a = 1;\nconst b = 2;\n")

    pipeline = build_analysis_pipeline(settings=ReviewSettings(), vcs=GitBridge())
    bundle = _run(lambda: analyze_file(pipeline=pipeline, file_path=str(target), project_root=str(tmp_path)))
    assert bundle.added_line_count == 1
    assert bundle.removed_line_count == 0
