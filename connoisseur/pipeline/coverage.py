from __future__ import annotations

"""
Test Coverage Estimator（存在性启发式，不是真实覆盖率）。

做法：
- 按固定命名规则找“可能的测试文件”：同目录 + 项目根下的常见测试目录
- 找不到：coverage = 0，所有新增行区间都算 untested
- 找到了：coverage 取固定估计值 PRESUMED_COVERAGE（只表示“推测有一些覆盖”），
  新增行区间依然列为 untested（测试文件存在不代表这些行被执行过）
"""

import logging
import os
from collections.abc import Sequence

import anyio

from connoisseur.pipeline.diff_reducer import added_ranges
from connoisseur.pipeline.models import ChangeRecord
from connoisseur.pipeline.models import CoverageEstimate
from connoisseur.pipeline.models import LineRange

logger = logging.getLogger(__name__)

# 找到测试文件时的估计值，不来自任何测量
PRESUMED_COVERAGE = 0.6

DEFAULT_TEST_DIRS: tuple[str, ...] = ("__tests__", "tests", "test", "spec")
TEST_NAME_PREFIXES: tuple[str, ...] = ("{base}.test.", "{base}.spec.", "test-{base}.", "{base}-test.")


def candidate_prefixes(base: str) -> list[str]:
    """候选测试文件名（不含扩展名部分）：`{base}.test.*` 等。"""
    return [p.format(base=base) for p in TEST_NAME_PREFIXES]


def find_test_files(file_path: str, project_root: str, test_dirs: Sequence[str] = DEFAULT_TEST_DIRS) -> list[str]:
    """
    在两类位置查找候选测试文件，返回去重后的绝对路径（按搜索顺序）。

    - 文件所在目录
    - projectRoot 下的每个测试目录（只看该目录本身，不递归）
    """
    base = os.path.splitext(os.path.basename(file_path))[0]
    prefixes = candidate_prefixes(base)
    search_dirs = [os.path.dirname(os.path.abspath(file_path))]
    search_dirs.extend(os.path.join(os.path.abspath(project_root), d) for d in test_dirs)

    found: list[str] = []
    for directory in search_dirs:
        if not os.path.isdir(directory):
            continue
        for name in sorted(os.listdir(directory)):
            if not _matches_any(name=name, prefixes=prefixes):
                continue
            path = os.path.join(directory, name)
            if os.path.isfile(path) and path not in found:
                found.append(path)
    return found


def _matches_any(name: str, prefixes: list[str]) -> bool:
    # 前缀之后至少还要有一个扩展名字符
    return any(name.startswith(p) and len(name) > len(p) for p in prefixes)


def _untested_ranges(changes: Sequence[ChangeRecord]) -> tuple[LineRange, ...]:
    return tuple(LineRange(start=start, end=end) for start, end in added_ranges(list(changes)))


def build_estimate(file_path: str, changes: Sequence[ChangeRecord], test_files: Sequence[str]) -> CoverageEstimate:
    base = os.path.splitext(os.path.basename(file_path))[0]
    untested = _untested_ranges(changes)
    if not test_files:
        return CoverageEstimate(
            coverage=0.0,
            untested=untested,
            suggestion=f"No test files found for {base}. Consider creating tests.",
        )
    return CoverageEstimate(
        coverage=PRESUMED_COVERAGE,
        testFiles=tuple(test_files),
        untested=untested,
        suggestion=f"{len(test_files)} test file(s) found. Verify test coverage for the changes.",
    )


async def estimate_test_coverage(
    file_path: str,
    changes: Sequence[ChangeRecord],
    project_root: str,
    test_dirs: Sequence[str] = DEFAULT_TEST_DIRS,
) -> CoverageEstimate:
    """
    估计单个文件变更的测试覆盖情况。

    - 失败（文件系统错误）：coverage = 0、untested 为空、suggestion 说明原因；不抛错
    """
    logger.info(f"Estimating test coverage for {file_path}")
    try:
        test_files = await anyio.to_thread.run_sync(find_test_files, file_path, project_root, test_dirs)
    except OSError as exc:
        logger.warning(f"Test coverage analysis error for {file_path}: {exc}")
        return CoverageEstimate(coverage=0.0, suggestion=f"Error analyzing test coverage: {exc}")
    return build_estimate(file_path=file_path, changes=changes, test_files=test_files)
