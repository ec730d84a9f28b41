"""
Change-Set Resolver（目录/批量 review 模式）。

状态流转：
1. DiscoverViaVersionControl：git 报告的变更文件（按扩展名过滤，转为绝对路径）
2. RecursiveScanFallback：git 失败或没有匹配文件时，递归扫描目录
3. CapByRecency：超过上限时按修改时间倒序截断（稳定排序）；否则保持发现顺序
4. Selected：输出最终路径序列；空序列表示“没有可 review 的文件”，由调用方决定如何提示
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence

import anyio

from connoisseur.config import ReviewSettings
from connoisseur.errors import VcsUnavailableError
from connoisseur.files import has_allowed_extension
from connoisseur.files import scan_files
from connoisseur.vcs.git import VersionControl

logger = logging.getLogger(__name__)


def discover_via_version_control(directory: str, settings: ReviewSettings, vcs: VersionControl) -> list[str]:
    """
    向版本控制询问变更文件。

    任何失败都只记录日志并返回空列表（调用方会退回到递归扫描）。
    已删除的文件不再存在于磁盘上，直接丢弃。
    """
    try:
        relative_paths = vcs.changed_files(directory)
    except VcsUnavailableError as exc:
        logger.info(f"Version control unavailable for {directory}, falling back to scan: {exc}")
        return []

    selected: list[str] = []
    for relative in relative_paths:
        if not has_allowed_extension(relative, settings.extensions):
            continue
        path = os.path.abspath(os.path.join(directory, relative))
        if os.path.isfile(path) and path not in selected:
            selected.append(path)
    return selected


def cap_by_recency(paths: Sequence[str], max_files: int) -> list[str]:
    """
    数量不超过上限时原样返回（保持顺序）；
    否则按 mtime 倒序排序后截断。Python 排序是稳定的：mtime 相同时保持发现顺序。
    """
    if max_files <= 0:
        raise ValueError("max_files must be > 0")
    if len(paths) <= max_files:
        return list(paths)
    ranked = sorted(paths, key=_mtime, reverse=True)
    return ranked[:max_files]


def _mtime(path: str) -> float:
    try:
        return os.path.getmtime(path)
    except OSError:
        return 0.0


async def resolve_change_set(directory: str, settings: ReviewSettings, vcs: VersionControl) -> list[str]:
    """
    计算一次批量 review 要分析的文件（有序，长度 <= settings.max_files）。

    - 输入：目标目录、配置、版本控制桥接
    - 输出：绝对路径列表；可能为空
    """
    directory = os.path.abspath(directory)
    candidates = await anyio.to_thread.run_sync(discover_via_version_control, directory, settings, vcs)
    if candidates:
        logger.info(f"Found {len(candidates)} changed file(s) via version control in {directory}")
    else:
        candidates = await anyio.to_thread.run_sync(
            scan_files,
            directory,
            settings.extensions,
            settings.exclude_dirs,
            settings.exclusion_match,
        )
        logger.info(f"Recursive scan found {len(candidates)} candidate file(s) in {directory}")

    selected = cap_by_recency(candidates, settings.max_files)
    if len(selected) < len(candidates):
        logger.info(f"Limiting review to the {len(selected)} most recently modified of {len(candidates)} files")
    return selected
