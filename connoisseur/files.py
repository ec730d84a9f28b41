"""
文件读取与目录扫描。

- `read_text`：单文件读取；读不了统一抛 `FileUnreadableError`
- `scan_files`：递归扫描（按目录内名字排序，结果确定）
- `load_codebase`：扫描 + 读取，得到 FileRecord 列表
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from typing import Literal

from connoisseur.errors import FileUnreadableError
from connoisseur.pipeline.models import FileRecord
from connoisseur.review.language import extension_of
from connoisseur.review.language import normalize_extension

logger = logging.getLogger(__name__)

ExclusionMatch = Literal["substring", "segment"]


def read_text(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as handle:
            return handle.read()
    except FileNotFoundError as exc:
        raise FileUnreadableError(path, "file not found") from exc
    except IsADirectoryError as exc:
        raise FileUnreadableError(path, "is a directory") from exc
    except OSError as exc:
        raise FileUnreadableError(path, exc.strerror or str(exc)) from exc


def has_allowed_extension(path: str, extensions: Sequence[str]) -> bool:
    """扩展名（不区分大小写、去掉点）是否在白名单里。"""
    allowed = {normalize_extension(e) for e in extensions}
    return extension_of(path) in allowed


def is_excluded(path: str, exclude_dirs: Sequence[str], mode: ExclusionMatch = "substring", root: str | None = None) -> bool:
    """
    路径是否命中排除规则。

    - substring：完整路径包含任意 token 即排除（粗粒度：`test` 也会排除 `latest_release/`）
    - segment：只有某一级路径段与 token 完全相等才排除；传了 root 时只看 root 之下的部分
    """
    if mode == "substring":
        return any(token and token in path for token in exclude_dirs)
    relative = os.path.relpath(path, root) if root is not None else path
    segments = set(relative.replace("\\", "/").split("/"))
    return any(token in segments for token in exclude_dirs if token)


def scan_files(
    directory: str,
    extensions: Sequence[str],
    exclude_dirs: Sequence[str],
    exclusion_match: ExclusionMatch = "substring",
) -> list[str]:
    """
    递归扫描目录，返回匹配扩展名且未被排除的文件（绝对路径，发现顺序）。

    每一项（文件或目录）先检查排除规则；目录继续递归，不跟随符号链接目录。
    """
    root = os.path.abspath(directory)
    found: list[str] = []
    _walk(current=root, root=root, extensions=extensions, exclude_dirs=exclude_dirs, mode=exclusion_match, found=found)
    return found


def _walk(
    current: str,
    root: str,
    extensions: Sequence[str],
    exclude_dirs: Sequence[str],
    mode: ExclusionMatch,
    found: list[str],
) -> None:
    try:
        with os.scandir(current) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as exc:
        logger.warning(f"Skipping unreadable directory {current}: {exc}")
        return
    for entry in entries:
        if is_excluded(entry.path, exclude_dirs, mode=mode, root=root):
            continue
        if entry.is_dir(follow_symlinks=False):
            _walk(current=entry.path, root=root, extensions=extensions, exclude_dirs=exclude_dirs, mode=mode, found=found)
        elif entry.is_file() and has_allowed_extension(entry.path, extensions):
            found.append(entry.path)


def load_codebase(
    root_dir: str,
    extensions: Sequence[str],
    exclude_dirs: Sequence[str],
    exclusion_match: ExclusionMatch = "substring",
) -> list[FileRecord]:
    """扫描并读取整个代码库；读不了的文件记录日志后跳过。"""
    records: list[FileRecord] = []
    for path in scan_files(root_dir, extensions, exclude_dirs, exclusion_match):
        try:
            records.append(FileRecord(path=path, content=read_text(path)))
        except FileUnreadableError as exc:
            logger.warning(f"Skipping {path}: {exc.reason}")
    return records
