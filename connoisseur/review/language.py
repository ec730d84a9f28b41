"""
语言推断（非 AI）。

通过扩展名推断语言，供 lint 引擎、import 提取和 prompt 使用。
必须确定性；未知扩展名返回 "unknown"。
"""

from __future__ import annotations

import os

_EXTENSION_LANGUAGES: dict[str, str] = {
    "py": "python",
    "ts": "typescript",
    "tsx": "tsx",
    "mts": "typescript",
    "cts": "typescript",
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "go": "go",
    "java": "java",
    "rb": "ruby",
    "php": "php",
    "rs": "rust",
    "sql": "sql",
}


def normalize_extension(ext: str) -> str:
    """".TS" / "ts" / " .ts " 统一成 "ts"。"""
    return ext.strip().lstrip(".").lower()


def extension_of(path: str) -> str:
    return normalize_extension(os.path.splitext(path)[1])


def infer_language_from_path(path: str) -> str:
    """
    通过文件扩展名推断语言。

    注意 tsx 单独返回 "tsx"：tree-sitter 对 tsx 使用独立的 grammar。
    """
    return _EXTENSION_LANGUAGES.get(extension_of(path), "unknown")


def is_javascript_family(language: str) -> bool:
    return language in {"javascript", "typescript", "tsx"}
