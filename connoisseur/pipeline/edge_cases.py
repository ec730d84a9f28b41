from __future__ import annotations

"""
Edge-Case Heuristic Advisor。

特点：
- 确定性、纯函数、永不失败
- 只做字符串包含/正则匹配（不是语法树）：注释、字符串里的内容也会命中，这是已知限制
- 规则是数据（`EDGE_CASE_RULES` 表），不是控制流；以后换成语法树匹配器时接口不变

输出顺序 = 规则表顺序，不做优先级排序。
"""

import re
from collections.abc import Callable
from dataclasses import dataclass

COLLECTION_TOKENS = (".map(", ".filter(", ".forEach(", ".reduce(", ".some(", ".every(", "map(", "filter(", "sorted(")
STRING_TOKENS = (".substring(", ".substr(", ".slice(", ".indexOf(", ".split(", ".find(", ".startswith(", ".endswith(")
NULL_CHECK_TOKENS = ("=== null", "!== null", "=== undefined", "!== undefined", "== null", "!= null", "is None", "is not None")
ARITHMETIC_TOKENS = ("+", "-", "*", "/")
ASYNC_TOKENS = ("async", "await", ".then(", ".catch(", "Promise", "asyncio")

# 成员访问（`a.b`、`f().x`）或下标（`a[0]`）：只有会“解引用”的代码才需要关心空值
_DEREFERENCE = re.compile(r"[\w$)\]]\.[A-Za-z_$]|[\w$)\]]\[")


@dataclass(frozen=True)
class EdgeCaseRule:
    name: str
    applies: Callable[[str], bool]
    suggestions: tuple[str, ...]


def _contains_any(code: str, tokens: tuple[str, ...]) -> bool:
    return any(token in code for token in tokens)


def has_collection_ops(code: str) -> bool:
    return _contains_any(code, COLLECTION_TOKENS)


def has_string_ops(code: str) -> bool:
    return _contains_any(code, STRING_TOKENS)


def lacks_null_checks(code: str) -> bool:
    return _DEREFERENCE.search(code) is not None and not _contains_any(code, NULL_CHECK_TOKENS)


def has_arithmetic(code: str) -> bool:
    return _contains_any(code, ARITHMETIC_TOKENS)


def has_async_ops(code: str) -> bool:
    return _contains_any(code, ASYNC_TOKENS)


def has_error_handling(code: str) -> bool:
    """try 加上 catch（JS）或 except（Python）才算有结构化错误处理。"""
    return "try" in code and ("catch" in code or "except" in code)


EDGE_CASE_RULES: tuple[EdgeCaseRule, ...] = (
    EdgeCaseRule(
        name="collections",
        applies=has_collection_ops,
        suggestions=("Test with an empty array", "Test with a very large array (performance)"),
    ),
    EdgeCaseRule(
        name="strings",
        applies=has_string_ops,
        suggestions=("Test with an empty string", "Test with special characters"),
    ),
    EdgeCaseRule(
        name="null-values",
        applies=lacks_null_checks,
        suggestions=("Test with null and undefined values",),
    ),
    EdgeCaseRule(
        name="numbers",
        applies=has_arithmetic,
        suggestions=("Test with zero and negative values", "Test with very large numbers"),
    ),
    EdgeCaseRule(
        name="async-errors",
        applies=has_async_ops,
        suggestions=("Test error handling in async operations",),
    ),
    EdgeCaseRule(
        name="async-missing-try",
        applies=lambda code: has_async_ops(code) and not has_error_handling(code),
        suggestions=("Add try/catch blocks around async operations",),
    ),
)


def suggest_edge_cases(code: str, rules: tuple[EdgeCaseRule, ...] = EDGE_CASE_RULES) -> list[str]:
    """按规则表顺序收集测试建议。"""
    suggestions: list[str] = []
    for rule in rules:
        if rule.applies(code):
            suggestions.extend(rule.suggestions)
    return suggestions
