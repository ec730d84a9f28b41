from __future__ import annotations

"""
lint 引擎实现（被注入到 Static Analysis Adapter）。

- TreeSitterLintEngine：默认引擎。基于 tree-sitter 的最小规则集，按文件类型选择规则
- EslintCommandEngine：调用外部 eslint CLI（JSON 输出），适合已经配置好 eslint 的 JS/TS 项目

两者都只负责“产出问题或抛错”，失败降级由 adapter 处理。
"""

import json
import logging
import subprocess
from collections.abc import Callable, Iterator

from tree_sitter import Node
from tree_sitter_language_pack import get_parser

from connoisseur.errors import AnalyzerUnavailableError
from connoisseur.pipeline.models import LintIssue
from connoisseur.review.language import infer_language_from_path
from connoisseur.review.language import is_javascript_family

logger = logging.getLogger(__name__)

TREE_SITTER_LANGUAGES = {"python", "javascript", "typescript", "tsx"}

NodeRule = Callable[[Node], LintIssue | None]


class TreeSitterLintEngine:
    """用 tree-sitter 做语法检查 + 少量高信号规则。"""

    def lint(self, code: str, file_path: str) -> list[LintIssue]:
        language = infer_language_from_path(file_path)
        if language not in TREE_SITTER_LANGUAGES:
            return []
        try:
            parser = get_parser(language)
        except Exception as exc:
            raise AnalyzerUnavailableError(f"no parser for {language}: {exc}") from exc

        tree = parser.parse(code.encode("utf-8"))
        rules = _rules_for_language(language)
        issues: list[LintIssue] = []
        for node in _walk(tree.root_node):
            if node.type == "ERROR":
                issues.append(_issue(node, "Parsing error: unexpected token", "error", "syntax-error"))
                continue
            if node.is_missing:
                issues.append(_issue(node, f"Parsing error: missing '{node.type}'", "error", "missing-token"))
                continue
            for rule in rules:
                issue = rule(node)
                if issue is not None:
                    issues.append(issue)
        return issues


class EslintCommandEngine:
    """
    通过 `eslint --stdin` 调用真实的 ESLint。

    - 退出码 0/1 都是正常结果（1 表示有 lint 问题）
    - 其他退出码、输出不是 JSON、或找不到命令：抛 AnalyzerUnavailableError
    """

    def __init__(self, eslint_bin: str = "eslint", cwd: str | None = None) -> None:
        self._eslint_bin = eslint_bin
        self._cwd = cwd

    def lint(self, code: str, file_path: str) -> list[LintIssue]:
        cmd = [self._eslint_bin, "--format", "json", "--stdin", "--stdin-filename", file_path]
        try:
            result = subprocess.run(cmd, cwd=self._cwd, input=code, capture_output=True, text=True)
        except OSError as exc:
            raise AnalyzerUnavailableError(f"eslint not runnable: {exc}") from exc
        if result.returncode not in (0, 1):
            logger.debug(f"eslint failed: {' '.join(cmd)}\nstderr={result.stderr}")
            raise AnalyzerUnavailableError(result.stderr.strip() or f"eslint exited with {result.returncode}")
        return parse_eslint_json(result.stdout)


def parse_eslint_json(output: str) -> list[LintIssue]:
    """ESLint JSON formatter 输出 -> LintIssue（severity: 1=warning, 2=error）。"""
    try:
        results = json.loads(output)
    except json.JSONDecodeError as exc:
        raise AnalyzerUnavailableError(f"eslint output is not JSON: {output[:200]}") from exc
    if not results:
        return []
    issues: list[LintIssue] = []
    for message in results[0].get("messages", []):
        issues.append(
            LintIssue(
                message=message.get("message", ""),
                severity="error" if message.get("severity") == 2 else "warning",
                line=max(message.get("line") or 1, 1),
                column=max(message.get("column") or 1, 1),
                ruleId=message.get("ruleId"),
            )
        )
    return issues


def _walk(root: Node) -> Iterator[Node]:
    """先序遍历；ERROR 节点的子树不再展开（避免同一处语法错误重复报告）。"""
    stack: list[Node] = [root]
    while stack:
        node = stack.pop()
        yield node
        if node.type == "ERROR":
            continue
        stack.extend(reversed(node.children))


def _issue(node: Node, message: str, severity: str, rule_id: str) -> LintIssue:
    row, column = node.start_point
    return LintIssue(message=message, severity=severity, line=row + 1, column=column + 1, ruleId=rule_id)


def _rules_for_language(language: str) -> list[NodeRule]:
    if is_javascript_family(language):
        return [_no_debugger, _eqeqeq, _no_empty_catch]
    if language == "python":
        return [_no_bare_except, _no_breakpoint]
    return []


def _no_debugger(node: Node) -> LintIssue | None:
    if node.type != "debugger_statement":
        return None
    return _issue(node, "Unexpected 'debugger' statement.", "error", "no-debugger")


def _eqeqeq(node: Node) -> LintIssue | None:
    if node.type != "binary_expression":
        return None
    operator = node.child_by_field_name("operator")
    if operator is None or operator.type not in ("==", "!="):
        return None
    expected = "===" if operator.type == "==" else "!=="
    return _issue(operator, f"Expected '{expected}' and instead saw '{operator.type}'.", "warning", "eqeqeq")


def _no_empty_catch(node: Node) -> LintIssue | None:
    if node.type != "catch_clause":
        return None
    body = node.child_by_field_name("body")
    # 注释也是 named child：带注释的空 catch 视为有意为之
    if body is None or body.named_child_count > 0:
        return None
    return _issue(body, "Empty block statement.", "warning", "no-empty-catch")


def _no_bare_except(node: Node) -> LintIssue | None:
    if node.type != "except_clause":
        return None
    if any(child.type not in ("block", "comment") for child in node.named_children):
        return None
    return _issue(node, "Do not use bare 'except'.", "warning", "no-bare-except")


def _no_breakpoint(node: Node) -> LintIssue | None:
    if node.type != "call":
        return None
    function = node.child_by_field_name("function")
    if function is None or function.type != "identifier" or function.text != b"breakpoint":
        return None
    return _issue(node, "Unexpected 'breakpoint()' call.", "warning", "no-breakpoint")
