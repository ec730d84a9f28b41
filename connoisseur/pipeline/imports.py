from __future__ import annotations

"""
import 语句提取（基于 tree-sitter）。

输出的是“模块说明符”字符串，由依赖图负责解析到磁盘文件：
- JS/TS：import/export ... from、require()、动态 import() 的字符串参数，原样返回
- Python：相对导入用前导点表示（`from ..a import b` -> "..a"、"..a.b"）
"""

from tree_sitter import Node
from tree_sitter_language_pack import get_parser

from connoisseur.review.language import is_javascript_family


def extract_import_specifiers(code: str, language: str) -> list[str]:
    """
    提取一个文件里的所有 import 说明符（按出现顺序去重）。

    不支持的语言返回空列表；解析器不可用时抛错（上游决定如何降级）。
    """
    if language == "python":
        collect = _python_specifiers
    elif is_javascript_family(language):
        collect = _javascript_specifiers
    else:
        return []

    tree = get_parser(language).parse(code.encode("utf-8"))
    found: list[str] = []
    stack: list[Node] = [tree.root_node]
    while stack:
        node = stack.pop()
        for specifier in collect(node):
            if specifier and specifier not in found:
                found.append(specifier)
        stack.extend(reversed(node.children))
    return found


def _javascript_specifiers(node: Node) -> list[str]:
    if node.type in ("import_statement", "export_statement"):
        source = node.child_by_field_name("source")
        return [_string_value(source)] if source is not None else []
    if node.type == "call_expression":
        function = node.child_by_field_name("function")
        arguments = node.child_by_field_name("arguments")
        if function is None or arguments is None:
            return []
        is_require = function.type == "identifier" and function.text == b"require"
        if not is_require and function.type != "import":
            return []
        strings = [c for c in arguments.named_children if c.type == "string"]
        return [_string_value(strings[0])] if strings else []
    return []


def _python_specifiers(node: Node) -> list[str]:
    if node.type == "import_statement":
        return [_dotted(name) for name in node.children_by_field_name("name")]
    if node.type != "import_from_statement":
        return []
    module_node = node.child_by_field_name("module_name")
    if module_node is None:
        return []
    module = _relative_module(module_node) if module_node.type == "relative_import" else _dotted(module_node)
    specifiers = [module]
    # `from pkg import sub` 中 sub 可能是子模块，也一并尝试解析
    separator = "" if module.endswith(".") else "."
    for name in node.children_by_field_name("name"):
        specifiers.append(f"{module}{separator}{_dotted(name)}")
    return specifiers


def _relative_module(node: Node) -> str:
    prefix = ""
    dotted = ""
    for child in node.children:
        if child.type == "import_prefix":
            prefix = _text(child)
        elif child.type == "dotted_name":
            dotted = _text(child)
    return f"{prefix}{dotted}"


def _dotted(node: Node) -> str:
    # aliased_import: `a.b as c` -> a.b
    if node.type == "aliased_import":
        name = node.child_by_field_name("name")
        return _text(name) if name is not None else ""
    return _text(node)


def _string_value(node: Node) -> str:
    return _text(node).strip("'\"`")


def _text(node: Node) -> str:
    return node.text.decode("utf-8") if node.text is not None else ""
