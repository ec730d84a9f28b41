from __future__ import annotations

from connoisseur.pipeline.edge_cases import EDGE_CASE_RULES
from connoisseur.pipeline.edge_cases import EdgeCaseRule
from connoisseur.pipeline.edge_cases import suggest_edge_cases


def test_trivial_function_has_no_suggestions() -> None:
    assert suggest_edge_cases("function f(){return 1;}\n") == []


def test_array_operations_suggest_empty_and_large_arrays() -> None:
    code = "const ids = users.map(u => u.id); if (ids === null) return;"
    suggestions = suggest_edge_cases(code)
    assert suggestions[:2] == ["Test with an empty array", "Test with a very large array (performance)"]
    assert "Test with null and undefined values" not in suggestions


def test_missing_null_check_is_flagged_when_values_are_dereferenced() -> None:
    assert "Test with null and undefined values" in suggest_edge_cases("return user.name")
    assert "Test with null and undefined values" not in suggest_edge_cases("if user is None:\n    return user.name")


def test_async_without_try_suggests_error_handling_block() -> None:
    suggestions = suggest_edge_cases("async function load(api) { return await api.fetch(); }")
    assert "Test error handling in async operations" in suggestions
    assert suggestions[-1] == "Add try/catch blocks around async operations"


def test_async_with_try_catch_only_suggests_error_path_testing() -> None:
    code = "async function load(api) { try { return await api.fetch(); } catch (e) { return null; } }"
    suggestions = suggest_edge_cases(code)
    assert "Test error handling in async operations" in suggestions
    assert "Add try/catch blocks around async operations" not in suggestions


def test_python_try_except_counts_as_error_handling() -> None:
    code = "async def load(api):\n    try:\n        return await api.fetch()\n    except ValueError:\n        return None\n"
    assert "Add try/catch blocks around async operations" not in suggest_edge_cases(code)


def test_suggestions_follow_rule_table_order() -> None:
    code = "const parts = s.split(','); const total = a + b; items.filter(Boolean);"
    suggestions = suggest_edge_cases(code)
    assert suggestions == [
        "Test with an empty array",
        "Test with a very large array (performance)",
        "Test with an empty string",
        "Test with special characters",
        "Test with null and undefined values",
        "Test with zero and negative values",
        "Test with very large numbers",
    ]


def test_custom_rule_table() -> None:
    rules = (EdgeCaseRule(name="sql", applies=lambda code: "SELECT" in code, suggestions=("Test SQL injection",)),)
    assert suggest_edge_cases("SELECT * FROM t", rules=rules) == ["Test SQL injection"]
    assert len(EDGE_CASE_RULES) == 6
