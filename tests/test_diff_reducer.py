from __future__ import annotations

from connoisseur.pipeline.diff_reducer import NEW_FILE_PLACEHOLDER
from connoisseur.pipeline.diff_reducer import added_ranges
from connoisseur.pipeline.diff_reducer import reduce_diff


def test_identical_texts_yield_no_records() -> None:
    text = "const a = 1;\nconst b = 2;\n"
    assert reduce_diff(old_text=text, new_text=text) == []


def test_new_file_placeholder_yields_single_added_record() -> None:
    new_text = "line1\nline2\nline3\n"
    for old_text in ("", NEW_FILE_PLACEHOLDER):
        records = reduce_diff(old_text=old_text, new_text=new_text)
        assert len(records) == 1
        assert records[0].kind == "added"
        assert records[0].lineNumber == 1
        assert records[0].lineCount == 3


def test_replaced_line_is_removed_then_added() -> None:
    records = reduce_diff(old_text="function f(){}\n", new_text="function f(){return 1;}\n")
    assert [r.kind for r in records] == ["removed", "added"]
    assert records[0].text == "function f(){}"
    assert records[1].text == "function f(){return 1;}"


def test_line_numbers_follow_new_and_old_text() -> None:
    old_text = "\n".join(["a", "b", "c", "d"])
    new_text = "\n".join(["a", "x", "y", "c", "d", "e"])
    records = reduce_diff(old_text=old_text, new_text=new_text)
    kinds = [(r.kind, r.lineNumber, r.lineCount) for r in records]
    assert kinds == [
        ("unchanged", 1, 1),
        ("removed", 2, 1),
        ("added", 2, 2),
        ("unchanged", 4, 2),
        ("added", 6, 1),
    ]
    assert added_ranges(records) == [(2, 3), (6, 6)]


def test_deleted_lines_use_old_line_numbers() -> None:
    records = reduce_diff(old_text="a\nb\nc\n", new_text="a\n")
    assert [(r.kind, r.lineNumber, r.lineCount) for r in records] == [("unchanged", 1, 1), ("removed", 2, 2)]
