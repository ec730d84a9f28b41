from __future__ import annotations

from collections.abc import Sequence

import anyio

from connoisseur.llm.client import ChatMessage
from connoisseur.llm.client import _normalize_base_url
from connoisseur.pipeline.models import AnalysisBundle
from connoisseur.pipeline.models import BatchReport
from connoisseur.pipeline.models import ChangeRecord
from connoisseur.pipeline.models import CoverageEstimate
from connoisseur.pipeline.models import DependencyResult
from connoisseur.pipeline.models import LineRange
from connoisseur.pipeline.models import LintIssue
from connoisseur.pipeline.models import SkippedFile
from connoisseur.review.prompt import build_review_prompt
from connoisseur.review.prompt import build_system_prompt
from connoisseur.review.prompt import truncate_text
from connoisseur.review.reviewer import review_bundles
from connoisseur.review.synthesis import synthesize_batch_report
from connoisseur.review.synthesis import synthesize_bundle_section


def _bundle(path: str, edge_cases: tuple[str, ...] = ()) -> AnalysisBundle:
    return AnalysisBundle(
        path=path,
        language="javascript",
        changes=(
            ChangeRecord(kind="removed", lineNumber=1, lineCount=1, text="old()"),
            ChangeRecord(kind="added", lineNumber=1, lineCount=2, text="items.map(x => x)\nnew()"),
        ),
        lintIssues=(LintIssue(message="Unexpected 'debugger' statement.", severity="error", line=2, column=3, ruleId="no-debugger"),),
        dependencies=DependencyResult(dependencies=frozenset({"/proj/src/lib.js"}), dependents=frozenset()),
        coverage=CoverageEstimate(
            coverage=0.0,
            untested=(LineRange(start=1, end=2),),
            suggestion="No test files found for a. Consider creating tests.",
        ),
        edgeCases=edge_cases,
    )


class _FakeLLMClient:
    def __init__(self, fail_for: str) -> None:
        self.fail_for = fail_for
        self.calls: list[Sequence[ChatMessage]] = []

    async def complete_text(self, messages: Sequence[ChatMessage]) -> str:
        self.calls.append(messages)
        if self.fail_for in messages[1].content:
            raise RuntimeError("rate limited")
        return "Looks fine."


def test_normalize_base_url_adds_v1() -> None:
    assert _normalize_base_url("https://llm.example.com/") == "https://llm.example.com/v1"
    assert _normalize_base_url("https://llm.example.com/v1") == "https://llm.example.com/v1"


def test_truncate_text() -> None:
    assert truncate_text("abc", 10) == "abc"
    assert truncate_text("abcdef", 3).startswith("abc\n...TRUNCATED")


def test_system_prompt_includes_stack_hint() -> None:
    assert "MEAN/MERN" in build_system_prompt(stack="MERN")
    assert "Elixir" in build_system_prompt(stack="Elixir")
    assert "Code Connoisseur" in build_system_prompt()


def test_review_prompt_labels_coverage_as_estimate() -> None:
    prompt = build_review_prompt(_bundle("/proj/src/a.js", edge_cases=("Test with empty arrays/collections",)), project_root="/proj")
    assert "path: src/a.js" in prompt
    assert "+items.map(x => x)" in prompt
    assert "-old()" in prompt
    assert "not measured" in prompt
    assert "added lines to verify: 1-2" in prompt
    assert "imports: src/lib.js" in prompt
    assert "imported by: none" in prompt
    assert "(no-debugger)" in prompt
    assert "- Test with empty arrays/collections" in prompt


def test_bundle_section_summarises_analysis() -> None:
    section = synthesize_bundle_section(_bundle("/proj/src/a.js"), review="Ship it.", project_root="/proj")
    assert section.startswith("## `src/a.js`")
    assert "**+2 / -1**" in section
    assert "**1** error(s), **0** warning(s)" in section
    assert "### Issues" in section
    assert "### Edge cases to test" not in section
    assert section.endswith("### Review\nShip it.")


def test_batch_report_lists_bundles_in_order_and_skipped_files() -> None:
    report = BatchReport(
        directory="/proj",
        bundles=[_bundle("/proj/z.js"), _bundle("/proj/a.js")],
        skipped=[SkippedFile(path="/proj/broken.js", reason="boom")],
        interrupted=True,
    )
    markdown = synthesize_batch_report(report, reviews={"/proj/a.js": "Nice."})
    assert markdown.index("## `z.js`") < markdown.index("## `a.js`")
    assert "- Files reviewed: **2**" in markdown
    assert "- Files skipped: **1**" in markdown
    assert "**Interrupted**" in markdown
    assert "- `broken.js`: boom" in markdown
    assert markdown.count("### Review") == 1


def test_review_bundles_skips_failed_calls() -> None:
    client = _FakeLLMClient(fail_for="path: b.js")
    bundles = [_bundle("/proj/a.js"), _bundle("/proj/b.js"), _bundle("/proj/c.js")]

    async def run() -> dict[str, str]:
        return await review_bundles(client, bundles, stack="Python", project_root="/proj")

    reviews = anyio.run(run)
    assert list(reviews) == ["/proj/a.js", "/proj/c.js"]
    assert len(client.calls) == 3
    assert client.calls[0][0].role == "system"
    assert "Python" in client.calls[0][0].content
