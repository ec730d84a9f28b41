"""
命令行入口（`code-connoisseur`）。

这里只做三件事：
- 加载配置（.env + 项目配置文件），组装流水线
- 调用 orchestrator 产出 AnalysisBundle；需要时交给 LLM 生成审查文本
- 把终止性错误（文件不存在 / 没有可 review 的文件）转换为清晰的提示 + 非零退出码

业务流程不写在这里（由 `pipeline/orchestrator.py` 负责）。
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Sequence

import anyio
import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown

from connoisseur.config import CONFIG_FILENAME
from connoisseur.config import LLMConfig
from connoisseur.config import ReviewSettings
from connoisseur.config import load_env_files
from connoisseur.config import load_llm_config_from_env
from connoisseur.config import load_settings
from connoisseur.config import save_settings
from connoisseur.errors import FileUnreadableError
from connoisseur.errors import NoCandidatesError
from connoisseur.llm.client import OpenAICompatLLMClient
from connoisseur.pipeline.models import AnalysisBundle
from connoisseur.pipeline.models import BatchReport
from connoisseur.pipeline.orchestrator import analyze_directory
from connoisseur.pipeline.orchestrator import analyze_file
from connoisseur.pipeline.orchestrator import build_analysis_pipeline
from connoisseur.review.reviewer import review_bundle
from connoisseur.review.reviewer import review_bundles
from connoisseur.review.synthesis import synthesize_batch_report
from connoisseur.review.synthesis import synthesize_bundle_section

logger = logging.getLogger(__name__)

app = typer.Typer(name="code-connoisseur", help="AI-powered code review agent", no_args_is_help=True)
console = Console()
err_console = Console(stderr=True)

EXTENSION_SHORTCUTS: dict[str, list[str]] = {
    "js": ["js", "jsx", "ts", "tsx"],
    "py": ["py"],
    "java": ["java"],
}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Review changed code with static analysis, dependency, test and edge-case hints."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    load_env_files(cwd=os.getcwd())


def _config_path() -> str:
    return os.path.join(os.getcwd(), CONFIG_FILENAME)


def _load_settings_or_exit() -> ReviewSettings:
    try:
        return load_settings(_config_path())
    except ValueError as exc:
        err_console.print(f"[red]Error loading configuration:[/red] {exc}")
        raise typer.Exit(1)


def _load_llm_config_or_exit() -> LLMConfig:
    try:
        return load_llm_config_from_env(os.environ)
    except ValueError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        err_console.print("Set LLM_BASE_URL, LLM_API_KEY and LLM_MODEL (e.g. in .env), or use --analysis-only.")
        raise typer.Exit(1)


def _build_llm_client(config: LLMConfig, http_client: httpx.AsyncClient) -> OpenAICompatLLMClient:
    return OpenAICompatLLMClient(
        api_key=config.api_key,
        base_url=str(config.base_url).rstrip("/"),
        http_client=http_client,
        model=config.model,
    )


def _resolve_extensions(settings: ReviewSettings, js_only: bool, py_only: bool, java_only: bool) -> ReviewSettings:
    for flag, key in ((js_only, "js"), (py_only, "py"), (java_only, "java")):
        if flag:
            return settings.model_copy(update={"extensions": EXTENSION_SHORTCUTS[key]})
    return settings


@app.command()
def review(
    file: str = typer.Argument(..., help="File to review"),
    old: str | None = typer.Option(None, "--old", "-o", help="Previous version of the file (if not in git)"),
    root: str = typer.Option(".", "--root", "-r", help="Project root directory for analysis"),
    stack: str | None = typer.Option(None, "--stack", "-s", help="Technology stack (MEAN/MERN, Java, Python)"),
    analysis_only: bool = typer.Option(False, "--analysis-only", help="Skip the LLM review; print the analysis only"),
    json_output: bool = typer.Option(False, "--json", help="Print the analysis bundle as JSON"),
) -> None:
    """Review code changes in a single file."""
    settings = _load_settings_or_exit()
    llm_config = None if analysis_only else _load_llm_config_or_exit()
    project_root = os.path.abspath(root)
    pipeline = build_analysis_pipeline(settings=settings, project_root=project_root)

    async def run_review() -> tuple[AnalysisBundle, str | None]:
        bundle = await analyze_file(pipeline=pipeline, file_path=file, project_root=project_root, old_path=old)
        if llm_config is None:
            return bundle, None
        async with httpx.AsyncClient(timeout=httpx.Timeout(120.0)) as http_client:
            client = _build_llm_client(llm_config, http_client)
            text = await review_bundle(client, bundle, stack=stack, project_root=project_root)
        return bundle, text

    try:
        bundle, narrative = anyio.run(run_review)
    except FileUnreadableError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)
    except Exception as exc:
        logger.debug("Review failed", exc_info=True)
        err_console.print(f"[red]Review failed:[/red] {exc}")
        raise typer.Exit(1)

    if json_output:
        console.print_json(bundle.model_dump_json())
        return
    console.print(Markdown(synthesize_bundle_section(bundle, review=narrative, project_root=project_root)))


@app.command("review-dir")
def review_dir(
    directory: str = typer.Argument(".", help="Directory to review"),
    root: str | None = typer.Option(None, "--root", "-r", help="Project root (defaults to the directory)"),
    stack: str | None = typer.Option(None, "--stack", "-s", help="Technology stack (MEAN/MERN, Java, Python)"),
    analysis_only: bool = typer.Option(False, "--analysis-only", help="Skip the LLM review; report the analysis only"),
    output: str | None = typer.Option(None, "--output", help="Write the markdown report to this file"),
    max_files: int | None = typer.Option(None, "--max-files", min=1, help="Maximum number of files to review"),
    js_only: bool = typer.Option(False, "--js-only", help="Only review JavaScript/TypeScript files"),
    py_only: bool = typer.Option(False, "--py-only", help="Only review Python files"),
    java_only: bool = typer.Option(False, "--java-only", help="Only review Java files"),
) -> None:
    """Review the changed files of a directory (git changes, or a recursive scan)."""
    settings = _resolve_extensions(_load_settings_or_exit(), js_only=js_only, py_only=py_only, java_only=java_only)
    if max_files is not None:
        settings = settings.model_copy(update={"max_files": max_files})
    llm_config = None if analysis_only else _load_llm_config_or_exit()
    project_root = os.path.abspath(root or directory)
    pipeline = build_analysis_pipeline(settings=settings, project_root=project_root, share_graph=True)

    # 在 anyio.run 之外持有 report：中断后已完成的结果仍然可以输出
    report = BatchReport(directory=os.path.abspath(directory))
    reviews: dict[str, str] = {}

    async def run_batch() -> None:
        await analyze_directory(pipeline=pipeline, directory=directory, project_root=project_root, report=report)
        if llm_config is None:
            return
        async with httpx.AsyncClient(timeout=httpx.Timeout(120.0)) as http_client:
            client = _build_llm_client(llm_config, http_client)
            reviews.update(await review_bundles(client, report.bundles, stack=stack, project_root=project_root))

    try:
        anyio.run(run_batch)
    except FileUnreadableError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)
    except NoCandidatesError as exc:
        err_console.print(f"[yellow]{exc}[/yellow]")
        err_console.print(f"Extensions: {', '.join(settings.extensions)}; excluded: {', '.join(settings.exclude_dirs)}")
        raise typer.Exit(1)
    except Exception as exc:
        logger.debug("Directory review failed", exc_info=True)
        err_console.print(f"[red]Review failed:[/red] {exc}")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        report.interrupted = True
        err_console.print("[yellow]Interrupted; reporting completed files only.[/yellow]")

    markdown = synthesize_batch_report(report, reviews=reviews, project_root=project_root)
    if output:
        with open(output, "w", encoding="utf-8") as handle:
            handle.write(markdown)
        console.print(f"[green]Report written to {output}[/green]")
    else:
        console.print(Markdown(markdown))
    if report.interrupted:
        raise typer.Exit(130)


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@app.command()
def configure(
    extensions: str | None = typer.Option(None, "--extensions", "-e", help="File extensions (comma-separated)"),
    exclude: str | None = typer.Option(None, "--exclude", "-x", help="Excluded directories (comma-separated)"),
    max_files: int | None = typer.Option(None, "--max-files", min=1, help="Maximum files per directory review"),
    provider: str | None = typer.Option(None, "--llm", "-l", help="LLM provider (openai or anthropic)"),
    exclusion_match: str | None = typer.Option(None, "--exclusion-match", help="substring or segment"),
    lint_engine: str | None = typer.Option(None, "--lint-engine", help="tree-sitter or eslint"),
) -> None:
    """Update and show the project configuration (.code-connoisseur.json)."""
    settings = _load_settings_or_exit()
    update: dict[str, object] = {}
    if extensions is not None:
        update["extensions"] = _split_list(extensions)
    if exclude is not None:
        update["exclude_dirs"] = _split_list(exclude)
    if max_files is not None:
        update["max_files"] = max_files
    if provider is not None:
        update["llm_provider"] = provider
    if exclusion_match is not None:
        update["exclusion_match"] = exclusion_match
    if lint_engine is not None:
        update["lint_engine"] = lint_engine

    if update:
        try:
            # model_validate 重新走一遍校验（model_copy 不校验）
            settings = ReviewSettings.model_validate({**settings.model_dump(), **update})
        except ValueError as exc:
            err_console.print(f"[red]Invalid configuration:[/red] {exc}")
            raise typer.Exit(1)
        save_settings(settings, _config_path())
        console.print("[green]Configuration updated![/green]")
    console.print_json(json.dumps(settings.model_dump(by_alias=True)))


def run(argv: Sequence[str] | None = None) -> None:
    app(args=list(argv) if argv is not None else None)


if __name__ == "__main__":
    run()
