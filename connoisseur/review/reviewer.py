"""
文件级 Review（LLM 叙述性审查）。

- 单文件：一个 bundle -> 一次 LLM 调用 -> 审查文本；出错直接抛
- 批量：严格按 bundle 顺序逐个调用；单个失败记录日志并跳过（不中断批次）
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from connoisseur.llm.client import ChatMessage
from connoisseur.llm.client import OpenAICompatLLMClient
from connoisseur.pipeline.models import AnalysisBundle
from connoisseur.review.prompt import build_review_prompt
from connoisseur.review.prompt import build_system_prompt

logger = logging.getLogger(__name__)


async def review_bundle(
    llm_client: OpenAICompatLLMClient,
    bundle: AnalysisBundle,
    stack: str | None = None,
    project_root: str | None = None,
) -> str:
    messages = [
        ChatMessage(role="system", content=build_system_prompt(stack=stack)),
        ChatMessage(role="user", content=build_review_prompt(bundle=bundle, project_root=project_root)),
    ]
    return await llm_client.complete_text(messages=messages)


async def review_bundles(
    llm_client: OpenAICompatLLMClient,
    bundles: Sequence[AnalysisBundle],
    stack: str | None = None,
    project_root: str | None = None,
) -> dict[str, str]:
    """返回 path -> 审查文本；失败的文件不在结果中。"""
    reviews: dict[str, str] = {}
    for bundle in bundles:
        try:
            reviews[bundle.path] = await review_bundle(
                llm_client=llm_client,
                bundle=bundle,
                stack=stack,
                project_root=project_root,
            )
        except Exception as exc:
            logger.warning(f"LLM review failed for {bundle.path}: {exc}")
    return reviews
