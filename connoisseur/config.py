"""
配置加载。

设计目标：
- **显式传参**：ReviewSettings 作为参数传给 Change-Set Resolver / Coverage Estimator / orchestrator，
  不读任何全局可变状态
- **类型安全**：使用 Pydantic 校验（扩展名归一化、max_files >= 1、URL 合法性）
- **可测试**：加载函数接收 `environ` / 文件路径作为显式输入
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, HttpUrl, ValidationError, field_validator

from connoisseur.review.language import normalize_extension

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".code-connoisseur.json"
GLOBAL_CONFIG_DIR = os.path.join(os.path.expanduser("~"), ".code-connoisseur-config")


class ReviewSettings(BaseModel):
    """review 流水线的配置（项目级，可被 `.code-connoisseur.json` 覆盖）。"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    llm_provider: Literal["anthropic", "openai"] = Field(default="anthropic", alias="llmProvider")
    extensions: list[str] = Field(default_factory=lambda: ["js", "ts", "jsx", "tsx"])
    exclude_dirs: list[str] = Field(
        default_factory=lambda: ["node_modules", "dist", "build", ".git"],
        alias="excludeDirs",
    )
    # substring：路径里包含即排除（原有行为）；segment：只匹配完整的路径段
    exclusion_match: Literal["substring", "segment"] = Field(default="substring", alias="exclusionMatch")
    max_files: int = Field(default=10, ge=1, alias="maxFiles")
    test_dirs: list[str] = Field(default_factory=lambda: ["__tests__", "tests", "test", "spec"], alias="testDirs")
    lint_engine: Literal["tree-sitter", "eslint"] = Field(default="tree-sitter", alias="lintEngine")

    @field_validator("extensions")
    @classmethod
    def _normalize_extensions(cls, value: list[str]) -> list[str]:
        normalized = [normalize_extension(e) for e in value]
        return [e for e in normalized if e]

    @field_validator("exclude_dirs")
    @classmethod
    def _strip_excludes(cls, value: list[str]) -> list[str]:
        return [d.strip() for d in value if d.strip()]


class LLMConfig(BaseModel):
    """LLM 调用所需配置（全部必填）。"""

    base_url: HttpUrl
    api_key: str
    model: str


def load_settings(config_path: str) -> ReviewSettings:
    """
    读取项目配置文件，覆盖默认值。

    - 文件不存在：返回默认配置
    - 文件不是合法 JSON / 字段不合法：抛 `ValueError`
    """
    if not os.path.exists(config_path):
        return ReviewSettings()
    try:
        with open(config_path, "r", encoding="utf-8") as handle:
            raw = json.load(handle)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid config file {config_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"Invalid config file {config_path}: expected a JSON object")
    try:
        return ReviewSettings.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid config file {config_path}: {exc}") from exc


def save_settings(settings: ReviewSettings, config_path: str) -> None:
    with open(config_path, "w", encoding="utf-8") as handle:
        json.dump(settings.model_dump(by_alias=True), handle, indent=2)
        handle.write("\n")


def load_llm_config_from_env(environ: Mapping[str, str]) -> LLMConfig:
    """
    从环境变量加载并校验 LLM 配置。

    - **失败**：缺失/为空则抛 `ValueError`（只在需要生成叙述性 review 时调用）
    """
    required_keys: tuple[str, ...] = ("LLM_BASE_URL", "LLM_API_KEY", "LLM_MODEL")
    missing: list[str] = [key for key in required_keys if key not in environ or not environ[key]]
    if missing:
        raise ValueError(f"Missing required env vars: {', '.join(missing)}")

    # 交给 Pydantic 做类型校验（例如 URL 合法性）
    return LLMConfig(
        base_url=environ["LLM_BASE_URL"],
        api_key=environ["LLM_API_KEY"],
        model=environ["LLM_MODEL"],
    )


def load_env_files(cwd: str, global_dir: str = GLOBAL_CONFIG_DIR) -> str | None:
    """按顺序查找 .env（项目目录优先，其次全局配置目录），加载第一个存在的；不覆盖已有环境变量。"""
    for env_path in (os.path.join(cwd, ".env"), os.path.join(global_dir, ".env")):
        if os.path.isfile(env_path):
            load_dotenv(env_path, override=False)
            logger.debug(f"Loaded environment from: {env_path}")
            return env_path
    return None
