"""
Dependency Graph Resolver。

- 在 projectRoot 下构建“源码文件 -> 源码文件”的有向 import 图（不含第三方包）
- 回答两个一跳查询：dependencies（本文件 import 了谁）、dependents（谁 import 了本文件）
- 默认每次调用都重建图；`CachingGraphBuilder` 可以叠加在 builder 之上做进程内缓存，
  缓存 key = projectRoot + 源码文件指纹，不改变对外行为
- 任何构建/查询失败都降级为空结果（记录日志，不抛错）
"""

from __future__ import annotations

import hashlib
import logging
import os
import threading
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Protocol

import anyio

from connoisseur.errors import GraphBuildFailedError
from connoisseur.pipeline.imports import extract_import_specifiers
from connoisseur.pipeline.models import DependencyResult
from connoisseur.review.language import extension_of
from connoisseur.review.language import infer_language_from_path
from connoisseur.review.language import is_javascript_family

logger = logging.getLogger(__name__)

GRAPH_EXTENSIONS: tuple[str, ...] = ("js", "jsx", "ts", "tsx", "mjs", "cjs", "py")
DEFAULT_GRAPH_EXCLUDES: tuple[str, ...] = ("node_modules", ".git", "dist", "build", "__pycache__", ".venv")


@dataclass(frozen=True)
class DependencyGraph:
    """构建完成后只读；可以在并发查询之间共享。"""

    root: str
    imports: Mapping[str, frozenset[str]] = field(default_factory=dict)
    importers: Mapping[str, frozenset[str]] = field(default_factory=dict)

    def depends(self, path: str) -> frozenset[str]:
        return self.imports.get(path, frozenset())

    def dependents(self, path: str) -> frozenset[str]:
        return self.importers.get(path, frozenset())


class GraphBuilder(Protocol):
    def build(self, project_root: str) -> DependencyGraph: ...


class ProjectGraphBuilder:
    """扫描项目源码、提取 import、解析成项目内文件之间的边。"""

    def __init__(
        self,
        extensions: Sequence[str] = GRAPH_EXTENSIONS,
        exclude_dirs: Iterable[str] = DEFAULT_GRAPH_EXCLUDES,
    ) -> None:
        self._extensions = {e.lstrip(".").lower() for e in extensions}
        self._exclude_dirs = set(exclude_dirs) | set(DEFAULT_GRAPH_EXCLUDES)

    def list_sources(self, project_root: str) -> list[str]:
        """项目内所有可参与建图的源码文件（绝对路径、排序后）。"""
        root = os.path.realpath(project_root)
        if not os.path.isdir(root):
            raise GraphBuildFailedError(f"project root is not a directory: {project_root}")
        sources: list[str] = []
        for current, dirs, filenames in os.walk(root):
            dirs[:] = sorted(d for d in dirs if d not in self._exclude_dirs)
            for name in sorted(filenames):
                if extension_of(name) in self._extensions:
                    sources.append(os.path.join(current, name))
        return sources

    def build(self, project_root: str) -> DependencyGraph:
        root = os.path.realpath(project_root)
        sources = self.list_sources(root)
        known = set(sources)
        imports: dict[str, frozenset[str]] = {}
        for source in sources:
            imports[source] = frozenset(self._edges_for(source=source, root=root, known=known))

        importers: dict[str, set[str]] = {}
        for source, targets in imports.items():
            for target in targets:
                importers.setdefault(target, set()).add(source)
        logger.debug(f"Built dependency graph for {root}: {len(imports)} modules")
        return DependencyGraph(
            root=root,
            imports=imports,
            importers={k: frozenset(v) for k, v in importers.items()},
        )

    def _edges_for(self, source: str, root: str, known: set[str]) -> list[str]:
        language = infer_language_from_path(source)
        try:
            with open(source, "r", encoding="utf-8", errors="ignore") as handle:
                code = handle.read()
            specifiers = extract_import_specifiers(code=code, language=language)
        except Exception as exc:
            # 单个文件读不了/没有 grammar：跳过这个节点的出边，图仍然可用
            logger.debug(f"Skipping imports of {source}: {exc}")
            return []

        edges: list[str] = []
        for specifier in specifiers:
            if language == "python":
                target = resolve_python_module(specifier=specifier, importer=source, root=root, known=known)
            elif is_javascript_family(language):
                target = resolve_javascript_module(specifier=specifier, importer=source, known=known)
            else:
                target = None
            if target is not None and target != source and target not in edges:
                edges.append(target)
        return edges


class CachingGraphBuilder:
    """
    GraphBuilder 的缓存装饰器。

    - key：projectRoot + 源码文件指纹（相对路径/大小/mtime 的 sha256）
    - 文件有任何增删改，指纹变化，自动重建；否则复用同一个只读图
    - build 加锁：并发调用时同一个 root 只构建一次
    """

    def __init__(self, inner: ProjectGraphBuilder) -> None:
        self._inner = inner
        self._cache: dict[str, tuple[str, DependencyGraph]] = {}
        self._lock = threading.Lock()

    def build(self, project_root: str) -> DependencyGraph:
        root = os.path.realpath(project_root)
        with self._lock:
            fingerprint = _fingerprint(root=root, sources=self._inner.list_sources(root))
            cached = self._cache.get(root)
            if cached is not None and cached[0] == fingerprint:
                return cached[1]
            graph = self._inner.build(root)
            self._cache[root] = (fingerprint, graph)
            return graph


def _fingerprint(root: str, sources: Sequence[str]) -> str:
    digest = hashlib.sha256()
    for source in sources:
        try:
            stat = os.stat(source)
        except OSError:
            continue
        digest.update(f"{os.path.relpath(source, root)}:{stat.st_size}:{stat.st_mtime_ns}\n".encode("utf-8"))
    return digest.hexdigest()


def resolve_javascript_module(specifier: str, importer: str, known: set[str]) -> str | None:
    """
    解析相对路径的 JS/TS 模块说明符。

    裸说明符（`react`、`lodash/fp`）属于 npm 包，不进入图，返回 None。
    """
    if not specifier.startswith("."):
        return None
    base = os.path.normpath(os.path.join(os.path.dirname(importer), specifier))
    candidates = [base]
    candidates.extend(f"{base}.{ext}" for ext in GRAPH_EXTENSIONS if ext != "py")
    candidates.extend(os.path.join(base, f"index.{ext}") for ext in GRAPH_EXTENSIONS if ext != "py")
    for candidate in candidates:
        if candidate in known:
            return candidate
    return None


def resolve_python_module(specifier: str, importer: str, root: str, known: set[str]) -> str | None:
    """
    解析 Python 模块说明符（前导点 = 相对导入层级）。

    绝对导入相对于 projectRoot 解析；解析不到的视为第三方/标准库，返回 None。
    """
    level = len(specifier) - len(specifier.lstrip("."))
    module = specifier[level:]
    if level == 0:
        base = root
    else:
        base = os.path.dirname(importer)
        for _ in range(level - 1):
            base = os.path.dirname(base)

    parts = [p for p in module.split(".") if p]
    module_path = os.path.join(base, *parts) if parts else base
    candidates = [os.path.join(module_path, "__init__.py")]
    if parts:
        candidates.insert(0, f"{module_path}.py")
    for candidate in candidates:
        if candidate in known:
            return candidate
    return None


async def resolve_dependencies(file_path: str, project_root: str, builder: GraphBuilder) -> DependencyResult:
    """
    查询单个文件的一跳依赖。

    - 输入：目标文件、项目根目录、GraphBuilder（默认每次重建）
    - 输出：DependencyResult（绝对路径集合）
    - 失败：任何异常都记录日志并返回空集合
    """
    logger.info(f"Analyzing dependencies for {file_path}")
    try:
        graph = await anyio.to_thread.run_sync(builder.build, project_root)
        target = os.path.realpath(file_path)
        return DependencyResult(dependencies=graph.depends(target), dependents=graph.dependents(target))
    except Exception as exc:
        logger.error(f"Dependency analysis error for {file_path}: {exc}")
        return DependencyResult()
