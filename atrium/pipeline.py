"""Composition of the build-and-render pipeline.

Key classes:
- ContentPipeline: Explicitly constructed collaborators plus the
  request-level operations used by the editing UI.

Key functions:
- create_pipeline: Build a ContentPipeline from an AtriumConfig.
- create_lifecycle: Build the CacheLifecycleManager for process start.
"""

from __future__ import annotations

import logging
from typing import Any

from .compiler import AssetBlueprint, AssetCompiler, default_blueprints
from .config import AtriumConfig
from .lifecycle import CacheLifecycleManager, RebuildStrategy
from .modules_index import ModuleDescriptor, ModuleIndexer
from .protocols import CacheStore, ContentRepository
from .renderer import PageMeta, RenderContext, TemplateRenderer
from .resolver import DependencyResolver
from .settings import SettingsProvider
from .stores import InMemoryCacheStore, RedisCacheStore

logger = logging.getLogger(__name__)


class ContentPipeline:
    """Request-level operations over injected collaborators.

    Attributes:
        config: Project configuration.
        cache: Cache store (module index, settings).
        repository: Content repository.
        indexer: Module indexer.
        resolver: Dependency resolver.
        renderer: Template renderer.
        settings: Settings provider.
    """

    def __init__(
        self,
        config: AtriumConfig,
        cache: CacheStore,
        repository: ContentRepository,
    ):
        self.config = config
        self.cache = cache
        self.repository = repository
        self.indexer = ModuleIndexer(config.views_dir, cache)
        self.resolver = DependencyResolver(repository, config.max_concurrency)
        self.renderer = TemplateRenderer(
            config.views_dir,
            template=config.template,
            default_language=config.default_language,
        )
        self.settings = SettingsProvider(cache, repository)

    async def modules_index(self) -> list[ModuleDescriptor]:
        return await self.indexer.get_index()

    async def prebuild(
        self,
        document: dict[str, Any],
        language: str | None = None,
        embed_mode: bool = True,
        minify: bool = True,
        timeout: float | None = None,
    ) -> dict[str, str]:
        """Resolve and render a page document for the editing UI.

        Args:
            document: Page document with content references.
            language: Requested language; the default language when omitted
                or not declared in the system settings.
            embed_mode: Prepare markup for iframe embedding.
            minify: Compact the output markup.
            timeout: Optional deadline applied to resolution and rendering
                separately.

        Returns:
            ``{"page": markup}``.

        Raises:
            NotFoundError, CycleError, TransientIOError, RenderError.
        """
        language = await self._pick_language(language)
        resolved = await self.resolver.resolve(document, timeout=timeout)
        meta = PageMeta.from_document(document, language, self.config.default_language)
        ctx = RenderContext(
            language=language,
            embed_mode=embed_mode,
            domain=self.config.domain,
            minify=minify,
        )
        markup = await self.renderer.render_async(ctx, resolved, meta, timeout=timeout)
        return {"page": markup}

    async def _pick_language(self, language: str | None) -> str:
        default = self.config.default_language
        if not language:
            return default
        declared = self.settings.language_codes(await self.settings.get_settings())
        if declared and language not in declared:
            logger.warning(
                "Language '%s' is not configured (%s); using '%s'",
                language,
                ", ".join(declared),
                default,
            )
            return default
        return language

    async def aclose(self) -> None:
        await self.cache.aclose()


def create_pipeline(
    config: AtriumConfig,
    repository: ContentRepository,
    cache: CacheStore | None = None,
) -> ContentPipeline:
    """Build a pipeline, choosing Redis when ``redis_url`` is configured."""
    if cache is None:
        cache = (
            RedisCacheStore(config.redis_url)
            if config.redis_url
            else InMemoryCacheStore()
        )
    return ContentPipeline(config, cache, repository)


def create_lifecycle(
    config: AtriumConfig,
    extra_blueprints: list[AssetBlueprint] | None = None,
    strategy: RebuildStrategy = RebuildStrategy.IN_PLACE,
) -> CacheLifecycleManager:
    compiler = AssetCompiler(
        config.cache_dir,
        config.styles_dir,
        development=config.development,
        project_root=config.project_root,
    )
    return CacheLifecycleManager(
        compiler,
        default_blueprints(config.lib_dir),
        extra_blueprints=extra_blueprints,
        strategy=strategy,
    )
