"""Template rendering for resolved pages.

This module uses Jinja2 to turn a resolved page plus request metadata into
markup, then applies embedding-mode post-processing and optional
minification.

Key classes:
- RenderContext: Request-scoped language, embed flag, domain and minify flag.
- PageMeta: Title, description and URL for the active language.
- TemplateRenderer: Selects the language template and renders it.

Request state is never stored on the renderer; everything that varies per
request travels in the RenderContext argument, so one renderer instance can
serve concurrent requests.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jinja2 import (
    Environment,
    FileSystemLoader,
    Template,
    TemplateNotFound,
    TemplateSyntaxError,
    select_autoescape,
)

from .errors import RenderError
from .html_utils import apply_embed_mode, minify_html

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIXES = (".html.jinja", ".html")


@dataclass(frozen=True)
class RenderContext:
    """Per-request rendering options.

    Attributes:
        language: Active language code, e.g. ``"en"``.
        embed_mode: Prepare markup for cross-origin iframe embedding.
        domain: Configured site domain.
        minify: Compact the output markup.
    """

    language: str
    embed_mode: bool = False
    domain: str = "localhost"
    minify: bool = False


@dataclass(frozen=True)
class PageMeta:
    """Page-level metadata bound into templates."""

    title: str = ""
    description: str = ""
    url: str = ""

    @classmethod
    def from_document(
        cls, document: dict[str, Any], language: str, default_language: str = "en"
    ) -> PageMeta:
        """Pick the per-language title, description and URL of a page.

        ``meta`` may be keyed by language directly or hold a ``description``
        mapping keyed by language. Missing languages fall back to
        ``default_language``, then to an empty string.
        """
        meta = document.get("meta") or {}
        if isinstance(meta, dict) and "description" in meta:
            meta = meta["description"]
        return cls(
            title=_localized(document.get("title"), language, default_language),
            description=_localized(meta, language, default_language),
            url=_localized(document.get("url"), language, default_language),
        )


def _localized(value: Any, language: str, default_language: str) -> str:
    if isinstance(value, dict):
        chosen = value.get(language)
        if chosen is None:
            chosen = value.get(default_language)
        return "" if chosen is None else str(chosen)
    return "" if value is None else str(value)


class TemplateRenderer:
    """Renders resolved pages through Jinja2.

    Attributes:
        views_dir: Content tree; templates load from ``templates/`` then root.
        template: Base template name.
        default_language: Language whose template is used as a fallback.
        env: Jinja2 environment.
    """

    def __init__(
        self,
        views_dir: Path,
        template: str = "page",
        default_language: str = "en",
        env: Environment | None = None,
    ):
        self.views_dir = views_dir
        self.template = template
        self.default_language = default_language
        self.env = env or Environment(
            loader=FileSystemLoader([views_dir / "templates", views_dir]),
            autoescape=select_autoescape(["html", "xml", "html.jinja"]),
            enable_async=False,
        )

    def template_candidates(self, language: str) -> list[str]:
        """Return template names to try for a language, most specific first."""
        base = self.template
        candidates: list[str] = []
        for lang in dict.fromkeys([language, self.default_language]):
            for suffix in TEMPLATE_SUFFIXES:
                candidates.append(f"{base}.{lang}{suffix}")
                candidates.append(f"{lang}/{base}{suffix}")
        for suffix in TEMPLATE_SUFFIXES:
            candidates.append(f"{base}{suffix}")
        return candidates

    def _select_template(self, language: str) -> Template:
        candidates = self.template_candidates(language)
        for name in candidates:
            try:
                return self.env.get_template(name)
            except TemplateNotFound:
                continue
            except TemplateSyntaxError as exc:
                raise RenderError(
                    name,
                    f"Template syntax error on line {exc.lineno}: {exc.message}",
                    exc,
                ) from exc
        raise RenderError(
            self.template,
            f"No template found for language '{language}'. Tried: {', '.join(candidates)}",
        )

    def render(self, ctx: RenderContext, page: Any, meta: PageMeta) -> str:
        """Render a resolved page.

        Args:
            ctx: Request-scoped rendering options.
            page: Resolved page document.
            meta: Page metadata for the active language.

        Returns:
            Rendered markup, post-processed per ``ctx``.

        Raises:
            RenderError: If no template matches or the engine fails.
        """
        template = self._select_template(ctx.language)
        name = template.name or self.template
        try:
            markup = template.render(
                page=page,
                meta=meta,
                language=ctx.language,
                domain=ctx.domain,
                dynamic_content=True,
            )
        except TemplateSyntaxError as exc:
            raise RenderError(
                name,
                f"Template syntax error on line {exc.lineno}: {exc.message}",
                exc,
            ) from exc
        except Exception as exc:
            raise RenderError(name, _format_error_message(exc), exc) from exc

        if ctx.embed_mode:
            markup = apply_embed_mode(markup, ctx.domain)
        if ctx.minify:
            markup = minify_html(markup)
        logger.debug("Rendered %s (%s, embed=%s)", name, ctx.language, ctx.embed_mode)
        return markup

    async def render_async(
        self,
        ctx: RenderContext,
        page: Any,
        meta: PageMeta,
        timeout: float | None = None,
    ) -> str:
        """Render in a worker thread, optionally bounded by a deadline."""
        call = asyncio.to_thread(self.render, ctx, page, meta)
        if timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError as exc:
            raise RenderError(
                self.template, f"Rendering did not finish within {timeout}s", exc
            ) from exc


def _format_error_message(exc: Exception) -> str:
    """Format a templating exception into a readable message."""
    error_type = type(exc).__name__
    error_msg = str(exc)

    if error_type == "UndefinedError":
        return f"Undefined variable: {error_msg}"
    if error_type == "TypeError":
        return f"Type error: {error_msg}"
    if error_type == "AttributeError":
        return f"Attribute error: {error_msg}"

    return f"{error_type}: {error_msg}"
