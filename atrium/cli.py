"""Command-line interface for Atrium.

Commands:
- modules: Print the module index, optionally clearing the cached copy first.
- render: Resolve and render a page document.
- build-assets: Wipe and rebuild the build cache.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import click
import yaml

from . import __version__
from .config import AtriumConfig, load_config
from .errors import AtriumError
from .lifecycle import RebuildStrategy
from .log import configure_logging
from .pipeline import create_lifecycle, create_pipeline
from .stores import InMemoryContentRepository


@click.group()
@click.version_option(version=__version__, prog_name="atrium")
@click.option(
    "--project",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project root containing atrium.yaml (defaults to the current directory)",
)
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, project: Path | None, verbose: bool):
    """Atrium content build-and-render pipeline."""
    configure_logging(verbose=verbose)
    ctx.obj = load_config((project or Path.cwd()).resolve())


@cli.command()
@click.option("--refresh", is_flag=True, help="Clear the cached index and rescan")
@click.pass_obj
def modules(config: AtriumConfig, refresh: bool):
    """Print the module index as JSON."""

    async def run():
        pipeline = create_pipeline(config, InMemoryContentRepository())
        try:
            if refresh:
                await pipeline.indexer.clear_index()
            return await pipeline.modules_index()
        finally:
            await pipeline.aclose()

    index = _run_or_fail(run())
    click.echo(json.dumps([m.to_dict() for m in index], indent=2))


@cli.command()
@click.argument("document", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--content",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=False,
    help="YAML/JSON file mapping content type -> id -> entity",
)
@click.option("--language", default=None, help="Language code to render")
@click.option("--no-embed", is_flag=True, help="Leave the base tag untouched")
@click.option("--no-minify", is_flag=True, help="Keep whitespace in the output")
@click.pass_obj
def render(
    config: AtriumConfig,
    document: Path,
    content: Path | None,
    language: str | None,
    no_embed: bool,
    no_minify: bool,
):
    """Resolve content references in DOCUMENT and render it."""
    with open(document, encoding="utf-8") as f:
        page = yaml.safe_load(f) or {}
    if not isinstance(page, dict):
        raise click.ClickException(f"{document}: expected a page document mapping")
    repository = (
        InMemoryContentRepository.from_file(content)
        if content
        else InMemoryContentRepository()
    )

    async def run():
        pipeline = create_pipeline(config, repository)
        try:
            return await pipeline.prebuild(
                page,
                language=language,
                embed_mode=not no_embed,
                minify=not no_minify,
            )
        finally:
            await pipeline.aclose()

    result = _run_or_fail(run())
    click.echo(result["page"])


@cli.command("build-assets")
@click.option("--staged", is_flag=True, help="Swap the cache in only if every blueprint succeeds")
@click.pass_obj
def build_assets(config: AtriumConfig, staged: bool):
    """Wipe and rebuild the build cache, waiting for completion."""
    strategy = RebuildStrategy.STAGED if staged else RebuildStrategy.IN_PLACE
    lifecycle = create_lifecycle(config, strategy=strategy)

    async def run():
        lifecycle.rebuild_cache()
        return await lifecycle.wait_ready()

    report = asyncio.run(run())
    for outcome in report.outcomes:
        color = {"compiled": "green", "skipped": "yellow", "failed": "red"}[outcome.status.value]
        line = f"  {outcome.blueprint.file_name}: {outcome.status.value}"
        if outcome.error is not None:
            line += f" ({outcome.error.message})"
        click.echo(click.style(line, fg=color))
    if not report.ok:
        click.echo(click.style("Asset build failed", fg="red", bold=True), err=True)
        raise SystemExit(1)
    click.echo(f"Build cache ready at {config.cache_dir}")


def _run_or_fail(coro):
    try:
        return asyncio.run(coro)
    except AtriumError as exc:
        click.echo(click.style("Failed:", fg="red", bold=True), err=True)
        click.echo(click.style(f"  {type(exc).__name__}: {exc}", fg="yellow"), err=True)
        raise SystemExit(1) from None


def main():
    """Entry point for the CLI application."""
    cli()
