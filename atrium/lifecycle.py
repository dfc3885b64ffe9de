"""Build cache lifecycle for Atrium.

At process start the build cache is wiped and rebuilt without blocking the
host from serving requests.

Key classes:
- RebuildStrategy: How a rebuild replaces the live cache.
- CacheLifecycleManager: Starts, awaits and cancels rebuilds.

With ``IN_PLACE`` (the default) the live cache is deleted first, so asset
requests arriving before compilation finishes may see missing bundles. With
``STAGED`` the new cache is compiled beside the live one and swapped in only
when every blueprint succeeded; until then the previous assets keep being
served. Staged blueprints must use destinations relative to the cache root.
Two processes rebuilding the same cache directory at once race on
deletion and recreation; that outcome is undefined.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from enum import Enum
from pathlib import Path

from .compiler import AssetBlueprint, AssetCompiler, CompileReport

logger = logging.getLogger(__name__)


class RebuildStrategy(str, Enum):
    IN_PLACE = "in_place"
    STAGED = "staged"


def remove_tree(path: Path) -> None:
    """Delete a directory tree, logging rather than raising on failure."""
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
    except OSError as exc:
        logger.error("Could not remove %s: %s", path, exc)


class CacheLifecycleManager:
    """Owns the build cache directory during rebuilds.

    Attributes:
        compiler: Asset compiler writing into the live cache root.
        blueprints: Built-in blueprints plus any extras, compiled on rebuild.
        strategy: How a rebuild replaces the live cache. ``STAGED`` rejects
            blueprints with absolute destinations, which would bypass staging.
        last_report: Report of the most recent finished rebuild.
    """

    def __init__(
        self,
        compiler: AssetCompiler,
        blueprints: list[AssetBlueprint],
        extra_blueprints: list[AssetBlueprint] | None = None,
        strategy: RebuildStrategy = RebuildStrategy.IN_PLACE,
    ):
        self.compiler = compiler
        self.blueprints = [*blueprints, *(extra_blueprints or [])]
        self.strategy = strategy
        if strategy is RebuildStrategy.STAGED:
            outside = [b.file_name for b in self.blueprints if b.destination_dir.is_absolute()]
            if outside:
                raise ValueError(
                    "Staged rebuilds need destinations inside the cache root: "
                    + ", ".join(outside)
                )
        self.last_report: CompileReport | None = None
        self._task: asyncio.Task | None = None

    @property
    def cache_root(self) -> Path:
        return self.compiler.cache_root

    @property
    def staging_root(self) -> Path:
        return self.cache_root.with_name(self.cache_root.name + ".staging")

    def rebuild_cache(self) -> asyncio.Task:
        """Start a rebuild and return immediately.

        Must be called from a running event loop. A rebuild already in
        progress in this manager is reused rather than started twice.

        Returns:
            The task running the rebuild; awaiting it yields the report.
        """
        if self._task is not None and not self._task.done():
            logger.info("Build cache rebuild already running")
            return self._task
        self._task = asyncio.get_running_loop().create_task(self._rebuild())
        self._task.add_done_callback(self._log_unexpected_failure)
        return self._task

    async def wait_ready(self) -> CompileReport | None:
        """Wait for the running rebuild, if any, and return its report.

        After a cancelled rebuild the report of the last finished one is
        returned.
        """
        if self._task is None or self._task.cancelled():
            return self.last_report
        return await self._task

    async def shutdown(self) -> None:
        """Cancel a running rebuild."""
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            logger.info("Build cache rebuild cancelled")

    async def _rebuild(self) -> CompileReport:
        if self.strategy is RebuildStrategy.STAGED:
            report = await self._rebuild_staged()
        else:
            await asyncio.to_thread(remove_tree, self.cache_root)
            report = await self.compiler.compile_all(self.blueprints)
        self.last_report = report
        return report

    async def _rebuild_staged(self) -> CompileReport:
        staging = self.staging_root
        await asyncio.to_thread(self._prepare_staging_dir, staging)
        report = await self.compiler.with_cache_root(staging).compile_all(self.blueprints)
        if report.ok:
            await asyncio.to_thread(self._activate_staging, staging)
        else:
            logger.error(
                "Keeping previous build cache at %s; %d blueprint(s) failed",
                self.cache_root,
                len(report.failures),
            )
            await asyncio.to_thread(remove_tree, staging)
        return report

    @staticmethod
    def _prepare_staging_dir(staging: Path) -> None:
        remove_tree(staging)
        staging.mkdir(parents=True, exist_ok=True)

    def _activate_staging(self, staging: Path) -> None:
        target = self.cache_root
        retired = target.with_name(target.name + ".old")
        remove_tree(retired)
        # rename() cannot replace a non-empty directory, so retire it first.
        if target.exists():
            os.replace(target, retired)
        os.replace(staging, target)
        remove_tree(retired)
        logger.info("Activated rebuilt build cache at %s", target)

    @staticmethod
    def _log_unexpected_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Build cache rebuild crashed: %s", exc, exc_info=exc)
