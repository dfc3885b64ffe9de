"""Client-asset compilation for Atrium.

Each AssetBlueprint names one script entry point. Compiling a blueprint
bundles the entry into a single file under the build cache, minifies it
outside development mode, and copies the system stylesheets next to it.

Key classes:
- AssetBlueprint: One unit of compilation work.
- ScriptBundler: Bundles an entry script with esbuild.
- AssetCompiler: Runs blueprints concurrently and reports per-blueprint
  outcomes.
- CompileReport: Outcome of a ``compile_all`` call.

Blueprints are independent: a missing entry is skipped, a failure is
recorded, and neither affects siblings. Completed blueprints are not rolled
back when a sibling fails; callers wanting all-or-nothing should compile
into a staging directory (see ``lifecycle.RebuildStrategy.STAGED``).
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import subprocess
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from rjsmin import jsmin

from .errors import CompileError

logger = logging.getLogger(__name__)

BUILTIN_SCRIPTS = ("atrium.js", "input-bindings.js")
SCRIPTS_DIRNAME = "scripts"
STYLES_DIRNAME = "styles"


@dataclass(frozen=True)
class AssetBlueprint:
    """A script entry point and where its bundle goes.

    Attributes:
        source_entry: Entry script path.
        destination_dir: Output directory, relative to the build cache root
            unless absolute.
        file_name: Name of the bundle written into ``destination_dir``.
    """

    source_entry: Path
    destination_dir: Path
    file_name: str


def default_blueprints(lib_dir: Path) -> list[AssetBlueprint]:
    """Return the built-in blueprints that every rebuild compiles."""
    return [
        AssetBlueprint(
            source_entry=lib_dir / SCRIPTS_DIRNAME / name,
            destination_dir=Path(SCRIPTS_DIRNAME),
            file_name=name,
        )
        for name in BUILTIN_SCRIPTS
    ]


class CompileStatus(str, Enum):
    COMPILED = "compiled"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class BlueprintOutcome:
    blueprint: AssetBlueprint
    status: CompileStatus
    output_path: Path | None = None
    error: CompileError | None = None


@dataclass
class CompileReport:
    """Per-blueprint outcomes of a compile run, in blueprint order."""

    outcomes: list[BlueprintOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True when no blueprint failed. Skipped blueprints are not failures."""
        return not self.failures

    @property
    def failures(self) -> list[BlueprintOutcome]:
        return [o for o in self.outcomes if o.status is CompileStatus.FAILED]

    def status_of(self, file_name: str) -> CompileStatus | None:
        for outcome in self.outcomes:
            if outcome.blueprint.file_name == file_name:
                return outcome.status
        return None

    def raise_for_failures(self) -> None:
        """Raise the first recorded CompileError, if any."""
        for outcome in self.failures:
            if outcome.error is not None:
                raise outcome.error

    def summary(self) -> str:
        counts = {status: 0 for status in CompileStatus}
        for outcome in self.outcomes:
            counts[outcome.status] += 1
        return ", ".join(f"{count} {status.value}" for status, count in counts.items())


def find_executable(name: str, project_root: Path | None = None) -> str | None:
    """Find an executable on PATH or in the project's node_modules/.bin."""
    found = shutil.which(name)
    if found:
        return found
    if project_root is not None:
        local = project_root / "node_modules" / ".bin" / name
        if local.exists():
            return str(local)
    return None


class ScriptBundler:
    """Bundles an entry script and its imports into one ES2015 file.

    Uses the esbuild CLI. When esbuild is not installed the entry is copied
    unbundled, which is enough for self-contained scripts.
    """

    target = "es2015"

    def __init__(self, project_root: Path | None = None):
        self.project_root = project_root

    def bundle(self, source: Path, dest: Path) -> None:
        """Write the bundle for ``source`` to ``dest``.

        Raises:
            RuntimeError: If esbuild exits with an error.
        """
        esbuild = find_executable("esbuild", self.project_root)
        if not esbuild:
            logger.warning("esbuild not found; copying %s unbundled", source.name)
            shutil.copy2(source, dest)
            return

        cmd = [
            esbuild,
            str(source),
            "--bundle",
            f"--outfile={dest}",
            f"--target={self.target}",
            "--log-level=warning",
        ]
        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            raise RuntimeError(f"esbuild failed: {result.stderr.strip()}")


class _StylesheetCopy:
    """Copies the stylesheet source once per target within a compile run."""

    def __init__(self, source: Path):
        self.source = source
        self._lock = threading.Lock()
        self._done: set[Path] = set()

    def copy_into(self, target: Path) -> None:
        with self._lock:
            if target in self._done:
                return
            if not self.source.is_dir():
                logger.info("No stylesheets at %s; nothing to copy", self.source)
            else:
                shutil.copytree(self.source, target, dirs_exist_ok=True)
            self._done.add(target)


class AssetCompiler:
    """Compiles asset blueprints into the build cache.

    Attributes:
        cache_root: Build cache directory.
        styles_source: Directory of stylesheets copied beside each bundle.
        development: Skip minification when true.
        bundler: Script bundler.
    """

    def __init__(
        self,
        cache_root: Path,
        styles_source: Path,
        development: bool = False,
        project_root: Path | None = None,
        bundler: ScriptBundler | None = None,
    ):
        self.cache_root = cache_root
        self.styles_source = styles_source
        self.development = development
        self.project_root = project_root
        self.bundler = bundler or ScriptBundler(project_root)

    def with_cache_root(self, cache_root: Path) -> AssetCompiler:
        """Return a compiler identical to this one but writing elsewhere."""
        return AssetCompiler(
            cache_root,
            self.styles_source,
            development=self.development,
            project_root=self.project_root,
            bundler=self.bundler,
        )

    async def compile_all(
        self, blueprints: list[AssetBlueprint], timeout: float | None = None
    ) -> CompileReport:
        """Compile every blueprint concurrently.

        Args:
            blueprints: Units to compile.
            timeout: Optional per-blueprint deadline in seconds.

        Returns:
            Report with one outcome per blueprint, in input order.
        """
        styles = _StylesheetCopy(self.styles_source)
        outcomes = await asyncio.gather(
            *(self._compile_with_deadline(bp, styles, timeout) for bp in blueprints)
        )
        report = CompileReport(list(outcomes))
        if report.ok:
            logger.info("Asset compilation finished: %s", report.summary())
        else:
            logger.error("Asset compilation finished with errors: %s", report.summary())
        return report

    async def _compile_with_deadline(
        self,
        blueprint: AssetBlueprint,
        styles: _StylesheetCopy,
        timeout: float | None,
    ) -> BlueprintOutcome:
        call = asyncio.to_thread(self.compile_one, blueprint, styles)
        if timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError as exc:
            error = CompileError(blueprint, f"Did not finish within {timeout}s", exc)
            logger.error("%s", error)
            return BlueprintOutcome(blueprint, CompileStatus.FAILED, error=error)

    def destination_of(self, blueprint: AssetBlueprint) -> Path:
        return self.cache_root / blueprint.destination_dir / blueprint.file_name

    def compile_one(
        self, blueprint: AssetBlueprint, styles: _StylesheetCopy | None = None
    ) -> BlueprintOutcome:
        """Compile a single blueprint, recording rather than raising failures."""
        if not blueprint.source_entry.is_file():
            logger.info("Skipping %s: %s does not exist", blueprint.file_name, blueprint.source_entry)
            return BlueprintOutcome(blueprint, CompileStatus.SKIPPED)

        dest = self.destination_of(blueprint)
        logger.info("Start compiling %s", blueprint.file_name)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            self.bundler.bundle(blueprint.source_entry, dest)
            if not self.development:
                self._minify(dest)
            (styles or _StylesheetCopy(self.styles_source)).copy_into(
                dest.parent.parent / STYLES_DIRNAME
            )
        except Exception as exc:
            error = CompileError(blueprint, f"{type(exc).__name__}: {exc}", exc)
            logger.error("Failed compiling %s", error)
            return BlueprintOutcome(blueprint, CompileStatus.FAILED, error=error)

        logger.info("Finished compiling %s", blueprint.file_name)
        return BlueprintOutcome(blueprint, CompileStatus.COMPILED, output_path=dest)

    @staticmethod
    def _minify(bundle: Path) -> None:
        source = bundle.read_text(encoding="utf-8")
        bundle.write_text(jsmin(source), encoding="utf-8")
