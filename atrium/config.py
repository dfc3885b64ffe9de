"""Configuration loading for Atrium.

Configuration lives in ``atrium.yaml`` at the project root. Missing keys fall
back to DEFAULT_CONFIG; relative directories resolve against the project root.

Key functions:
- load_config: Reads atrium.yaml and returns an AtriumConfig.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

CONFIG_FILENAME = "atrium.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "domain": "localhost",
    "views_dir": "views",
    "cache_dir": ".cache",
    "lib_dir": "lib",
    "development": False,
    "redis_url": None,
    "default_language": "en",
    "template": "page",
    "max_concurrency": 8,
}

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class AtriumConfig:
    """Resolved project configuration.

    Attributes:
        project_root: Root directory of the project.
        domain: Site domain used when rendering in embedding mode.
        views_dir: Content tree containing ``modules/`` and ``templates/``.
        cache_dir: Build cache directory holding compiled assets.
        lib_dir: System library with ``scripts/`` and ``css/`` sources.
        development: Skip bundle minification when true.
        redis_url: Redis connection URL; in-memory cache when None.
        default_language: Language used when a page lacks the requested one.
        template: Base template name.
        max_concurrency: Upper bound on concurrent repository fetches.
    """

    project_root: Path
    domain: str
    views_dir: Path
    cache_dir: Path
    lib_dir: Path
    development: bool
    redis_url: str | None
    default_language: str
    template: str
    max_concurrency: int

    @property
    def scripts_dir(self) -> Path:
        return self.lib_dir / "scripts"

    @property
    def styles_dir(self) -> Path:
        return self.lib_dir / "css"


def load_config(project_root: Path) -> AtriumConfig:
    """Load configuration from atrium.yaml.

    Args:
        project_root: Root directory of the project.

    Returns:
        AtriumConfig with defaults applied and paths resolved.
    """
    config_path = project_root / CONFIG_FILENAME
    raw = DEFAULT_CONFIG.copy()
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
            if isinstance(loaded, dict):
                raw.update(loaded)

    env_dev = os.environ.get("ATRIUM_DEVELOPMENT")
    if env_dev is not None:
        raw["development"] = env_dev.strip().lower() in _TRUTHY

    return AtriumConfig(
        project_root=project_root,
        domain=str(raw["domain"]),
        views_dir=_resolve_dir(project_root, raw["views_dir"]),
        cache_dir=_resolve_dir(project_root, raw["cache_dir"]),
        lib_dir=_resolve_dir(project_root, raw["lib_dir"]),
        development=bool(raw["development"]),
        redis_url=raw.get("redis_url") or None,
        default_language=str(raw["default_language"]),
        template=str(raw["template"]),
        max_concurrency=max(1, int(raw["max_concurrency"])),
    )


def _resolve_dir(project_root: Path, value: str) -> Path:
    path = Path(value)
    return path if path.is_absolute() else project_root / path
