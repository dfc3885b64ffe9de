"""Module descriptor discovery for Atrium.

Reusable content blocks ("modules") live under ``<views>/modules/<category>/
<name>/component.json``. The editing UI's module picker reads the index from
the cache store; the filesystem is scanned only on a cache miss.

Key classes:
- ModuleDescriptor: One discovered module.
- DescriptorLoader: Finds descriptor files under the modules root.
- ModuleIndexer: Builds the index and serves it through the cache.

The cached index is never invalidated automatically. After content changes an
operator must clear it (``ModuleIndexer.clear_index`` or
``atrium modules --refresh``).
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ParseError, TransientIOError
from .protocols import CacheStore
from .stores import CacheKeys

logger = logging.getLogger(__name__)

DESCRIPTOR_FILENAME = "component.json"

# Layout containers under modules/ that hold no pickable modules.
EXCLUDED_CONTAINERS = frozenset({"footer", "footers", "header", "partials", "pages"})


@dataclass
class ModuleDescriptor:
    """A reusable content block discovered on disk.

    Attributes:
        key: Identifier of the module, unique within an index.
        metadata: The full parsed descriptor record (``key`` included).
        source_path: Descriptor file path relative to the views directory.
    """

    key: str
    metadata: dict[str, Any] = field(default_factory=dict)
    source_path: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "metadata": self.metadata,
            "source_path": self.source_path,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModuleDescriptor:
        return cls(
            key=data["key"],
            metadata=data.get("metadata", {}),
            source_path=data.get("source_path", ""),
        )


class DescriptorLoader:
    """Finds module descriptor files.

    Attributes:
        modules_dir: The ``modules/`` directory under the views root.
    """

    def __init__(self, views_dir: Path):
        self.views_dir = views_dir
        self.modules_dir = views_dir / "modules"

    def iter_files(self) -> list[Path]:
        """Return descriptor paths sorted by path, excluding layout containers."""
        if not self.modules_dir.exists():
            return []
        files: list[Path] = []
        for path in self.modules_dir.rglob(DESCRIPTOR_FILENAME):
            if not path.is_file():
                continue
            rel = path.relative_to(self.modules_dir)
            if rel.parts[0] in EXCLUDED_CONTAINERS:
                continue
            files.append(path)
        return sorted(files)


def parse_descriptor(path: Path, views_dir: Path) -> ModuleDescriptor:
    """Parse a single descriptor file.

    Raises:
        ParseError: If the file is not a JSON object with a string ``key``.
    """
    try:
        with open(path, encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(path, f"Unreadable descriptor: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ParseError(
            path, f"Invalid JSON on line {exc.lineno}: {exc.msg}"
        ) from exc

    if not isinstance(payload, dict):
        raise ParseError(path, "Descriptor must be a JSON object")
    key = payload.get("key")
    if not isinstance(key, str) or not key:
        raise ParseError(path, "Descriptor is missing a string 'key'")

    return ModuleDescriptor(
        key=key,
        metadata=payload,
        source_path=path.relative_to(views_dir).as_posix(),
    )


class ModuleIndexer:
    """Builds the module index and serves it through the cache store.

    Attributes:
        views_dir: Content tree root.
        cache: Cache store holding the serialized index.
        loader: Descriptor file finder.
    """

    def __init__(
        self,
        views_dir: Path,
        cache: CacheStore,
        loader: DescriptorLoader | None = None,
    ):
        self.views_dir = views_dir
        self.cache = cache
        self.loader = loader or DescriptorLoader(views_dir)

    def build_index(self) -> list[ModuleDescriptor]:
        """Scan the content tree and parse every descriptor.

        Returns:
            One descriptor per file, ordered by path.

        Raises:
            ParseError: On the first malformed descriptor or duplicate key.
                No partial index is returned.
        """
        modules: list[ModuleDescriptor] = []
        seen: dict[str, str] = {}
        for path in self.loader.iter_files():
            descriptor = parse_descriptor(path, self.views_dir)
            if descriptor.key in seen:
                raise ParseError(
                    path,
                    f"Duplicate module key '{descriptor.key}' "
                    f"(already defined in {seen[descriptor.key]})",
                )
            seen[descriptor.key] = descriptor.source_path
            modules.append(descriptor)
        logger.info("Indexed %d modules under %s", len(modules), self.loader.modules_dir)
        return modules

    async def get_index(self) -> list[ModuleDescriptor]:
        """Return the cached index, building and caching it on a miss.

        Raises:
            ParseError: If the index had to be built and a descriptor failed.
            TransientIOError: If the cache store is unreachable.
        """
        cached = await self.cache.get(CacheKeys.MODULES_INDEX)
        if cached is not None:
            try:
                return [ModuleDescriptor.from_dict(d) for d in json.loads(cached)]
            except (ValueError, KeyError, TypeError) as exc:
                raise TransientIOError(
                    f"Cached module index under '{CacheKeys.MODULES_INDEX}' is corrupt",
                    exc,
                ) from exc

        modules = await asyncio.to_thread(self.build_index)
        payload = json.dumps([m.to_dict() for m in modules])
        await self.cache.set(CacheKeys.MODULES_INDEX, payload)
        return modules

    async def clear_index(self) -> None:
        """Drop the cached index so the next ``get_index`` rescans."""
        await self.cache.delete(CacheKeys.MODULES_INDEX)
        logger.info("Cleared cached module index")
