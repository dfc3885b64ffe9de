"""Database dependency resolution for page documents.

A page document is a JSON-like tree. Wherever it embeds a content reference,
a mapping whose keys are exactly ``ref_type`` and ``ref_id``, the resolver
fetches that entity from the content repository and substitutes it in place.
Fetched entities may themselves hold references; those are resolved too.

Key classes:
- DependencyResolver: Entry point, one ``resolve`` call per page.

Guarantees:
- Shape and key order of the document are preserved.
- Sibling fetches run concurrently, bounded by ``max_concurrency``, and all
  of them are joined before ``resolve`` returns or raises.
- Resolution is all-or-nothing: the first failure in document order is raised
  and no partial page is returned.
- A reference that appears among its own ancestors raises CycleError. The
  same entity referenced from two unrelated places is not a cycle.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .errors import CycleError, NotFoundError, TransientIOError
from .protocols import ContentRepository

logger = logging.getLogger(__name__)

REFERENCE_KEYS = frozenset({"ref_type", "ref_id"})

Ref = tuple[str, str]


def is_reference(node: Any) -> bool:
    """Check whether a node is a content reference placeholder."""
    return isinstance(node, dict) and set(node) == REFERENCE_KEYS


def reference_of(node: dict[str, Any]) -> Ref:
    return str(node["ref_type"]), str(node["ref_id"])


class DependencyResolver:
    """Replaces content references in page documents with fetched entities.

    Attributes:
        repository: Content repository queried for each reference.
        max_concurrency: Upper bound on in-flight repository fetches per call.
    """

    def __init__(self, repository: ContentRepository, max_concurrency: int = 8):
        self.repository = repository
        self.max_concurrency = max_concurrency

    async def resolve(
        self, document: Any, timeout: float | None = None
    ) -> Any:
        """Resolve every content reference in a document.

        Args:
            document: Page document tree. It is not modified.
            timeout: Optional deadline in seconds for the whole call.

        Returns:
            A new tree with zero content references. Resolving an already
            resolved tree returns an equal tree without touching the
            repository.

        Raises:
            NotFoundError: A referenced entity does not exist.
            CycleError: A reference resolves back to one of its ancestors.
            TransientIOError: The repository was unreachable or the deadline
                passed.
        """
        run = _Resolution(self.repository, asyncio.Semaphore(self.max_concurrency))
        if timeout is None:
            return await run.resolve_node(document, ())
        try:
            return await asyncio.wait_for(run.resolve_node(document, ()), timeout)
        except asyncio.TimeoutError as exc:
            raise TransientIOError(
                f"Resolution did not finish within {timeout}s", exc
            ) from exc


class _Resolution:
    """State for a single ``resolve`` call: fetch memo and concurrency bound."""

    def __init__(self, repository: ContentRepository, semaphore: asyncio.Semaphore):
        self._repository = repository
        self._semaphore = semaphore
        self._fetches: dict[Ref, asyncio.Future] = {}

    async def resolve_node(self, node: Any, ancestors: tuple[Ref, ...]) -> Any:
        if is_reference(node):
            return await self._resolve_reference(node, ancestors)
        if isinstance(node, dict):
            values = await self._resolve_children(list(node.values()), ancestors)
            return dict(zip(node.keys(), values))
        if isinstance(node, list):
            return await self._resolve_children(node, ancestors)
        return node

    async def _resolve_reference(
        self, node: dict[str, Any], ancestors: tuple[Ref, ...]
    ) -> Any:
        ref = reference_of(node)
        if ref in ancestors:
            raise CycleError([*ancestors, ref])
        entity = await self._fetch(ref)
        return await self.resolve_node(entity, (*ancestors, ref))

    async def _resolve_children(
        self, children: list[Any], ancestors: tuple[Ref, ...]
    ) -> list[Any]:
        pending = {
            index: self.resolve_node(child, ancestors)
            for index, child in enumerate(children)
            if isinstance(child, (dict, list))
        }
        resolved = list(children)
        if not pending:
            return resolved

        results = await asyncio.gather(*pending.values(), return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        for index, result in zip(pending, results):
            resolved[index] = result
        return resolved

    async def _fetch(self, ref: Ref) -> Any:
        future = self._fetches.get(ref)
        if future is None:
            future = asyncio.ensure_future(self._load(ref))
            self._fetches[ref] = future
        return await future

    async def _load(self, ref: Ref) -> Any:
        ref_type, ref_id = ref
        async with self._semaphore:
            try:
                entity = await self._repository.find_by_type_and_id(ref_type, ref_id)
            except (OSError, asyncio.TimeoutError) as exc:
                raise TransientIOError(
                    f"Content repository unavailable while fetching {ref_type} '{ref_id}'",
                    exc,
                ) from exc
        if entity is None:
            raise NotFoundError(ref_type, ref_id)
        logger.debug("Fetched %s '%s'", ref_type, ref_id)
        return entity
