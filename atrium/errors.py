"""Error taxonomy for Atrium.

Every failure raised by the build-and-render pipeline derives from AtriumError
so callers can map the whole family to a single server failure, while still
telling retryable conditions (TransientIOError) apart from logical ones.

Propagation:
- ParseError, NotFoundError, CycleError, RenderError abort the whole call.
- CompileError is recorded per blueprint and never aborts sibling blueprints.
- TransientIOError marks an unreachable collaborator; callers may retry.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .compiler import AssetBlueprint


class AtriumError(Exception):
    """Base class for all pipeline errors."""


class ParseError(AtriumError):
    """A module descriptor could not be parsed.

    Attributes:
        path: Descriptor file that failed.
        message: Human-readable reason.
    """

    def __init__(self, path: Path, message: str):
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


class NotFoundError(AtriumError):
    """A referenced content entity does not exist in the repository."""

    def __init__(self, ref_type: str, ref_id: str):
        self.ref_type = ref_type
        self.ref_id = ref_id
        super().__init__(f"{ref_type} '{ref_id}' not found")


class CycleError(AtriumError):
    """A content reference resolves, directly or indirectly, to itself.

    Attributes:
        chain: The (ref_type, ref_id) pairs from the outermost reference to
            the repeated one, inclusive.
    """

    def __init__(self, chain: list[tuple[str, str]]):
        self.chain = chain
        path = " -> ".join(f"{t}:{i}" for t, i in chain)
        super().__init__(f"Reference cycle detected: {path}")


class TransientIOError(AtriumError):
    """A collaborator (content repository, cache store) was unreachable."""

    def __init__(self, message: str, original_error: Exception | None = None):
        self.message = message
        self.original_error = original_error
        super().__init__(message)


class CompileError(AtriumError):
    """A single asset blueprint failed to build."""

    def __init__(
        self,
        blueprint: AssetBlueprint,
        message: str,
        original_error: Exception | None = None,
    ):
        self.blueprint = blueprint
        self.message = message
        self.original_error = original_error
        super().__init__(f"{blueprint.file_name}: {message}")


class RenderError(AtriumError):
    """The templating engine failed to produce markup."""

    def __init__(
        self,
        template: str,
        message: str,
        original_error: Exception | None = None,
    ):
        self.template = template
        self.message = message
        self.original_error = original_error
        super().__init__(f"{template}: {message}")
