"""Exception types raised by toolstash."""

from __future__ import annotations

from .text import Messages


class ToolstashError(RuntimeError):
    """Base class for errors surfaced to callers."""


class SemanticIndexDisabledError(ToolstashError):
    """Raised when the semantic index is used while disabled in config."""


class IndexNotFoundError(ToolstashError, FileNotFoundError):
    """Raised when opening a vector store that does not exist yet."""


class EmbeddingError(ToolstashError):
    """Raised when the embedding provider fails or returns a non-success status."""


class EmbeddingMismatchError(EmbeddingError):
    """Raised when embedding counts or dimensions do not line up with the inputs."""


class EmbeddingDecodeError(ToolstashError, ValueError):
    """Raised when a stored embedding blob cannot be decoded."""

    def __init__(self, length: int, element_size: int = 4) -> None:
        self.length = length
        self.element_size = element_size
        super().__init__(
            Messages.ERROR_EMBED_DECODE.format(length=length, element_size=element_size)
        )


class CacheLockError(OSError):
    """Raised when the cache index lock is unusable after a failed mutation."""


class ToolError(ToolstashError):
    """Error reported back to the model by a tool handler."""
