from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class BatchProgress:
    """What a batch had and had not applied when an error stopped it."""

    operation: str
    unprocessed: list[Any] = field(default_factory=list)
    completed: list[Any] = field(default_factory=list)


class DynakeyPyError(Exception):
    # Set by the batch engine when this error interrupted a batch call.
    batch_progress: BatchProgress | None = None


class NotFoundError(DynakeyPyError):
    pass


class ValidationError(DynakeyPyError):
    pass


class OperationCancelledError(DynakeyPyError):
    pass


class BatchIncompleteError(DynakeyPyError):
    """Raised when a batch still has unprocessed entries after the retry ceiling.

    ``unprocessed`` holds the raw keys (batch_get) or write requests
    (batch_write) the store never completed. ``completed`` holds the raw items
    read so far for batch_get, and the write requests known to be applied for
    batch_write, so the caller can resume with only the remainder.
    """

    def __init__(
        self,
        *,
        operation: str,
        unprocessed: Sequence[Any],
        completed: Sequence[Any] = (),
    ) -> None:
        super().__init__(f"{operation}: retry limit exceeded (unprocessed={len(unprocessed)})")
        self.operation = operation
        self.unprocessed = list(unprocessed)
        self.completed = list(completed)

    @property
    def unprocessed_count(self) -> int:
        return len(self.unprocessed)


class TransportError(DynakeyPyError):
    def __init__(self, *, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
