from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Literal

from botocore.exceptions import ClientError

from .aws_errors import map_client_error as _map_client_error
from .cancellation import CancelScope
from .errors import BatchIncompleteError, BatchProgress, DynakeyPyError, ValidationError
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

BATCH_GET_LIMIT = 100
BATCH_WRITE_LIMIT = 25

type RawKey = dict[str, Any]
type WriteRequest = dict[str, Any]
type ReadMode = Literal["trim", "full"]

# Sends one round for a chunk; returns (completed entries, unprocessed entries).
type _Send = Callable[[list[Any]], tuple[list[Any], list[Any]]]


def _chunked[T](items: Sequence[T], size: int) -> list[list[T]]:
    if size <= 0:
        raise ValueError("size must be > 0")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def _canonical_number(raw: str) -> Any:
    try:
        return Decimal(raw)
    except InvalidOperation:
        return raw


def _freeze(value: Any) -> Any:
    """Hashable identity for a raw key, item or request.

    Number values compare by value, so ``{"N": "1.0"}`` and the canonical
    ``{"N": "1"}`` the store echoes back are the same key.
    """
    if isinstance(value, Mapping):
        if len(value) == 1 and isinstance(value.get("N"), str):
            return (("N", _canonical_number(value["N"])),)
        return tuple(sorted((str(k), _freeze(v)) for k, v in value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(_freeze(v) for v in value)
    if isinstance(value, bytearray):
        return bytes(value)
    return value


@dataclass
class _ChunkOutcome:
    completed: list[Any] = field(default_factory=list)
    unprocessed: list[Any] = field(default_factory=list)
    error: Exception | None = None


class _BatchEngine:
    """Chunk/retry core shared by batch reads and writes.

    Each chunk is re-sent with only its unprocessed entries until none remain
    or the policy's retry ceiling is reached. All chunks run to completion
    before failure is reported, so the error carries every remaining entry.

    A chunk stopped by an error (transport failure, cancellation) counts the
    entries it had not confirmed as unprocessed. The first such error is
    re-raised once every chunk has finished, with ``batch_progress`` holding
    the whole batch's completed and unprocessed entries.
    """

    def __init__(
        self,
        *,
        policy: RetryPolicy,
        max_workers: int = 1,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        if max_workers <= 0:
            raise ValidationError("max_workers must be > 0")
        self._policy = policy
        self._max_workers = max_workers
        self._sleep = sleep

    def run(
        self,
        operation: str,
        chunks: list[list[Any]],
        send: _Send,
        *,
        cancel: CancelScope,
    ) -> list[_ChunkOutcome]:
        if self._max_workers == 1 or len(chunks) <= 1:
            outcomes = [self._drive(operation, chunk, send, cancel) for chunk in chunks]
        else:
            with ThreadPoolExecutor(max_workers=min(self._max_workers, len(chunks))) as ex:
                futures = [ex.submit(self._drive, operation, chunk, send, cancel) for chunk in chunks]
                wait(futures)
            outcomes = [fut.result() for fut in futures]

        unprocessed = [entry for outcome in outcomes for entry in outcome.unprocessed]
        completed = [entry for outcome in outcomes for entry in outcome.completed]

        errors = [outcome.error for outcome in outcomes if outcome.error is not None]
        if errors:
            err = errors[0]
            logger.warning(
                f"{operation}: {len(errors)} chunk(s) failed, {len(unprocessed)} entries unconfirmed: {err}"
            )
            if isinstance(err, DynakeyPyError):
                err.batch_progress = BatchProgress(operation=operation, unprocessed=unprocessed, completed=completed)
            raise err

        if unprocessed:
            logger.warning(f"{operation}: {len(unprocessed)} entries still unprocessed after retries")
            raise BatchIncompleteError(operation=operation, unprocessed=unprocessed, completed=completed)
        return outcomes

    def _drive(self, operation: str, chunk: list[Any], send: _Send, cancel: CancelScope) -> _ChunkOutcome:
        outcome = _ChunkOutcome()
        pending = list(chunk)
        attempts = 0

        try:
            while pending:
                cancel.check(operation)
                completed, pending = send(pending)
                outcome.completed.extend(completed)

                if pending:
                    if attempts >= self._policy.max_retries:
                        outcome.unprocessed = pending
                        return outcome
                    attempts += 1
                    delay = self._policy.backoff_seconds(attempts)
                    logger.debug(
                        f"{operation}: {len(pending)} unprocessed, retry {attempts}/{self._policy.max_retries} "
                        f"in {delay:.3f}s"
                    )
                    (self._sleep or cancel.sleep)(delay)
        except Exception as err:
            # pending holds what was being sent, or what was left to send.
            outcome.unprocessed = pending
            outcome.error = err

        return outcome


class BatchReader:
    """Resolves raw keys into raw items with BatchGetItem.

    ``mode="trim"`` returns the found items in discovery order.
    ``mode="full"`` returns one slot per requested key, ``None`` where absent.
    """

    def __init__(
        self,
        client: Any,
        table_name: str,
        hash_key_name: str,
        *,
        policy: RetryPolicy | None = None,
        max_workers: int = 1,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._client = client
        self._table_name = table_name
        self._hash_key_name = hash_key_name
        self._engine = _BatchEngine(policy=policy or RetryPolicy(), max_workers=max_workers, sleep=sleep)

    def read(
        self,
        keys: Sequence[RawKey],
        *,
        mode: ReadMode = "trim",
        consistent: bool = False,
        cancel: CancelScope | None = None,
    ) -> list[dict[str, Any]] | list[dict[str, Any] | None]:
        if mode not in ("trim", "full"):
            raise ValidationError(f"unsupported batch_get mode: {mode}")
        if not keys:
            return []

        unique: dict[Any, RawKey] = {}
        for key in keys:
            unique.setdefault(self._identity(key), key)

        def send(pending: list[RawKey]) -> tuple[list[Any], list[Any]]:
            req = {self._table_name: {"Keys": pending, "ConsistentRead": consistent}}
            logger.debug(f"batch_get_item {self._table_name}: {len(pending)} keys")
            try:
                resp = self._client.batch_get_item(RequestItems=req)
            except ClientError as err:
                raise _map_client_error(err) from err

            found = list(resp.get("Responses", {}).get(self._table_name, []))
            unprocessed = resp.get("UnprocessedKeys", {}).get(self._table_name, {}).get("Keys") or []
            return found, list(unprocessed)

        outcomes = self._engine.run(
            "batch_get",
            _chunked(list(unique.values()), BATCH_GET_LIMIT),
            send,
            cancel=cancel or CancelScope(),
        )
        found = [item for outcome in outcomes for item in outcome.completed]

        if mode == "trim":
            return self._append(found)
        return self._index_by_key(keys, found)

    def _identity(self, key_or_item: Mapping[str, Any]) -> Any:
        if self._hash_key_name not in key_or_item:
            raise ValidationError(f"key is missing hash key attribute: {self._hash_key_name}")
        return _freeze(key_or_item[self._hash_key_name])

    def _append(self, found: list[dict[str, Any]]) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        seen: set[Any] = set()
        for item in found:
            identity = self._identity(item)
            if identity in seen:
                continue
            seen.add(identity)
            out.append(item)
        return out

    def _index_by_key(self, keys: Sequence[RawKey], found: list[dict[str, Any]]) -> list[dict[str, Any] | None]:
        index = {self._identity(item): item for item in found}
        return [index.get(self._identity(key)) for key in keys]


class BatchWriter:
    """Applies put/delete requests with BatchWriteItem."""

    def __init__(
        self,
        client: Any,
        table_name: str,
        *,
        policy: RetryPolicy | None = None,
        max_workers: int = 1,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._client = client
        self._table_name = table_name
        self._engine = _BatchEngine(policy=policy or RetryPolicy(), max_workers=max_workers, sleep=sleep)

    def write(self, requests: Sequence[WriteRequest], *, cancel: CancelScope | None = None) -> None:
        if not requests:
            return

        for req in requests:
            if len(req) != 1 or next(iter(req)) not in ("PutRequest", "DeleteRequest"):
                raise ValidationError("write request must be a single PutRequest or DeleteRequest")

        def send(pending: list[WriteRequest]) -> tuple[list[Any], list[Any]]:
            logger.debug(f"batch_write_item {self._table_name}: {len(pending)} requests")
            try:
                resp = self._client.batch_write_item(RequestItems={self._table_name: pending})
            except ClientError as err:
                raise _map_client_error(err) from err

            unprocessed = list(resp.get("UnprocessedItems", {}).get(self._table_name, []) or [])
            remaining = [_freeze(r) for r in unprocessed]
            applied: list[Any] = []
            for req in pending:
                frozen = _freeze(req)
                if frozen in remaining:
                    remaining.remove(frozen)
                    continue
                applied.append(req)
            return applied, unprocessed

        self._engine.run(
            "batch_write",
            _chunked(list(requests), BATCH_WRITE_LIMIT),
            send,
            cancel=cancel or CancelScope(),
        )
