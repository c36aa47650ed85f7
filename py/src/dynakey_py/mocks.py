from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

type RequestCheck = Mapping[str, Any] | Callable[[Mapping[str, Any]], None]
type Response = Mapping[str, Any] | Callable[[Mapping[str, Any]], Mapping[str, Any]]


class _AnySentinel:
    def __repr__(self) -> str:  # pragma: no cover
        return "ANY"


ANY: Any = _AnySentinel()


def _mismatch(expected: Any, actual: Any, path: str) -> str | None:
    """Return a description of the first difference, or ``None``.

    Mappings match when every expected key matches (extra request keys are
    allowed); lists must match element for element.
    """
    if expected is ANY:
        return None

    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping):
            return f"{path}: expected dict, got {type(actual).__name__}"
        for key, want in expected.items():
            if key not in actual:
                return f"{path}: missing key {key!r}"
            found = _mismatch(want, actual[key], f"{path}.{key}")
            if found:
                return found
        return None

    if isinstance(expected, list):
        if not isinstance(actual, list):
            return f"{path}: expected list, got {type(actual).__name__}"
        if len(expected) != len(actual):
            return f"{path}: expected {len(expected)} items, got {len(actual)}"
        for i, (want, got) in enumerate(zip(expected, actual, strict=True)):
            found = _mismatch(want, got, f"{path}[{i}]")
            if found:
                return found
        return None

    return None if expected == actual else f"{path}: expected {expected!r}, got {actual!r}"


@dataclass(frozen=True)
class ExpectedCall:
    method: str
    expected: RequestCheck | None = None
    response: Response | None = None
    error: Exception | None = None


def _transport(method: str) -> Callable[..., Mapping[str, Any]]:
    def call(self: FakeDynamoDBClient, **kwargs: Any) -> Mapping[str, Any]:
        return self._handle(method, kwargs)

    call.__name__ = method
    return call


class FakeDynamoDBClient:
    """Scripted transport: calls are matched against ``expect``ed calls in order.

    ``response`` may be a callable receiving the request, which lets a script
    echo back part of a batch as unprocessed. Every call, matched or not, is
    recorded in ``calls``.
    """

    def __init__(self) -> None:
        self._script: list[ExpectedCall] = []
        self._lock = threading.Lock()
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def expect(
        self,
        method: str,
        expected: RequestCheck | None = None,
        *,
        response: Response | None = None,
        error: Exception | None = None,
    ) -> None:
        self._script.append(ExpectedCall(method, expected, response, error))

    def assert_no_pending(self) -> None:
        if self._script:
            raise AssertionError(f"pending expected calls: {[c.method for c in self._script]}")

    def call_count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    def _handle(self, method: str, req: dict[str, Any]) -> Mapping[str, Any]:
        with self._lock:
            self.calls.append((method, dict(req)))
            if not self._script:
                raise AssertionError(f"unexpected call: {method}")
            step = self._script.pop(0)

        if step.method != method:
            raise AssertionError(f"expected {step.method}, got {method}")
        if callable(step.expected):
            step.expected(req)
        elif step.expected is not None:
            problem = _mismatch(step.expected, req, method)
            if problem:
                raise AssertionError(problem)

        if step.error is not None:
            raise step.error
        if callable(step.response):
            return dict(step.response(req))
        return dict(step.response or {})

    get_item = _transport("get_item")
    put_item = _transport("put_item")
    update_item = _transport("update_item")
    delete_item = _transport("delete_item")
    scan = _transport("scan")
    batch_get_item = _transport("batch_get_item")
    batch_write_item = _transport("batch_write_item")
