from __future__ import annotations

import re
import threading
import zlib
from decimal import Decimal
from typing import Any

from botocore.exceptions import ClientError

from .batch import BATCH_GET_LIMIT, BATCH_WRITE_LIMIT, _freeze
from .mocks import ANY, FakeDynamoDBClient


def no_sleep(_: float) -> None:
    return None


def _validation_error(operation: str, message: str) -> ClientError:
    return ClientError({"Error": {"Code": "ValidationException", "Message": message}}, operation)


_CLAUSE = re.compile(r"\b(SET|REMOVE|ADD|DELETE)\b")


class InMemoryDynamoDBClient:
    """Dict-backed stand-in for a boto3 DynamoDB client with one hash-keyed table.

    Supports the calls the accessor makes, including segmented scans and the
    per-call batch caps. ``throttle(rounds, keep)`` makes the next ``rounds``
    batch calls complete only their first ``keep`` entries and hand the rest
    back as unprocessed.
    """

    def __init__(self, *, table_name: str, hash_key_name: str) -> None:
        self.table_name = table_name
        self.hash_key_name = hash_key_name
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._items: dict[Any, dict[str, Any]] = {}
        self._throttled_rounds = 0
        self._throttle_keep = 0
        self._lock = threading.Lock()

    def throttle(self, rounds: int, *, keep: int = 0) -> None:
        self._throttled_rounds = rounds
        self._throttle_keep = keep

    def call_count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    def items(self) -> list[dict[str, Any]]:
        return [dict(item) for _, item in self._ordered()]

    def get_item(self, *, TableName: str, Key: dict[str, Any], ConsistentRead: bool = False) -> dict[str, Any]:  # noqa: N803
        self._record("get_item", TableName=TableName, Key=Key, ConsistentRead=ConsistentRead)
        item = self._items.get(self._identity("GetItem", Key))
        return {"Item": dict(item)} if item is not None else {}

    def put_item(self, *, TableName: str, Item: dict[str, Any]) -> dict[str, Any]:  # noqa: N803
        self._record("put_item", TableName=TableName, Item=Item)
        self._items[self._identity("PutItem", Item)] = self._stored(Item)
        return {}

    def delete_item(self, *, TableName: str, Key: dict[str, Any]) -> dict[str, Any]:  # noqa: N803
        self._record("delete_item", TableName=TableName, Key=Key)
        self._items.pop(self._identity("DeleteItem", Key), None)
        return {}

    def update_item(self, **req: Any) -> dict[str, Any]:
        self._record("update_item", **req)
        key = req["Key"]
        identity = self._identity("UpdateItem", key)
        names: dict[str, str] = req.get("ExpressionAttributeNames", {})
        values: dict[str, Any] = req.get("ExpressionAttributeValues", {})
        item = dict(self._items.get(identity) or self._stored(key))

        parts = _CLAUSE.split(req.get("UpdateExpression", ""))
        for clause, body in zip(parts[1::2], parts[2::2], strict=True):
            for action in (a.strip() for a in body.split(",")):
                if clause == "SET":
                    ref, value_ref = (s.strip() for s in action.split("="))
                    item[names[ref]] = values[value_ref]
                elif clause == "REMOVE":
                    item.pop(names[action], None)
                else:
                    ref, value_ref = action.split()
                    attr = names[ref]
                    merged = _merge(clause, item.get(attr), values[value_ref])
                    if merged is None:
                        item.pop(attr, None)
                    else:
                        item[attr] = merged

        self._items[identity] = item
        return {}

    def scan(self, **req: Any) -> dict[str, Any]:
        self._record("scan", **req)
        segment = req.get("Segment")
        total = req.get("TotalSegments")
        limit = req.get("Limit")
        start = req.get("ExclusiveStartKey")

        candidates = [
            (identity, item)
            for identity, item in self._ordered()
            if total is None or zlib.crc32(repr(identity).encode("utf-8")) % total == segment
        ]
        if start:
            start_identity = self._identity("Scan", start)
            positions = [i for i, (identity, _) in enumerate(candidates) if identity == start_identity]
            if positions:
                candidates = candidates[positions[0] + 1 :]
            else:
                candidates = [c for c in candidates if repr(c[0]) > repr(start_identity)]

        page = candidates if limit is None else candidates[:limit]
        resp: dict[str, Any] = {
            "Items": [dict(item) for _, item in page],
            "Count": len(page),
            "ScannedCount": len(page),
            "ConsumedCapacity": {"TableName": self.table_name, "CapacityUnits": 0.5 * max(1, len(page))},
        }
        if limit is not None and len(candidates) > limit:
            last = page[-1][1]
            resp["LastEvaluatedKey"] = {self.hash_key_name: last[self.hash_key_name]}
        return resp

    def batch_get_item(self, *, RequestItems: dict[str, Any]) -> dict[str, Any]:  # noqa: N803
        self._record("batch_get_item", RequestItems=RequestItems)
        request = RequestItems[self.table_name]
        keys = list(request["Keys"])
        if len(keys) > BATCH_GET_LIMIT:
            raise _validation_error("BatchGetItem", "Too many items requested for the BatchGetItem call")
        if len({self._identity("BatchGetItem", k) for k in keys}) != len(keys):
            raise _validation_error("BatchGetItem", "Provided list of item keys contains duplicates")

        processed, unprocessed = self._split(keys)
        identities = [self._identity("BatchGetItem", k) for k in processed]
        found = [dict(self._items[i]) for i in identities if i in self._items]
        resp: dict[str, Any] = {"Responses": {self.table_name: found}, "UnprocessedKeys": {}}
        if unprocessed:
            resp["UnprocessedKeys"] = {self.table_name: dict(request, Keys=unprocessed)}
        return resp

    def batch_write_item(self, *, RequestItems: dict[str, Any]) -> dict[str, Any]:  # noqa: N803
        self._record("batch_write_item", RequestItems=RequestItems)
        requests = list(RequestItems[self.table_name])
        if len(requests) > BATCH_WRITE_LIMIT:
            raise _validation_error("BatchWriteItem", "Too many items requested for the BatchWriteItem call")

        processed, unprocessed = self._split(requests)
        for req in processed:
            if "PutRequest" in req:
                item = req["PutRequest"]["Item"]
                self._items[self._identity("BatchWriteItem", item)] = self._stored(item)
            else:
                self._items.pop(self._identity("BatchWriteItem", req["DeleteRequest"]["Key"]), None)

        resp: dict[str, Any] = {"UnprocessedItems": {}}
        if unprocessed:
            resp["UnprocessedItems"] = {self.table_name: unprocessed}
        return resp

    def _record(self, method: str, **req: Any) -> None:
        with self._lock:
            self.calls.append((method, dict(req)))
        table = req.get("TableName") or next(iter(req.get("RequestItems") or {}), self.table_name)
        if table != self.table_name:
            raise ClientError(
                {"Error": {"Code": "ResourceNotFoundException", "Message": "Requested resource not found"}},
                method,
            )

    def _split(self, entries: list[Any]) -> tuple[list[Any], list[Any]]:
        with self._lock:
            if self._throttled_rounds <= 0:
                return entries, []
            self._throttled_rounds -= 1
            keep = self._throttle_keep
        return entries[:keep], entries[keep:]

    def _identity(self, operation: str, key_or_item: dict[str, Any]) -> Any:
        if self.hash_key_name not in key_or_item:
            raise _validation_error(operation, "The provided key element does not match the schema")
        return _freeze(key_or_item[self.hash_key_name])

    def _stored(self, item: dict[str, Any]) -> dict[str, Any]:
        # The store keeps numbers in canonical form: "1.0" is stored and returned as "1".
        out = dict(item)
        key = out.get(self.hash_key_name)
        if isinstance(key, dict) and isinstance(key.get("N"), str):
            out[self.hash_key_name] = {"N": _canonical_number(key["N"])}
        return out

    def _ordered(self) -> list[tuple[Any, dict[str, Any]]]:
        return sorted(self._items.items(), key=lambda pair: repr(pair[0]))


def _merge(clause: str, current: Any, delta: dict[str, Any]) -> Any:
    if "N" in delta:
        base = Decimal(current["N"]) if current else Decimal(0)
        if clause == "DELETE":
            raise _validation_error("UpdateItem", "DELETE action only supports set types")
        return {"N": str(base + Decimal(delta["N"]))}

    (kind, elements), *_ = delta.items()
    existing = list(current[kind]) if current and kind in current else []
    if clause == "ADD":
        merged = existing + [e for e in elements if e not in existing]
    else:
        merged = [e for e in existing if e not in elements]
    return {kind: merged} if merged else None



def _canonical_number(raw: str) -> str:
    value = Decimal(raw).normalize()
    return format(value, "f")

__all__ = [
    "ANY",
    "FakeDynamoDBClient",
    "InMemoryDynamoDBClient",
    "no_sleep",
]
