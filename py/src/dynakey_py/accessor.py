from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import boto3
from botocore.exceptions import ClientError

from .aws_errors import map_client_error as _map_client_error
from .batch import BatchReader, BatchWriter, WriteRequest
from .cancellation import CancelScope
from .codec import Codec, DataclassCodec
from .model import TableMetadata
from .retry import RetryPolicy
from .scan import ScanPage, SegmentedScanner
from .update import build_update_request

logger = logging.getLogger(__name__)


class HashPrimaryKey[T]:
    """Primary-key access to a hash-keyed table.

    The client is shared, not owned: several accessors (and threads) may use
    the same boto3 client. ``max_workers`` above 1 lets batch calls send their
    chunks concurrently.
    """

    def __init__(
        self,
        metadata: TableMetadata[T],
        *,
        client: Any | None = None,
        codec: Codec[T] | None = None,
        retry_policy: RetryPolicy | None = None,
        max_workers: int = 1,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._metadata = metadata
        self._client: Any = client or boto3.client("dynamodb")
        self._codec: Codec[T] = codec or DataclassCodec(metadata)
        self._retry_policy = retry_policy or RetryPolicy()

        self._reader = BatchReader(
            self._client,
            metadata.table_name,
            metadata.hash_key_name,
            policy=self._retry_policy,
            max_workers=max_workers,
            sleep=sleep,
        )
        self._writer = BatchWriter(
            self._client,
            metadata.table_name,
            policy=self._retry_policy,
            max_workers=max_workers,
            sleep=sleep,
        )
        self._scanner = SegmentedScanner(self._client, metadata.table_name)

    @property
    def metadata(self) -> TableMetadata[T]:
        return self._metadata

    def get(self, hash_key: Any, *, consistent: bool = False, cancel: CancelScope | None = None) -> T | None:
        key = self._codec.serialize_key(hash_key)
        (cancel or CancelScope()).check("get")
        try:
            resp = self._client.get_item(
                TableName=self._metadata.table_name, Key=key, ConsistentRead=consistent
            )
        except ClientError as err:
            raise _map_client_error(err) from err

        item = resp.get("Item")
        if not item:
            return None
        return self._codec.deserialize(self._metadata, item)

    def put(self, record: T, *, cancel: CancelScope | None = None) -> None:
        item = self._codec.serialize(record)
        (cancel or CancelScope()).check("put")
        try:
            self._client.put_item(TableName=self._metadata.table_name, Item=item)
        except ClientError as err:
            raise _map_client_error(err) from err

    def delete(self, hash_key: Any, *, cancel: CancelScope | None = None) -> None:
        key = self._codec.serialize_key(hash_key)
        (cancel or CancelScope()).check("delete")
        try:
            self._client.delete_item(TableName=self._metadata.table_name, Key=key)
        except ClientError as err:
            raise _map_client_error(err) from err

    def update(
        self,
        hash_key: Any,
        changes: Mapping[str, Any],
        *,
        cancel: CancelScope | None = None,
    ) -> None:
        req = build_update_request(self._metadata, self._codec, hash_key, changes)
        if "UpdateExpression" not in req:
            logger.debug(f"update {self._metadata.table_name}: no declared attributes in changes, sending key only")

        (cancel or CancelScope()).check("update")
        try:
            self._client.update_item(**req)
        except ClientError as err:
            raise _map_client_error(err) from err

    def scan(
        self,
        *,
        limit: int | None = None,
        total_segments: int | None = None,
        segment: int | None = None,
        exclusive_start_key: dict[str, Any] | None = None,
        consistent: bool = False,
        cancel: CancelScope | None = None,
    ) -> ScanPage[T]:
        page = self._scanner.scan(
            limit=limit,
            total_segments=total_segments,
            segment=segment,
            exclusive_start_key=exclusive_start_key,
            consistent=consistent,
            cancel=cancel,
        )
        return ScanPage(
            records=[self._codec.deserialize(self._metadata, item) for item in page.records],
            count=page.count,
            scanned_count=page.scanned_count,
            last_evaluated_key=page.last_evaluated_key,
            consumed_capacity=page.consumed_capacity,
        )

    def batch_get(
        self,
        hash_keys: Sequence[Any],
        *,
        consistent: bool = False,
        cancel: CancelScope | None = None,
    ) -> list[T]:
        items = self._reader.read(self._keys(hash_keys), mode="trim", consistent=consistent, cancel=cancel)
        return [self._codec.deserialize(self._metadata, item) for item in items if item is not None]

    def batch_get_full(
        self,
        hash_keys: Sequence[Any],
        *,
        consistent: bool = False,
        cancel: CancelScope | None = None,
    ) -> list[T | None]:
        items = self._reader.read(self._keys(hash_keys), mode="full", consistent=consistent, cancel=cancel)
        return [self._codec.deserialize(self._metadata, item) if item is not None else None for item in items]

    def batch_delete(self, hash_keys: Sequence[Any], *, cancel: CancelScope | None = None) -> None:
        self.batch_write(deletes=hash_keys, cancel=cancel)

    def batch_put(self, records: Sequence[T], *, cancel: CancelScope | None = None) -> None:
        self.batch_write(puts=records, cancel=cancel)

    def batch_write(
        self,
        *,
        puts: Sequence[T] = (),
        deletes: Sequence[Any] = (),
        cancel: CancelScope | None = None,
    ) -> None:
        requests: list[WriteRequest] = []
        for record in puts:
            requests.append({"PutRequest": {"Item": self._codec.serialize(record)}})
        for hash_key in deletes:
            requests.append({"DeleteRequest": {"Key": self._codec.serialize_key(hash_key)}})

        self._writer.write(requests, cancel=cancel)

    def _keys(self, hash_keys: Sequence[Any]) -> list[dict[str, Any]]:
        return [self._codec.serialize_key(hash_key) for hash_key in hash_keys]
