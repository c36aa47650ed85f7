from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from botocore.exceptions import ClientError

from .aws_errors import map_client_error as _map_client_error
from .cancellation import CancelScope
from .errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanPage[T]:
    records: list[T]
    count: int
    scanned_count: int
    last_evaluated_key: dict[str, Any] | None
    consumed_capacity: dict[str, Any] | None


class SegmentedScanner:
    """Issues exactly one Scan call per invocation.

    Pagination and segment state belong to the caller: pass the previous
    page's ``last_evaluated_key`` back as ``exclusive_start_key`` until it
    comes back as ``None``.
    """

    def __init__(self, client: Any, table_name: str) -> None:
        self._client = client
        self._table_name = table_name

    def scan(
        self,
        *,
        limit: int | None = None,
        total_segments: int | None = None,
        segment: int | None = None,
        exclusive_start_key: dict[str, Any] | None = None,
        consistent: bool = False,
        cancel: CancelScope | None = None,
    ) -> ScanPage[dict[str, Any]]:
        if limit is not None and limit <= 0:
            raise ValidationError("limit must be > 0")

        req: dict[str, Any] = {
            "TableName": self._table_name,
            "ReturnConsumedCapacity": "TOTAL",
            "ConsistentRead": consistent,
        }
        if limit is not None:
            req["Limit"] = limit

        if (segment is None) != (total_segments is None):
            raise ValidationError("segment and total_segments must be provided together")
        if segment is not None and total_segments is not None:
            if segment < 0 or total_segments <= 0 or segment >= total_segments:
                raise ValidationError("invalid segment/total_segments")
            req["Segment"] = segment
            req["TotalSegments"] = total_segments

        if exclusive_start_key:
            req["ExclusiveStartKey"] = exclusive_start_key

        (cancel or CancelScope()).check("scan")
        logger.debug(f"scan {self._table_name}: segment={segment}/{total_segments} limit={limit}")
        try:
            resp = self._client.scan(**req)
        except ClientError as err:
            raise _map_client_error(err) from err

        items = list(resp.get("Items", []))
        return ScanPage(
            records=items,
            count=int(resp.get("Count", len(items))),
            scanned_count=int(resp.get("ScannedCount", len(items))),
            last_evaluated_key=resp.get("LastEvaluatedKey") or None,
            consumed_capacity=resp.get("ConsumedCapacity"),
        )
