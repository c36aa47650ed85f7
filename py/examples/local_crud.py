from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass

from dynakey_py import Add, CancelScope, HashPrimaryKey, RetryPolicy, TableMetadata, dynakey_field, get_dynamodb_client


@dataclass(frozen=True)
class Note:
    note_id: str = dynakey_field(name="id", hash_key=True)
    value: int = dynakey_field(default=0)


def main() -> None:
    logging.basicConfig(level=logging.DEBUG)
    client = get_dynamodb_client(
        region=os.environ.get("AWS_REGION", "us-east-1"),
        endpoint_url=os.environ.get("DYNAMODB_ENDPOINT", "http://localhost:8000"),
    )
    table_name = f"dynakey_py_example_{uuid.uuid4().hex[:12]}"

    client.create_table(
        TableName=table_name,
        KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "id", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )
    client.get_waiter("table_exists").wait(TableName=table_name)

    try:
        notes = HashPrimaryKey(
            TableMetadata.from_dataclass(Note, table_name=table_name),
            client=client,
            retry_policy=RetryPolicy.from_env(),
            max_workers=4,
        )

        notes.batch_put([Note(note_id=f"n{n:03d}", value=n) for n in range(60)])
        notes.update("n010", {"value": Add(100)})
        print("get:", notes.get("n010"))

        print("batch_get_full:", notes.batch_get_full(["n001", "missing", "n059"], cancel=CancelScope(timeout=5.0)))

        for segment in range(2):
            start = None
            while True:
                page = notes.scan(limit=25, total_segments=2, segment=segment, exclusive_start_key=start)
                print(f"segment {segment}: {page.count} records, capacity={page.consumed_capacity}")
                start = page.last_evaluated_key
                if start is None:
                    break
    finally:
        client.delete_table(TableName=table_name)


if __name__ == "__main__":
    main()
