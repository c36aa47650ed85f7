from __future__ import annotations

from dataclasses import dataclass

import pytest

from dynakey_py import HashPrimaryKey, TableMetadata, dynakey_field
from dynakey_py.mocks import ANY, FakeDynamoDBClient


@dataclass(frozen=True)
class Note:
    pk: str = dynakey_field(hash_key=True)
    value: int = dynakey_field()


def test_fake_dynamodb_client_records_and_matches_put_item() -> None:
    client = FakeDynamoDBClient()
    client.expect("put_item", {"TableName": "notes", "Item": ANY})

    notes = HashPrimaryKey(TableMetadata.from_dataclass(Note, table_name="notes"), client=client)
    notes.put(Note(pk="A", value=1))

    client.assert_no_pending()
    assert client.calls[0][0] == "put_item"
    assert client.call_count("put_item") == 1


def test_fake_dynamodb_client_reports_mismatches() -> None:
    client = FakeDynamoDBClient()
    client.expect("get_item", {"Key": {"pk": {"S": "A"}}})
    with pytest.raises(AssertionError, match=r"get_item\.Key\.pk\.S: expected 'A', got 'B'"):
        client.get_item(TableName="notes", Key={"pk": {"S": "B"}})

    client.expect("get_item")
    with pytest.raises(AssertionError, match="expected get_item, got scan"):
        client.scan(TableName="notes")

    with pytest.raises(AssertionError, match="unexpected call: scan"):
        client.scan(TableName="notes")


def test_fake_dynamodb_client_list_matching() -> None:
    client = FakeDynamoDBClient()
    client.expect("batch_write_item", {"RequestItems": {"notes": [ANY, ANY]}})
    with pytest.raises(AssertionError, match="expected 2 items, got 1"):
        client.batch_write_item(RequestItems={"notes": [{"DeleteRequest": {"Key": {}}}]})


def test_fake_dynamodb_client_callable_response_sees_request() -> None:
    client = FakeDynamoDBClient()
    client.expect(
        "batch_get_item",
        response=lambda req: {"UnprocessedKeys": req["RequestItems"]},
    )

    resp = client.batch_get_item(RequestItems={"notes": {"Keys": [{"pk": {"S": "A"}}]}})

    assert resp == {"UnprocessedKeys": {"notes": {"Keys": [{"pk": {"S": "A"}}]}}}


def test_assert_no_pending_lists_leftovers() -> None:
    client = FakeDynamoDBClient()
    client.expect("delete_item")
    with pytest.raises(AssertionError, match="pending expected calls"):
        client.assert_no_pending()
