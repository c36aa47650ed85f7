from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

import boto3
import pytest
from moto import mock_aws

from dynakey_py import Add, Delete, HashPrimaryKey, NotFoundError, Put, RetryPolicy, TableMetadata, dynakey_field

TABLE_NAME = "accounts"


@dataclass(frozen=True)
class Account:
    account_id: str = dynakey_field(name="id", hash_key=True)
    owner: str = dynakey_field(default="")
    balance: int = dynakey_field(default=0)
    tags: frozenset[str] = dynakey_field(omitempty=True, default=frozenset())
    settings: dict[str, int] = dynakey_field(json=True, omitempty=True, default_factory=dict)


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> Iterator[Any]:
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    with mock_aws():
        ddb = boto3.client("dynamodb", region_name="us-east-1")
        ddb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
            AttributeDefinitions=[{"AttributeName": "id", "AttributeType": "S"}],
            BillingMode="PAY_PER_REQUEST",
        )
        yield ddb


@pytest.fixture
def accounts(client: Any) -> HashPrimaryKey[Account]:
    meta = TableMetadata.from_dataclass(Account, table_name=TABLE_NAME)
    return HashPrimaryKey(meta, client=client, retry_policy=RetryPolicy(max_retries=3, base_delay_seconds=0.01))


def test_put_get_delete(accounts: HashPrimaryKey[Account]) -> None:
    acct = Account(account_id="a1", owner="ann", balance=10, tags=frozenset({"vip"}), settings={"limit": 5})
    accounts.put(acct)

    assert accounts.get("a1", consistent=True) == acct

    accounts.delete("a1")
    assert accounts.get("a1") is None


def test_update_actions(accounts: HashPrimaryKey[Account]) -> None:
    accounts.put(Account(account_id="a1", owner="ann", balance=10, tags=frozenset({"vip", "new"})))

    accounts.update(
        "a1",
        {
            "balance": Add(5),
            "tags": Delete({"new"}),
            "owner": Put("bob"),
            "nonexistent": Put("ignored"),
        },
    )
    assert accounts.get("a1") == Account(account_id="a1", owner="bob", balance=15, tags=frozenset({"vip"}))

    accounts.update("a1", {"owner": ("PUT", None), "tags": ("ADD", {"gold"})})
    assert accounts.get("a1") == Account(account_id="a1", balance=15, tags=frozenset({"vip", "gold"}))


def test_batch_put_then_batch_get_full(accounts: HashPrimaryKey[Account], client: Any) -> None:
    accounts.batch_put([Account(account_id=f"a{n:02d}", balance=n) for n in range(30)])

    keys = ["a29", "missing", "a00", "a15"]
    out = accounts.batch_get_full(keys)

    assert [a.balance if a else None for a in out] == [29, None, 0, 15]
    assert len(client.scan(TableName=TABLE_NAME)["Items"]) == 30


def test_batch_get_and_batch_delete(accounts: HashPrimaryKey[Account]) -> None:
    accounts.batch_put([Account(account_id=f"a{n}") for n in range(5)])

    assert sorted(a.account_id for a in accounts.batch_get(["a4", "a1", "a1", "zz"])) == ["a1", "a4"]

    accounts.batch_delete([f"a{n}" for n in range(4)])
    assert [a.account_id for a in accounts.batch_get_full(["a0", "a4"]) if a] == ["a4"]


def test_scan_pages_until_exhausted(accounts: HashPrimaryKey[Account]) -> None:
    accounts.batch_put([Account(account_id=f"a{n:02d}", balance=n) for n in range(12)])

    seen: list[str] = []
    start: dict[str, Any] | None = None
    pages = 0
    while True:
        page = accounts.scan(limit=5, exclusive_start_key=start)
        pages += 1
        assert page.count == len(page.records) <= 5
        seen.extend(a.account_id for a in page.records)
        start = page.last_evaluated_key
        if start is None:
            break

    assert sorted(seen) == [f"a{n:02d}" for n in range(12)]
    assert len(seen) == 12
    assert pages >= 3


def test_missing_table_maps_to_not_found(client: Any) -> None:
    meta = TableMetadata.from_dataclass(Account, table_name="no_such_table")
    with pytest.raises(NotFoundError):
        HashPrimaryKey(meta, client=client).get("a1")
