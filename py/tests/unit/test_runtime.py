from __future__ import annotations

from datetime import UTC, datetime

import pytest

from dynakey_py.mocks import FakeDynamoDBClient
from dynakey_py.runtime import (
    AwsCallMetric,
    _reset_clients_for_tests,
    create_boto3_config,
    get_dynamodb_client,
    instrument_boto3_client,
    is_lambda_environment,
)


class FakeSession:
    def __init__(self) -> None:
        self.calls: list[dict[str, object]] = []

    def client(self, service_name: str, **kwargs: object) -> object:
        assert service_name == "dynamodb"
        self.calls.append(kwargs)
        return {"created_at": datetime.now(tz=UTC).isoformat(), "n": len(self.calls)}


@pytest.fixture(autouse=True)
def _fresh_client_cache() -> None:
    _reset_clients_for_tests()


def test_is_lambda_environment() -> None:
    assert is_lambda_environment({}) is False
    assert is_lambda_environment({"AWS_LAMBDA_FUNCTION_NAME": "fn"}) is True
    assert is_lambda_environment({"AWS_EXECUTION_ENV": "AWS_Lambda_python3.12"}) is True


def test_create_boto3_config() -> None:
    cfg = create_boto3_config(connect_timeout=2.0, read_timeout=4.0, max_attempts=5)
    assert cfg.connect_timeout == 2.0
    assert cfg.read_timeout == 4.0
    assert cfg.retries == {"max_attempts": 5, "mode": "adaptive"}


def test_instrument_boto3_client_records_calls() -> None:
    metrics: list[AwsCallMetric] = []

    client = FakeDynamoDBClient()
    client.expect("put_item", response={})
    client.expect("get_item", error=RuntimeError("boom"))
    wrapped = instrument_boto3_client(client, service="dynamodb", on_call=metrics.append)

    wrapped.put_item(TableName="t", Item={})
    with pytest.raises(RuntimeError, match="boom"):
        wrapped.get_item(TableName="t", Key={})

    assert [(m.operation, m.ok) for m in metrics] == [("put_item", True), ("get_item", False)]
    assert all(m.service == "dynamodb" and m.seconds >= 0 for m in metrics)
    assert wrapped.calls is client.calls


def test_get_dynamodb_client_caches_per_region_and_endpoint() -> None:
    sess = FakeSession()

    c1 = get_dynamodb_client(region="us-east-1", session=sess)
    c2 = get_dynamodb_client(region="us-east-1", session=sess)
    c3 = get_dynamodb_client(region="us-east-1", endpoint_url="http://localhost:8000", session=sess)

    assert c1 is c2
    assert c3 is not c1
    assert len(sess.calls) == 2
    assert sess.calls[1]["endpoint_url"] == "http://localhost:8000"


def test_get_dynamodb_client_uses_lambda_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AWS_LAMBDA_FUNCTION_NAME", "fn")
    sess = FakeSession()

    get_dynamodb_client(region="us-west-2", session=sess)

    cfg = sess.calls[0]["config"]
    assert cfg is not None
    assert cfg.retries["mode"] == "adaptive"


def test_get_dynamodb_client_can_instrument(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("AWS_LAMBDA_FUNCTION_NAME", raising=False)
    monkeypatch.delenv("AWS_EXECUTION_ENV", raising=False)
    metrics: list[AwsCallMetric] = []

    class ScriptedSession:
        def client(self, service_name: str, **kwargs: object) -> FakeDynamoDBClient:
            assert kwargs["config"] is None
            fake = FakeDynamoDBClient()
            fake.expect("scan", response={"Items": []})
            return fake

    client = get_dynamodb_client(region="eu-west-1", session=ScriptedSession(), metrics=metrics.append)
    client.scan(TableName="t")

    assert [m.operation for m in metrics] == ["scan"]


def test_metrics_apply_to_an_already_cached_client(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("AWS_LAMBDA_FUNCTION_NAME", raising=False)
    monkeypatch.delenv("AWS_EXECUTION_ENV", raising=False)
    created: list[FakeDynamoDBClient] = []

    class ScriptedSession:
        def client(self, service_name: str, **kwargs: object) -> FakeDynamoDBClient:
            fake = FakeDynamoDBClient()
            fake.expect("get_item", response={})
            created.append(fake)
            return fake

    sess = ScriptedSession()
    metrics: list[AwsCallMetric] = []

    plain = get_dynamodb_client(region="us-east-1", session=sess)
    instrumented = get_dynamodb_client(region="us-east-1", session=sess, metrics=metrics.append)
    instrumented.get_item(TableName="t", Key={})

    assert len(created) == 1
    assert instrumented.calls is plain.calls
    assert [m.operation for m in metrics] == ["get_item"]


def test_distinct_configs_get_distinct_clients() -> None:
    sess = FakeSession()
    fast = create_boto3_config(read_timeout=0.5)
    slow = create_boto3_config(read_timeout=10.0)

    c_fast = get_dynamodb_client(region="us-east-1", session=sess, config=fast)
    c_slow = get_dynamodb_client(region="us-east-1", session=sess, config=slow)

    assert c_fast is not c_slow
    assert get_dynamodb_client(region="us-east-1", session=sess, config=fast) is c_fast
    assert [call["config"] for call in sess.calls] == [fast, slow]
