from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, cast

import boto3
from botocore.config import Config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AwsCallMetric:
    service: str
    operation: str
    seconds: float
    ok: bool


def is_lambda_environment(environ: Mapping[str, str] = os.environ) -> bool:
    return bool(
        environ.get("AWS_LAMBDA_FUNCTION_NAME") or "AWS_Lambda" in (environ.get("AWS_EXECUTION_ENV") or "")
    )


def create_boto3_config(
    *,
    connect_timeout: float = 1.0,
    read_timeout: float = 3.0,
    max_attempts: int = 3,
) -> Config:
    """botocore config for the store client.

    botocore's own retries cover throttled and failed requests; unprocessed
    batch entries are retried separately by ``RetryPolicy``.
    """
    return Config(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        retries={"max_attempts": max_attempts, "mode": "adaptive"},
    )


class _InstrumentedClient:
    def __init__(self, client: Any, service: str, on_call: Callable[[AwsCallMetric], None]) -> None:
        self._client = client
        self._service = service
        self._on_call = on_call

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._client, name)
        if name.startswith("_") or not callable(attr):
            return attr

        def wrapped(*args: Any, **kwargs: Any) -> Any:
            start = time.monotonic()
            ok = False
            try:
                out = attr(*args, **kwargs)
                ok = True
                return out
            finally:
                seconds = time.monotonic() - start
                logger.debug(f"{self._service}.{name} ok={ok} in {seconds:.3f}s")
                self._on_call(AwsCallMetric(service=self._service, operation=name, seconds=seconds, ok=ok))

        return wrapped


def instrument_boto3_client(
    client: Any,
    *,
    service: str,
    on_call: Callable[[AwsCallMetric], None],
) -> Any:
    return _InstrumentedClient(client, service, on_call)


# (region, endpoint_url, id(session), id(config)) -> (client, session, config); the entry keeps
# session and config alive so their ids stay unique while cached.
_clients: dict[tuple[str | None, str | None, int | None, int | None], tuple[Any, Any, Config | None]] = {}


def get_dynamodb_client(
    *,
    region: str | None = None,
    endpoint_url: str | None = None,
    config: Config | None = None,
    session: Any | None = None,
    metrics: Callable[[AwsCallMetric], None] | None = None,
) -> Any:
    """Return a cached DynamoDB client, shared by every accessor that asks for it.

    Clients are cached per region, endpoint, session and config. ``metrics``
    wraps the cached client on every call, so instrumented and plain callers
    share one connection pool.
    """
    key = (
        region,
        endpoint_url,
        None if session is None else id(session),
        None if config is None else id(config),
    )
    cached = _clients.get(key)
    if cached is not None:
        client = cached[0]
    else:
        effective = config
        if effective is None and is_lambda_environment():
            effective = create_boto3_config()

        sess = session or boto3.session.Session(region_name=region)
        client = cast(Any, sess).client("dynamodb", region_name=region, endpoint_url=endpoint_url, config=effective)
        _clients[key] = (client, session, config)

    if metrics is not None:
        return instrument_boto3_client(client, service="dynamodb", on_call=metrics)
    return client


def _reset_clients_for_tests() -> None:
    _clients.clear()
