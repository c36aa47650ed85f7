from __future__ import annotations

import json
import logging
import re
from importlib.resources import files
from typing import TYPE_CHECKING, Any

from .accessor import HashPrimaryKey
from .batch import BATCH_GET_LIMIT, BATCH_WRITE_LIMIT, BatchReader, BatchWriter
from .cancellation import CancelScope
from .codec import Codec, DataclassCodec
from .errors import (
    BatchIncompleteError,
    BatchProgress,
    DynakeyPyError,
    NotFoundError,
    OperationCancelledError,
    TransportError,
    ValidationError,
)
from .model import AttributeConverter, AttributeDefinition, ModelDefinitionError, TableMetadata, dynakey_field
from .retry import RetryPolicy
from .scan import ScanPage, SegmentedScanner
from .update import Add, AttributeAction, AttributeChange, Delete, Put

if TYPE_CHECKING:
    from .runtime import (
        AwsCallMetric,
        create_boto3_config,
        get_dynamodb_client,
        instrument_boto3_client,
        is_lambda_environment,
    )

logging.getLogger(__name__).addHandler(logging.NullHandler())


def _read_repo_version() -> str:
    try:
        data = json.loads(files(__package__).joinpath("version.json").read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return "0.0.0"

    version = data.get("version")
    return version if isinstance(version, str) and version else "0.0.0"


def _normalize_repo_version(repo_version: str) -> str:
    match = re.match(r"^(\d+\.\d+\.\d+)-rc\.?([0-9]+)$", repo_version)
    if match:
        return f"{match.group(1)}rc{match.group(2)}"
    return repo_version


__repo_version__ = _read_repo_version()
__version__ = _normalize_repo_version(__repo_version__)


def __getattr__(name: str) -> Any:
    if name in {
        "AwsCallMetric",
        "create_boto3_config",
        "get_dynamodb_client",
        "instrument_boto3_client",
        "is_lambda_environment",
    }:
        from . import runtime

        return getattr(runtime, name)
    raise AttributeError(name)


__all__ = [
    "Add",
    "AttributeAction",
    "AttributeChange",
    "AttributeConverter",
    "AttributeDefinition",
    "AwsCallMetric",
    "BATCH_GET_LIMIT",
    "BATCH_WRITE_LIMIT",
    "BatchIncompleteError",
    "BatchProgress",
    "BatchReader",
    "BatchWriter",
    "CancelScope",
    "Codec",
    "create_boto3_config",
    "DataclassCodec",
    "Delete",
    "DynakeyPyError",
    "dynakey_field",
    "get_dynamodb_client",
    "HashPrimaryKey",
    "instrument_boto3_client",
    "is_lambda_environment",
    "ModelDefinitionError",
    "NotFoundError",
    "OperationCancelledError",
    "Put",
    "RetryPolicy",
    "ScanPage",
    "SegmentedScanner",
    "TableMetadata",
    "TransportError",
    "ValidationError",
    "__repo_version__",
    "__version__",
]
