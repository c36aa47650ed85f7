from __future__ import annotations

import json
import types
from collections.abc import Mapping
from dataclasses import fields, is_dataclass
from decimal import Decimal
from typing import Any, Protocol, Union, cast, get_args, get_origin, get_type_hints

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

from .errors import ValidationError
from .model import AttributeDefinition, TableMetadata

type RawItem = dict[str, Any]


class Codec[T](Protocol):
    def serialize(self, record: T) -> RawItem: ...

    def serialize_key(self, hash_key: Any) -> RawItem: ...

    def serialize_value(self, attr_def: AttributeDefinition, value: Any) -> Any: ...

    def deserialize(self, metadata: TableMetadata[T], item: Mapping[str, Any]) -> T: ...


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if value is False:
        return True
    if value == 0:
        return True
    if isinstance(value, (str, bytes, bytearray)) and len(value) == 0:
        return True
    if isinstance(value, (list, dict, set, frozenset, tuple)) and len(value) == 0:
        return True
    return False


def _coerce_value(value: Any, annotation: Any) -> Any:
    if value is None:
        return None

    if annotation is int and isinstance(value, Decimal):
        return int(value)
    if annotation is float and isinstance(value, Decimal):
        return float(value)

    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return _coerce_value(value, args[0])
        return value

    if origin in (set, frozenset) and isinstance(value, (set, frozenset)):
        (elem_type,) = get_args(annotation) or (Any,)
        coerced = {_coerce_value(v, elem_type) for v in value}
        return frozenset(coerced) if origin is frozenset else coerced

    return value


def _field_types(model_cls: type[Any]) -> dict[str, Any]:
    try:
        return get_type_hints(model_cls)
    except (NameError, TypeError):
        return dict(getattr(model_cls, "__annotations__", {}))


class DataclassCodec[T]:
    """Default codec mapping dataclass records to DynamoDB attribute values."""

    def __init__(self, metadata: TableMetadata[T]) -> None:
        self._metadata = metadata
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    def serialize_value(self, attr_def: AttributeDefinition, value: Any) -> Any:
        if attr_def.converter is not None and value is not None:
            value = attr_def.converter.to_dynamodb(value)

        if attr_def.set and isinstance(value, (set, frozenset)) and len(value) == 0:
            return self._serializer.serialize(None)

        if attr_def.json and value is not None:
            value = json.dumps(value, separators=(",", ":"), sort_keys=True)

        if isinstance(value, float):
            value = Decimal(str(value))

        try:
            return self._serializer.serialize(value)
        except TypeError as err:
            raise ValidationError(f"cannot serialize {attr_def.python_name}: {err}") from err

    def serialize_key(self, hash_key: Any) -> RawItem:
        if hash_key is None:
            raise ValidationError("hash key is required")
        attr_def = self._metadata.hash_key
        return {attr_def.attribute_name: self.serialize_value(attr_def, hash_key)}

    def serialize(self, record: T) -> RawItem:
        if not is_dataclass(record) or isinstance(record, type):
            raise ValidationError("record must be a dataclass instance")

        out: RawItem = {}
        for field_name, attr_def in self._metadata.attributes.items():
            value = getattr(record, field_name)
            if attr_def.omitempty and _is_empty(value):
                continue
            out[attr_def.attribute_name] = self.serialize_value(attr_def, value)

        hash_name = self._metadata.hash_key_name
        if hash_name not in out or out[hash_name] == {"NULL": True}:
            raise ValidationError("missing hash key")

        return out

    def deserialize(self, metadata: TableMetadata[T], item: Mapping[str, Any]) -> T:
        model_cls = metadata.model_type
        model_annotations = _field_types(model_cls)

        kwargs: dict[str, Any] = {}
        for dc_field in fields(cast(Any, model_cls)):
            attr_def = metadata.declared(dc_field.name)
            if attr_def is None or attr_def.attribute_name not in item:
                continue

            raw = self._deserializer.deserialize(item[attr_def.attribute_name])
            if attr_def.json and isinstance(raw, str):
                raw = json.loads(raw)
            if attr_def.converter is not None and raw is not None:
                raw = attr_def.converter.from_dynamodb(raw)

            kwargs[dc_field.name] = _coerce_value(raw, model_annotations.get(dc_field.name, Any))

        try:
            return model_cls(**kwargs)
        except TypeError as err:
            raise ValidationError(str(err)) from err
