from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .codec import Codec
from .errors import ValidationError
from .model import TableMetadata


class AttributeAction(enum.StrEnum):
    PUT = "PUT"
    ADD = "ADD"
    DELETE = "DELETE"


@dataclass(frozen=True)
class Put:
    """Replace the attribute; ``None`` removes it."""

    value: Any


@dataclass(frozen=True)
class Add:
    """Add to a number attribute or union into a set attribute."""

    value: Any


@dataclass(frozen=True)
class Delete:
    """Remove the attribute, or with ``value`` remove those elements from a set."""

    value: Any = None


type AttributeChange = Put | Add | Delete


def coerce_change(field_name: str, change: Any) -> AttributeChange:
    if isinstance(change, (Put, Add, Delete)):
        return change

    if not isinstance(change, tuple) or len(change) != 2:
        raise ValidationError(f"change for {field_name} must be an AttributeChange or an (action, value) tuple")

    action, value = change
    try:
        action = AttributeAction(str(action).upper())
    except ValueError as err:
        raise ValidationError(f"unsupported update action for {field_name}: {action!r}") from err

    if action is AttributeAction.PUT:
        return Put(value)
    if action is AttributeAction.ADD:
        return Add(value)
    return Delete(value)


def build_update_request[T](
    metadata: TableMetadata[T],
    codec: Codec[T],
    hash_key: Any,
    changes: Mapping[str, Any],
) -> dict[str, Any]:
    """Build one UpdateItem request from the declared subset of ``changes``.

    Entries for undeclared properties are dropped. When no declared change
    remains the request carries only the key, which still creates a missing
    item.
    """
    names: dict[str, str] = {}
    values: dict[str, Any] = {}
    set_parts: list[str] = []
    remove_parts: list[str] = []
    add_parts: list[str] = []
    delete_parts: list[str] = []

    counter = 0

    def value_ref(attr_value: Any) -> str:
        nonlocal counter
        counter += 1
        ref = f":u{counter}"
        values[ref] = attr_value
        return ref

    for field_name, raw_change in changes.items():
        attr_def = metadata.declared(field_name)
        if attr_def is None or raw_change is None:
            continue
        if attr_def.hash_key:
            raise ValidationError(f"cannot update key field: {field_name}")

        change = coerce_change(field_name, raw_change)
        ref = f"#u_{field_name}"
        names[ref] = attr_def.attribute_name

        if isinstance(change, Put):
            if change.value is None:
                remove_parts.append(ref)
            else:
                set_parts.append(f"{ref} = {value_ref(codec.serialize_value(attr_def, change.value))}")
            continue

        if isinstance(change, Add):
            if change.value is None:
                raise ValidationError(f"ADD requires a value: {field_name}")
            add_parts.append(f"{ref} {value_ref(codec.serialize_value(attr_def, change.value))}")
            continue

        if change.value is None:
            remove_parts.append(ref)
        else:
            delete_parts.append(f"{ref} {value_ref(codec.serialize_value(attr_def, change.value))}")

    expr_parts: list[str] = []
    if set_parts:
        expr_parts.append("SET " + ", ".join(set_parts))
    if remove_parts:
        expr_parts.append("REMOVE " + ", ".join(remove_parts))
    if add_parts:
        expr_parts.append("ADD " + ", ".join(add_parts))
    if delete_parts:
        expr_parts.append("DELETE " + ", ".join(delete_parts))

    req: dict[str, Any] = {"TableName": metadata.table_name, "Key": codec.serialize_key(hash_key)}
    if not expr_parts:
        return req

    req["UpdateExpression"] = " ".join(expr_parts)
    req["ExpressionAttributeNames"] = names
    if values:
        req["ExpressionAttributeValues"] = values
    return req
