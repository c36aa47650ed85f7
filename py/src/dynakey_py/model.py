from __future__ import annotations

from collections.abc import Mapping
from dataclasses import MISSING, dataclass, field, fields, is_dataclass
from typing import Any, Protocol, cast, overload


class ModelDefinitionError(ValueError):
    pass


class AttributeConverter(Protocol):
    def to_dynamodb(self, value: Any) -> Any: ...

    def from_dynamodb(self, value: Any) -> Any: ...


@dataclass(frozen=True)
class AttributeDefinition:
    python_name: str
    attribute_name: str
    hash_key: bool
    omitempty: bool
    set: bool
    json: bool
    converter: AttributeConverter | None = None


@overload
def dynakey_field(
    *,
    name: str | None = None,
    hash_key: bool = False,
    omitempty: bool = False,
    set_: bool = False,
    json: bool = False,
    converter: AttributeConverter | None = None,
    ignore: bool = False,
) -> Any: ...


@overload
def dynakey_field(
    *,
    name: str | None = None,
    hash_key: bool = False,
    omitempty: bool = False,
    set_: bool = False,
    json: bool = False,
    converter: AttributeConverter | None = None,
    ignore: bool = False,
    default: Any,
) -> Any: ...


@overload
def dynakey_field(
    *,
    name: str | None = None,
    hash_key: bool = False,
    omitempty: bool = False,
    set_: bool = False,
    json: bool = False,
    converter: AttributeConverter | None = None,
    ignore: bool = False,
    default_factory: Any,
) -> Any: ...


def dynakey_field(
    *,
    name: str | None = None,
    hash_key: bool = False,
    omitempty: bool = False,
    set_: bool = False,
    json: bool = False,
    converter: AttributeConverter | None = None,
    ignore: bool = False,
    default: Any = MISSING,
    default_factory: Any = MISSING,
) -> Any:
    """Declare a dataclass field as a stored attribute.

    ``name`` is the attribute name in the table (defaults to the field name).
    Exactly one field of a model sets ``hash_key=True``.
    """
    if default is not MISSING and default_factory is not MISSING:
        raise ValueError("dynakey_field: cannot set both default and default_factory")
    if hash_key and ignore:
        raise ValueError("dynakey_field: the hash key cannot be ignored")

    opts: dict[str, Any] = {
        "hash_key": hash_key,
        "omitempty": omitempty,
        "set": set_,
        "json": json,
        "converter": converter,
        "ignore": ignore,
    }
    if name is not None:
        opts["name"] = name

    return field(default=default, default_factory=default_factory, metadata={"dynakey": opts})


@dataclass(frozen=True)
class TableMetadata[T]:
    """Immutable description of a hash-keyed table.

    ``attributes`` is keyed by the dataclass (property) name; each entry maps
    to the attribute name used in the store.
    """

    model_type: type[T]
    table_name: str
    hash_key: AttributeDefinition
    attributes: Mapping[str, AttributeDefinition]

    @property
    def hash_key_name(self) -> str:
        return self.hash_key.attribute_name

    def declared(self, python_name: str) -> AttributeDefinition | None:
        return self.attributes.get(python_name)

    @classmethod
    def from_dataclass(cls, model_type: type[T], *, table_name: str) -> TableMetadata[T]:
        if not is_dataclass(model_type):
            raise ModelDefinitionError("model_type must be a dataclass")
        if not table_name:
            raise ModelDefinitionError("table_name is required")

        attributes: dict[str, AttributeDefinition] = {}
        hash_fields: list[str] = []
        seen_names: set[str] = set()

        for dc_field in fields(model_type):
            opts = cast(dict[str, Any], dc_field.metadata.get("dynakey", {}))
            if bool(opts.get("ignore", False)):
                continue

            attribute_name = cast(str, opts.get("name", dc_field.name))
            if attribute_name in seen_names:
                raise ModelDefinitionError(f"duplicate attribute name: {attribute_name}")
            seen_names.add(attribute_name)

            is_hash = bool(opts.get("hash_key", False))
            if is_hash:
                hash_fields.append(dc_field.name)

            attributes[dc_field.name] = AttributeDefinition(
                python_name=dc_field.name,
                attribute_name=attribute_name,
                hash_key=is_hash,
                omitempty=bool(opts.get("omitempty", False)),
                set=bool(opts.get("set", False)),
                json=bool(opts.get("json", False)),
                converter=cast(AttributeConverter | None, opts.get("converter")),
            )

        if len(hash_fields) != 1:
            raise ModelDefinitionError(f"model must define exactly one hash key field (found {len(hash_fields)})")

        hash_attr = attributes[hash_fields[0]]
        if hash_attr.omitempty:
            raise ModelDefinitionError(f"hash key field cannot be omitempty: {hash_attr.python_name}")

        return cls(
            model_type=model_type,
            table_name=table_name,
            hash_key=hash_attr,
            attributes=attributes,
        )
