"""Key naming strategies for JSON bodies.

Encoding renames model and dataclass field names with the full strategy, so
``server_message`` goes out as ``serverMessage``. Dictionary keys are data and
get the lighter treatment: under CamelCase only their leading capitals are
lowercased (``"Headers"`` -> ``"headers"``, ``"x-request-id"`` unchanged).
Decoding is type-aware: for models and dataclasses the wire name of each field
is computed with the same strategy and mapped back to the field name, so a
value encoded with a strategy decodes with that same strategy. Keys of
dict-typed targets are left exactly as received.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import types
import typing
from typing import Any, Union

from pydantic import BaseModel, RootModel
from pydantic.alias_generators import to_camel, to_snake

from onehttp.models import NamingStrategy, NullValueHandling


def apply_naming(name: str, strategy: NamingStrategy) -> str:
    """Return the wire name for the field *name* under *strategy*."""
    if strategy is NamingStrategy.CAMEL_CASE:
        # to_camel only understands snake_case input
        return to_camel(to_snake(name))
    if strategy is NamingStrategy.SNAKE_CASE:
        return to_snake(name)
    return name


def lower_leading(key: str) -> str:
    """Lowercase the leading run of capitals: "ID" -> "id", "URLValue" -> "urlValue"."""
    if not key or not key[0].isupper():
        return key
    chars = list(key)
    for i, char in enumerate(chars):
        if i == 1 and not char.isupper():
            break
        has_next = i + 1 < len(chars)
        if i > 0 and has_next and not chars[i + 1].isupper():
            if chars[i + 1].isspace():
                chars[i] = char.lower()
            break
        chars[i] = char.lower()
    return "".join(chars)


def apply_key_naming(key: str, strategy: NamingStrategy) -> str:
    """Return the wire name for the dictionary key *key* under *strategy*."""
    if strategy is NamingStrategy.CAMEL_CASE:
        return lower_leading(key)
    return apply_naming(key, strategy)


def _instance_fields(source: Any) -> dict[str, Any] | None:
    """Map each serialized key of a model or dataclass instance to its value."""
    if isinstance(source, BaseModel):
        fields: dict[str, Any] = {}
        for name, info in type(source).model_fields.items():
            value = getattr(source, name, None)
            fields[name] = value
            for alias in (info.alias, info.serialization_alias):
                if alias:
                    fields[alias] = value
        for name in type(source).model_computed_fields:
            fields[name] = getattr(source, name, None)
        return fields
    if dataclasses.is_dataclass(source) and not isinstance(source, type):
        return {f.name: getattr(source, f.name, None) for f in dataclasses.fields(source)}
    return None


def rename_keys(data: Any, strategy: NamingStrategy, source: Any = None) -> Any:
    """Recursively rename mapping keys in plain JSON data.

    *source* is the object *data* was serialized from. Where it is a model or
    dataclass the keys are field names; everywhere else they are dictionary keys.
    """
    if strategy is NamingStrategy.NONE:
        return data
    if isinstance(source, RootModel):
        return rename_keys(data, strategy, source.root)
    if isinstance(data, dict):
        fields = _instance_fields(source)
        if fields is not None:
            return {
                apply_naming(str(k), strategy): rename_keys(v, strategy, fields.get(k))
                for k, v in data.items()
            }
        sources: dict[Any, Any] = {}
        if isinstance(source, collections.abc.Mapping) and len(source) == len(data):
            sources = dict(zip(data, source.values()))
        return {
            apply_key_naming(str(k), strategy): rename_keys(v, strategy, sources.get(k))
            for k, v in data.items()
        }
    if isinstance(data, list):
        items: list[Any] = [None] * len(data)
        if isinstance(source, (list, tuple, set, frozenset)) and len(source) == len(data):
            items = list(source)
        return [rename_keys(item, strategy, src) for item, src in zip(data, items)]
    return data


def drop_nulls(data: Any) -> Any:
    """Recursively remove mapping entries whose value is None. List items are kept."""
    if isinstance(data, dict):
        return {k: drop_nulls(v) for k, v in data.items() if v is not None}
    if isinstance(data, list):
        return [drop_nulls(item) for item in data]
    return data


def prepare_outgoing(
    data: Any,
    strategy: NamingStrategy,
    null_value_handling: NullValueHandling,
    source: Any = None,
) -> Any:
    """Apply key naming and null handling to plain JSON data before writing it.

    *source* is the original value *data* was serialized from; see rename_keys.
    """
    data = rename_keys(data, strategy, source)
    if null_value_handling is NullValueHandling.IGNORE:
        data = drop_nulls(data)
    return data


def prepare_incoming(
    data: Any,
    target: Any,
    strategy: NamingStrategy,
    null_value_handling: NullValueHandling,
) -> Any:
    """Map parsed JSON data back onto *target*'s field names before validation."""
    if null_value_handling is NullValueHandling.IGNORE:
        data = drop_nulls(data)
    if strategy is NamingStrategy.NONE:
        return data
    return _unmap(data, target, strategy)


# ---------------------------------------------------------------------------
# Type-aware inverse mapping
# ---------------------------------------------------------------------------


def _field_types(target: Any) -> dict[str, tuple[str, Any]] | None:
    """Return {wire_name_source: (python_name, annotation)} for structured types.

    wire_name_source is the name the strategy is applied to: the field alias
    when one is declared, otherwise the attribute name. python_name is the
    key pydantic validation expects.
    """
    if isinstance(target, type) and issubclass(target, BaseModel):
        fields: dict[str, tuple[str, Any]] = {}
        for name, info in target.model_fields.items():
            key = info.validation_alias if isinstance(info.validation_alias, str) else info.alias
            expected = key or name
            fields[expected] = (expected, info.annotation)
        return fields
    if isinstance(target, type) and dataclasses.is_dataclass(target):
        try:
            hints = typing.get_type_hints(target)
        except (NameError, TypeError):
            hints = {}
        return {
            f.name: (f.name, hints.get(f.name, Any))
            for f in dataclasses.fields(target)
        }
    return None


def _unmap(data: Any, target: Any, strategy: NamingStrategy) -> Any:
    if data is None or target is Any:
        return data

    origin = typing.get_origin(target)

    if origin is Union or origin is types.UnionType:
        # Use the first structured member that could describe this value
        for member in typing.get_args(target):
            if member is type(None):
                continue
            if isinstance(data, dict) and _field_types(member) is not None:
                return _unmap(data, member, strategy)
            if isinstance(data, list) and typing.get_origin(member) in (list, tuple, set, frozenset):
                return _unmap(data, member, strategy)
        return data

    if origin is typing.Annotated:
        return _unmap(data, typing.get_args(target)[0], strategy)

    if isinstance(data, list):
        args = typing.get_args(target)
        if origin in (list, set, frozenset) and args:
            return [_unmap(item, args[0], strategy) for item in data]
        if origin is tuple and args:
            if len(args) == 2 and args[1] is Ellipsis:
                return [_unmap(item, args[0], strategy) for item in data]
            return [
                _unmap(item, args[i], strategy) if i < len(args) else item
                for i, item in enumerate(data)
            ]
        return data

    if not isinstance(data, dict):
        return data

    if origin is dict or origin is collections.abc.Mapping:
        args = typing.get_args(target)
        value_type = args[1] if len(args) == 2 else Any
        return {k: _unmap(v, value_type, strategy) for k, v in data.items()}

    fields = _field_types(target)
    if fields is None:
        return data

    by_wire_name = {
        apply_naming(source, strategy): (python_name, annotation)
        for source, (python_name, annotation) in fields.items()
    }
    result: dict[str, Any] = {}
    for key, value in data.items():
        match = by_wire_name.get(key)
        if match is None:
            result[key] = value
            continue
        python_name, annotation = match
        result[python_name] = _unmap(value, annotation, strategy)
    return result
