"""Class decorator that gives dataclasses, plain classes and enums a schema."""

from __future__ import annotations

import collections.abc
import dataclasses
import enum
import typing
from typing import Any, Callable

from rowanweb.schema import (
    FieldDescriptor,
    TypeDescriptor,
    VariantDescriptor,
    schema_of,
)


class SchemaDeriveError(TypeError):
    """Raised when a schema cannot be derived for the given type."""


def _is_type_like(item: Any) -> bool:
    return isinstance(item, type) or typing.get_origin(item) is not None


def _is_classvar(annotation: Any) -> bool:
    return annotation is typing.ClassVar or typing.get_origin(annotation) is typing.ClassVar


def _annotations(cls: type) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    for klass in reversed(cls.__mro__):
        if klass is object:
            continue
        for name, annotation in klass.__dict__.get("__annotations__", {}).items():
            merged[name] = annotation
    return merged


def _class_fields(cls: type) -> list[FieldDescriptor]:
    if dataclasses.is_dataclass(cls):
        pairs = [(f.name, f.type) for f in dataclasses.fields(cls)]
    else:
        pairs = [
            (name, annotation)
            for name, annotation in _annotations(cls).items()
            if not _is_classvar(annotation)
        ]
    return [FieldDescriptor(name, schema_of(tp), False) for name, tp in pairs]


def _struct_builder(cls: type) -> Callable[[], TypeDescriptor]:
    if issubclass(cls, tuple):
        raise SchemaDeriveError(
            "Deriving `Schema` for tuple structs is not supported."
        )

    def build() -> TypeDescriptor:
        return TypeDescriptor.struct(cls.__name__, _class_fields(cls))

    return build


def _variant_builder(member: enum.Enum) -> Callable[[], VariantDescriptor]:
    name = member.name
    value = member.value

    if isinstance(value, type) and dataclasses.is_dataclass(value):
        return lambda: VariantDescriptor(name, tuple(_class_fields(value)))

    if isinstance(value, collections.abc.Mapping) and all(
        isinstance(key, str) for key in value
    ):
        items = list(value.items())
        return lambda: VariantDescriptor(
            name,
            tuple(FieldDescriptor(key, schema_of(tp), False) for key, tp in items),
        )

    if isinstance(value, tuple) and value and all(_is_type_like(v) for v in value):
        raise SchemaDeriveError(
            "Deriving `Schema` for tuple variants is not supported yet."
        )

    return lambda: VariantDescriptor(name, None)


def _enum_builder(cls: type[enum.Enum]) -> Callable[[], TypeDescriptor]:
    variant_builders = [_variant_builder(member) for member in cls]

    def build() -> TypeDescriptor:
        return TypeDescriptor.enum(cls.__name__, [b() for b in variant_builders])

    return build


def schema_derive(cls: type) -> type:
    """Attach a ``__schema__`` hook to ``cls`` and return it.

    Dataclasses and annotated classes become structs; a class without
    annotations becomes a struct with no fields. Enum members become variants:
    a member whose value is a dataclass or a mapping of field names to types
    is a variant with named fields, any other member is a unit variant.
    Tuple structs (tuple subclasses) and tuple variants are rejected.
    """
    if not isinstance(cls, type):
        raise SchemaDeriveError("`Schema` can only be derived for classes.")
    if issubclass(cls, enum.Enum):
        builder = _enum_builder(cls)
    else:
        builder = _struct_builder(cls)

    def __schema__(klass: type) -> TypeDescriptor:
        return builder()

    cls.__schema__ = classmethod(__schema__)
    return cls