"""Type descriptors and annotated API routing used for generated API documentation."""

from __future__ import annotations

import collections.abc
import dataclasses
import enum
import types
import typing
from dataclasses import dataclass, field
from typing import Any, Callable, Optional


class TypeKind(enum.Enum):
    """The kinds of type a descriptor can describe."""

    STRING = "String"
    BOOL = "Bool"
    I64 = "I64"
    U64 = "U64"
    F64 = "F64"
    VEC = "Vec"
    OPTION = "Option"
    MAP = "Map"
    STRUCT = "Struct"
    ENUM = "Enum"


_PRIMITIVES = frozenset(
    {TypeKind.STRING, TypeKind.BOOL, TypeKind.I64, TypeKind.U64, TypeKind.F64}
)


@dataclass(frozen=True)
class FieldDescriptor:
    """A named field of a struct or of an enum variant."""

    name: str
    field_type: TypeDescriptor
    optional: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "field_type": self.field_type.to_dict(),
            "optional": self.optional,
        }


@dataclass(frozen=True)
class VariantDescriptor:
    """An enum variant; ``fields`` is None for a unit variant."""

    name: str
    fields: Optional[tuple[FieldDescriptor, ...]] = None

    def __post_init__(self) -> None:
        if self.fields is not None:
            object.__setattr__(self, "fields", tuple(self.fields))

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "fields": None
            if self.fields is None
            else [f.to_dict() for f in self.fields],
        }


@dataclass(frozen=True)
class TypeDescriptor:
    """A recursive description of a type's structure."""

    kind: TypeKind
    inner: Optional[TypeDescriptor] = None
    key: Optional[TypeDescriptor] = None
    value: Optional[TypeDescriptor] = None
    name: Optional[str] = None
    fields: tuple[FieldDescriptor, ...] = ()
    variants: tuple[VariantDescriptor, ...] = ()

    def __post_init__(self) -> None:
        kind = TypeKind(self.kind)
        object.__setattr__(self, "kind", kind)
        object.__setattr__(self, "fields", tuple(self.fields))
        object.__setattr__(self, "variants", tuple(self.variants))
        if kind in (TypeKind.VEC, TypeKind.OPTION):
            if not isinstance(self.inner, TypeDescriptor):
                raise ValueError(f"{kind.value} descriptor needs an inner descriptor")
        elif kind is TypeKind.MAP:
            if not isinstance(self.key, TypeDescriptor) or not isinstance(
                self.value, TypeDescriptor
            ):
                raise ValueError("Map descriptor needs key and value descriptors")
        elif kind in (TypeKind.STRUCT, TypeKind.ENUM):
            if self.name is None:
                raise ValueError(f"{kind.value} descriptor needs a name")

    @classmethod
    def vec(cls, inner: TypeDescriptor) -> TypeDescriptor:
        return cls(TypeKind.VEC, inner=inner)

    @classmethod
    def option(cls, inner: TypeDescriptor) -> TypeDescriptor:
        return cls(TypeKind.OPTION, inner=inner)

    @classmethod
    def map(cls, key: TypeDescriptor, value: TypeDescriptor) -> TypeDescriptor:
        return cls(TypeKind.MAP, key=key, value=value)

    @classmethod
    def struct(cls, name: str, fields: typing.Iterable[FieldDescriptor]) -> TypeDescriptor:
        return cls(TypeKind.STRUCT, name=name, fields=tuple(fields))

    @classmethod
    def enum(
        cls, name: str, variants: typing.Iterable[VariantDescriptor]
    ) -> TypeDescriptor:
        return cls(TypeKind.ENUM, name=name, variants=tuple(variants))

    def to_dict(self) -> dict[str, Any]:
        """Adjacently tagged form: ``{"kind": ..., "details": ...}``."""
        kind = self.kind
        if kind in _PRIMITIVES:
            return {"kind": kind.value}
        details: Any
        if kind in (TypeKind.VEC, TypeKind.OPTION):
            details = self.inner.to_dict()
        elif kind is TypeKind.MAP:
            details = [self.key.to_dict(), self.value.to_dict()]
        elif kind is TypeKind.STRUCT:
            details = {"name": self.name, "fields": [f.to_dict() for f in self.fields]}
        else:
            details = {
                "name": self.name,
                "variants": [v.to_dict() for v in self.variants],
            }
        return {"kind": kind.value, "details": details}


_SCALARS = {
    str: TypeKind.STRING,
    bool: TypeKind.BOOL,
    int: TypeKind.I64,
    float: TypeKind.F64,
}

_SEQUENCES = (list, collections.abc.Sequence, collections.abc.MutableSequence)
_MAPPINGS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)


def schema_of(tp: Any) -> TypeDescriptor:
    """Describe a Python type annotation.

    ``str``, ``bool``, ``int`` and ``float`` map to String, Bool, I64 and F64;
    ``Annotated[int, TypeKind.U64]`` selects another primitive kind. Lists,
    optionals and dicts map to Vec, Option and Map; classes carrying a
    ``__schema__`` hook describe themselves.
    """
    if isinstance(tp, TypeDescriptor):
        return tp
    if isinstance(tp, TypeKind):
        if tp in _PRIMITIVES:
            return TypeDescriptor(tp)
        raise TypeError(f"{tp.value} is not a primitive kind")
    if isinstance(tp, type):
        hook = getattr(tp, "__schema__", None)
        if hook is not None:
            return hook()
        if tp in _SCALARS:
            return TypeDescriptor(_SCALARS[tp])

    origin = typing.get_origin(tp)
    args = typing.get_args(tp)

    if origin is typing.Annotated:
        base, *metadata = args
        for item in metadata:
            if isinstance(item, TypeKind):
                return schema_of(item)
        return schema_of(base)

    if origin is typing.Union or origin is types.UnionType:
        present = [arg for arg in args if arg is not type(None)]
        if len(present) == 1 and len(present) < len(args):
            return TypeDescriptor.option(schema_of(present[0]))
        raise TypeError(f"unsupported union type: {tp!r}")

    if origin in _SEQUENCES and len(args) == 1:
        return TypeDescriptor.vec(schema_of(args[0]))

    if origin in _MAPPINGS and len(args) == 2:
        return TypeDescriptor.map(schema_of(args[0]), schema_of(args[1]))

    raise TypeError(f"no schema for type {tp!r}")


class Method(enum.Enum):
    """HTTP methods."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"


_PARAM_LOCATIONS = ("Query", "Body", "None")


@dataclass(frozen=True)
class RequestParams:
    """Where an endpoint takes its parameters: ``Query``, ``Body`` or ``None``."""

    location: str = "None"
    descriptor: Optional[TypeDescriptor] = None

    def __post_init__(self) -> None:
        if self.location not in _PARAM_LOCATIONS:
            raise ValueError(f"unknown parameter location: {self.location!r}")
        if self.location == "None":
            if self.descriptor is not None:
                raise ValueError("parameter location None takes no descriptor")
        elif not isinstance(self.descriptor, TypeDescriptor):
            raise ValueError(f"parameter location {self.location} needs a descriptor")

    def to_dict(self) -> Any:
        if self.location == "None":
            return "None"
        return {self.location: self.descriptor.to_dict()}


@dataclass(frozen=True)
class ApiEndpoint:
    """Path, method, description and types of one API endpoint."""

    path: str
    method: Method
    description: str
    params: RequestParams = field(default_factory=RequestParams)
    response_type: Optional[TypeDescriptor] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", Method(self.method))

    def with_response_type(self, tp: Any) -> ApiEndpoint:
        return dataclasses.replace(self, response_type=schema_of(tp))

    def with_body_type(self, tp: Any) -> ApiEndpoint:
        return dataclasses.replace(self, params=RequestParams("Body", schema_of(tp)))

    def with_query_type(self, tp: Any) -> ApiEndpoint:
        return dataclasses.replace(self, params=RequestParams("Query", schema_of(tp)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "method": self.method.value,
            "description": self.description,
            "params": self.params.to_dict(),
            "response_type": None
            if self.response_type is None
            else self.response_type.to_dict(),
        }


class AnnotatedRouter:
    """Registers route handlers while collecting endpoint annotations."""

    def __init__(self) -> None:
        self._routes: dict[str, dict[Method, Callable[..., Any]]] = {}
        self._annotations: list[ApiEndpoint] = []

    def route(
        self,
        path: str,
        handler: Callable[..., Any],
        method: Method,
        description: str,
        response_type: Any,
    ) -> AnnotatedRouter:
        """Add a handler for ``method`` on ``path``, documented by its response type."""
        if not path.startswith("/"):
            raise ValueError("Paths must start with a `/`")
        if not callable(handler):
            raise TypeError("handler must be callable")
        endpoint = ApiEndpoint(path, Method(method), description).with_response_type(
            response_type
        )
        handlers = self._routes.get(path, {})
        if endpoint.method in handlers:
            raise ValueError(
                f"Overlapping method route: {endpoint.method.value} {path}"
            )
        self._routes.setdefault(path, {})[endpoint.method] = handler
        self._annotations.append(endpoint)
        return self

    def build(self) -> dict[str, dict[Method, Callable[..., Any]]]:
        """The routing table: path to a mapping of method to handler."""
        return {path: dict(handlers) for path, handlers in self._routes.items()}

    def annotations(self) -> list[ApiEndpoint]:
        return list(self._annotations)