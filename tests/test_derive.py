import enum
from dataclasses import dataclass
from typing import Annotated, ClassVar, NamedTuple, Optional

import pytest

from rowanweb.derive import SchemaDeriveError, schema_derive
from rowanweb.schema import TypeKind, schema_of

U64 = Annotated[int, TypeKind.U64]


@schema_derive
@dataclass
class Material:
    id: U64
    title: str


@schema_derive
@dataclass
class RecentMaterialsResponse:
    materials: list[Material]


def test_struct_derivation():
    descriptor = schema_of(Material)
    assert descriptor.kind is TypeKind.STRUCT
    assert descriptor.name == "Material"
    assert [f.name for f in descriptor.fields] == ["id", "title"]
    assert descriptor.fields[0].field_type.kind is TypeKind.U64
    assert descriptor.fields[1].field_type.kind is TypeKind.STRING
    assert all(f.optional is False for f in descriptor.fields)


def test_nested_struct_through_vec():
    descriptor = schema_of(RecentMaterialsResponse)
    assert descriptor.name == "RecentMaterialsResponse"
    assert len(descriptor.fields) == 1
    materials = descriptor.fields[0]
    assert materials.name == "materials"
    assert materials.field_type.kind is TypeKind.VEC
    assert materials.field_type.inner == schema_of(Material)


def test_decorator_returns_same_class():
    class Plain:
        pass

    assert schema_derive(Plain) is Plain


def test_unit_struct_has_no_fields():
    @schema_derive
    class Marker:
        pass

    descriptor = schema_of(Marker)
    assert descriptor.kind is TypeKind.STRUCT
    assert descriptor.name == "Marker"
    assert descriptor.fields == ()


def test_plain_annotated_class_skips_classvars():
    @schema_derive
    class Stats:
        views: int
        likes: Optional[int]
        registry: ClassVar[int] = 0

    descriptor = schema_of(Stats)
    assert [f.name for f in descriptor.fields] == ["views", "likes"]
    assert descriptor.fields[1].field_type.kind is TypeKind.OPTION


def test_enum_derivation():
    @schema_derive
    class TestEnum(enum.Enum):
        Unit = 1
        Named = {"value": str, "count": U64}

    descriptor = schema_of(TestEnum)
    assert descriptor.kind is TypeKind.ENUM
    assert descriptor.name == "TestEnum"
    assert len(descriptor.variants) == 2

    assert descriptor.variants[0].name == "Unit"
    assert descriptor.variants[0].fields is None

    named = descriptor.variants[1]
    assert named.name == "Named"
    assert len(named.fields) == 2
    assert named.fields[0].name == "value"
    assert named.fields[0].field_type.kind is TypeKind.STRING
    assert named.fields[1].name == "count"
    assert named.fields[1].field_type.kind is TypeKind.U64


def test_enum_variant_from_dataclass():
    @dataclass
    class Payload:
        reason: str

    @schema_derive
    class Status(enum.Enum):
        Active = "active"
        Blocked = Payload

    descriptor = schema_of(Status)
    assert [v.name for v in descriptor.variants] == ["Active", "Blocked"]
    assert descriptor.variants[1].fields[0].name == "reason"
    assert descriptor.variants[1].fields[0].field_type.kind is TypeKind.STRING


def test_derived_to_dict_round_trip_kind():
    data = schema_of(Material).to_dict()
    assert data["kind"] == TypeKind.STRUCT.value
    assert data["details"]["name"] == "Material"
    assert [f["name"] for f in data["details"]["fields"]] == ["id", "title"]


def test_tuple_struct_rejected():
    class Point(NamedTuple):
        x: int
        y: int

    with pytest.raises(SchemaDeriveError):
        schema_derive(Point)


def test_tuple_variant_rejected():
    class Shape(enum.Enum):
        Pair = (int, str)

    with pytest.raises(SchemaDeriveError):
        schema_derive(Shape)


def test_non_class_rejected():
    with pytest.raises(SchemaDeriveError):
        schema_derive(42)


def test_unsupported_field_type_raises_when_described():
    @schema_derive
    @dataclass
    class Blob:
        data: bytes

    with pytest.raises(TypeError):
        schema_of(Blob)