"""Row models for the blog database tables and their relations."""

import dataclasses
import enum
import functools
import sqlite3
import typing
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, ClassVar, Iterator, Mapping, Optional, Union


class RelationKind(enum.Enum):
    """How two entities are related."""

    BELONGS_TO = "belongs_to"
    HAS_MANY = "has_many"


@dataclass(frozen=True)
class Comment:
    """A comment on a note or an essay."""

    table_name: ClassVar[str] = "comments"

    id: int
    note_metadata_id: Optional[int]
    essay_id: Optional[int]
    visitor_profile_id: int
    content: str
    parent_id: Optional[int]
    created_at: datetime
    is_approved: bool


@dataclass(frozen=True)
class Essay:
    """A short essay."""

    table_name: ClassVar[str] = "essays"

    id: int
    title: str
    content: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class FriendsLink:
    """A link to a friend's site."""

    table_name: ClassVar[str] = "friends_links"

    id: int
    name: str
    url: str
    description: Optional[str]
    logo_url: Optional[str]
    sort_order: int
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class Like:
    """A like given to a note from one IP address."""

    table_name: ClassVar[str] = "likes"

    id: int
    note_metadata_id: int
    ip_address: str


@dataclass(frozen=True)
class NoteMetadata:
    """Metadata of a published note."""

    table_name: ClassVar[str] = "notes_metadata"

    id: int
    file_id: uuid.UUID
    slug: str
    title: str
    summary: Optional[str]
    published_at: datetime
    updated_at: datetime
    views: int
    likes_count: int
    tags: Optional[str]
    category: Optional[str]


@dataclass(frozen=True)
class VisitorProfile:
    """A visitor identified by a cookie."""

    table_name: ClassVar[str] = "visitor_profiles"

    id: int
    cookie_id: str
    name: str
    ip: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class Relation:
    """A relation from one entity to another.

    For ``BELONGS_TO`` the foreign key ``from_column`` of the owning entity
    points at ``to_column`` of ``target``; for ``HAS_MANY`` the owner's
    ``from_column`` is referenced by ``to_column`` of ``target``.
    """

    name: str
    kind: RelationKind
    target: type
    from_column: str
    to_column: str
    on_update: Optional[str] = None
    on_delete: Optional[str] = None


def _belongs_to(name: str, target: type, column: str, on_delete: str) -> Relation:
    return Relation(
        name, RelationKind.BELONGS_TO, target, column, "id", "NoAction", on_delete
    )


def _has_many(name: str, target: type, column: str) -> Relation:
    return Relation(name, RelationKind.HAS_MANY, target, "id", column)


_RELATIONS: dict = {
    Comment: (
        _belongs_to("SelfRef", Comment, "parent_id", "SetNull"),
        _belongs_to("Essays", Essay, "essay_id", "Cascade"),
        _belongs_to("NotesMetadata", NoteMetadata, "note_metadata_id", "Cascade"),
        _belongs_to(
            "VisitorProfiles", VisitorProfile, "visitor_profile_id", "Restrict"
        ),
    ),
    Essay: (_has_many("Comments", Comment, "essay_id"),),
    FriendsLink: (),
    Like: (_belongs_to("NotesMetadata", NoteMetadata, "note_metadata_id", "Cascade"),),
    NoteMetadata: (
        _has_many("Comments", Comment, "note_metadata_id"),
        _has_many("Likes", Like, "note_metadata_id"),
    ),
    VisitorProfile: (_has_many("Comments", Comment, "visitor_profile_id"),),
}


def _check_entity(entity: Any) -> type:
    if entity not in _RELATIONS:
        raise TypeError(f"{entity!r} is not a known entity")
    return entity


def relations(entity: type) -> list:
    """The relations declared for ``entity``."""
    return list(_RELATIONS[_check_entity(entity)])


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str):
        text = value.strip()
        if text[-1:] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        moment = datetime.fromisoformat(text)
    else:
        raise ValueError(f"not a timestamp: {value!r}")
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _to_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, (bytes, bytearray)) and len(value) == 16:
        return uuid.UUID(bytes=bytes(value))
    if isinstance(value, str):
        return uuid.UUID(value)
    raise ValueError(f"not a UUID: {value!r}")


def _to_int(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise ValueError(f"not an integer: {value!r}")


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ValueError(f"not a boolean: {value!r}")


def _to_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    raise ValueError(f"not a string: {value!r}")


_CONVERTERS = {
    datetime: _to_datetime,
    uuid.UUID: _to_uuid,
    int: _to_int,
    bool: _to_bool,
    str: _to_str,
}


@functools.lru_cache(maxsize=None)
def _columns(entity: type) -> tuple:
    columns = []
    for f in dataclasses.fields(entity):
        hint = f.type
        nullable = False
        if typing.get_origin(hint) is Union:
            args = [a for a in typing.get_args(hint) if a is not type(None)]
            hint, nullable = args[0], True
        columns.append((f.name, _CONVERTERS[hint], nullable))
    return tuple(columns)


def from_row(entity: type, row: Mapping[str, Any]) -> Any:
    """Build an ``entity`` instance from a row mapping column names to values."""
    _check_entity(entity)
    keys = set(row.keys())
    values = {}
    for name, convert, nullable in _columns(entity):
        if name not in keys:
            raise ValueError(f"{entity.table_name}: column {name!r} missing from row")
        raw = row[name]
        if raw is None:
            if not nullable:
                raise ValueError(f"{entity.table_name}: column {name!r} is NULL")
            values[name] = None
        else:
            try:
                values[name] = convert(raw)
            except ValueError as exc:
                raise ValueError(f"{entity.table_name}.{name}: {exc}") from exc
    return entity(**values)


def _rows(cursor: sqlite3.Cursor) -> Iterator[dict]:
    names = [d[0] for d in cursor.description]
    for values in cursor:
        yield dict(zip(names, values))


def fetch_by_id(conn: sqlite3.Connection, entity: type, entity_id: int) -> Any:
    """The row of ``entity`` with primary key ``entity_id``, or None."""
    _check_entity(entity)
    cursor = conn.execute(
        f'SELECT * FROM "{entity.table_name}" WHERE "id" = ?', (entity_id,)
    )
    for row in _rows(cursor):
        return from_row(entity, row)
    return None


def fetch_all(conn: sqlite3.Connection, entity: type) -> list:
    """Every row of ``entity``, ordered by primary key."""
    _check_entity(entity)
    cursor = conn.execute(f'SELECT * FROM "{entity.table_name}" ORDER BY "id"')
    return [from_row(entity, row) for row in _rows(cursor)]