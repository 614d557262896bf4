# rowanweb

rowanweb is the backend core of a personal site for notes, essays, comments,
likes and links to friends' sites. It stores its data in SQLite. It contains
these modules:

- **`rowanweb.schema`** describes the shapes of types for API documentation.
  - `schema_of` turns a Python type annotation into a `TypeDescriptor`:
    - `str`, `bool`, `int` and `float` become String, Bool, I64 and F64.
    - `Annotated[int, TypeKind.U64]` selects another primitive kind.
    - Lists, optionals and dicts become Vec, Option and Map.
    - A class with a `__schema__` hook describes itself.
  - `ApiEndpoint` records the path, `Method`, description, `RequestParams`
    and response type of one endpoint.
  - `AnnotatedRouter.route` registers a handler and collects its annotation.
    `build()` returns the routing table and `annotations()` returns the
    endpoints.
  - Every descriptor has a `to_dict()` method that gives its JSON-ready form.
- **`rowanweb.derive`** provides the `schema_derive` class decorator, which
  attaches a `__schema__` hook:
  - Dataclasses and annotated classes become structs.
  - Enum members become variants. A member whose value is a dataclass, or a
    mapping of field names to types, becomes a variant with named fields.
  - Tuple subclasses and tuple variants raise `SchemaDeriveError`.
- **`rowanweb.migrations`** holds the site's schema changes and a `Migrator`
  that applies them. The tables are `notes_metadata`, `comments`,
  `visitor_profiles`, `friends_links`, `likes` and `essays`. The `Migrator`
  methods are `up`, `down`, `fresh`, `refresh`, `reset`, `applied` and
  `pending`. Applied versions are recorded in the `seaql_migrations` table.
- **`rowanweb.entities`** holds frozen dataclass row models: `Comment`,
  `Essay`, `FriendsLink`, `Like`, `NoteMetadata` and `VisitorProfile`.
  - `from_row` builds a model from a row mapping.
  - `fetch_by_id` and `fetch_all` read models from a `sqlite3` connection.
  - `relations` lists a model's `Relation`s.
- **`rowanweb.db`** manages the database connection.
  - `DatabaseConfig.from_env` reads the settings and raises `ConfigError`.
  - `ConnectionPool` is a bounded SQLite pool. Its `acquire()` is a context
    manager. It closes connections that have been idle too long or have
    reached their maximum lifetime.
  - `create_db_pool` builds a pool from the environment.
  - `AppState` holds the pool.

## Installation

```
pip install .
```

To include the test tools:

```
pip install .[test]
```

## Configuration

Put the settings in a `.env` file in the working directory:

```
DATABASE_URL=sqlite://rowan.db?mode=rwc
DB_MAX_CONNECTIONS=10
DB_MIN_CONNECTIONS=1
DB_CONNECT_TIMEOUT_SECS=8
DB_IDLE_TIMEOUT_SECS=600
DB_MAX_LIFETIME_SECS=1800
DB_ENABLE_LOGGING=true
```

All seven variables are required. A missing or malformed value raises
`ConfigError`. The rules for the values are:

- The numbers must be non-negative integers.
- `DB_ENABLE_LOGGING` must be exactly `true` or `false`. When it is `true`,
  every SQL statement is logged at debug level.

The pool opens the database file in `mode=rw` unless the URL says otherwise,
and in that mode the file must already exist. Use `?mode=rwc` to let the pool
create the file, or run the migrations first. The pool keeps the data in
memory in these cases:

- `sqlite::memory:`
- a URL with `mode=memory`

## Commands

Apply the pending migrations:

```
rowanweb-migrate
```

The database URL comes from `-u/--database-url`. If that option is not
given, it comes from `DATABASE_URL`, which may be set in `.env`.

The subcommands are:

| Subcommand | What it does |
|---|---|
| `up [-n N]` | Applies all pending migrations, or `N` of them. This is the default. |
| `down [-n N]` | Rolls back the newest `N` migrations. `N` defaults to 1. |
| `status` | Shows whether each migration is applied. |
| `fresh` | Drops every table, then applies all migrations. |
| `refresh` | Rolls back all migrations, then applies them again. |
| `reset` | Rolls back all applied migrations. |

Start the application:

```
rowanweb [--host HOST] [--port PORT]
```

This command does the following:

1. Loads `.env`. It exits with status 1 if the file is not found.
2. Opens the connection pool.
3. Binds a TCP listener on `127.0.0.1:5000` by default.
4. Prints the service address, the API documentation address and the
   database URL.

Set `LOG_LEVEL` (for example `INFO`) to see the connection messages.

## Describing types

```python
from dataclasses import dataclass
from rowanweb.derive import schema_derive
from rowanweb.schema import schema_of

@schema_derive
@dataclass
class Material:
    id: int
    title: str

print(schema_of(list[Material]).to_dict())
```

## What it does not do

`rowanweb` does not serve HTTP requests. It binds the listener only to
confirm that the address is free. After printing its report it closes the
listener and exits. No API endpoints are registered, so the endpoint list is
empty and nothing answers at the documentation address. The package has no
services for notes, comments or accounts beyond the row models and read
helpers in `rowanweb.entities`.