"""Schema migrations for the SQLite database and a command to run them."""

from __future__ import annotations

import argparse
import contextlib
import os
import sqlite3
import sys
import time
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

from dotenv import find_dotenv, load_dotenv

TRACKING_TABLE = "seaql_migrations"

_TIMESTAMP = "timestamp_with_timezone_text NOT NULL DEFAULT CURRENT_TIMESTAMP"


class MigrationError(RuntimeError):
    """Raised when migrations cannot be applied or rolled back."""


@contextlib.contextmanager
def _transaction(conn: sqlite3.Connection) -> Iterator[None]:
    if conn.in_transaction:
        conn.commit()
    conn.execute("BEGIN")
    try:
        yield
    except BaseException:
        conn.rollback()
        raise
    conn.commit()


@dataclass(frozen=True)
class Migration:
    """A named schema change with the statements to make and undo it."""

    name: str
    up_sql: tuple[str, ...]
    down_sql: tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "up_sql", tuple(self.up_sql))
        object.__setattr__(self, "down_sql", tuple(self.down_sql))

    def apply(self, conn: sqlite3.Connection) -> None:
        """Run the statements that make this change."""
        for statement in self.up_sql:
            conn.execute(statement)

    def revert(self, conn: sqlite3.Connection) -> None:
        """Run the statements that undo this change."""
        for statement in self.down_sql:
            conn.execute(statement)


def _create_notes_metadata() -> Migration:
    return Migration(
        "m20250723_235336_create_notes_metadata_table",
        (
            'CREATE TABLE IF NOT EXISTS "notes_metadata" ('
            '"id" integer NOT NULL PRIMARY KEY AUTOINCREMENT, '
            '"file_id" uuid_text NOT NULL UNIQUE, '
            '"slug" varchar(255) NOT NULL UNIQUE, '
            '"title" varchar(255) NOT NULL, '
            '"summary" text NULL, '
            f'"published_at" {_TIMESTAMP}, '
            f'"updated_at" {_TIMESTAMP}, '
            '"views" integer NOT NULL DEFAULT 0, '
            '"likes_count" integer NOT NULL DEFAULT 0, '
            '"tags" text NULL, '
            '"category" text NULL)',
        ),
        ('DROP TABLE "notes_metadata"',),
    )


def _create_comments() -> Migration:
    return Migration(
        "m20250724_002939_create_comments_table",
        (
            'CREATE TABLE IF NOT EXISTS "comments" ('
            '"id" integer NOT NULL PRIMARY KEY AUTOINCREMENT, '
            '"note_metadata_id" integer NULL, '
            '"essay_id" integer NULL, '
            '"visitor_profile_id" integer NOT NULL, '
            '"content" text NOT NULL, '
            '"parent_id" integer NULL, '
            f'"created_at" {_TIMESTAMP}, '
            '"is_approved" boolean NOT NULL DEFAULT FALSE, '
            'CONSTRAINT "fk-comments-note_metadata_id" FOREIGN KEY ("note_metadata_id") '
            'REFERENCES "notes_metadata" ("id") ON DELETE CASCADE, '
            'CONSTRAINT "fk-comments-essay_id" FOREIGN KEY ("essay_id") '
            'REFERENCES "essays" ("id") ON DELETE CASCADE, '
            'CONSTRAINT "fk-comments-parent_id" FOREIGN KEY ("parent_id") '
            'REFERENCES "comments" ("id") ON DELETE SET NULL, '
            'CONSTRAINT "fk-comments-visitor_profile_id" FOREIGN KEY ("visitor_profile_id") '
            'REFERENCES "visitor_profiles" ("id") ON DELETE RESTRICT)',
        ),
        ('DROP TABLE "comments"',),
    )


def _create_visitor_profiles() -> Migration:
    return Migration(
        "m20250724_013111_create_visitor_profiles_table",
        (
            'CREATE TABLE IF NOT EXISTS "visitor_profiles" ('
            '"id" integer NOT NULL PRIMARY KEY AUTOINCREMENT, '
            '"cookie_id" varchar(40) NOT NULL UNIQUE, '
            '"name" varchar(13) NOT NULL UNIQUE, '
            '"ip" varchar(45) NULL, '
            f'"created_at" {_TIMESTAMP}, '
            f'"updated_at" {_TIMESTAMP})',
        ),
        ('DROP TABLE "visitor_profiles"',),
    )


def _create_friends_links() -> Migration:
    return Migration(
        "m20250724_014021_create_friends_links_table",
        (
            'CREATE TABLE IF NOT EXISTS "friends_links" ('
            '"id" integer NOT NULL PRIMARY KEY AUTOINCREMENT, '
            '"name" varchar(15) NOT NULL, '
            '"url" varchar(255) NOT NULL UNIQUE, '
            '"description" varchar(100) NULL, '
            '"logo_url" varchar(255) NULL, '
            '"sort_order" integer NOT NULL, '
            f'"created_at" {_TIMESTAMP}, '
            f'"updated_at" {_TIMESTAMP})',
        ),
        ('DROP TABLE "friends_links"',),
    )


def _create_likes() -> Migration:
    return Migration(
        "m20250724_015502_create_likes_table",
        (
            'CREATE TABLE IF NOT EXISTS "likes" ('
            '"id" integer NOT NULL PRIMARY KEY AUTOINCREMENT, '
            '"note_metadata_id" integer NOT NULL, '
            '"ip_address" varchar(45) NOT NULL, '
            'CONSTRAINT "fk-likes-note_metadata_id" FOREIGN KEY ("note_metadata_id") '
            'REFERENCES "notes_metadata" ("id") ON DELETE CASCADE)',
            'CREATE UNIQUE INDEX "idx_likes_noteid_ip_unique" '
            'ON "likes" ("note_metadata_id", "ip_address")',
        ),
        (
            'DROP INDEX "idx_likes_noteid_ip_unique"',
            'DROP TABLE "likes"',
        ),
    )


def _create_essays() -> Migration:
    return Migration(
        "m20250724_035017_create_essays_table",
        (
            'CREATE TABLE IF NOT EXISTS "essays" ('
            '"id" integer NOT NULL PRIMARY KEY AUTOINCREMENT, '
            '"title" varchar(20) NULL, '
            '"content" text NOT NULL, '
            f'"created_at" {_TIMESTAMP}, '
            f'"updated_at" {_TIMESTAMP})',
        ),
        ('DROP TABLE "essays"',),
    )


def default_migrations() -> list[Migration]:
    """The application's migrations, oldest first."""
    return [
        _create_notes_metadata(),
        _create_comments(),
        _create_visitor_profiles(),
        _create_friends_links(),
        _create_likes(),
        _create_essays(),
    ]


def _check_steps(steps: Optional[int]) -> None:
    if steps is not None and steps < 0:
        raise ValueError("steps must not be negative")


class Migrator:
    """Applies and rolls back an ordered list of migrations, tracking them in the database."""

    def __init__(self, migrations: Optional[Sequence[Migration]] = None) -> None:
        self.migrations = list(default_migrations() if migrations is None else migrations)
        names = [m.name for m in self.migrations]
        if len(set(names)) != len(names):
            raise ValueError("migration names must be unique")

    def _ensure_tracking_table(self, conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.commit()
        conn.execute(
            f'CREATE TABLE IF NOT EXISTS "{TRACKING_TABLE}" ('
            '"version" varchar NOT NULL PRIMARY KEY, '
            '"applied_at" bigint NOT NULL)'
        )

    def applied(self, conn: sqlite3.Connection) -> list[str]:
        """Names of the migrations recorded as applied, oldest first."""
        self._ensure_tracking_table(conn)
        rows = conn.execute(
            f'SELECT "version" FROM "{TRACKING_TABLE}" ORDER BY "version"'
        ).fetchall()
        return [row[0] for row in rows]

    def _applied_checked(self, conn: sqlite3.Connection) -> list[str]:
        applied = self.applied(conn)
        known = {m.name for m in self.migrations}
        for version in applied:
            if version not in known:
                raise MigrationError(
                    f"Migration file of version '{version}' is missing, "
                    "this migration has been applied but its file is missing"
                )
        return applied

    def pending(self, conn: sqlite3.Connection) -> list[Migration]:
        """Migrations not yet applied, in the order they would run."""
        applied = set(self._applied_checked(conn))
        return [m for m in self.migrations if m.name not in applied]

    def up(self, conn: sqlite3.Connection, steps: Optional[int] = None) -> list[str]:
        """Apply pending migrations (all, or at most ``steps``); return their names."""
        _check_steps(steps)
        todo = self.pending(conn)
        if steps is not None:
            todo = todo[:steps]
        done: list[str] = []
        for migration in todo:
            try:
                with _transaction(conn):
                    migration.apply(conn)
                    conn.execute(
                        f'INSERT INTO "{TRACKING_TABLE}" ("version", "applied_at") '
                        "VALUES (?, ?)",
                        (migration.name, int(time.time())),
                    )
            except sqlite3.Error as exc:
                raise MigrationError(
                    f"Migration '{migration.name}' failed: {exc}"
                ) from exc
            done.append(migration.name)
        return done

    def down(self, conn: sqlite3.Connection, steps: Optional[int] = None) -> list[str]:
        """Roll back applied migrations, newest first (all, or at most ``steps``)."""
        _check_steps(steps)
        applied = set(self._applied_checked(conn))
        todo = [m for m in reversed(self.migrations) if m.name in applied]
        if steps is not None:
            todo = todo[:steps]
        done: list[str] = []
        for migration in todo:
            try:
                with _transaction(conn):
                    migration.revert(conn)
                    conn.execute(
                        f'DELETE FROM "{TRACKING_TABLE}" WHERE "version" = ?',
                        (migration.name,),
                    )
            except sqlite3.Error as exc:
                raise MigrationError(
                    f"Rollback of '{migration.name}' failed: {exc}"
                ) from exc
            done.append(migration.name)
        return done

    def fresh(self, conn: sqlite3.Connection) -> list[str]:
        """Drop every table in the database, then apply all migrations."""
        if conn.in_transaction:
            conn.commit()
        foreign_keys = conn.execute("PRAGMA foreign_keys").fetchone()[0]
        conn.execute("PRAGMA foreign_keys = OFF")
        try:
            tables = [
                row[0]
                for row in conn.execute(
                    "SELECT name FROM sqlite_master "
                    "WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
                )
            ]
            with _transaction(conn):
                for table in tables:
                    quoted = table.replace('"', '""')
                    conn.execute(f'DROP TABLE IF EXISTS "{quoted}"')
        except sqlite3.Error as exc:
            raise MigrationError(f"Dropping tables failed: {exc}") from exc
        finally:
            conn.execute(f"PRAGMA foreign_keys = {'ON' if foreign_keys else 'OFF'}")
        return self.up(conn)

    def refresh(self, conn: sqlite3.Connection) -> list[str]:
        """Roll back all applied migrations, then apply them all again."""
        self.reset(conn)
        return self.up(conn)

    def reset(self, conn: sqlite3.Connection) -> list[str]:
        """Roll back all applied migrations."""
        return self.down(conn)


def _sqlite_path(url: str) -> str:
    if not url.startswith("sqlite:"):
        raise MigrationError(f"Unsupported database URL: {url}")
    rest = url[len("sqlite:"):]
    if rest.startswith("//"):
        rest = rest[2:]
    rest = rest.split("?", 1)[0]
    if not rest:
        raise MigrationError(f"Database URL names no database: {url}")
    return rest


def _connect(url: str) -> sqlite3.Connection:
    conn = sqlite3.connect(_sqlite_path(url))
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="migration", description="Run database migrations."
    )
    parser.add_argument(
        "-u",
        "--database-url",
        help="database URL (defaults to the DATABASE_URL environment variable)",
    )
    commands = parser.add_subparsers(dest="command")
    up = commands.add_parser("up", help="apply pending migrations")
    up.add_argument("-n", "--num", type=int, default=None)
    down = commands.add_parser("down", help="roll back applied migrations")
    down.add_argument("-n", "--num", type=int, default=1)
    commands.add_parser("status", help="show the status of every migration")
    commands.add_parser("fresh", help="drop all tables, then apply all migrations")
    commands.add_parser("refresh", help="roll back all migrations, then apply them")
    commands.add_parser("reset", help="roll back all applied migrations")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command-line entry point; returns the exit status."""
    args = _build_parser().parse_args(argv)
    load_dotenv(find_dotenv(usecwd=True))
    url = args.database_url or os.environ.get("DATABASE_URL")
    if not url:
        print("Environment variable 'DATABASE_URL' not set", file=sys.stderr)
        return 1
    command = args.command or "up"
    migrator = Migrator()
    try:
        conn = _connect(url)
    except (MigrationError, sqlite3.Error) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    try:
        if command == "status":
            applied = set(migrator._applied_checked(conn))
            print("Checking migration status")
            for migration in migrator.migrations:
                state = "Applied" if migration.name in applied else "Pending"
                print(f"Migration '{migration.name}'... {state}")
            return 0
        if command == "up":
            names = migrator.up(conn, args.num)
            verb = "applied"
        elif command == "down":
            names = migrator.down(conn, args.num)
            verb = "rolled back"
        elif command == "fresh":
            names = migrator.fresh(conn)
            verb = "applied"
        elif command == "refresh":
            migrator.reset(conn)
            names = migrator.up(conn)
            verb = "applied"
        else:
            names = migrator.reset(conn)
            verb = "rolled back"
        if not names:
            print("No migrations to run")
        for name in names:
            print(f"Migration '{name}' has been {verb}")
        return 0
    except (MigrationError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        conn.close()


if __name__ == "__main__":
    sys.exit(main())