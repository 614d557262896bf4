"""Database configuration, a SQLite connection pool and the application state."""

from __future__ import annotations

import contextlib
import logging
import os
import re
import sqlite3
import threading
import time
import urllib.parse
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterator, Mapping, Optional

log = logging.getLogger(__name__)

_UINT = re.compile(r"\+?[0-9]+")
_MODES = ("ro", "rw", "rwc", "memory")


class ConfigError(RuntimeError):
    """Raised when the database configuration is missing or invalid."""


def _require(env: Mapping[str, str], name: str) -> str:
    try:
        return env[name]
    except KeyError:
        raise ConfigError(
            f"{name} environment variable is not set; configure it in the .env file"
        ) from None


def _uint(env: Mapping[str, str], name: str, bits: int) -> int:
    text = _require(env, name)
    if not _UINT.fullmatch(text) or int(text) >= 1 << bits:
        raise ConfigError(f"{name} must be a valid number")
    return int(text)


def _flag(env: Mapping[str, str], name: str) -> bool:
    text = _require(env, name)
    if text not in ("true", "false"):
        raise ConfigError(f"{name} must be a valid boolean (true/false)")
    return text == "true"


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for the database pool."""

    url: str
    max_connections: int
    min_connections: int
    connect_timeout_secs: int
    idle_timeout_secs: int
    max_lifetime_secs: int
    enable_logging: bool

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> DatabaseConfig:
        """Load every setting from the environment; each one is required."""
        env = os.environ if environ is None else environ
        return cls(
            url=_require(env, "DATABASE_URL"),
            max_connections=_uint(env, "DB_MAX_CONNECTIONS", 32),
            min_connections=_uint(env, "DB_MIN_CONNECTIONS", 32),
            connect_timeout_secs=_uint(env, "DB_CONNECT_TIMEOUT_SECS", 64),
            idle_timeout_secs=_uint(env, "DB_IDLE_TIMEOUT_SECS", 64),
            max_lifetime_secs=_uint(env, "DB_MAX_LIFETIME_SECS", 64),
            enable_logging=_flag(env, "DB_ENABLE_LOGGING"),
        )

    def connect_timeout(self) -> timedelta:
        return timedelta(seconds=self.connect_timeout_secs)

    def idle_timeout(self) -> timedelta:
        return timedelta(seconds=self.idle_timeout_secs)

    def max_lifetime(self) -> timedelta:
        return timedelta(seconds=self.max_lifetime_secs)


def _sqlite_uri(url: str) -> str:
    if not url.startswith("sqlite:"):
        raise ConfigError(f"unsupported database URL: {url}")
    rest = url[len("sqlite:"):]
    if rest.startswith("//"):
        rest = rest[2:]
    path, _, query = rest.partition("?")
    mode = dict(urllib.parse.parse_qsl(query)).get("mode", "rw")
    if mode not in _MODES:
        raise ConfigError(f"unknown SQLite open mode: {mode}")
    if path in ("", ":memory:") or mode == "memory":
        return f"file:rowanweb-{uuid.uuid4().hex}?mode=memory&cache=shared"
    return f"file:{urllib.parse.quote(path)}?mode={mode}"


def _log_statement(statement: str) -> None:
    log.debug("%s", statement)


@dataclass
class _Slot:
    conn: sqlite3.Connection
    created: float
    last_used: float


class ConnectionPool:
    """A bounded pool of SQLite connections.

    Connections idle longer than the idle timeout, or older than the maximum
    lifetime, are closed instead of reused. A transaction left open when a
    connection is returned is rolled back.
    """

    def __init__(self, config: DatabaseConfig) -> None:
        if config.max_connections < 1:
            raise ConfigError("max_connections must be at least 1")
        if config.min_connections > config.max_connections:
            raise ConfigError("min_connections must not exceed max_connections")
        self.config = config
        self._uri = _sqlite_uri(config.url)
        self._cond = threading.Condition()
        self._idle: list[_Slot] = []
        self._size = 0
        self._closed = False
        try:
            for _ in range(config.min_connections):
                self._idle.append(self._open())
                self._size += 1
        except BaseException:
            self.close()
            raise

    @property
    def size(self) -> int:
        """Number of open connections, idle or in use."""
        with self._cond:
            return self._size

    def _open(self) -> _Slot:
        conn = sqlite3.connect(
            self._uri,
            uri=True,
            timeout=self.config.connect_timeout_secs,
            check_same_thread=False,
        )
        conn.execute("PRAGMA foreign_keys = ON")
        if self.config.enable_logging:
            conn.set_trace_callback(_log_statement)
        now = time.monotonic()
        return _Slot(conn, now, now)

    def _discard(self, slot: _Slot) -> None:
        slot.conn.close()
        self._size -= 1
        self._cond.notify()

    def _checkout(self) -> _Slot:
        deadline = time.monotonic() + self.config.connect_timeout_secs
        with self._cond:
            while True:
                if self._closed:
                    raise RuntimeError("connection pool is closed")
                now = time.monotonic()
                while self._idle:
                    slot = self._idle.pop()
                    if now - slot.last_used >= self.config.idle_timeout_secs:
                        self._discard(slot)
                        continue
                    return slot
                if self._size < self.config.max_connections:
                    self._size += 1
                    break
                remaining = deadline - now
                if remaining <= 0:
                    raise TimeoutError("timed out waiting for a database connection")
                self._cond.wait(remaining)
        try:
            return self._open()
        except BaseException:
            with self._cond:
                self._size -= 1
                self._cond.notify()
            raise

    def _checkin(self, slot: _Slot) -> None:
        healthy = True
        try:
            if slot.conn.in_transaction:
                slot.conn.rollback()
        except sqlite3.Error:
            healthy = False
        with self._cond:
            now = time.monotonic()
            if (
                self._closed
                or not healthy
                or now - slot.created >= self.config.max_lifetime_secs
            ):
                self._discard(slot)
            else:
                slot.last_used = now
                self._idle.append(slot)
                self._cond.notify()

    @contextlib.contextmanager
    def acquire(self) -> Iterator[sqlite3.Connection]:
        """Borrow a connection for the duration of the ``with`` block."""
        slot = self._checkout()
        try:
            yield slot.conn
        finally:
            self._checkin(slot)

    def close(self) -> None:
        """Close idle connections; connections in use close when returned."""
        with self._cond:
            self._closed = True
            for slot in self._idle:
                slot.conn.close()
            self._size -= len(self._idle)
            self._idle.clear()
            self._cond.notify_all()

    def __enter__(self) -> ConnectionPool:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def create_db_pool(
    database_url: str, environ: Optional[Mapping[str, str]] = None
) -> ConnectionPool:
    """Create the connection pool from settings in the environment.

    The URL itself is taken from ``DATABASE_URL`` like every other setting;
    ``database_url`` is accepted for the caller's logging only.
    """
    return ConnectionPool(DatabaseConfig.from_env(environ))


@dataclass(frozen=True)
class AppState:
    """Shared application state: the database pool."""

    db: ConnectionPool