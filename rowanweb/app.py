"""Command that starts the blog backend."""

from __future__ import annotations

import argparse
import logging
import os
import socket
import sqlite3
import sys
from typing import Optional, Sequence

from dotenv import find_dotenv, load_dotenv

from rowanweb.db import AppState, ConfigError, create_db_pool

log = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 5000


def _configure_logging() -> None:
    level = getattr(logging, os.environ.get("LOG_LEVEL", "WARNING").upper(), None)
    logging.basicConfig(level=level if isinstance(level, int) else logging.WARNING)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Load settings, open the database pool, bind the listener and report."""
    parser = argparse.ArgumentParser(prog="rowanweb", description="Start the blog backend.")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)

    _configure_logging()

    dotenv_path = find_dotenv(usecwd=True)
    if not dotenv_path:
        print(
            "Cannot load the .env file; make sure it exists and is well formed",
            file=sys.stderr,
        )
        return 1
    load_dotenv(dotenv_path)

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        print(
            "DATABASE_URL environment variable is not set; configure it in the .env file",
            file=sys.stderr,
        )
        return 1

    log.info("🔗 正在连接数据库: %s......", database_url)
    try:
        pool = create_db_pool(database_url)
    except (ConfigError, sqlite3.Error) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    log.info("✅ 数据库连接池创建成功！")

    with pool:
        state = AppState(pool)
        log.debug("application state ready: %r", state)
        try:
            listener = socket.create_server((args.host, args.port))
        except OSError as exc:
            print(
                f"Failed to bind to address {args.host}:{args.port}. "
                f"Is the port already in use? ({exc})",
                file=sys.stderr,
            )
            return 1
        with listener:
            host, port = listener.getsockname()[:2]
            print("🚀 服务器已启动!")
            print(f"📍 服务地址: http://{host}:{port}")
            print("📝 API 端点:")
            print(f"📚 API 文档: http://{host}:{port}/api/docs")
            print(f"💾 数据库: {database_url}")
            print()
    return 0


if __name__ == "__main__":
    sys.exit(main())