import socket

import pytest

from rowanweb.app import main

SETTINGS = {
    "DB_MAX_CONNECTIONS": "5",
    "DB_MIN_CONNECTIONS": "1",
    "DB_CONNECT_TIMEOUT_SECS": "8",
    "DB_IDLE_TIMEOUT_SECS": "600",
    "DB_MAX_LIFETIME_SECS": "1800",
    "DB_ENABLE_LOGGING": "false",
}


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    for key in ["DATABASE_URL", *SETTINGS]:
        monkeypatch.setenv(key, "unset")
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def write_env(directory, values):
    lines = [f"{key}={value}" for key, value in values.items()]
    (directory / ".env").write_text("\n".join(lines) + "\n", encoding="utf-8")


def database_url(directory):
    return f"sqlite://{directory / 'app.db'}?mode=rwc"


def test_starts_and_reports(workdir, capsys):
    url = database_url(workdir)
    write_env(workdir, {"DATABASE_URL": url, **SETTINGS})
    assert main(["--port", "0"]) == 0
    out = capsys.readouterr().out
    assert "🚀 服务器已启动!" in out
    assert f"💾 数据库: {url}" in out
    assert "http://127.0.0.1:" in out
    assert "/api/docs" in out
    assert (workdir / "app.db").exists()


def test_missing_dotenv_fails(workdir, capsys):
    assert main(["--port", "0"]) == 1
    assert ".env" in capsys.readouterr().err


def test_missing_database_url_fails(workdir, capsys):
    write_env(workdir, SETTINGS)
    assert main(["--port", "0"]) == 1
    assert "DATABASE_URL" in capsys.readouterr().err


def test_missing_pool_setting_fails(workdir, capsys):
    settings = dict(SETTINGS)
    del settings["DB_MAX_CONNECTIONS"]
    write_env(workdir, {"DATABASE_URL": database_url(workdir), **settings})
    assert main(["--port", "0"]) == 1
    assert "DB_MAX_CONNECTIONS" in capsys.readouterr().err


def test_port_in_use_fails(workdir, capsys):
    write_env(workdir, {"DATABASE_URL": database_url(workdir), **SETTINGS})
    with socket.create_server(("127.0.0.1", 0)) as blocker:
        port = blocker.getsockname()[1]
        assert main(["--port", str(port)]) == 1
    assert f"127.0.0.1:{port}" in capsys.readouterr().err