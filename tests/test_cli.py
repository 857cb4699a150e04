"""
tests/test_cli.py -- Tests for the `exa` maintenance CLI in main.py.

Each test points DATABASE_URL at a fresh SQLite file under tmp_path by
patching the cached Settings instance.
"""

from __future__ import annotations

import pytest
from sqlalchemy import inspect

from auth.store import UserStore
from core.config import get_settings
from core.db import create_db_engine, iso_after
from main import main


@pytest.fixture
def db_url(tmp_path, monkeypatch: pytest.MonkeyPatch) -> str:
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setattr(get_settings(), "database_url", url)
    return url


def test_no_command_prints_help(capsys) -> None:
    assert main([]) == 2
    assert "init-db" in capsys.readouterr().out


def test_init_db_creates_schema(db_url: str, capsys) -> None:
    assert main(["init-db"]) == 0
    assert "Schema ready" in capsys.readouterr().out
    engine = create_db_engine(db_url)
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()
    assert {"users", "businesses", "business_accounts", "credit_transactions", "invoices"} <= tables


def test_purge_removes_expired_tokens(db_url: str, capsys) -> None:
    engine = create_db_engine(db_url)
    users = UserStore(engine)
    users.issue_token("reset_password", "old@example.com", "h1", iso_after(seconds=-60))
    users.issue_token("reset_password", "live@example.com", "h2", iso_after(seconds=3600))
    engine.dispose()

    assert main(["purge"]) == 0
    assert "Removed 1 expired token(s)" in capsys.readouterr().out

    engine = create_db_engine(db_url)
    users = UserStore(engine)
    try:
        assert users.get_token_for("reset_password", "old@example.com") is None
        assert users.get_token_for("reset_password", "live@example.com") is not None
    finally:
        engine.dispose()


def test_send_test_email_without_smtp_fails(capsys) -> None:
    assert main(["send-test-email", "ops@example.com"]) == 1
    assert "SMTP_HOST is not set" in capsys.readouterr().out
