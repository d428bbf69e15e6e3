"""
Tests for the command line entry point.
"""

import sys

import pytest
from aiohttp import web
from loguru import logger

from staffgate.__main__ import build_parser, run, serve
from staffgate.api import MANAGER_KEY
from staffgate.auth.database import SQLiteCredentialStore
from staffgate.errors import InfrastructureError

from .conftest import PASSWORD, SECRET


@pytest.fixture
def cli_env(monkeypatch, tmp_path):
    db_path = tmp_path / "cli.db"
    monkeypatch.setenv("JWT_SECRET", SECRET)
    monkeypatch.setenv("DATABASE_PATH", str(db_path))
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("LOG_FORMAT", "text")
    yield db_path
    # run() replaces loguru's sinks
    logger.remove()
    logger.add(sys.stderr)


class TestParser:
    def test_default_command(self):
        assert build_parser().parse_args([]).command is None

    def test_repeatable_role(self):
        args = build_parser().parse_args([
            "create-staff", "--email", "a@x.com", "--first-name", "A", "--last-name", "B",
            "--role", "Admin", "--role", "Support",
        ])
        assert args.role == ["Admin", "Support"]
        assert args.superuser is False


class TestCreateStaffCommand:
    """Test ``staffgate create-staff``."""

    def test_creates_account_with_role(self, cli_env):
        with pytest.raises(SystemExit) as exc_info:
            run([
                "create-staff",
                "--email", "Boss@X.com",
                "--password", PASSWORD,
                "--first-name", "Big",
                "--last-name", "Boss",
                "--superuser",
                "--role", "Super Admin",
            ])
        assert exc_info.value.code == 0

        store = SQLiteCredentialStore(cli_env, pool_min=1, pool_max=1)
        try:
            account = store.find_account_by_email("boss@x.com")
            assert account.is_superuser
            assert [role.name for role in store.list_roles_for_account(account.staff_id)] == ["Super Admin"]
        finally:
            store.close()

    def test_unknown_role_creates_nothing(self, cli_env):
        with pytest.raises(SystemExit) as exc_info:
            run([
                "create-staff",
                "--email", "boss@x.com",
                "--password", PASSWORD,
                "--first-name", "Big",
                "--last-name", "Boss",
                "--role", "Wizard",
            ])
        assert exc_info.value.code == 1

        store = SQLiteCredentialStore(cli_env, pool_min=1, pool_max=1)
        try:
            assert store.find_account_by_email("boss@x.com") is None
        finally:
            store.close()

    def test_weak_password(self, cli_env):
        with pytest.raises(SystemExit) as exc_info:
            run([
                "create-staff",
                "--email", "boss@x.com",
                "--password", "weak",
                "--first-name", "Big",
                "--last-name", "Boss",
            ])
        assert exc_info.value.code == 1


class TestConfiguration:
    def test_missing_secret_exits(self, cli_env, monkeypatch):
        monkeypatch.delenv("JWT_SECRET")

        with pytest.raises(SystemExit) as exc_info:
            run(["serve"])
        assert exc_info.value.code == 1


class TestServe:
    async def test_cleans_up_when_bind_fails(self, settings, monkeypatch):
        """A listener that cannot start still drains audit and closes the store."""
        cleaned = []
        original_cleanup = web.AppRunner.cleanup

        async def failing_start(self):
            raise OSError("address already in use")

        async def tracking_cleanup(self):
            cleaned.append(self.app)
            await original_cleanup(self)

        monkeypatch.setattr(web.TCPSite, "start", failing_start)
        monkeypatch.setattr(web.AppRunner, "cleanup", tracking_cleanup)

        with pytest.raises(OSError):
            await serve(settings)

        assert len(cleaned) == 1
        with pytest.raises(InfrastructureError):
            cleaned[0][MANAGER_KEY].store.ping()
