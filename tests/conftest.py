"""
Shared fixtures: a throwaway SQLite store, a manager with a controllable
clock, and a couple of seeded staff accounts.
"""

from datetime import timedelta

import pytest

from staffgate.auth.database import SQLiteCredentialStore, utcnow
from staffgate.auth.jwt_handler import JWTHandler
from staffgate.auth.lockout import LockoutPolicy
from staffgate.auth.passwords import PasswordHasher
from staffgate.auth.staff_manager import StaffManager
from staffgate.config import Settings


SECRET = "test-secret-key-0123456789-abcdefghij"
PASSWORD = "Secure1!A"
ADMIN_PASSWORD = "Admin#Pass9"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        jwt_secret=SECRET,
        bcrypt_rounds=4,
        database_path=tmp_path / "staff.db",
        database_pool_min=1,
        database_pool_max=4,
        database_pool_timeout=2.0,
        audit_drain_timeout=2.0,
        rate_limit_max_requests=1000,
        log_format="text",
    )


@pytest.fixture
def store(settings):
    store = SQLiteCredentialStore(
        settings.database_path,
        pool_min=settings.database_pool_min,
        pool_max=settings.database_pool_max,
        pool_timeout=settings.database_pool_timeout,
    )
    yield store
    store.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(settings, store, clock):
    return StaffManager(
        store=store,
        jwt_handler=JWTHandler(SECRET, ttl=settings.token_ttl),
        hasher=PasswordHasher(rounds=4),
        lockout=LockoutPolicy(threshold=5, duration=timedelta(minutes=30)),
        clock=clock,
    )


@pytest.fixture
def staff(manager):
    """Active account with no roles."""
    return manager.create_staff(
        email="a@x.com",
        password=PASSWORD,
        first_name="Ada",
        last_name="Lovelace",
        department="Engineering",
    )


@pytest.fixture
def admin(manager, store):
    """Active account holding the Super Admin role (scope ``*``)."""
    account = manager.create_staff(
        email="root@x.com",
        password=ADMIN_PASSWORD,
        first_name="Grace",
        last_name="Hopper",
    )
    role = store.find_role_by_name("Super Admin")
    manager.assign_role(account.staff_id, role.role_id)
    return account
