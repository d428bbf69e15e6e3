"""
Staff identity core.

Provides bcrypt password hashing, failed-login lockout, JWT bearer tokens
and wildcard scope resolution over a SQLite credential store.
"""

from .models import (
    ActivityLogEntry,
    ActivityOutcome,
    Role,
    RoleAssignment,
    StaffAccount,
    StaffAccountWithSecrets,
    StaffStatus,
)
from .database import CredentialStore, SQLiteCredentialStore
from .jwt_handler import JWTHandler, TokenPayload
from .lockout import LockoutPolicy, LockState
from .passwords import PasswordHasher, validate_strength
from .permissions import (
    GLOBAL_WILDCARD,
    PermissionResolver,
    Scope,
    has_scope,
    is_superuser,
    require_scope,
)
from .staff_manager import LoginResult, StaffManager, normalise_email

__all__ = [
    # Models
    "ActivityLogEntry",
    "ActivityOutcome",
    "Role",
    "RoleAssignment",
    "StaffAccount",
    "StaffAccountWithSecrets",
    "StaffStatus",
    # Store
    "CredentialStore",
    "SQLiteCredentialStore",
    # Tokens
    "JWTHandler",
    "TokenPayload",
    # Lockout
    "LockoutPolicy",
    "LockState",
    # Passwords
    "PasswordHasher",
    "validate_strength",
    # Permissions
    "GLOBAL_WILDCARD",
    "PermissionResolver",
    "Scope",
    "has_scope",
    "is_superuser",
    "require_scope",
    # Manager
    "LoginResult",
    "StaffManager",
    "normalise_email",
]
