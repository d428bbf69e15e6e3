"""
Staff authentication manager.

Combines the credential store, password hashing, lockout policy,
permission resolution and token handling into the login and
administration flows.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger

from ..config import Settings
from ..errors import (
    AccountLocked,
    AccountNotActive,
    ConflictError,
    InvalidCredentials,
    NotFoundError,
    ValidationError,
)
from .database import SQLiteCredentialStore, utcnow
from .jwt_handler import JWTHandler, TokenPayload
from .lockout import LockoutPolicy
from .models import Role, RoleAssignment, StaffAccount, StaffAccountWithSecrets, StaffStatus
from .passwords import PasswordHasher, validate_strength
from .permissions import PermissionResolver, Scope


def normalise_email(value: str) -> str:
    """Return a canonical representation for email comparisons."""
    candidate = value.strip()
    if not candidate:
        raise ValidationError.for_field("email", ["Email must not be empty"])
    return candidate.lower()


@dataclass
class LoginResult:
    token: str
    account: StaffAccount
    scopes: List[Scope]

    def public_view(self) -> Dict[str, Any]:
        return {"token": self.token, "staff": self.account.public_view()}


class StaffManager:
    """
    Staff authentication and administration manager.

    Provides:
    - Login with lockout tracking and token issue
    - Password changes
    - Staff, role and role-assignment administration
    """

    def __init__(
        self,
        store: SQLiteCredentialStore,
        jwt_handler: JWTHandler,
        hasher: Optional[PasswordHasher] = None,
        lockout: Optional[LockoutPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize manager.

        Args:
            store: Credential store
            jwt_handler: Token issuer/verifier
            hasher: Password hasher (default cost if omitted)
            lockout: Lockout policy (5 attempts / 30 minutes if omitted)
            clock: Source of the current UTC time
        """
        self.store = store
        self.jwt = jwt_handler
        self.hasher = hasher or PasswordHasher()
        self.lockout = lockout or LockoutPolicy()
        self.resolver = PermissionResolver(store)
        self.clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, store: Optional[SQLiteCredentialStore] = None) -> "StaffManager":
        store = store or SQLiteCredentialStore(
            settings.database_path,
            pool_min=settings.database_pool_min,
            pool_max=settings.database_pool_max,
            pool_timeout=settings.database_pool_timeout,
        )
        return cls(
            store=store,
            jwt_handler=JWTHandler(settings.jwt_secret, settings.jwt_algorithm, settings.token_ttl),
            hasher=PasswordHasher(settings.bcrypt_rounds),
            lockout=LockoutPolicy(settings.lockout_threshold, settings.lockout_duration),
        )

    # ========================================================================
    # Authentication
    # ========================================================================

    def login(self, email: str, password: str) -> LoginResult:
        """
        Authenticate a staff member and issue a bearer token.

        Args:
            email: Email (case-insensitive)
            password: Plain text password

        Returns:
            LoginResult with the token and the public account view

        Raises:
            InvalidCredentials: Unknown email or wrong password (same message)
            AccountLocked: Lockout still in force; the password is not checked
            AccountNotActive: Account is inactive or suspended
        """
        now = self.clock()
        account = self.store.find_account_by_email_with_secrets(normalise_email(email))

        if not account:
            logger.warning("Login failed: unknown email")
            raise InvalidCredentials()

        if self.lockout.is_locked(account, now):
            logger.warning(f"Login rejected: staff {account.staff_id} is locked")
            raise AccountLocked(staff_id=account.staff_id)

        if not account.is_active:
            logger.warning(f"Login rejected: staff {account.staff_id} is {account.status.value}")
            raise AccountNotActive(staff_id=account.staff_id)

        if not self.hasher.verify(password, account.password_hash):
            self.lockout.record_failure(self.store, account, now)
            raise InvalidCredentials(staff_id=account.staff_id)

        scopes = self.resolver.resolve(account.staff_id)
        self.lockout.record_success(self.store, account, now)

        token = self.jwt.issue(
            staff_id=account.staff_id,
            email=account.email,
            is_superuser=account.is_superuser,
            scopes=scopes,
        )

        logger.info(f"Staff logged in: {account.staff_id}")
        return LoginResult(token=token, account=account.without_secrets(), scopes=scopes)

    def verify_token(self, token: str) -> TokenPayload:
        return self.jwt.verify(token)

    def resolve_scopes(self, staff_id: str) -> List[Scope]:
        return self.resolver.resolve(staff_id)

    def change_password(self, staff_id: str, current_password: str, new_password: str) -> None:
        """
        Change a password after re-verifying the current one.

        Raises:
            NotFoundError: Unknown staff id
            InvalidCredentials: Current password does not match
            ValidationError: New password fails the strength policy
        """
        account = self.store.find_account_by_id(staff_id)
        if not account:
            raise NotFoundError("Staff member not found")

        stored = self.store.find_account_by_email_with_secrets(account.email)
        if not stored or not self.hasher.verify(current_password, stored.password_hash):
            logger.warning(f"Password change rejected for staff {staff_id}: wrong current password")
            raise InvalidCredentials("Current password is incorrect", staff_id=staff_id)

        ok, violations = validate_strength(new_password)
        if not ok:
            raise ValidationError.for_field(
                "newPassword", violations, "New password does not meet requirements"
            )

        self.store.update_password_hash(staff_id, self.hasher.hash(new_password), changed_at=self.clock())
        logger.info(f"Password changed for staff {staff_id}")

    # ========================================================================
    # Staff administration
    # ========================================================================

    def create_staff(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        phone: Optional[str] = None,
        department: Optional[str] = None,
        position: Optional[str] = None,
        employee_id: Optional[str] = None,
        is_superuser: bool = False,
        created_by: Optional[str] = None,
    ) -> StaffAccount:
        """
        Create a staff account with a hashed password.

        Raises:
            ValidationError: Weak password
            ConflictError: Email (or employee id) already in use
        """
        email = normalise_email(email)

        ok, violations = validate_strength(password)
        if not ok:
            raise ValidationError.for_field(
                "password", violations, "Password does not meet requirements"
            )

        if self.store.find_account_by_email(email):
            raise ConflictError("Email already in use", field="email")

        now = self.clock()
        account = StaffAccountWithSecrets(
            staff_id=str(uuid.uuid4()),
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            department=department,
            position=position,
            employee_id=employee_id,
            status=StaffStatus.ACTIVE,
            is_superuser=is_superuser,
            password_changed_at=now,
            created_at=now,
            updated_at=now,
            created_by=created_by,
            password_hash=self.hasher.hash(password),
        )
        return self.store.create_account(account)

    def get_staff(self, staff_id: str) -> Tuple[StaffAccount, List[Role]]:
        """
        Fetch a staff member with their roles.

        Raises:
            NotFoundError: Unknown staff id
        """
        account = self.store.find_account_by_id(staff_id)
        if not account:
            raise NotFoundError("Staff member not found")
        return account, self.store.list_roles_for_account(staff_id)

    def list_staff(
        self,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
        department: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[StaffAccount], int]:
        return self.store.list_accounts(page, limit, status, department, search)

    def update_staff(
        self,
        staff_id: str,
        changes: Dict[str, Any],
        updated_by: Optional[str] = None,
    ) -> StaffAccount:
        """
        Update profile fields or status.

        Raises:
            NotFoundError: Unknown staff id
        """
        account = self.store.update_account(staff_id, changes, updated_by=updated_by)
        if not account:
            raise NotFoundError("Staff member not found")
        return account

    def delete_staff(self, staff_id: str, actor_id: Optional[str] = None) -> None:
        """
        Delete a staff account.

        Raises:
            ValidationError: Actor tried to delete their own account
            NotFoundError: Unknown staff id
        """
        if actor_id is not None and staff_id == actor_id:
            raise ValidationError("Cannot delete your own account")

        if not self.store.delete_account(staff_id):
            raise NotFoundError("Staff member not found")

    # ========================================================================
    # Roles
    # ========================================================================

    def list_roles(self) -> List[Role]:
        return self.store.list_roles()

    def create_role(self, name: str, permissions: List[str], description: Optional[str] = None) -> Role:
        return self.store.create_role(name.strip(), permissions, description)

    def delete_role(self, role_id: str) -> None:
        """
        Delete a custom role.

        Raises:
            NotFoundError: Unknown role
            ConflictError: Role is a system role
        """
        role = self.store.find_role_by_id(role_id)
        if not role:
            raise NotFoundError("Role not found")
        if role.is_system_role:
            raise ConflictError("System roles cannot be deleted", field="isSystemRole")
        self.store.delete_role(role_id)

    def assign_role(self, staff_id: str, role_id: str, assigned_by: Optional[str] = None) -> bool:
        """
        Assign a role to a staff member. Repeating an assignment is a no-op.

        Returns:
            True if the assignment is new

        Raises:
            NotFoundError: Unknown staff member or role
        """
        if not self.store.find_account_by_id(staff_id):
            raise NotFoundError("Staff member not found")
        if not self.store.find_role_by_id(role_id):
            raise NotFoundError("Role not found")
        return self.store.assign_role(staff_id, role_id, assigned_by)

    def remove_role(self, staff_id: str, role_id: str) -> bool:
        """
        Remove a role from a staff member. Removing an absent assignment is a no-op.

        Raises:
            NotFoundError: Unknown staff member
        """
        if not self.store.find_account_by_id(staff_id):
            raise NotFoundError("Staff member not found")
        return self.store.remove_role(staff_id, role_id)

    def list_role_assignments(self, staff_id: str) -> List[RoleAssignment]:
        """
        Role assignments for a staff member, with who granted each and when.

        Raises:
            NotFoundError: Unknown staff member
        """
        if not self.store.find_account_by_id(staff_id):
            raise NotFoundError("Staff member not found")
        return self.store.list_role_assignments(staff_id)
