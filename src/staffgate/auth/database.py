"""
SQLite credential store.

Holds staff accounts, roles, role assignments and the activity log.
Connections come from a SQLAlchemy ``QueuePool`` so concurrent requests
never open more than ``pool_max`` connections; checking one out waits at
most ``pool_timeout`` seconds. Queries stay on the raw sqlite3 DB-API.
"""

import json
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Protocol, Tuple

from loguru import logger
from sqlalchemy.exc import TimeoutError as PoolTimeout
from sqlalchemy.pool import QueuePool

from ..errors import ConflictError, InfrastructureError
from .models import (
    ActivityLogEntry,
    ActivityOutcome,
    Role,
    RoleAssignment,
    StaffAccount,
    StaffAccountWithSecrets,
    StaffStatus,
)


# Default system roles created with the schema
SYSTEM_ROLES = [
    ("Super Admin", "Full system access with all permissions", ["*"]),
    (
        "Admin",
        "Administrative access to manage staff and settings",
        ["staff:*", "roles:*", "departments:*", "settings:*"],
    ),
    (
        "Manager",
        "Manage staff within department and view reports",
        ["staff:read", "staff:update", "reports:read", "departments:read"],
    ),
    ("Staff", "Basic staff access to view own information", ["profile:read", "profile:update"]),
    ("Support", "Customer support access", ["tenants:read", "tenants:update", "tickets:*", "users:read"]),
]

# Columns callers may change through update_account
UPDATABLE_FIELDS = {"first_name", "last_name", "phone", "department", "position", "status"}

STAFF_COLUMNS = """
    staff_id, email, first_name, last_name, phone, department, position,
    employee_id, status, is_superuser, failed_login_attempts, locked_until,
    last_login_at, password_changed_at, created_at, updated_at, created_by, updated_by
"""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _escape_like(value: str) -> str:
    """Make ``%`` and ``_`` match literally in a LIKE pattern using ESCAPE '\\'."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class CredentialStore(Protocol):
    """Operations the identity core needs from the relational store."""

    def find_account_by_id(self, staff_id: str) -> Optional[StaffAccount]: ...

    def find_account_by_email(self, email: str) -> Optional[StaffAccount]: ...

    def find_account_by_email_with_secrets(self, email: str) -> Optional[StaffAccountWithSecrets]: ...

    def increment_failed_attempts(self, staff_id: str) -> int: ...

    def set_locked_until(self, staff_id: str, locked_until: datetime) -> None: ...

    def reset_failed_attempts(self, staff_id: str, login_at: Optional[datetime] = None) -> None: ...

    def update_password_hash(
        self, staff_id: str, password_hash: str, changed_at: Optional[datetime] = None
    ) -> None: ...

    def list_scopes_for_account(self, staff_id: str) -> List[str]: ...

    def assign_role(self, staff_id: str, role_id: str, assigned_by: Optional[str] = None) -> bool: ...

    def remove_role(self, staff_id: str, role_id: str) -> bool: ...

    def append_activity_log(self, entry: ActivityLogEntry) -> int: ...


def _connection_factory(db_path: Path, timeout: float):
    """Build the creator the pool calls to open a connection."""

    def connect() -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(db_path), timeout=timeout, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute(f"PRAGMA busy_timeout = {int(timeout * 1000)}")
        except sqlite3.Error as e:
            raise InfrastructureError(f"cannot open database {db_path}: {e}") from e
        return conn

    return connect


class SQLiteCredentialStore:
    """
    Thread-safe staff credential store.

    Manages staff accounts, roles, role assignments, and activity logs using
    SQLite connections checked out of a SQLAlchemy ``QueuePool``.
    """

    def __init__(
        self,
        db_path: Path,
        pool_min: int = 2,
        pool_max: int = 10,
        pool_timeout: float = 10.0,
    ):
        """
        Initialize store.

        Args:
            db_path: Path to SQLite database file
            pool_min: Connections kept open between checkouts (at least 1)
            pool_max: Maximum open connections
            pool_timeout: Seconds to wait for a free connection
        """
        if pool_min < 1 or pool_max < pool_min:
            raise ValueError(f"invalid pool bounds: min={pool_min} max={pool_max}")

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.pool = QueuePool(
            _connection_factory(self.db_path, pool_timeout),
            pool_size=pool_min,
            max_overflow=pool_max - pool_min,
            timeout=pool_timeout,
            use_lifo=True,
        )
        self._closed = False
        self._init_db()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        if self._closed:
            raise InfrastructureError("credential store is closed")

        try:
            proxy = self.pool.connect()
        except PoolTimeout as e:
            logger.error(f"Connection pool exhausted ({self.pool.checkedout()} connections busy)")
            raise InfrastructureError("timed out waiting for a database connection") from e

        try:
            yield proxy.driver_connection
        finally:
            proxy.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._connection() as conn:
            try:
                yield conn
                conn.commit()
            except sqlite3.IntegrityError:
                conn.rollback()
                raise
            except sqlite3.Error as e:
                conn.rollback()
                logger.error(f"Database error: {e}")
                raise InfrastructureError(str(e)) from e
            except BaseException:
                conn.rollback()
                raise

    def _init_db(self):
        """Create tables and system roles if they don't exist."""
        with self._transaction() as conn:
            conn.execute("PRAGMA journal_mode = WAL")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS staff (
                    staff_id TEXT PRIMARY KEY,
                    email TEXT UNIQUE NOT NULL COLLATE NOCASE,
                    password_hash TEXT NOT NULL,
                    first_name TEXT NOT NULL,
                    last_name TEXT NOT NULL,
                    phone TEXT,
                    department TEXT,
                    position TEXT,
                    employee_id TEXT UNIQUE,
                    status TEXT NOT NULL DEFAULT 'active'
                        CHECK (status IN ('active', 'inactive', 'suspended')),
                    is_superuser INTEGER NOT NULL DEFAULT 0,
                    failed_login_attempts INTEGER NOT NULL DEFAULT 0,
                    locked_until TEXT,
                    last_login_at TEXT,
                    password_changed_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    created_by TEXT,
                    updated_by TEXT
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS staff_roles (
                    role_id TEXT PRIMARY KEY,
                    name TEXT UNIQUE NOT NULL COLLATE NOCASE,
                    description TEXT,
                    permissions TEXT NOT NULL DEFAULT '[]',
                    is_system_role INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS staff_role_assignments (
                    staff_id TEXT NOT NULL,
                    role_id TEXT NOT NULL,
                    assigned_at TEXT NOT NULL,
                    assigned_by TEXT,
                    PRIMARY KEY (staff_id, role_id),
                    FOREIGN KEY (staff_id) REFERENCES staff(staff_id) ON DELETE CASCADE,
                    FOREIGN KEY (role_id) REFERENCES staff_roles(role_id) ON DELETE CASCADE
                )
            """)

            # No foreign key on staff_id: entries outlive the account row
            conn.execute("""
                CREATE TABLE IF NOT EXISTS staff_activity_logs (
                    log_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    staff_id TEXT,
                    action TEXT NOT NULL,
                    resource_type TEXT,
                    resource_id TEXT,
                    details TEXT NOT NULL DEFAULT '{}',
                    ip_address TEXT,
                    user_agent TEXT,
                    status TEXT NOT NULL,
                    error_message TEXT,
                    timestamp TEXT NOT NULL
                )
            """)

            conn.execute("CREATE INDEX IF NOT EXISTS idx_staff_status ON staff(status)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_staff_department ON staff(department)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_role_assignments_role ON staff_role_assignments(role_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_activity_staff ON staff_activity_logs(staff_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_activity_timestamp ON staff_activity_logs(timestamp)"
            )

            now = _ts(utcnow())
            for name, description, permissions in SYSTEM_ROLES:
                conn.execute("""
                    INSERT OR IGNORE INTO staff_roles
                        (role_id, name, description, permissions, is_system_role, created_at)
                    VALUES (?, ?, ?, ?, 1, ?)
                """, (str(uuid.uuid4()), name, description, json.dumps(permissions), now))

        logger.info(f"Staff database initialized: {self.db_path}")

    def close(self) -> None:
        self._closed = True
        self.pool.dispose()

    def ping(self) -> None:
        """
        Check the store is reachable.

        Raises:
            InfrastructureError: If a trivial query fails
        """
        with self._transaction() as conn:
            conn.execute("SELECT 1").fetchone()

    # ========================================================================
    # Row mapping
    # ========================================================================

    @staticmethod
    def _row_to_account(row: sqlite3.Row) -> StaffAccount:
        return StaffAccount(
            staff_id=row["staff_id"],
            email=row["email"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            phone=row["phone"],
            department=row["department"],
            position=row["position"],
            employee_id=row["employee_id"],
            status=StaffStatus(row["status"]),
            is_superuser=bool(row["is_superuser"]),
            failed_login_attempts=row["failed_login_attempts"],
            locked_until=_dt(row["locked_until"]),
            last_login_at=_dt(row["last_login_at"]),
            password_changed_at=_dt(row["password_changed_at"]),
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
            created_by=row["created_by"],
            updated_by=row["updated_by"],
        )

    @staticmethod
    def _row_to_role(row: sqlite3.Row) -> Role:
        return Role(
            role_id=row["role_id"],
            name=row["name"],
            description=row["description"],
            permissions=json.loads(row["permissions"] or "[]"),
            is_system_role=bool(row["is_system_role"]),
            created_at=_dt(row["created_at"]),
        )

    @staticmethod
    def _row_to_activity(row: sqlite3.Row) -> ActivityLogEntry:
        return ActivityLogEntry(
            entry_id=row["log_id"],
            staff_id=row["staff_id"],
            action=row["action"],
            resource_type=row["resource_type"],
            resource_id=row["resource_id"],
            details=json.loads(row["details"] or "{}"),
            ip_address=row["ip_address"],
            user_agent=row["user_agent"],
            outcome=ActivityOutcome(row["status"]),
            error_message=row["error_message"],
            timestamp=_dt(row["timestamp"]),
        )

    # ========================================================================
    # Staff Operations
    # ========================================================================

    def create_account(self, account: StaffAccountWithSecrets) -> StaffAccount:
        """
        Insert a new staff account.

        Args:
            account: Account with password hash already computed

        Returns:
            The stored account (without secrets)

        Raises:
            ConflictError: If the email or employee id is already taken
        """
        now = utcnow()
        account.created_at = account.created_at or now
        account.updated_at = account.updated_at or now

        try:
            with self._transaction() as conn:
                conn.execute("""
                    INSERT INTO staff (
                        staff_id, email, password_hash, first_name, last_name, phone,
                        department, position, employee_id, status, is_superuser,
                        password_changed_at, created_at, updated_at, created_by, updated_by
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    account.staff_id,
                    account.email,
                    account.password_hash,
                    account.first_name,
                    account.last_name,
                    account.phone,
                    account.department,
                    account.position,
                    account.employee_id,
                    account.status.value,
                    1 if account.is_superuser else 0,
                    _ts(account.password_changed_at),
                    _ts(account.created_at),
                    _ts(account.updated_at),
                    account.created_by,
                    account.created_by,
                ))
        except sqlite3.IntegrityError as e:
            field = "employeeId" if "employee_id" in str(e) else "email"
            raise ConflictError(f"{field} already in use", field=field) from e

        logger.info(f"Staff account created: {account.staff_id}")
        return account.without_secrets()

    def find_account_by_id(self, staff_id: str) -> Optional[StaffAccount]:
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT {STAFF_COLUMNS} FROM staff WHERE staff_id = ?", (staff_id,)
            ).fetchone()
        return self._row_to_account(row) if row else None

    def find_account_by_email(self, email: str) -> Optional[StaffAccount]:
        """Case-insensitive lookup by email."""
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT {STAFF_COLUMNS} FROM staff WHERE email = ?", (email.strip(),)
            ).fetchone()
        return self._row_to_account(row) if row else None

    def find_account_by_email_with_secrets(self, email: str) -> Optional[StaffAccountWithSecrets]:
        """
        Case-insensitive lookup returning the password hash.

        Only the login and password-change paths should call this.
        """
        with self._transaction() as conn:
            row = conn.execute(
                f"SELECT {STAFF_COLUMNS}, password_hash FROM staff WHERE email = ?",
                (email.strip(),),
            ).fetchone()
        if not row:
            return None

        account = self._row_to_account(row)
        values = {name: getattr(account, name) for name in StaffAccount.__dataclass_fields__}
        return StaffAccountWithSecrets(**values, password_hash=row["password_hash"])

    def update_account(
        self,
        staff_id: str,
        changes: Dict[str, Any],
        updated_by: Optional[str] = None,
    ) -> Optional[StaffAccount]:
        """
        Update profile fields.

        Args:
            staff_id: Account to update
            changes: Column -> value; only UPDATABLE_FIELDS are accepted
            updated_by: Staff id of the modifying administrator

        Returns:
            Updated account, or None if it does not exist
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        if not changes:
            return self.find_account_by_id(staff_id)

        values = {
            key: value.value if isinstance(value, StaffStatus) else value
            for key, value in changes.items()
        }
        assignments = ", ".join(f"{column} = ?" for column in values)

        with self._transaction() as conn:
            cursor = conn.execute(
                f"UPDATE staff SET {assignments}, updated_at = ?, updated_by = ? WHERE staff_id = ?",
                (*values.values(), _ts(utcnow()), updated_by, staff_id),
            )
            updated = cursor.rowcount > 0

        if not updated:
            return None

        logger.info(f"Staff account updated: {staff_id} ({', '.join(values)})")
        return self.find_account_by_id(staff_id)

    def delete_account(self, staff_id: str) -> bool:
        """
        Delete a staff account and its role assignments.

        Activity log entries are kept.

        Returns:
            True if a row was deleted
        """
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM staff WHERE staff_id = ?", (staff_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Staff account deleted: {staff_id}")
        return deleted

    def list_accounts(
        self,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
        department: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[StaffAccount], int]:
        """
        Page through accounts, newest first.

        Args:
            page: 1-based page number
            limit: Page size
            status: Filter by status ("all" or None for no filter)
            department: Filter by department
            search: Substring match on first name, last name or email

        Returns:
            (accounts, total matching)
        """
        conditions = []
        params: List[Any] = []

        if status and status != "all":
            conditions.append("status = ?")
            params.append(status)
        if department:
            conditions.append("department = ?")
            params.append(department)
        if search:
            conditions.append(
                "(first_name LIKE ? ESCAPE '\\' OR last_name LIKE ? ESCAPE '\\' OR email LIKE ? ESCAPE '\\')"
            )
            pattern = f"%{_escape_like(search)}%"
            params.extend([pattern, pattern, pattern])

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        offset = (page - 1) * limit

        with self._transaction() as conn:
            rows = conn.execute(
                f"SELECT {STAFF_COLUMNS} FROM staff {where} "
                f"ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
            total = conn.execute(f"SELECT COUNT(*) FROM staff {where}", params).fetchone()[0]

        return [self._row_to_account(row) for row in rows], total

    # ========================================================================
    # Lockout and Password Operations
    # ========================================================================

    def increment_failed_attempts(self, staff_id: str) -> int:
        """
        Add one failed login attempt.

        Returns:
            The new counter value (0 if the account does not exist)
        """
        with self._transaction() as conn:
            conn.execute(
                "UPDATE staff SET failed_login_attempts = failed_login_attempts + 1 WHERE staff_id = ?",
                (staff_id,),
            )
            row = conn.execute(
                "SELECT failed_login_attempts FROM staff WHERE staff_id = ?", (staff_id,)
            ).fetchone()
        return row[0] if row else 0

    def set_locked_until(self, staff_id: str, locked_until: datetime) -> None:
        with self._transaction() as conn:
            conn.execute(
                "UPDATE staff SET locked_until = ? WHERE staff_id = ?",
                (_ts(locked_until), staff_id),
            )

    def reset_failed_attempts(self, staff_id: str, login_at: Optional[datetime] = None) -> None:
        """
        Clear the failed counter and any lockout.

        Args:
            staff_id: Account to reset
            login_at: When given, also recorded as the last successful login
        """
        with self._transaction() as conn:
            if login_at is None:
                conn.execute(
                    "UPDATE staff SET failed_login_attempts = 0, locked_until = NULL WHERE staff_id = ?",
                    (staff_id,),
                )
            else:
                conn.execute("""
                    UPDATE staff
                    SET failed_login_attempts = 0, locked_until = NULL, last_login_at = ?
                    WHERE staff_id = ?
                """, (_ts(login_at), staff_id))

    def update_password_hash(
        self,
        staff_id: str,
        password_hash: str,
        changed_at: Optional[datetime] = None,
    ) -> None:
        changed_at = changed_at or utcnow()
        with self._transaction() as conn:
            conn.execute("""
                UPDATE staff
                SET password_hash = ?, password_changed_at = ?, updated_at = ?
                WHERE staff_id = ?
            """, (password_hash, _ts(changed_at), _ts(changed_at), staff_id))

        logger.info(f"Staff password updated: {staff_id}")

    # ========================================================================
    # Role Operations
    # ========================================================================

    def create_role(
        self,
        name: str,
        permissions: List[str],
        description: Optional[str] = None,
    ) -> Role:
        """
        Create a (non-system) role.

        Raises:
            ConflictError: If the role name is taken
        """
        role = Role(
            role_id=str(uuid.uuid4()),
            name=name,
            description=description,
            permissions=list(permissions),
            is_system_role=False,
            created_at=utcnow(),
        )

        try:
            with self._transaction() as conn:
                conn.execute("""
                    INSERT INTO staff_roles
                        (role_id, name, description, permissions, is_system_role, created_at)
                    VALUES (?, ?, ?, ?, 0, ?)
                """, (role.role_id, role.name, role.description,
                      json.dumps(role.permissions), _ts(role.created_at)))
        except sqlite3.IntegrityError as e:
            raise ConflictError("Role name already in use", field="name") from e

        logger.info(f"Role created: {name} ({role.role_id})")
        return role

    def find_role_by_id(self, role_id: str) -> Optional[Role]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM staff_roles WHERE role_id = ?", (role_id,)).fetchone()
        return self._row_to_role(row) if row else None

    def find_role_by_name(self, name: str) -> Optional[Role]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM staff_roles WHERE name = ?", (name,)).fetchone()
        return self._row_to_role(row) if row else None

    def list_roles(self) -> List[Role]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM staff_roles ORDER BY name").fetchall()
        return [self._row_to_role(row) for row in rows]

    def delete_role(self, role_id: str) -> bool:
        """
        Delete a non-system role.

        System roles are never matched by this statement.

        Returns:
            True if a row was deleted
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM staff_roles WHERE role_id = ? AND is_system_role = 0", (role_id,)
            )
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Role deleted: {role_id}")
        return deleted

    def assign_role(self, staff_id: str, role_id: str, assigned_by: Optional[str] = None) -> bool:
        """
        Assign a role. Assigning an existing pair is a no-op.

        Returns:
            True if a new assignment was created
        """
        with self._transaction() as conn:
            cursor = conn.execute("""
                INSERT OR IGNORE INTO staff_role_assignments (staff_id, role_id, assigned_at, assigned_by)
                VALUES (?, ?, ?, ?)
            """, (staff_id, role_id, _ts(utcnow()), assigned_by))
            created = cursor.rowcount > 0

        if created:
            logger.info(f"Role {role_id} assigned to staff {staff_id}")
        return created

    def remove_role(self, staff_id: str, role_id: str) -> bool:
        """
        Remove a role assignment. Removing an absent pair is a no-op.

        Returns:
            True if an assignment was removed
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM staff_role_assignments WHERE staff_id = ? AND role_id = ?",
                (staff_id, role_id),
            )
            removed = cursor.rowcount > 0

        if removed:
            logger.info(f"Role {role_id} removed from staff {staff_id}")
        return removed

    def list_roles_for_account(self, staff_id: str) -> List[Role]:
        with self._transaction() as conn:
            rows = conn.execute("""
                SELECT r.*
                FROM staff_roles r
                JOIN staff_role_assignments a ON a.role_id = r.role_id
                WHERE a.staff_id = ?
                ORDER BY r.name
            """, (staff_id,)).fetchall()
        return [self._row_to_role(row) for row in rows]

    def list_role_assignments(self, staff_id: str) -> List[RoleAssignment]:
        """Assignments for an account, oldest first."""
        with self._transaction() as conn:
            rows = conn.execute("""
                SELECT staff_id, role_id, assigned_at, assigned_by
                FROM staff_role_assignments
                WHERE staff_id = ?
                ORDER BY assigned_at, rowid
            """, (staff_id,)).fetchall()
        return [
            RoleAssignment(
                staff_id=row["staff_id"],
                role_id=row["role_id"],
                assigned_at=_dt(row["assigned_at"]),
                assigned_by=row["assigned_by"],
            )
            for row in rows
        ]

    def count_role_assignments(self, staff_id: str, role_id: str) -> int:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM staff_role_assignments WHERE staff_id = ? AND role_id = ?",
                (staff_id, role_id),
            ).fetchone()
        return row[0]

    def list_scopes_for_account(self, staff_id: str) -> List[str]:
        """
        Get every scope granted through the account's roles.

        Returns:
            Scope strings, possibly with duplicates across roles
        """
        scopes: List[str] = []
        for role in self.list_roles_for_account(staff_id):
            scopes.extend(role.permissions)
        return scopes

    # ========================================================================
    # Activity Log Operations
    # ========================================================================

    def append_activity_log(self, entry: ActivityLogEntry) -> int:
        """
        Append an activity log entry.

        Returns:
            The entry's sequence number
        """
        with self._transaction() as conn:
            cursor = conn.execute("""
                INSERT INTO staff_activity_logs (
                    staff_id, action, resource_type, resource_id, details,
                    ip_address, user_agent, status, error_message, timestamp
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                entry.staff_id,
                entry.action,
                entry.resource_type,
                entry.resource_id,
                json.dumps(entry.details, default=str),
                entry.ip_address,
                entry.user_agent,
                entry.outcome.value,
                entry.error_message,
                _ts(entry.timestamp),
            ))
            entry.entry_id = cursor.lastrowid
        return entry.entry_id

    def list_activity_logs(
        self,
        staff_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[ActivityLogEntry]:
        """
        Activity entries, newest first; equal timestamps in reverse insertion order.

        Args:
            staff_id: Only entries by this staff member
            limit: Maximum entries
            offset: Entries to skip
        """
        where = "WHERE staff_id = ?" if staff_id else ""
        params: List[Any] = [staff_id] if staff_id else []

        with self._transaction() as conn:
            rows = conn.execute(
                f"SELECT * FROM staff_activity_logs {where} "
                f"ORDER BY timestamp DESC, log_id DESC LIMIT ? OFFSET ?",
                (*params, limit, offset),
            ).fetchall()
        return [self._row_to_activity(row) for row in rows]
