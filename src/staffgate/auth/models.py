"""
Staff identity data models.

Data classes for staff accounts, roles, role assignments and activity log
entries.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class StaffStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class ActivityOutcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"

    @classmethod
    def from_status(cls, status: int) -> "ActivityOutcome":
        """Classify an HTTP-equivalent status: < 400 is success."""
        return cls.SUCCESS if status < 400 else cls.ERROR


@dataclass
class StaffAccount:
    """
    Staff account, without secrets.

    Attributes:
        staff_id: Unique staff identifier (UUID)
        email: Unique email, stored lower-cased
        first_name: Given name
        last_name: Family name
        status: active / inactive / suspended
        is_superuser: Whether the account satisfies require_superuser (grants no scopes)
        department: Opaque department name
        position: Opaque position name
        phone: Contact phone
        employee_id: Unique employee number
        failed_login_attempts: Consecutive failed logins since the last success
        locked_until: Lockout expiry, None when never locked
        last_login_at: Last successful authentication
        password_changed_at: Last password change
        created_at: Creation timestamp
        updated_at: Last modification timestamp
        created_by: Staff id of the creating administrator
        updated_by: Staff id of the last modifying administrator
    """
    staff_id: str
    email: str
    first_name: str
    last_name: str
    status: StaffStatus = StaffStatus.ACTIVE
    is_superuser: bool = False
    department: Optional[str] = None
    position: Optional[str] = None
    phone: Optional[str] = None
    employee_id: Optional[str] = None
    failed_login_attempts: int = 0
    locked_until: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    password_changed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self) -> bool:
        return self.status == StaffStatus.ACTIVE

    def public_view(self) -> Dict[str, Any]:
        """Fields safe to return to clients."""
        return {
            "id": self.staff_id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "displayName": self.display_name,
            "phone": self.phone,
            "department": self.department,
            "position": self.position,
            "employeeId": self.employee_id,
            "status": self.status.value,
            "isSuperuser": self.is_superuser,
            "lastLoginAt": _iso(self.last_login_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class StaffAccountWithSecrets(StaffAccount):
    """Staff account including the password hash. Only the login path reads this."""
    password_hash: str = field(default="", repr=False)

    def without_secrets(self) -> StaffAccount:
        values = {name: getattr(self, name) for name in StaffAccount.__dataclass_fields__}
        return StaffAccount(**values)


@dataclass
class Role:
    """
    Named bundle of permission scopes.

    Attributes:
        role_id: Unique role identifier
        name: Unique role name (e.g., "Admin", "Support")
        description: Human-readable description
        permissions: Scope strings granted by the role
        is_system_role: System roles cannot be deleted
    """
    role_id: str
    name: str
    description: Optional[str] = None
    permissions: List[str] = field(default_factory=list)
    is_system_role: bool = False
    created_at: Optional[datetime] = None

    def public_view(self) -> Dict[str, Any]:
        return {
            "id": self.role_id,
            "name": self.name,
            "description": self.description,
            "permissions": list(self.permissions),
            "isSystemRole": self.is_system_role,
        }


@dataclass
class RoleAssignment:
    """Link between a staff account and a role, with who granted it and when."""
    staff_id: str
    role_id: str
    assigned_at: datetime
    assigned_by: Optional[str] = None

    def public_view(self) -> Dict[str, Any]:
        return {
            "roleId": self.role_id,
            "assignedAt": self.assigned_at.isoformat(),
            "assignedBy": self.assigned_by,
        }


@dataclass
class ActivityLogEntry:
    """
    Append-only record of one audited action.

    Attributes:
        action: Action name (e.g., "staff.login", "staff.update")
        outcome: success / error
        staff_id: Acting staff member, None for anonymous callers
        resource_type: Type of the affected resource
        resource_id: Id of the affected resource
        details: Structured detail (method, path, query)
        ip_address: Client network address
        user_agent: Client agent string
        error_message: Client-facing error message when outcome is error
        timestamp: When the action completed
        entry_id: Store-assigned sequence number (insertion order)
    """
    action: str
    outcome: ActivityOutcome
    timestamp: datetime
    staff_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    error_message: Optional[str] = None
    entry_id: Optional[int] = None

    def public_view(self) -> Dict[str, Any]:
        return {
            "id": self.entry_id,
            "staffId": self.staff_id,
            "action": self.action,
            "resourceType": self.resource_type,
            "resourceId": self.resource_id,
            "details": self.details,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "status": self.outcome.value,
            "errorMessage": self.error_message,
            "timestamp": _iso(self.timestamp),
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
