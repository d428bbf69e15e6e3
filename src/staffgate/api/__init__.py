"""
aiohttp front door for StaffGate.

Provides the application factory, the access-control decorators, the
activity audit pipeline and front-door hardening (security headers, rate
limiting and CORS).
"""

from .app import create_app
from .audit import AuditPipeline, log_activity
from .keys import AUDIT_KEY, MANAGER_KEY, SETTINGS_KEY
from .middleware import (
    StaffContext,
    authenticate,
    current_staff,
    optional_auth,
    require_scope,
    require_superuser,
)

__all__ = [
    "create_app",
    # Audit
    "AuditPipeline",
    "log_activity",
    # App state
    "AUDIT_KEY",
    "MANAGER_KEY",
    "SETTINGS_KEY",
    # Access control
    "StaffContext",
    "authenticate",
    "current_staff",
    "optional_auth",
    "require_scope",
    "require_superuser",
]
