"""Typed keys for application and request state."""

from typing import TYPE_CHECKING

from aiohttp import web

from ..auth.staff_manager import StaffManager
from ..config import Settings

if TYPE_CHECKING:
    from .audit import AuditPipeline


SETTINGS_KEY = web.AppKey("settings", Settings)
MANAGER_KEY = web.AppKey("manager", StaffManager)
AUDIT_KEY: "web.AppKey[AuditPipeline]" = web.AppKey("audit")

# Request-scoped
STAFF_KEY = "staff"
AUDIT_ACTOR_KEY = "audit_actor"
