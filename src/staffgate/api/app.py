"""
HTTP API for StaffGate.

Routes:
    POST   /api/v1/staff/login
    GET    /api/v1/staff/profile
    PUT    /api/v1/staff/profile/password
    GET    /api/v1/staff                       staff:read
    POST   /api/v1/staff                       staff:create
    GET    /api/v1/staff/{id}                  staff:read
    PUT    /api/v1/staff/{id}                  staff:update
    DELETE /api/v1/staff/{id}                  staff:delete
    POST   /api/v1/staff/{id}/roles            staff:update
    DELETE /api/v1/staff/{id}/roles/{role_id}  staff:update
    GET    /api/v1/roles                       roles:read
    POST   /api/v1/roles                       roles:create
    DELETE /api/v1/roles/{id}                  roles:delete
    GET    /api/v1/activity                    activity:read
    GET    /api/v1
    GET    /health

Blocking work (bcrypt, SQLite) runs in worker threads via asyncio.to_thread.
"""

import asyncio
import math
from datetime import datetime, timezone
from typing import Optional

from aiohttp import web
from loguru import logger

from .. import __version__
from ..auth.staff_manager import StaffManager
from ..config import Settings
from ..errors import InfrastructureError
from .audit import AuditPipeline, log_activity
from .keys import AUDIT_ACTOR_KEY, AUDIT_KEY, MANAGER_KEY, SETTINGS_KEY
from .middleware import (
    authenticate,
    current_staff,
    error_middleware,
    optional_auth,
    request_logging_middleware,
    require_scope,
)
from .schemas import (
    ActivityQuery,
    AssignRoleRequest,
    ChangePasswordRequest,
    CreateRoleRequest,
    CreateStaffRequest,
    LoginRequest,
    StaffListQuery,
    UpdateStaffRequest,
    parse_body,
    parse_query,
)
from .security import (
    RateLimit,
    RateLimiter,
    apply_security_headers,
    rate_limit_middleware,
    setup_cors,
)


def _ok(data=None, status: int = 200, **extra) -> web.Response:
    body = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return web.json_response(body, status=status)


def _manager(request: web.Request) -> StaffManager:
    return request.app[MANAGER_KEY]


# ============================================================================
# Authentication and profile
# ============================================================================

@log_activity("staff.login")
async def handle_login(request: web.Request) -> web.Response:
    """
    POST /api/v1/staff/login
    Body: {"email": "...", "password": "..."}
    Returns: {"success": true, "data": {"token": "...", "staff": {...}}}
    """
    body = await parse_body(request, LoginRequest)
    result = await asyncio.to_thread(_manager(request).login, body.email, body.password)
    request[AUDIT_ACTOR_KEY] = result.account.staff_id
    return _ok(result.public_view())


@log_activity("staff.profile.read")
@authenticate
async def handle_get_profile(request: web.Request) -> web.Response:
    staff = current_staff(request)
    account, roles = await asyncio.to_thread(_manager(request).get_staff, staff.staff_id)
    return _ok({
        **account.public_view(),
        "roles": [role.public_view() for role in roles],
        "permissions": staff.scopes,
    })


@log_activity("staff.profile.password")
@authenticate
async def handle_change_password(request: web.Request) -> web.Response:
    body = await parse_body(request, ChangePasswordRequest)
    staff = current_staff(request)
    await asyncio.to_thread(
        _manager(request).change_password,
        staff.staff_id,
        body.current_password,
        body.new_password,
    )
    return _ok(message="Password changed successfully")


# ============================================================================
# Staff administration
# ============================================================================

@log_activity("staff.list")
@require_scope("staff:read")
async def handle_list_staff(request: web.Request) -> web.Response:
    query = parse_query(request, StaffListQuery)
    accounts, total = await asyncio.to_thread(
        _manager(request).list_staff,
        query.page,
        query.limit,
        query.status,
        query.department,
        query.search,
    )
    return _ok(
        [account.public_view() for account in accounts],
        pagination={
            "page": query.page,
            "limit": query.limit,
            "total": total,
            "totalPages": math.ceil(total / query.limit),
        },
    )


@log_activity("staff.create", "staff")
@require_scope("staff:create")
async def handle_create_staff(request: web.Request) -> web.Response:
    body = await parse_body(request, CreateStaffRequest)
    account = await asyncio.to_thread(
        _manager(request).create_staff,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
        department=body.department,
        position=body.position,
        employee_id=body.employee_id,
        created_by=current_staff(request).staff_id,
    )
    return _ok(account.public_view(), status=201)


@log_activity("staff.read", "staff")
@require_scope("staff:read")
async def handle_get_staff(request: web.Request) -> web.Response:
    staff_id = request.match_info["id"]
    account, roles = await asyncio.to_thread(_manager(request).get_staff, staff_id)
    assignments = await asyncio.to_thread(_manager(request).list_role_assignments, staff_id)
    return _ok({
        **account.public_view(),
        "roles": [role.public_view() for role in roles],
        "roleAssignments": [assignment.public_view() for assignment in assignments],
    })


@log_activity("staff.update", "staff")
@require_scope("staff:update")
async def handle_update_staff(request: web.Request) -> web.Response:
    body = await parse_body(request, UpdateStaffRequest)
    account = await asyncio.to_thread(
        _manager(request).update_staff,
        request.match_info["id"],
        body.changes(),
        current_staff(request).staff_id,
    )
    return _ok(account.public_view())


@log_activity("staff.delete", "staff")
@require_scope("staff:delete")
async def handle_delete_staff(request: web.Request) -> web.Response:
    await asyncio.to_thread(
        _manager(request).delete_staff,
        request.match_info["id"],
        current_staff(request).staff_id,
    )
    return _ok(message="Staff member deleted successfully")


@log_activity("staff.role.assign", "staff")
@require_scope("staff:update")
async def handle_assign_role(request: web.Request) -> web.Response:
    body = await parse_body(request, AssignRoleRequest)
    await asyncio.to_thread(
        _manager(request).assign_role,
        request.match_info["id"],
        body.role_id,
        current_staff(request).staff_id,
    )
    return _ok(message="Role assigned successfully")


@log_activity("staff.role.remove", "staff")
@require_scope("staff:update")
async def handle_remove_role(request: web.Request) -> web.Response:
    await asyncio.to_thread(
        _manager(request).remove_role,
        request.match_info["id"],
        request.match_info["role_id"],
    )
    return _ok(message="Role removed successfully")


# ============================================================================
# Roles and activity
# ============================================================================

@require_scope("roles:read")
async def handle_list_roles(request: web.Request) -> web.Response:
    roles = await asyncio.to_thread(_manager(request).list_roles)
    return _ok([role.public_view() for role in roles])


@log_activity("role.create", "role")
@require_scope("roles:create")
async def handle_create_role(request: web.Request) -> web.Response:
    body = await parse_body(request, CreateRoleRequest)
    role = await asyncio.to_thread(
        _manager(request).create_role, body.name, body.permissions, body.description
    )
    return _ok(role.public_view(), status=201)


@log_activity("role.delete", "role")
@require_scope("roles:delete")
async def handle_delete_role(request: web.Request) -> web.Response:
    await asyncio.to_thread(_manager(request).delete_role, request.match_info["id"])
    return _ok(message="Role deleted successfully")


@log_activity("activity.list")
@require_scope("activity:read")
async def handle_list_activity(request: web.Request) -> web.Response:
    query = parse_query(request, ActivityQuery)
    entries = await asyncio.to_thread(
        _manager(request).store.list_activity_logs, query.staff_id, query.limit, query.offset
    )
    return _ok([entry.public_view() for entry in entries])


# ============================================================================
# Service endpoints
# ============================================================================

@optional_auth
async def handle_index(request: web.Request) -> web.Response:
    staff = current_staff(request)
    return _ok({
        "message": "Staff Backend API v1",
        "version": __version__,
        "endpoints": {"health": "/health", "staff": "/api/v1/staff", "roles": "/api/v1/roles"},
        "authenticated": staff is not None,
        "staffId": staff.staff_id if staff else None,
    })


async def handle_health(request: web.Request) -> web.Response:
    """Health check: 503 when the store is unreachable."""
    try:
        await asyncio.to_thread(_manager(request).store.ping)
    except InfrastructureError as e:
        logger.error(f"Health check failed: {e.internal_detail}")
        return web.json_response(
            {"success": False, "status": "unhealthy", "error": "Database connection failed"},
            status=503,
        )

    return web.json_response({
        "success": True,
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "auditPending": request.app[AUDIT_KEY].pending,
    })


# ============================================================================
# Application
# ============================================================================

async def _start_audit(app: web.Application) -> None:
    await app[AUDIT_KEY].start()


async def _stop_audit(app: web.Application) -> None:
    await app[AUDIT_KEY].stop()


async def _close_store(app: web.Application) -> None:
    app[MANAGER_KEY].store.close()


def create_app(settings: Settings, manager: Optional[StaffManager] = None) -> web.Application:
    """
    Build the aiohttp application.

    Args:
        settings: Process settings
        manager: Pre-built manager (default: built from settings)

    Returns:
        Configured web.Application; the audit writer starts with the app and
        is drained during cleanup, after in-flight requests have finished
    """
    limiter = RateLimiter(RateLimit(settings.rate_limit_max_requests, settings.rate_limit_window_seconds))
    app = web.Application(middlewares=[
        request_logging_middleware,
        rate_limit_middleware(limiter),
        error_middleware,
    ])
    app.on_response_prepare.append(apply_security_headers)

    manager = manager or StaffManager.from_settings(settings)
    app[SETTINGS_KEY] = settings
    app[MANAGER_KEY] = manager
    app[AUDIT_KEY] = AuditPipeline(
        manager.store,
        queue_size=settings.audit_queue_size,
        drain_timeout=settings.audit_drain_timeout,
    )

    app.on_startup.append(_start_audit)
    app.on_cleanup.append(_stop_audit)
    app.on_cleanup.append(_close_store)

    app.router.add_get("/health", handle_health)
    app.router.add_get("/api/v1", handle_index)

    app.router.add_post("/api/v1/staff/login", handle_login)
    app.router.add_get("/api/v1/staff/profile", handle_get_profile)
    app.router.add_put("/api/v1/staff/profile/password", handle_change_password)

    app.router.add_get("/api/v1/staff", handle_list_staff)
    app.router.add_post("/api/v1/staff", handle_create_staff)
    app.router.add_get("/api/v1/staff/{id}", handle_get_staff)
    app.router.add_put("/api/v1/staff/{id}", handle_update_staff)
    app.router.add_delete("/api/v1/staff/{id}", handle_delete_staff)
    app.router.add_post("/api/v1/staff/{id}/roles", handle_assign_role)
    app.router.add_delete("/api/v1/staff/{id}/roles/{role_id}", handle_remove_role)

    app.router.add_get("/api/v1/roles", handle_list_roles)
    app.router.add_post("/api/v1/roles", handle_create_role)
    app.router.add_delete("/api/v1/roles/{id}", handle_delete_role)

    app.router.add_get("/api/v1/activity", handle_list_activity)

    setup_cors(app, settings)

    return app
