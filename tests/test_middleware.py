"""
Tests for the access-control decorators and error rendering.
"""

import pytest
from aiohttp import web

from staffgate.api.audit import AuditPipeline, log_activity
from staffgate.api.keys import AUDIT_KEY, MANAGER_KEY, SETTINGS_KEY
from staffgate.api.middleware import (
    current_staff,
    error_middleware,
    optional_auth,
    require_scope,
    require_superuser,
)

from .conftest import ADMIN_PASSWORD, PASSWORD


@require_superuser
async def superuser_only(request):
    return web.json_response({"staffId": current_staff(request).staff_id})


@require_scope("reports:read")
async def reports(request):
    return web.json_response({"scopes": current_staff(request).scopes})


@optional_auth
async def maybe(request):
    staff = current_staff(request)
    return web.json_response({"authenticated": staff is not None})


@log_activity("test.boom")
async def boom(request):
    raise RuntimeError("database password is hunter2")


@log_activity("test.conflict")
async def http_conflict(request):
    raise web.HTTPConflict(reason="Already there")


async def _start_audit(app):
    await app[AUDIT_KEY].start()


async def _stop_audit(app):
    await app[AUDIT_KEY].stop()


def build_app(settings, manager):
    app = web.Application(middlewares=[error_middleware])
    app[SETTINGS_KEY] = settings
    app[MANAGER_KEY] = manager
    app[AUDIT_KEY] = AuditPipeline(manager.store)
    app.on_startup.append(_start_audit)
    app.on_cleanup.append(_stop_audit)
    app.router.add_get("/superuser", superuser_only)
    app.router.add_get("/reports", reports)
    app.router.add_get("/maybe", maybe)
    app.router.add_get("/boom", boom)
    app.router.add_get("/conflict", http_conflict)
    return app


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


class TestRequireSuperuser:
    """Test the superuser decorator."""

    async def test_flag_grants(self, aiohttp_client, settings, manager):
        manager.create_staff("boss@x.com", PASSWORD, "Big", "Boss", is_superuser=True)
        token = manager.login("boss@x.com", PASSWORD).token
        client = await aiohttp_client(build_app(settings, manager))

        resp = await client.get("/superuser", headers=bearer(token))
        assert resp.status == 200

    async def test_global_wildcard_grants(self, aiohttp_client, settings, manager, admin):
        token = manager.login("root@x.com", ADMIN_PASSWORD).token
        client = await aiohttp_client(build_app(settings, manager))

        resp = await client.get("/superuser", headers=bearer(token))
        assert resp.status == 200

    async def test_regular_staff_denied(self, aiohttp_client, settings, manager, staff):
        token = manager.login("a@x.com", PASSWORD).token
        client = await aiohttp_client(build_app(settings, manager))

        resp = await client.get("/superuser", headers=bearer(token))
        assert resp.status == 403
        assert (await resp.json())["code"] == "insufficient_permissions"

    async def test_flag_does_not_grant_scopes(self, aiohttp_client, settings, manager):
        """The superuser flag only satisfies superuser checks, not scope checks."""
        manager.create_staff("boss@x.com", PASSWORD, "Big", "Boss", is_superuser=True)
        token = manager.login("boss@x.com", PASSWORD).token
        client = await aiohttp_client(build_app(settings, manager))

        resp = await client.get("/reports", headers=bearer(token))
        assert resp.status == 403


class TestRequireScope:
    """Test scope checks and token handling."""

    async def test_missing_token(self, aiohttp_client, settings, manager):
        client = await aiohttp_client(build_app(settings, manager))

        resp = await client.get("/reports")
        body = await resp.json()
        assert resp.status == 401
        assert body["code"] == "unauthenticated"
        assert body["success"] is False

    async def test_non_bearer_header(self, aiohttp_client, settings, manager):
        client = await aiohttp_client(build_app(settings, manager))

        resp = await client.get("/reports", headers={"Authorization": "Basic dXNlcjpwYXNz"})
        assert resp.status == 401
        assert (await resp.json())["code"] == "unauthenticated"

    async def test_invalid_token(self, aiohttp_client, settings, manager):
        client = await aiohttp_client(build_app(settings, manager))

        resp = await client.get("/reports", headers=bearer("garbage"))
        body = await resp.json()
        assert resp.status == 401
        assert body["code"] == "invalid_token"
        assert body["error"] == "Invalid or expired authentication token"

    async def test_inactive_account(self, aiohttp_client, settings, manager, staff):
        token = manager.login("a@x.com", PASSWORD).token
        manager.update_staff(staff.staff_id, {"status": "inactive"})
        client = await aiohttp_client(build_app(settings, manager))

        resp = await client.get("/reports", headers=bearer(token))
        assert resp.status == 403
        assert (await resp.json())["code"] == "account_not_active"

    async def test_deleted_account(self, aiohttp_client, settings, manager, staff, admin):
        token = manager.login("a@x.com", PASSWORD).token
        manager.delete_staff(staff.staff_id, actor_id=admin.staff_id)
        client = await aiohttp_client(build_app(settings, manager))

        resp = await client.get("/reports", headers=bearer(token))
        assert resp.status == 401
        assert (await resp.json())["code"] == "unauthenticated"

    async def test_token_snapshot(self, aiohttp_client, settings, manager, store, staff):
        """Without live resolution, a revoked role keeps working until re-login."""
        role = store.find_role_by_name("Manager")
        manager.assign_role(staff.staff_id, role.role_id)
        token = manager.login("a@x.com", PASSWORD).token
        manager.remove_role(staff.staff_id, role.role_id)
        client = await aiohttp_client(build_app(settings, manager))

        resp = await client.get("/reports", headers=bearer(token))
        assert resp.status == 200

    async def test_live_resolution(self, aiohttp_client, settings, manager, store, staff):
        """With live resolution, a revoked role takes effect immediately."""
        live = settings.model_copy(update={"live_scope_resolution": True})
        role = store.find_role_by_name("Manager")
        manager.assign_role(staff.staff_id, role.role_id)
        token = manager.login("a@x.com", PASSWORD).token
        client = await aiohttp_client(build_app(live, manager))

        resp = await client.get("/reports", headers=bearer(token))
        assert resp.status == 200

        manager.remove_role(staff.staff_id, role.role_id)
        resp = await client.get("/reports", headers=bearer(token))
        assert resp.status == 403


class TestOptionalAuth:
    async def test_anonymous(self, aiohttp_client, settings, manager):
        client = await aiohttp_client(build_app(settings, manager))

        resp = await client.get("/maybe")
        assert (await resp.json()) == {"authenticated": False}

    async def test_bad_token_ignored(self, aiohttp_client, settings, manager):
        client = await aiohttp_client(build_app(settings, manager))

        resp = await client.get("/maybe", headers=bearer("garbage"))
        assert resp.status == 200
        assert (await resp.json()) == {"authenticated": False}

    async def test_valid_token(self, aiohttp_client, settings, manager, staff):
        token = manager.login("a@x.com", PASSWORD).token
        client = await aiohttp_client(build_app(settings, manager))

        resp = await client.get("/maybe", headers=bearer(token))
        assert (await resp.json()) == {"authenticated": True}


class TestErrorRendering:
    """Test that failures become JSON and are audited."""

    async def test_unexpected_error_is_opaque(self, aiohttp_client, settings, manager, store):
        app = build_app(settings, manager)
        client = await aiohttp_client(app)

        resp = await client.get("/boom")
        body = await resp.json()

        assert resp.status == 500
        assert body == {"success": False, "error": "Internal server error", "code": "internal_error"}
        assert "hunter2" not in await resp.text()

        await app[AUDIT_KEY].flush()
        entries = store.list_activity_logs()
        assert len(entries) == 1
        assert entries[0].action == "test.boom"
        assert entries[0].outcome.value == "error"
        assert entries[0].error_message == "Internal server error"

    async def test_http_exception_audited_and_passed_through(self, aiohttp_client, settings, manager, store):
        app = build_app(settings, manager)
        client = await aiohttp_client(app)

        resp = await client.get("/conflict")
        assert resp.status == 409

        await app[AUDIT_KEY].flush()
        entries = store.list_activity_logs()
        assert [entry.action for entry in entries] == ["test.conflict"]
        assert entries[0].error_message == "Already there"

    async def test_unknown_route(self, aiohttp_client, settings, manager):
        client = await aiohttp_client(build_app(settings, manager))

        resp = await client.get("/nope")
        body = await resp.json()
        assert resp.status == 404
        assert body["error"] == "Endpoint not found"
