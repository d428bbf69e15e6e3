"""
Unit tests for scope matching and resolution.
"""

import pytest

from staffgate.auth.permissions import (
    PermissionResolver,
    has_scope,
    is_superuser,
    require_scope,
    resource_wildcard,
)
from staffgate.errors import InsufficientPermissions


class FakeScopeSource:
    def __init__(self, scopes):
        self.scopes = scopes

    def list_scopes_for_account(self, staff_id):
        return list(self.scopes)


class TestHasScope:
    """Test the three matching tiers."""

    def test_exact(self):
        assert has_scope(["staff:read"], "staff:read")

    def test_global_wildcard(self):
        assert has_scope(["*"], "staff:delete")
        assert has_scope(["*"], "anything:at_all")

    def test_resource_wildcard(self):
        assert has_scope(["staff:*"], "staff:delete")
        assert has_scope(["tickets:*"], "tickets:read")

    def test_no_match(self):
        assert not has_scope(["staff:read"], "staff:write")
        assert not has_scope([], "staff:read")

    def test_resource_wildcard_does_not_cross_resources(self):
        """``staff:*`` grants nothing on ``roles``."""
        assert not has_scope(["staff:*"], "roles:read")

    def test_no_pattern_syntax(self):
        """Only ``*`` and ``resource:*`` are wildcards."""
        assert not has_scope(["staff:re*"], "staff:read")
        assert not has_scope(["*:read"], "staff:read")

    def test_resource_wildcard_helper(self):
        assert resource_wildcard("staff:read") == "staff:*"
        assert resource_wildcard("reports") == "reports:*"


class TestSuperuser:
    def test_flag(self):
        assert is_superuser(True, [])

    def test_global_wildcard(self):
        assert is_superuser(False, ["*"])

    def test_neither(self):
        assert not is_superuser(False, ["staff:*"])


class TestRequireScope:
    def test_granted(self):
        require_scope(["staff:*"], "staff:update")

    def test_denied(self):
        with pytest.raises(InsufficientPermissions) as exc_info:
            require_scope(["staff:read"], "staff:update", staff_id="s-1")

        assert exc_info.value.status == 403
        assert exc_info.value.required == "staff:update"
        assert exc_info.value.staff_id == "s-1"


class TestPermissionResolver:
    def test_union_deduplicated_in_order(self):
        """Scopes from several roles merge without duplicates, first-seen order kept."""
        resolver = PermissionResolver(
            FakeScopeSource(["staff:read", "reports:read", "staff:read", "staff:*", "reports:read"])
        )

        assert resolver.resolve("s-1") == ["staff:read", "reports:read", "staff:*"]

    def test_no_roles(self):
        assert PermissionResolver(FakeScopeSource([])).resolve("s-1") == []

    def test_against_store(self, store, staff):
        """Scopes come from every role assigned in the store."""
        manager_role = store.find_role_by_name("Manager")
        support_role = store.find_role_by_name("Support")
        store.assign_role(staff.staff_id, manager_role.role_id)
        store.assign_role(staff.staff_id, support_role.role_id)

        scopes = PermissionResolver(store).resolve(staff.staff_id)

        assert set(scopes) == set(manager_role.permissions) | set(support_role.permissions)
        assert len(scopes) == len(set(scopes))
