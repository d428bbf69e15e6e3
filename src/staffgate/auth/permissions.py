"""
Permission scopes and resolution.

Scopes are free-form, administrator-defined strings of the form
``resource:action``. Two wildcards exist: ``*`` grants everything and
``resource:*`` grants every action on one resource. Matching is exactly
three tiers (global wildcard, exact, resource wildcard); there is no
pattern syntax and no nested resources.
"""

from typing import Iterable, List, NewType, Optional, Protocol

from ..errors import InsufficientPermissions


Scope = NewType("Scope", str)

GLOBAL_WILDCARD = Scope("*")


class ScopeSource(Protocol):
    def list_scopes_for_account(self, staff_id: str) -> List[str]: ...


def resource_wildcard(required: str) -> Scope:
    """Return the ``resource:*`` scope covering ``required``."""
    resource, _, _ = required.partition(":")
    return Scope(f"{resource}:*")


def has_scope(scopes: Iterable[str], required: str) -> bool:
    """
    Check whether a scope set grants ``required``.

    Args:
        scopes: Scopes held by the staff member
        required: Scope needed, e.g. "staff:read"

    Returns:
        True if permitted

    Examples:
        >>> has_scope(["staff:read"], "staff:read")
        True
        >>> has_scope(["staff:*"], "staff:delete")
        True
        >>> has_scope(["staff:read"], "staff:write")
        False
    """
    held = set(scopes)

    if GLOBAL_WILDCARD in held:
        return True
    if required in held:
        return True
    return resource_wildcard(required) in held


def is_superuser(is_superuser_flag: bool, scopes: Iterable[str]) -> bool:
    """Superuser access: the account flag or the global wildcard."""
    return is_superuser_flag or GLOBAL_WILDCARD in set(scopes)


def require_scope(scopes: Iterable[str], required: str, staff_id: Optional[str] = None) -> None:
    """
    Require a scope, raising InsufficientPermissions if it is not held.

    Raises:
        InsufficientPermissions: If ``scopes`` does not grant ``required``
    """
    if not has_scope(scopes, required):
        raise InsufficientPermissions(staff_id=staff_id, required=required)


class PermissionResolver:
    """
    Computes a staff member's effective scopes from their role assignments.

    Args:
        store: Anything exposing ``list_scopes_for_account``
    """

    def __init__(self, store: ScopeSource):
        self.store = store

    def resolve(self, staff_id: str) -> List[Scope]:
        """
        Union of every scope across every role assigned to the staff member.

        Returns:
            Deduplicated scopes in first-seen order
        """
        seen = {}
        for scope in self.store.list_scopes_for_account(staff_id):
            seen.setdefault(Scope(scope), None)
        return list(seen)
