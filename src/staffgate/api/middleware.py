"""
Request authentication for the HTTP front door.

Handler decorators:
    authenticate        bearer token required; account must exist and be active
    require_scope(s)    authenticate, then require scope ``s``
    require_superuser   authenticate, then require the superuser flag or ``*``
    optional_auth       attach identity when a valid token is present, never fail

Tokens carry a scope snapshot taken at login. Account status is always
re-read from the store; scopes come from the token unless live scope
resolution is enabled in the settings.
"""

import asyncio
import functools
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from aiohttp import web
from loguru import logger

from ..auth.permissions import has_scope, is_superuser
from ..errors import (
    AccountNotActive,
    AuthenticationError,
    InfrastructureError,
    InsufficientPermissions,
    StaffGateError,
    Unauthenticated,
)
from .keys import MANAGER_KEY, SETTINGS_KEY, STAFF_KEY


Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@dataclass
class StaffContext:
    """
    Authenticated identity attached to a request.

    Contains the staff member's id and the scopes used for authorization.
    """
    staff_id: str
    email: str
    is_superuser: bool
    scopes: List[str] = field(default_factory=list)

    @property
    def has_superuser_access(self) -> bool:
        return is_superuser(self.is_superuser, self.scopes)


def current_staff(request: web.Request) -> Optional[StaffContext]:
    return request.get(STAFF_KEY)


def bearer_token(request: web.Request) -> Optional[str]:
    """Extract the token from ``Authorization: Bearer <token>``."""
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    token = header[7:].strip()
    return token or None


async def authenticate_request(request: web.Request) -> StaffContext:
    """
    Verify the bearer token and re-check the account.

    Returns:
        The StaffContext, also stored on the request

    Raises:
        Unauthenticated: No token, or the account no longer exists
        InvalidToken: Bad signature or expired token
        AccountNotActive: Account exists but is inactive or suspended
    """
    existing = current_staff(request)
    if existing is not None:
        return existing

    token = bearer_token(request)
    if not token:
        raise Unauthenticated()

    manager = request.app[MANAGER_KEY]
    payload = manager.verify_token(token)

    account = await asyncio.to_thread(manager.store.find_account_by_id, payload.staff_id)
    if not account:
        logger.warning(f"Token presented for missing staff {payload.staff_id}")
        raise Unauthenticated("Staff member not found")

    if not account.is_active:
        logger.warning(f"Token presented for {account.status.value} staff {account.staff_id}")
        raise AccountNotActive("Staff account is not active", staff_id=account.staff_id)

    scopes = payload.scopes
    if request.app[SETTINGS_KEY].live_scope_resolution:
        scopes = await asyncio.to_thread(manager.resolve_scopes, account.staff_id)

    context = StaffContext(
        staff_id=payload.staff_id,
        email=payload.email,
        is_superuser=payload.is_superuser,
        scopes=list(scopes),
    )
    request[STAFF_KEY] = context
    return context


def authenticate(handler: Handler) -> Handler:
    @functools.wraps(handler)
    async def wrapper(request: web.Request) -> web.StreamResponse:
        await authenticate_request(request)
        return await handler(request)
    return wrapper


def require_scope(required: str) -> Callable[[Handler], Handler]:
    """
    Require a permission scope (e.g. "staff:read").

    Matching: ``*``, then the exact scope, then ``resource:*``.
    """
    def decorator(handler: Handler) -> Handler:
        @functools.wraps(handler)
        async def wrapper(request: web.Request) -> web.StreamResponse:
            context = await authenticate_request(request)
            if not has_scope(context.scopes, required):
                logger.warning(f"Permission denied: staff {context.staff_id} lacks {required}")
                raise InsufficientPermissions(staff_id=context.staff_id, required=required)
            return await handler(request)
        return wrapper
    return decorator


def require_superuser(handler: Handler) -> Handler:
    @functools.wraps(handler)
    async def wrapper(request: web.Request) -> web.StreamResponse:
        context = await authenticate_request(request)
        if not context.has_superuser_access:
            logger.warning(f"Superuser access denied: staff {context.staff_id}")
            raise InsufficientPermissions(staff_id=context.staff_id, required="superuser")
        return await handler(request)
    return wrapper


def optional_auth(handler: Handler) -> Handler:
    @functools.wraps(handler)
    async def wrapper(request: web.Request) -> web.StreamResponse:
        try:
            await authenticate_request(request)
        except AuthenticationError as e:
            logger.debug(f"Optional auth ignored: {e.code}")
        return await handler(request)
    return wrapper


# ============================================================================
# Error rendering and middlewares
# ============================================================================

def error_response(exc: StaffGateError) -> web.Response:
    return web.json_response(exc.to_dict(), status=exc.status)


def render_exception(request: web.Request, exc: Exception) -> web.Response:
    """
    Turn an exception raised by a handler into a JSON error response.

    Infrastructure and unexpected errors are logged in full and returned
    as an opaque 500.
    """
    if isinstance(exc, InfrastructureError):
        logger.error(f"Infrastructure error on {request.method} {request.path}: {exc.internal_detail}")
        return error_response(exc)
    if isinstance(exc, StaffGateError):
        return error_response(exc)

    logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.path}")
    return error_response(InfrastructureError(str(exc)))


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Render StaffGate errors and unknown routes as JSON."""
    try:
        return await handler(request)
    except web.HTTPNotFound:
        return web.json_response(
            {"success": False, "error": "Endpoint not found", "path": request.path},
            status=404,
        )
    except web.HTTPException:
        raise
    except Exception as e:
        return render_exception(request, e)


@web.middleware
async def request_logging_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    start = time.perf_counter()
    response = await handler(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        f"{request.method} {request.path} -> {response.status} "
        f"({duration_ms:.1f} ms, ip={request.remote})"
    )
    return response
