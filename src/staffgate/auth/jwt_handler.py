"""
JWT token generation and validation.

Bearer tokens are stateless: validity depends only on the signature and
the expiry claim. There is no revocation list.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import jwt
from loguru import logger

from ..errors import InfrastructureError, InvalidToken


ALGORITHM = "HS256"
DEFAULT_TOKEN_TTL = timedelta(days=7)


@dataclass
class TokenPayload:
    """
    Decoded access token.

    Attributes:
        staff_id: Staff UUID
        email: Staff email
        is_superuser: Superuser flag at issue time
        scopes: Resolved permission scopes at issue time
        iat: Issued at
        exp: Expiry
        jti: Token id
    """
    staff_id: str
    email: str
    is_superuser: bool
    scopes: List[str]
    iat: datetime
    exp: datetime
    jti: str


class JWTHandler:
    """
    Issues and verifies signed access tokens.

    The secret is handed in once at construction and never changes.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = ALGORITHM,
        ttl: timedelta = DEFAULT_TOKEN_TTL,
    ):
        """
        Initialize handler.

        Args:
            secret_key: Shared signing secret
            algorithm: JWT algorithm (default: HS256)
            ttl: Token lifetime
        """
        if not secret_key:
            raise ValueError("secret_key is required")

        self._secret_key = secret_key
        self.algorithm = algorithm
        self.ttl = ttl

    def issue(
        self,
        staff_id: str,
        email: str,
        is_superuser: bool,
        scopes: List[str],
        now: Optional[datetime] = None,
    ) -> str:
        """
        Create a signed access token.

        Args:
            staff_id: Staff UUID
            email: Staff email
            is_superuser: Superuser flag
            scopes: Permission scope snapshot
            now: Issue time (default: current UTC time)

        Returns:
            Encoded JWT

        Raises:
            InfrastructureError: If signing fails
        """
        now = now or datetime.now(timezone.utc)
        expire = now + self.ttl

        payload = {
            "iat": int(now.timestamp()),
            "exp": int(expire.timestamp()),
            "sub": staff_id,
            "email": email,
            "is_superuser": is_superuser,
            "scopes": list(scopes),
            "jti": secrets.token_urlsafe(16),
            "type": "access",
        }

        try:
            token = jwt.encode(payload, self._secret_key, algorithm=self.algorithm)
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            logger.error(f"Token signing failed: {e}")
            raise InfrastructureError(f"token signing failed: {e}") from e

        logger.debug(f"Access token issued for staff {staff_id}")
        return token

    def verify(self, token: str) -> TokenPayload:
        """
        Verify signature and expiry and decode the token.

        Args:
            token: Encoded JWT

        Returns:
            TokenPayload

        Raises:
            InvalidToken: For any bad signature, expiry, or malformed payload;
                the caller is not told which check failed
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            logger.debug("Rejected expired token")
            raise InvalidToken()
        except jwt.InvalidTokenError as e:
            logger.debug(f"Rejected invalid token: {e}")
            raise InvalidToken()

        if payload.get("type") != "access":
            logger.debug("Rejected token with wrong type")
            raise InvalidToken()

        try:
            return TokenPayload(
                staff_id=payload["sub"],
                email=payload["email"],
                is_superuser=bool(payload.get("is_superuser", False)),
                scopes=list(payload.get("scopes", [])),
                iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
                jti=payload.get("jti", ""),
            )
        except (KeyError, TypeError, ValueError):
            raise InvalidToken()
