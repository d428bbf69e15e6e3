"""
Password hashing and strength policy.

Passwords are hashed with bcrypt. bcrypt only looks at the first 72 bytes
of its input, so the plaintext is first reduced to a fixed-length SHA-256
digest; this lets passphrases of any length be hashed without truncation.
"""

import base64
import hashlib
import string
from typing import List, Tuple

import bcrypt


MIN_PASSWORD_LENGTH = 8
DEFAULT_ROUNDS = 12

# Characters accepted as "symbols" by the strength policy
SYMBOLS = set(string.punctuation)


def _prehash(plaintext: str) -> bytes:
    digest = hashlib.sha256(plaintext.encode("utf-8")).digest()
    return base64.b64encode(digest)


class PasswordHasher:
    """
    bcrypt password hasher.

    Args:
        rounds: bcrypt cost factor (log2 of the work factor)
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS):
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        """
        Hash a password with a fresh random salt.

        Args:
            plaintext: Plain text password

        Returns:
            bcrypt digest string ($2b$...)
        """
        return bcrypt.hashpw(_prehash(plaintext), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plaintext: str, digest: str) -> bool:
        """
        Check a password against a stored digest.

        Comparison is done by bcrypt.checkpw (constant time).

        Returns:
            True if the password matches, False otherwise, including when
            the stored digest is malformed
        """
        try:
            return bcrypt.checkpw(_prehash(plaintext), digest.encode("utf-8"))
        except ValueError:
            return False


def validate_strength(plaintext: str) -> Tuple[bool, List[str]]:
    """
    Check a password against the strength policy.

    Policy: at least 8 characters with an uppercase letter, a lowercase
    letter, a digit and a symbol. There is no maximum length.

    Args:
        plaintext: Candidate password

    Returns:
        (ok, violations) where violations lists every failed rule
    """
    violations = []

    if len(plaintext) < MIN_PASSWORD_LENGTH:
        violations.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not any(c.isupper() for c in plaintext):
        violations.append("Password must contain at least one uppercase letter")
    if not any(c.islower() for c in plaintext):
        violations.append("Password must contain at least one lowercase letter")
    if not any(c.isdigit() for c in plaintext):
        violations.append("Password must contain at least one number")
    if not any(c in SYMBOLS for c in plaintext):
        violations.append("Password must contain at least one special character")

    return (not violations, violations)
