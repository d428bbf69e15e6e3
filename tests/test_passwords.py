"""
Unit tests for password hashing and the strength policy.
"""

import pytest

from staffgate.auth.passwords import PasswordHasher, validate_strength


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=4)


class TestPasswordHasher:
    """Test bcrypt hashing and verification."""

    def test_hash_and_verify(self, hasher):
        """A digest verifies against its own password only."""
        digest = hasher.hash("Secure1!A")

        assert digest.startswith("$2b$04$")
        assert hasher.verify("Secure1!A", digest)
        assert not hasher.verify("Secure1!B", digest)

    def test_salted(self, hasher):
        """Hashing the same password twice gives different digests."""
        first = hasher.hash("Secure1!A")
        second = hasher.hash("Secure1!A")

        assert first != second
        assert hasher.verify("Secure1!A", first)
        assert hasher.verify("Secure1!A", second)

    def test_malformed_digest(self, hasher):
        """A corrupt stored digest is a mismatch, not an error."""
        assert hasher.verify("Secure1!A", "not-a-bcrypt-hash") is False
        assert hasher.verify("Secure1!A", "") is False

    def test_long_passphrase_not_truncated(self, hasher):
        """Passwords differing only after byte 72 do not collide."""
        base = "Aa1!" + "x" * 100
        digest = hasher.hash(base + "one")

        assert hasher.verify(base + "one", digest)
        assert not hasher.verify(base + "two", digest)

    def test_unicode(self, hasher):
        """Non-ASCII passwords round-trip."""
        digest = hasher.hash("Pässwörd1!")
        assert hasher.verify("Pässwörd1!", digest)
        assert not hasher.verify("Passwort1!", digest)


class TestValidateStrength:
    """Test the password strength policy."""

    def test_strong_password(self):
        ok, violations = validate_strength("Secure1!A")
        assert ok
        assert violations == []

    def test_reports_every_violation(self):
        """All failing rules are listed, not just the first."""
        ok, violations = validate_strength("abc")

        assert not ok
        assert "Password must be at least 8 characters long" in violations
        assert "Password must contain at least one uppercase letter" in violations
        assert "Password must contain at least one number" in violations
        assert "Password must contain at least one special character" in violations
        assert "Password must contain at least one lowercase letter" not in violations

    @pytest.mark.parametrize("password,expected", [
        ("Abc12345!", []),
        ("ABCDEFGH", [
            "Password must contain at least one lowercase letter",
            "Password must contain at least one number",
            "Password must contain at least one special character",
        ]),
        ("12345678", [
            "Password must contain at least one uppercase letter",
            "Password must contain at least one lowercase letter",
            "Password must contain at least one special character",
        ]),
        ("Abcdefgh", [
            "Password must contain at least one number",
            "Password must contain at least one special character",
        ]),
    ])
    def test_exact_violations(self, password, expected):
        ok, violations = validate_strength(password)
        assert ok is (expected == [])
        assert violations == expected

    def test_missing_symbol(self):
        ok, violations = validate_strength("Secure123")
        assert not ok
        assert violations == ["Password must contain at least one special character"]

    def test_no_maximum_length(self):
        ok, _ = validate_strength("Aa1!" + "z" * 500)
        assert ok
