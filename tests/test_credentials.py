"""
Test suite for registration, login and logout
"""

import pytest
from decimal import Decimal

from kodbank.errors import (
    AlreadyExists, AuthFailureReason, InvalidCredentials, Unauthenticated, ValidationError
)

from conftest import TEST_PASSWORD


class TestRegistration:
    """Account creation rules"""

    @pytest.fixture(autouse=True)
    def _system(self, system):
        self.system = system
        self.issuer = system.issuer

    def register(self, username="alice", email="alice@example.com", **overrides):
        fields = {
            "username": username,
            "password": TEST_PASSWORD,
            "email": email,
            "phone": "9876543210",
        }
        fields.update(overrides)
        return self.issuer.register(**fields)

    def test_register_opens_account(self):
        account = self.register()

        assert account.username == "alice"
        assert account.role == "Customer"
        assert account.balance == Decimal("100000.00")
        assert self.system.accounts.get("alice").balance == Decimal("100000.00")

    def test_password_is_hashed(self):
        account = self.register()
        assert account.password_hash != TEST_PASSWORD
        assert TEST_PASSWORD not in account.password_hash

    def test_public_fields(self):
        public = self.register().to_public_dict()
        assert set(public) == {"id", "username", "email", "role"}

    def test_role_customer_is_accepted(self):
        assert self.register(role="Customer").role == "Customer"

    def test_other_roles_rejected(self):
        with pytest.raises(ValidationError):
            self.register(role="Admin")
        assert self.system.accounts.get("alice") is None

    @pytest.mark.parametrize("missing", ["username", "password", "email", "phone"])
    def test_missing_fields(self, missing):
        with pytest.raises(ValidationError, match="All fields are required"):
            self.register(**{missing: ""})

    @pytest.mark.parametrize("overrides", [
        {"password": "short"},
        {"username": "a b"},
        {"username": "x"},
        {"email": "not-an-email"},
        {"phone": "call me"},
    ])
    def test_weak_or_malformed_fields(self, overrides):
        with pytest.raises(ValidationError):
            self.register(**overrides)

    def test_duplicate_username(self):
        self.register()
        with pytest.raises(AlreadyExists):
            self.register(username="Alice", email="second@example.com")

    def test_duplicate_email(self):
        self.register()
        with pytest.raises(AlreadyExists):
            self.register(username="bob", email="alice@example.com")


class TestLogin:
    """Session issuing and revocation"""

    @pytest.fixture(autouse=True)
    def _system(self, system):
        self.system = system
        self.issuer = system.issuer
        self.issuer.register("alice", TEST_PASSWORD, "alice@example.com", "9876543210")

    def test_login_returns_verifiable_token(self):
        result = self.issuer.login("alice", TEST_PASSWORD)

        assert result.username == "alice"
        assert result.role == "Customer"
        identity = self.system.verifier.authenticate(result.token)
        assert identity.username == "alice"

    def test_session_lifetime_is_24_hours(self):
        result = self.issuer.login("alice", TEST_PASSWORD)
        identity = self.system.verifier.authenticate(result.token)
        claims = self.system.signer.decode(result.token)

        assert claims["exp"] - claims["iat"] == 24 * 3600
        assert identity.expires_at == result.expires_at

    def test_unknown_user_and_wrong_password_look_the_same(self):
        with pytest.raises(InvalidCredentials) as unknown:
            self.issuer.login("nobody", TEST_PASSWORD)
        with pytest.raises(InvalidCredentials) as wrong:
            self.issuer.login("alice", "wrong-password")

        assert unknown.value.to_dict() == wrong.value.to_dict()
        assert unknown.value.message == "Invalid username or password"

    def test_missing_credentials(self):
        with pytest.raises(ValidationError):
            self.issuer.login("", TEST_PASSWORD)
        with pytest.raises(ValidationError):
            self.issuer.login("alice", "")

    def test_sessions_are_independent(self):
        """A second login does not invalidate the first"""
        first = self.issuer.login("alice", TEST_PASSWORD)
        second = self.issuer.login("alice", TEST_PASSWORD)

        assert first.token != second.token
        assert self.system.verifier.authenticate(first.token).username == "alice"
        assert self.system.verifier.authenticate(second.token).username == "alice"

    def test_logout_revokes_only_that_session(self):
        first = self.issuer.login("alice", TEST_PASSWORD)
        second = self.issuer.login("alice", TEST_PASSWORD)

        assert self.issuer.logout(first.token)

        with pytest.raises(Unauthenticated) as exc_info:
            self.system.verifier.authenticate(first.token)
        assert exc_info.value.reason == AuthFailureReason.REVOKED
        assert self.system.verifier.authenticate(second.token).username == "alice"

    def test_logout_requires_live_session(self):
        with pytest.raises(Unauthenticated):
            self.issuer.logout(None)
