"""
Tests for AuthService -- registration, login, JWT sessions and refresh.

Token lifetimes are checked against the deterministic clock, so expiry is
exercised by advancing the clock rather than by waiting.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from jose import jwt

from backoffice_kernel.domain.dtos import UserRole
from backoffice_kernel.exceptions import (
    DuplicateEmailError,
    InvalidCredentialsError,
    InvalidFieldError,
    InvalidTokenError,
    SessionExpiredError,
    SessionNotAuthenticatedError,
)
from backoffice_kernel.domain.policies import TokenPolicy
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.models.business import Business, User
from backoffice_kernel.services.auth_service import AuthService
from backoffice_kernel.utils.hashing import hash_password, verify_password

from tests.conftest import TEST_PASSWORDS, TEST_TOKENS


@pytest.fixture
def registered(auth):
    return auth.register("Corner Bakery", "Ana Owner", "Ana@Example.com", "s3cret-pass")


class TestRegister:

    def test_register_creates_business_and_owner(self, registered, session):
        user = registered.user
        assert user.role == UserRole.OWNER
        assert user.email == "ana@example.com"
        business = session.get(Business, user.business_id)
        assert business.name == "Corner Bakery"
        assert business.created_by_id == user.id

    def test_password_stored_hashed(self, registered, session):
        stored = session.get(User, registered.user.id).password_hash
        assert stored != "s3cret-pass"
        assert verify_password("s3cret-pass", stored)

    def test_duplicate_email_case_insensitive(self, registered, auth):
        with pytest.raises(DuplicateEmailError):
            auth.register("Other", "Other Owner", "ANA@example.com", "another-pass")

    def test_short_password(self, auth):
        with pytest.raises(InvalidFieldError) as exc_info:
            auth.register("Bakery", "Ana", "ana@example.com", "short")
        assert exc_info.value.field == "password"

    def test_bad_email(self, auth):
        with pytest.raises(InvalidFieldError) as exc_info:
            auth.register("Bakery", "Ana", "not-an-email", "s3cret-pass")
        assert exc_info.value.field == "email"

    def test_claims(self, registered):
        claims = jwt.decode(
            registered.access_token,
            TEST_TOKENS.secret_key,
            algorithms=["HS256"],
            options={"verify_exp": False, "verify_iat": False, "verify_iss": False},
        )
        assert claims["sub"] == str(registered.user.id)
        assert claims["business_id"] == str(registered.user.business_id)
        assert claims["role"] == "owner"
        assert claims["type"] == "access"


class TestLogin:

    def test_login(self, registered, auth):
        tokens = auth.login("  ANA@example.com ", "s3cret-pass")
        assert tokens.user.id == registered.user.id

    def test_wrong_password(self, registered, auth, captured_logs):
        with pytest.raises(InvalidCredentialsError):
            auth.login("ana@example.com", "wrong-pass")
        assert any(r["message"] == "login_failed" for r in captured_logs())

    def test_unknown_email(self, auth):
        with pytest.raises(InvalidCredentialsError):
            auth.login("nobody@example.com", "whatever-pass")

    def test_deactivated_user(self, registered, auth, session):
        session.get(User, registered.user.id).is_active = False
        session.flush()
        with pytest.raises(InvalidCredentialsError):
            auth.login("ana@example.com", "s3cret-pass")

    def test_deactivated_business(self, registered, auth, session):
        session.get(Business, registered.user.business_id).is_active = False
        session.flush()
        with pytest.raises(InvalidCredentialsError):
            auth.login("ana@example.com", "s3cret-pass")


class TestSessions:

    def test_session_for_access_token(self, registered, auth, clock):
        ctx = auth.session_for(registered.access_token, correlation_id="req-1")
        assert ctx.is_authenticated
        assert ctx.user_id == registered.user.id
        assert ctx.role == UserRole.OWNER
        assert ctx.correlation_id == "req-1"
        assert ctx.expires_at == registered.access_expires_at
        assert auth.current_user(ctx).email == "ana@example.com"

    def test_access_token_expires(self, registered, auth, clock):
        clock.advance(31 * 60)
        with pytest.raises(SessionExpiredError):
            auth.session_for(registered.access_token)

    def test_expired_context_rejected_by_services(self, registered, auth, ledger, clock):
        ctx = auth.session_for(registered.access_token)
        clock.advance(30 * 60)
        with pytest.raises(SessionExpiredError):
            ledger.create_item(ctx, name="Flour", unit_of_measure="kg", unit_price=Decimal("1"))

    def test_anonymous_rejected(self, ledger):
        with pytest.raises(SessionNotAuthenticatedError):
            ledger.create_item(
                SessionContext.anonymous(), name="Flour", unit_of_measure="kg"
            )

    def test_refresh_token_not_accepted_as_access(self, registered, auth):
        with pytest.raises(InvalidTokenError):
            auth.session_for(registered.refresh_token)

    def test_foreign_signature(self, registered, session, clock, authority):
        other = AuthService(
            session, clock, authority, TokenPolicy(secret_key="other", issuer=TEST_TOKENS.issuer), TEST_PASSWORDS
        )
        with pytest.raises(InvalidTokenError):
            other.session_for(registered.access_token)

    def test_garbage_token(self, auth):
        with pytest.raises(InvalidTokenError):
            auth.session_for("not.a.jwt")


class TestRefresh:

    def test_refresh_issues_new_access_token(self, registered, auth, clock):
        clock.advance(45 * 60)
        tokens = auth.refresh(registered.refresh_token)
        assert tokens.refresh_token == registered.refresh_token
        assert tokens.access_expires_at == clock.now() + timedelta(
            minutes=TEST_TOKENS.access_token_ttl_minutes
        )
        ctx = auth.session_for(tokens.access_token)
        assert ctx.user_id == registered.user.id

    def test_access_token_cannot_refresh(self, registered, auth):
        with pytest.raises(InvalidTokenError):
            auth.refresh(registered.access_token)

    def test_refresh_token_expires(self, registered, auth, clock):
        clock.advance(8 * 24 * 60 * 60)
        with pytest.raises(InvalidTokenError):
            auth.refresh(registered.refresh_token)

    def test_refresh_for_deactivated_user(self, registered, auth, session):
        session.get(User, registered.user.id).is_active = False
        session.flush()
        with pytest.raises(InvalidTokenError):
            auth.refresh(registered.refresh_token)


class TestHashing:

    def test_hash_round_trip_and_salt(self):
        first = hash_password("pa55word", iterations=1000)
        second = hash_password("pa55word", iterations=1000)
        assert first != second
        assert verify_password("pa55word", first)
        assert not verify_password("pa55wore", first)

    def test_hash_records_method_and_work_factor(self):
        stored = hash_password("pa55word", iterations=1000)
        assert stored.startswith("pbkdf2:sha256:1000$")
        assert "pa55word" not in stored

    def test_malformed_hash(self):
        assert not verify_password("anything", "plain-text")
        assert not verify_password("anything", "")
        assert not verify_password("anything", "rot13$salt$digest")
