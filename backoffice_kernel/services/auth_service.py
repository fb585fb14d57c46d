"""
AuthService -- registration, login and token-backed sessions.

Responsibility:
    Creates a business with its owner, verifies credentials, issues and
    refreshes JWT access/refresh tokens, and turns an access token back
    into an authenticated SessionContext.

Architecture position:
    Kernel > Services.  The only place tokens are encoded or decoded.

Invariants enforced:
    - Tokens carry ``sub``, ``business_id``, ``role``, ``type`` and ``exp``.
      An access token is never accepted where a refresh token is expected
      and vice versa.
    - Expiry is checked against the injected Clock, not wall time, so
      token lifetimes are deterministic under test.
    - Deactivated users (or users of a deactivated business) cannot log
      in, refresh, or resolve a session.

Failure modes:
    - DuplicateEmailError on register.
    - InvalidCredentialsError on login; the message never says whether the
      email or the password was wrong.
    - InvalidTokenError: bad signature, wrong type, refresh token expired,
      user gone.
    - SessionExpiredError: access token past ``exp`` (callers may refresh).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice_kernel.domain.clock import Clock
from backoffice_kernel.domain.dtos import UserInfo, UserRole
from backoffice_kernel.domain.policies import PasswordPolicy, TokenPolicy
from backoffice_kernel.domain.session import SessionContext
from backoffice_kernel.exceptions import (
    DuplicateEmailError,
    InvalidCredentialsError,
    InvalidFieldError,
    InvalidTokenError,
    SessionExpiredError,
    UserNotFoundError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.business import Business, User
from backoffice_kernel.services.authority import PermissionAuthority
from backoffice_kernel.services.base import BaseService
from backoffice_kernel.utils.hashing import hash_password, verify_password

logger = get_logger("services.auth")

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class AuthTokens:
    access_token: str
    refresh_token: str
    user: UserInfo
    access_expires_at: datetime


def normalize_email(email: str) -> str:
    value = (email or "").strip().lower()
    if "@" not in value or value.startswith("@") or value.endswith("@"):
        raise InvalidFieldError("email", "is not a valid email address")
    return value


def validate_password(password: str, policy: PasswordPolicy) -> None:
    if len(password or "") < policy.min_length:
        raise InvalidFieldError(
            "password", f"must be at least {policy.min_length} characters"
        )


class AuthService(BaseService[User]):
    """
    Credential and token handling.

    Contract:
        ``register`` and ``login`` need no session; everything else in the
        kernel takes the SessionContext produced by ``session_for``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        authority: PermissionAuthority | None = None,
        tokens: TokenPolicy | None = None,
        passwords: PasswordPolicy | None = None,
    ):
        super().__init__(session, clock, authority)
        self.tokens = tokens or TokenPolicy()
        self.passwords = passwords or PasswordPolicy()

    def register(
        self,
        business_name: str,
        full_name: str,
        email: str,
        password: str,
    ) -> AuthTokens:
        """
        Create a business and its owner, then log the owner in.

        Raises:
            DuplicateEmailError: email already registered.
            InvalidFieldError: missing names, bad email, short password.
        """
        business_name = (business_name or "").strip()
        full_name = (full_name or "").strip()
        if not business_name:
            raise InvalidFieldError("business_name", "is required")
        if not full_name:
            raise InvalidFieldError("full_name", "is required")
        email = normalize_email(email)
        validate_password(password, self.passwords)
        self._check_email_free(email)

        owner_id = uuid4()
        business = Business(name=business_name, is_active=True, created_by_id=owner_id)
        self.session.add(business)
        self.session.flush()

        owner = User(
            id=owner_id,
            business_id=business.id,
            email=email,
            full_name=full_name,
            role=UserRole.OWNER.value,
            password_hash=hash_password(password, self.passwords.hash_iterations),
            is_active=True,
            created_by_id=owner_id,
        )
        self.session.add(owner)
        self.session.flush()

        logger.info(
            "business_registered",
            extra={"business_id": str(business.id), "user_id": str(owner.id)},
        )
        return self._issue(owner)

    def login(self, email: str, password: str) -> AuthTokens:
        email = (email or "").strip().lower()
        user = self.session.execute(
            select(User).where(User.email == email)
        ).scalar_one_or_none()

        if (
            user is None
            or not self._can_authenticate(user)
            or not verify_password(password or "", user.password_hash)
        ):
            logger.warning("login_failed", extra={"email": email})
            raise InvalidCredentialsError(email)

        logger.info("login_succeeded", extra={"user_id": str(user.id)})
        return self._issue(user)

    def refresh(self, refresh_token: str) -> AuthTokens:
        """Exchange a refresh token for a new access token.

        The refresh token itself is returned unchanged.
        """
        claims = self._decode(refresh_token, REFRESH)
        if self._expiry(claims) <= self.clock.now():
            raise InvalidTokenError("refresh token expired")

        user = self._user_from_claims(claims)
        access_token, expires_at = self._encode(user, ACCESS, self.tokens.access_token_ttl_minutes)
        logger.info("access_token_refreshed", extra={"user_id": str(user.id)})
        return AuthTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            user=user.to_dto(),
            access_expires_at=expires_at,
        )

    def session_for(
        self,
        access_token: str,
        correlation_id: str | None = None,
    ) -> SessionContext:
        """Resolve an access token into an authenticated SessionContext.

        Raises:
            SessionExpiredError: token is past its ``exp``.
            InvalidTokenError: anything else wrong with the token.
        """
        claims = self._decode(access_token, ACCESS)
        expires_at = self._expiry(claims)
        if expires_at <= self.clock.now():
            raise SessionExpiredError(user_id=claims.get("sub"), expired_at=expires_at)

        user = self._user_from_claims(claims)
        return SessionContext.anonymous(correlation_id).authenticate(
            user_id=user.id,
            business_id=user.business_id,
            role=UserRole(user.role),
            expires_at=expires_at,
        )

    def current_user(self, ctx: SessionContext) -> UserInfo:
        ctx.require_active(self.clock.now())
        user = self.session.get(User, ctx.user_id)
        if user is None:
            raise UserNotFoundError(str(ctx.user_id))
        return user.to_dto()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _check_email_free(self, email: str) -> None:
        taken = self.session.execute(
            select(User.id).where(User.email == email)
        ).first()
        if taken is not None:
            raise DuplicateEmailError(email)

    def _can_authenticate(self, user: User) -> bool:
        if not user.is_active:
            return False
        business = self.session.get(Business, user.business_id)
        return business is not None and business.is_active

    def _issue(self, user: User) -> AuthTokens:
        access_token, expires_at = self._encode(user, ACCESS, self.tokens.access_token_ttl_minutes)
        refresh_token, _ = self._encode(user, REFRESH, self.tokens.refresh_token_ttl_minutes)
        return AuthTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            user=user.to_dto(),
            access_expires_at=expires_at,
        )

    def _encode(self, user: User, token_type: str, ttl_minutes: int) -> tuple[str, datetime]:
        issued_at = self.clock.now().replace(microsecond=0)
        expires_at = issued_at + timedelta(minutes=ttl_minutes)
        claims = {
            "sub": str(user.id),
            "business_id": str(user.business_id),
            "role": UserRole(user.role).value,
            "type": token_type,
            "iss": self.tokens.issuer,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "jti": uuid4().hex,
        }
        token = jwt.encode(claims, self.tokens.secret_key, algorithm=self.tokens.algorithm)
        return token, expires_at

    def _decode(self, token: str, expected_type: str) -> dict[str, Any]:
        try:
            claims = jwt.decode(
                token,
                self.tokens.secret_key,
                algorithms=[self.tokens.algorithm],
                issuer=self.tokens.issuer,
                # Expiry is checked against the injected clock by the caller
                options={"verify_exp": False, "verify_iat": False},
            )
        except JWTError as exc:
            logger.warning("token_rejected", extra={"reason": str(exc)})
            raise InvalidTokenError("signature or claims invalid") from exc

        if claims.get("type") != expected_type:
            raise InvalidTokenError(f"expected a {expected_type} token")
        if "exp" not in claims or "sub" not in claims:
            raise InvalidTokenError("missing required claims")
        return claims

    @staticmethod
    def _expiry(claims: dict[str, Any]) -> datetime:
        return datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)

    def _user_from_claims(self, claims: dict[str, Any]) -> User:
        try:
            user_id = UUID(claims["sub"])
        except (TypeError, ValueError) as exc:
            raise InvalidTokenError("malformed subject") from exc
        user = self.session.get(User, user_id)
        if user is None or not self._can_authenticate(user):
            raise InvalidTokenError("user no longer active")
        return user
