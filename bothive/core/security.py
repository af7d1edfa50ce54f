import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Literal, Optional, get_args

import bcrypt
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError as PydanticValidationError

from bothive.core.config import TokenConfig
from bothive.core.errors import TokenError
from bothive.db.models.base import DomainModel

logger = logging.getLogger(__name__)

AuthStrategy = Literal["bearer", "cookie"]
AUTH_STRATEGIES: tuple[str, ...] = get_args(AuthStrategy)
REFRESH_STRATEGY = "refresh"

INVALID_TOKEN = "Invalid token"
INVALID_REFRESH_TOKEN = "Invalid refresh token"

BCRYPT_MAX_BYTES = 72

# Verifies hashes written by older passlib-based tooling; new hashes use bcrypt directly
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def _password_bytes(password: str) -> bytes:
    """bcrypt only looks at the first 72 bytes; cut on a UTF-8 boundary."""
    password_bytes = password.encode("utf-8")
    if len(password_bytes) <= BCRYPT_MAX_BYTES:
        return password_bytes
    logger.warning("Password exceeds 72 bytes, truncating before hashing")
    return password_bytes[:BCRYPT_MAX_BYTES].decode("utf-8", errors="ignore").encode("utf-8")


def hash_password(password: str) -> str:
    """
    Hash a password with bcrypt.

    Args:
        password: Plain text password

    Returns:
        bcrypt hash string

    Raises:
        ValueError: If the password cannot be hashed
    """
    try:
        return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=12)).decode("utf-8")
    except (ValueError, TypeError) as e:
        logger.error(f"Password hashing failed: {e}")
        raise ValueError("Invalid password") from e


def verify_password(password: str, hashed: str) -> bool:
    """Check a password against a bcrypt hash; malformed hashes never match."""
    try:
        return bcrypt.checkpw(_password_bytes(password), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        pass
    try:
        return pwd_context.verify(password, hashed)
    except (ValueError, TypeError) as e:
        logger.error(f"Password verification failed: {e}")
        return False


class JWTPayload(DomainModel):
    """Claims carried by an access token."""
    user_id: str
    email: str
    role: str
    strategy: str


class RefreshPayload(DomainModel):
    """Claims carried by a refresh token."""
    user_id: str
    strategy: str


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class TokenService:
    """
    Stateless JWT mint/verify.

    Access and refresh tokens are signed with different secrets, and every
    access token is bound to the delivery strategy it was issued for.
    Verification failures collapse to one opaque message per token class.
    """

    def __init__(self, config: TokenConfig):
        self.config = config

    def _encode(self, claims: dict[str, Any], secret: str, lifetime: timedelta) -> str:
        now = datetime.now(timezone.utc)
        to_encode = dict(claims)
        to_encode.update({"iat": now, "exp": now + lifetime})
        return jwt.encode(to_encode, secret, algorithm=self.config.algorithm)

    def create_access_token(
        self,
        user_id: str,
        email: str,
        role: str,
        strategy: AuthStrategy = "bearer",
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        if strategy not in AUTH_STRATEGIES:
            raise ValueError(f"Unknown auth strategy: {strategy}")
        payload = JWTPayload(user_id=str(user_id), email=email, role=role, strategy=strategy)
        return self._encode(
            payload.model_dump(by_alias=True),
            self.config.secret,
            expires_delta or timedelta(minutes=self.config.expires_minutes),
        )

    def create_refresh_token(self, user_id: str, expires_delta: Optional[timedelta] = None) -> str:
        payload = RefreshPayload(user_id=str(user_id), strategy=REFRESH_STRATEGY)
        return self._encode(
            payload.model_dump(by_alias=True),
            self.config.refresh_secret,
            expires_delta or timedelta(minutes=self.config.refresh_expires_minutes),
        )

    def issue_token_pair(
        self,
        user_id: str,
        email: str,
        role: str,
        strategy: AuthStrategy = "bearer",
    ) -> TokenPair:
        return TokenPair(
            access_token=self.create_access_token(user_id, email, role, strategy),
            refresh_token=self.create_refresh_token(user_id),
        )

    def verify_token(self, token: str, strategy: AuthStrategy) -> JWTPayload:
        """
        Decode an access token issued for `strategy`.

        Raises:
            TokenError: "Invalid token" for any signature, expiry, claim or
                strategy problem
        """
        try:
            claims = jwt.decode(token, self.config.secret, algorithms=[self.config.algorithm])
            if claims.get("strategy") != strategy:
                raise TokenError(INVALID_TOKEN)
            return JWTPayload.model_validate(claims)
        except (JWTError, PydanticValidationError, AttributeError):
            raise TokenError(INVALID_TOKEN) from None

    def verify_refresh_token(self, token: str) -> RefreshPayload:
        """
        Decode a refresh token.

        Raises:
            TokenError: "Invalid refresh token"
        """
        try:
            claims = jwt.decode(token, self.config.refresh_secret, algorithms=[self.config.algorithm])
            if claims.get("strategy") != REFRESH_STRATEGY:
                raise TokenError(INVALID_REFRESH_TOKEN)
            return RefreshPayload.model_validate(claims)
        except (JWTError, PydanticValidationError, AttributeError):
            raise TokenError(INVALID_REFRESH_TOKEN) from None

    def refresh(self, refresh_token: str, strategy: AuthStrategy, user: Any) -> TokenPair:
        """
        Rotate a token pair for `user` (anything with id, email and role).

        The refresh token must verify and belong to that same user.
        """
        payload = self.verify_refresh_token(refresh_token)
        if user is None or payload.user_id != str(user.id):
            raise TokenError(INVALID_REFRESH_TOKEN)
        return self.issue_token_pair(user.id, user.email, user.role, strategy)


def check_role(allowed_roles: Iterable[str]) -> Callable[[Any], bool]:
    """Build a pure predicate telling whether a user holds one of the roles."""
    allowed = frozenset(allowed_roles)

    def has_role(user: Any) -> bool:
        return user is not None and getattr(user, "role", None) in allowed

    return has_role
