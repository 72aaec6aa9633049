# =============================================================================================
# MASTERYMAP/CORE/SECURITY.PY - PASSWORD HASHING AND JWT TOKEN MANAGEMENT
# =============================================================================================
# 1. PasswordHasher: bcrypt via passlib (salted, tunable work factor, constant-time verify)
# 2. TokenService: mints and verifies access/refresh JWTs in two separate signing domains
# 3. hash_token(): SHA-256 digest used as the ledger lookup key
#
# SIGNING DOMAINS:
#   access token  → JWT_ACCESS_SECRET,  type="access",  lifetime in minutes
#   refresh token → JWT_REFRESH_SECRET, type="refresh", lifetime in days
# A token from one domain never verifies in the other: wrong secret fails the
# signature check, and the type claim is checked as well.
# =============================================================================================

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

import jwt
from passlib.context import CryptContext

from masterymap.core.config import Settings
from masterymap.models.user import Role

logger = logging.getLogger(__name__)

# bcrypt reads only the first 72 bytes of a password and ignores the rest
BCRYPT_MAX_BYTES = 72

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


# =============================================================================================
# PASSWORD HASHING
# =============================================================================================

class PasswordHasher:
    """
    One-way salted password hashing.

    Example bcrypt hash:
        $2b$12$LQv3c1yqBWVHxkd0LHAkCOYz6TtxMQJqhN8/LewY5Y28Y9Cw/.a
        version, cost factor, 22-char salt, 31-char digest
    """

    def __init__(self, rounds: int = 12):
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordHasher":
        return cls(rounds=settings.BCRYPT_ROUNDS)

    def hash(self, password: str) -> str:
        # Same password → different hash each call (fresh salt)
        if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
            raise ValueError(f"Password longer than {BCRYPT_MAX_BYTES} bytes")
        return self._context.hash(password)

    def verify(self, password: str, password_hash: str | None) -> bool:
        """
        Check a plaintext password against a stored hash.

        Returns False for a mismatch, for a password bcrypt would truncate,
        and for an empty or malformed stored hash. passlib raises on the
        last two; callers only ever need a yes/no.
        """
        if not password_hash:
            return False
        if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
            # Would be truncated and could match a hash of its 72-byte prefix.
            # Still pay for one verify so the reply time matches a real check.
            self._context.dummy_verify()
            return False
        try:
            return self._context.verify(password, password_hash)
        except (ValueError, TypeError):
            logger.warning("Stored password hash could not be parsed")
            return False

    def dummy_verify(self) -> None:
        """Spend one verify's worth of time (used when the account doesn't exist)."""
        self._context.dummy_verify()


# =============================================================================================
# JWT TOKENS
# =============================================================================================

@dataclass(frozen=True)
class TokenPayload:
    """Identity claims carried by both token classes."""

    user_id: int
    email: str
    role: Role

    def to_claims(self) -> dict[str, Any]:
        return {"sub": str(self.user_id), "email": self.email, "role": self.role.value}


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class TokenService:
    """
    Token Issuer / Verifier.

    Built from Settings, never from module globals, so each app (and each
    test) signs with its own secrets.

    CLAIMS:
    - sub:   identity id (string, per RFC 7519)
    - email, role: identity view at issue time
    - type:  "access" | "refresh"
    - jti:   random id, keeps two pairs minted in the same second distinct
    - iat, exp
    """

    def __init__(self, settings: Settings):
        self.access_secret = settings.JWT_ACCESS_SECRET
        self.refresh_secret = settings.JWT_REFRESH_SECRET
        self.algorithm = settings.JWT_ALGORITHM
        self.access_lifetime = timedelta(seconds=settings.ACCESS_TOKEN_EXPIRE_SECONDS)
        self.refresh_lifetime = timedelta(seconds=settings.REFRESH_TOKEN_EXPIRE_SECONDS)

    def _encode(self, payload: TokenPayload, token_type: str, secret: str, lifetime: timedelta) -> str:
        now = datetime.now(timezone.utc)
        claims = payload.to_claims()
        claims.update(
            {
                "type": token_type,
                "jti": uuid4().hex,
                "iat": now,
                "exp": now + lifetime,
            }
        )
        return jwt.encode(claims, secret, algorithm=self.algorithm)

    def create_access_token(self, payload: TokenPayload) -> str:
        return self._encode(payload, ACCESS_TOKEN_TYPE, self.access_secret, self.access_lifetime)

    def create_refresh_token(self, payload: TokenPayload) -> str:
        return self._encode(payload, REFRESH_TOKEN_TYPE, self.refresh_secret, self.refresh_lifetime)

    def issue_pair(self, payload: TokenPayload) -> TokenPair:
        """Mint an access + refresh token for the same identity."""
        return TokenPair(
            access_token=self.create_access_token(payload),
            refresh_token=self.create_refresh_token(payload),
        )

    def _decode(self, token: str, secret: str, expected_type: str) -> TokenPayload | None:
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],  # pinned: no "none", no algorithm swap
                options={"require": ["exp", "iat", "sub", "type"]},
            )
        except jwt.InvalidTokenError:
            # Expired, bad signature, malformed: all the same to callers
            return None

        if claims.get("type") != expected_type:
            return None

        try:
            return TokenPayload(
                user_id=int(claims["sub"]),
                email=claims["email"],
                role=Role(claims["role"]),
            )
        except (KeyError, TypeError, ValueError):
            return None

    def verify_access(self, token: str | None) -> TokenPayload | None:
        """Payload of a valid access token, else None."""
        if not token:
            return None
        return self._decode(token, self.access_secret, ACCESS_TOKEN_TYPE)

    def verify_refresh(self, token: str | None) -> TokenPayload | None:
        """Payload of a valid refresh token, else None."""
        if not token:
            return None
        return self._decode(token, self.refresh_secret, REFRESH_TOKEN_TYPE)


def hash_token(token: str) -> str:
    """
    SHA-256 hex digest of a token, used as the ledger key.

    Tokens are long and random, so a fast hash is enough (bcrypt is for
    low-entropy passwords).
    """
    return hashlib.sha256(token.encode()).hexdigest()
