# =============================================================================================
# MASTERYMAP/MODELS/TOKEN.PY - REFRESH TOKEN LEDGER DATABASE MODEL
# =============================================================================================
# Server-side record of every refresh token that is still usable.
#
# WHY A LEDGER ON TOP OF SIGNED JWTS?
# - A JWT alone can't be revoked before its exp claim
# - Logout deletes the row → token dead even though its signature still verifies
# - Rotation deletes the old row and inserts the new one → old token is single-use
#
# LIFECYCLE:
# 1. register / login / refresh → row inserted (expires_at = now + refresh lifetime)
# 2. logout → row deleted
# 3. refresh → old row deleted, new row inserted
# 4. validation finds expires_at in the past → row deleted on the spot
# =============================================================================================

import enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from masterymap.core.db import Base
from masterymap.models.user import utcnow


class TokenType(str, enum.Enum):
    refresh = "refresh"
    # Reserved for password-reset and email-confirmation flows owned elsewhere
    reset = "reset"
    confirmation = "confirmation"


class AuthToken(Base):
    """
    One ledger row per issued token.

    DATABASE TABLE:
        CREATE TABLE auth_tokens (
            id VARCHAR(36) PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            token_hash VARCHAR(64) NOT NULL UNIQUE,
            type VARCHAR(12) NOT NULL,
            expires_at TIMESTAMP NOT NULL,
            created_at TIMESTAMP NOT NULL
        );

    token_hash is the SHA-256 hex digest of the exact JWT string handed to
    the client, so lookups are by value while a database dump holds nothing
    a client could replay.
    """

    __tablename__ = "auth_tokens"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    token_hash = Column(String(64), nullable=False, unique=True, index=True)

    type = Column(
        Enum(TokenType, name="auth_token_type", native_enum=False, validate_strings=True),
        nullable=False,
        default=TokenType.refresh,
    )

    expires_at = Column(DateTime, nullable=False, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="auth_tokens", lazy="select")

    __table_args__ = (
        Index("ix_auth_tokens_user_type", "user_id", "type"),
    )

    def __repr__(self) -> str:
        return f"<AuthToken(id={self.id}, user_id={self.user_id}, type={self.type})>"
