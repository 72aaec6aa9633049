# =============================================================================================
# MASTERYMAP/CORE/LEDGER.PY - REFRESH TOKEN LEDGER OPERATIONS
# =============================================================================================
# A refresh token is usable only while BOTH hold:
#   (a) its JWT signature/expiry verify (TokenService.verify_refresh)
#   (b) a matching, unexpired "refresh" row exists here
#
# OPERATIONS:
# - store():      insert row, expiry computed server-side
# - validate():   lookup; expired rows are deleted on sight (no background sweeper)
# - revoke():     unconditional delete (logout)
# - consume():    atomic delete-if-valid (rotation); only one concurrent caller wins
# - revoke_all(): drop every refresh row of one identity
# =============================================================================================

import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from masterymap.core.config import Settings
from masterymap.core.security import hash_token
from masterymap.models.token import AuthToken, TokenType
from masterymap.models.user import utcnow

logger = logging.getLogger(__name__)


class RefreshTokenLedger:
    """Server-side record of refresh tokens, bound to one request's session."""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.lifetime = timedelta(seconds=settings.REFRESH_TOKEN_EXPIRE_SECONDS)

    def _lookup(self, token: str):
        return self.db.query(AuthToken).filter(
            AuthToken.token_hash == hash_token(token),
            AuthToken.type == TokenType.refresh,
        )

    def store(self, user_id: int, token: str) -> AuthToken:
        """Record a freshly issued refresh token for user_id."""
        record = AuthToken(
            user_id=user_id,
            token_hash=hash_token(token),
            type=TokenType.refresh,
            expires_at=utcnow() + self.lifetime,
        )
        self.db.add(record)
        self.db.commit()
        return record

    def validate(self, token: str) -> bool:
        """
        True if the token has a live ledger row.

        An expired row is deleted as a side effect and reported invalid.
        """
        record = self._lookup(token).first()
        if record is None:
            return False

        if record.expires_at <= utcnow():
            logger.info("Dropping expired refresh token for user %s", record.user_id)
            self.db.delete(record)
            self.db.commit()
            return False

        return True

    def consume(self, token: str) -> bool:
        """
        Delete the token's row if it is still live; True if this call removed it.

        A single conditional DELETE, so two concurrent refreshes on the same
        token can't both succeed: the loser sees rowcount 0.
        """
        removed = (
            self._lookup(token)
            .filter(AuthToken.expires_at > utcnow())
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return removed == 1

    def revoke(self, token: str) -> None:
        """Delete the token's row whether or not it exists or has expired."""
        self._lookup(token).delete(synchronize_session=False)
        self.db.commit()

    def revoke_all(self, user_id: int) -> int:
        """Delete every refresh row belonging to user_id; returns how many went."""
        removed = (
            self.db.query(AuthToken)
            .filter(AuthToken.user_id == user_id, AuthToken.type == TokenType.refresh)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return removed
