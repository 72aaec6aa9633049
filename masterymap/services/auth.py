# =============================================================================================
# MASTERYMAP/SERVICES/AUTH.PY - AUTH FLOWS
# =============================================================================================
# register, login, logout, refresh rotation, admin password reset.
#
# Routers stay thin. Each flow raises a member of the error taxonomy in
# masterymap/core/errors.py at the point of failure. Nothing here touches
# cookies: flows return the token pair and the router hands it to the cookie
# transport.
# =============================================================================================

import logging

from fastapi import Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from masterymap.core.config import Settings
from masterymap.core.db import get_db
from masterymap.core.deps import (
    CurrentUser,
    check_roles,
    get_app_settings,
    get_ledger,
    get_password_hasher,
    get_token_service,
)
from masterymap.core.errors import ConflictError, ForbiddenError, NotFoundError, UnauthenticatedError
from masterymap.core.ledger import RefreshTokenLedger
from masterymap.core.security import PasswordHasher, TokenPair, TokenPayload, TokenService
from masterymap.models.user import Role, User
from masterymap.schemas.user import RegisterIn

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
ADMIN_ONLY = frozenset({Role.admin})


class AuthService:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        passwords: PasswordHasher,
        tokens: TokenService,
        ledger: RefreshTokenLedger,
    ):
        self.db = db
        self.settings = settings
        self.passwords = passwords
        self.tokens = tokens
        self.ledger = ledger

    def _find_by_email(self, email: str) -> User | None:
        return self.db.query(User).filter(User.email == email).first()

    def _issue_for(self, user: User) -> TokenPair:
        """Mint a pair for user and record its refresh half in the ledger."""
        pair = self.tokens.issue_pair(
            TokenPayload(user_id=user.id, email=user.email, role=Role(user.role))
        )
        self.ledger.store(user.id, pair.refresh_token)
        return pair

    def register(self, data: RegisterIn) -> tuple[User, TokenPair]:
        if self._find_by_email(data.email) is not None:
            raise ConflictError("Email already registered")

        user = User(
            email=data.email,
            password_hash=self.passwords.hash(data.password),
            role=data.role,
            first_name=data.first_name,
            last_name=data.last_name,
            school_id=data.school_id,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email
            self.db.rollback()
            raise ConflictError("Email already registered") from None
        self.db.refresh(user)

        pair = self._issue_for(user)
        logger.info("Registered user %s (%s)", user.id, user.role.value)
        return user, pair

    def login(self, email: str, password: str) -> tuple[User, TokenPair]:
        """
        Same failure for unknown email and wrong password, and the same cost:
        an unknown email still pays for one bcrypt verify.
        """
        user = self._find_by_email(email)
        if user is None:
            self.passwords.dummy_verify()
            logger.info("Login failed for %s", email)
            raise UnauthenticatedError(INVALID_CREDENTIALS)

        if not self.passwords.verify(password, user.password_hash):
            logger.info("Login failed for %s", email)
            raise UnauthenticatedError(INVALID_CREDENTIALS)

        pair = self._issue_for(user)
        logger.info("User %s logged in", user.id)
        return user, pair

    def logout(self, refresh_token: str | None) -> None:
        # Idempotent: no cookie, unknown token, already revoked: all fine
        if refresh_token:
            self.ledger.revoke(refresh_token)

    def refresh(self, refresh_token: str | None) -> tuple[User, TokenPair]:
        """
        Rotate a refresh token.

        ORDER:
        1. ledger row live?          (expired rows are dropped here)
        2. JWT signature + expiry ok?
        3. identity still exists?
        4. issue new pair
        5. consume old row           (atomic; a concurrent rotation makes this fail)
        6. store new row
        """
        if not refresh_token:
            raise UnauthenticatedError()

        if not self.ledger.validate(refresh_token):
            raise UnauthenticatedError()

        payload = self.tokens.verify_refresh(refresh_token)
        if payload is None:
            raise UnauthenticatedError()

        user = self.db.get(User, payload.user_id)
        if user is None:
            raise UnauthenticatedError()

        pair = self.tokens.issue_pair(
            TokenPayload(user_id=user.id, email=user.email, role=Role(user.role))
        )

        if not self.ledger.consume(refresh_token):
            logger.warning("Refresh token for user %s was already consumed", user.id)
            raise UnauthenticatedError()

        self.ledger.store(user.id, pair.refresh_token)
        logger.info("Rotated refresh token for user %s", user.id)
        return user, pair

    def admin_reset_password(self, admin: CurrentUser, user_id: int, new_password: str) -> None:
        """
        Replace another identity's password.

        An admin with a school can only reach identities of the same school;
        an admin without one is unscoped. The target's existing sessions stay
        valid unless REVOKE_SESSIONS_ON_PASSWORD_RESET is set.
        """
        check_roles(admin, ADMIN_ONLY)

        target = self.db.get(User, user_id)
        if target is None:
            raise NotFoundError("User not found")

        if admin.school_id is not None and target.school_id != admin.school_id:
            logger.warning(
                "Admin %s denied password reset for user %s outside school %s",
                admin.id,
                target.id,
                admin.school_id,
            )
            raise ForbiddenError("Can only reset passwords for users in your school")

        target.password_hash = self.passwords.hash(new_password)
        self.db.commit()
        logger.info("Admin %s reset password for user %s", admin.id, target.id)

        if self.settings.REVOKE_SESSIONS_ON_PASSWORD_RESET:
            revoked = self.ledger.revoke_all(target.id)
            logger.info("Revoked %d refresh tokens for user %s", revoked, target.id)


def get_auth_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    passwords: PasswordHasher = Depends(get_password_hasher),
    tokens: TokenService = Depends(get_token_service),
    ledger: RefreshTokenLedger = Depends(get_ledger),
) -> AuthService:
    return AuthService(db, settings, passwords, tokens, ledger)
