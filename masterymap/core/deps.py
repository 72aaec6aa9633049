# =============================================================================================
# MASTERYMAP/CORE/DEPS.PY - FASTAPI DEPENDENCIES: SESSION GATE + ROLE GATE
# =============================================================================================
# get_current_user()  "who are you?"   → CurrentUser or 401
# require_roles(...)  "allowed here?"  → CurrentUser or 403 (401 if no identity at all)
#
# USAGE IN ROUTES:
#   @router.get("/projects")
#   def list_projects(user: CurrentUser = Depends(get_current_user)): ...
#
#   @router.post("/schools")
#   def create_school(admin: CurrentUser = Depends(require_roles(Role.admin))): ...
#
# The identity is handed to the handler as a parameter; nothing is attached
# to the request object.
# =============================================================================================

import logging
from dataclasses import dataclass

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from masterymap.core.config import Settings
from masterymap.core.db import get_db
from masterymap.core.errors import ForbiddenError, UnauthenticatedError
from masterymap.core.ledger import RefreshTokenLedger
from masterymap.core.security import PasswordHasher, TokenService
from masterymap.models.user import Role, User

logger = logging.getLogger(__name__)


# -------------------------
# App-scoped components (built once in create_app, kept on app.state)
# -------------------------
def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_password_hasher(request: Request) -> PasswordHasher:
    return request.app.state.password_hasher


def get_ledger(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> RefreshTokenLedger:
    return RefreshTokenLedger(db, settings)


# -------------------------
# Request-scoped identity
# -------------------------
@dataclass(frozen=True)
class CurrentUser:
    """Minimal, immutable view of the authenticated identity."""

    id: int
    email: str
    role: Role
    first_name: str | None = None
    last_name: str | None = None
    school_id: int | None = None

    @classmethod
    def from_user(cls, user: User) -> "CurrentUser":
        return cls(
            id=user.id,
            email=user.email,
            role=Role(user.role),
            first_name=user.first_name,
            last_name=user.last_name,
            school_id=user.school_id,
        )

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or self.email


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    tokens: TokenService = Depends(get_token_service),
) -> CurrentUser:
    """
    Session gate: resolve the access cookie into an identity.

    STATES:
    1. No access cookie                       → 401
    2. Cookie present, signature/expiry bad   → 401
    3. Token fine, identity no longer stored  → 401
    4. Identity found                         → CurrentUser

    All three rejections carry the same body, so the client can't tell
    "expired" from "forged" from "deleted". Its only move is refresh, then
    re-login.
    """
    token = request.cookies.get(settings.ACCESS_COOKIE_NAME)
    if not token:
        raise UnauthenticatedError()

    payload = tokens.verify_access(token)
    if payload is None:
        raise UnauthenticatedError()

    user = db.get(User, payload.user_id)
    if user is None:
        logger.info("Access token for unknown user %s rejected", payload.user_id)
        raise UnauthenticatedError()

    return CurrentUser.from_user(user)


def check_roles(identity: CurrentUser | None, allowed: frozenset[Role]) -> CurrentUser:
    """Fail closed: no identity is 401, wrong role is 403."""
    if identity is None:
        raise UnauthenticatedError()
    if identity.role not in allowed:
        logger.warning(
            "User %s with role %s denied (allowed: %s)",
            identity.id,
            identity.role.value,
            ", ".join(sorted(role.value for role in allowed)),
        )
        if allowed == {Role.admin}:
            raise ForbiddenError("Admin access required")
        raise ForbiddenError()
    return identity


def require_roles(*roles: Role | str):
    """
    Build a role gate dependency composed after get_current_user.

    EXAMPLES:
        Depends(require_roles(Role.admin))
        Depends(require_roles("teacher", "admin"))
    """
    allowed = frozenset(Role(role) for role in roles)

    def role_gate(identity: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        return check_roles(identity, allowed)

    return role_gate
