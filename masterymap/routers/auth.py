# =============================================================================================
# MASTERYMAP/ROUTERS/AUTH.PY - AUTHENTICATION ENDPOINTS
# =============================================================================================
# - POST /auth/register              create identity, sign in
# - POST /auth/login                 sign in
# - POST /auth/logout                revoke refresh token, clear cookies (idempotent)
# - POST /auth/refresh               rotate the token pair
# - GET  /auth/user                  current identity
# - POST /auth/admin-reset-password  admin replaces a password (same school only)
#
# TRANSPORT:
# Tokens never appear in a JSON body. Register/login/refresh set two HttpOnly
# cookies (see masterymap/core/cookies.py); the browser sends the access cookie
# everywhere and the refresh cookie only under /auth.
#
# Handlers are thin: AuthService runs the flow and raises taxonomy errors,
# the handler moves cookies and shapes the response.
# =============================================================================================

from fastapi import APIRouter, Depends, Request, Response, status

from masterymap.core.config import Settings
from masterymap.core.cookies import clear_auth_cookies, set_auth_cookies
from masterymap.core.deps import CurrentUser, get_app_settings, get_current_user, require_roles
from masterymap.models.user import Role
from masterymap.schemas.auth import ErrorOut, MessageOut
from masterymap.schemas.user import AdminResetPasswordIn, LoginIn, RegisterIn, UserOut
from masterymap.services.auth import AuthService, get_auth_service

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"],
)

UNAUTHORIZED = {status.HTTP_401_UNAUTHORIZED: {"model": ErrorOut}}


# =============================================================================================
# ENDPOINT 1: Register new user
# =============================================================================================

@router.post(
    "/register",
    response_model=UserOut,
    status_code=status.HTTP_201_CREATED,
    responses={status.HTTP_409_CONFLICT: {"model": ErrorOut}},
)
def register(
    data: RegisterIn,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
):
    """
    Create an identity and sign it in.

    FLOW:
    1. Email already present → 409
    2. Hash password (bcrypt), persist user
    3. Issue token pair, record refresh token in ledger
    4. Set both cookies, return identity (no password hash)

    ERRORS:
        409 Conflict: Email already registered
        400 Bad Request: Missing/invalid fields, password outside 8-128 chars
    """
    user, tokens = auth.register(data)
    set_auth_cookies(response, tokens, settings)
    return user


# =============================================================================================
# ENDPOINT 2: Login
# =============================================================================================

@router.post("/login", response_model=UserOut, responses=UNAUTHORIZED)
def login(
    data: LoginIn,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
):
    """
    Sign in with email + password.

    ERRORS:
        401 Unauthorized: "Invalid credentials" (unknown email and wrong
        password are indistinguishable)
    """
    user, tokens = auth.login(data.email, data.password)
    set_auth_cookies(response, tokens, settings)
    return user


# =============================================================================================
# ENDPOINT 3: Logout
# =============================================================================================

@router.post("/logout", response_model=MessageOut)
def logout(
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
):
    """
    Revoke the refresh token (if the cookie came along) and clear both cookies.

    Never fails for missing cookies, so calling it twice is fine. Access
    tokens already handed out stay valid until they expire (minutes).
    """
    auth.logout(request.cookies.get(settings.REFRESH_COOKIE_NAME))
    clear_auth_cookies(response, settings)
    return MessageOut(message="Logged out successfully")


# =============================================================================================
# ENDPOINT 4: Refresh (rotation)
# =============================================================================================

@router.post("/refresh", response_model=MessageOut, responses=UNAUTHORIZED)
def refresh_tokens(
    request: Request,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
):
    """
    Exchange the refresh cookie for a new pair.

    The presented refresh token is dead the moment this succeeds; a second
    use gets 401.

    ERRORS:
        401 Unauthorized: cookie missing, not in ledger, expired, bad
        signature, identity gone, or already rotated
    """
    _, tokens = auth.refresh(request.cookies.get(settings.REFRESH_COOKIE_NAME))
    set_auth_cookies(response, tokens, settings)
    return MessageOut(message="Tokens refreshed")


# =============================================================================================
# ENDPOINT 5: Current user
# =============================================================================================

@router.get("/user", response_model=UserOut, responses=UNAUTHORIZED)
def get_current_user_profile(current_user: CurrentUser = Depends(get_current_user)):
    return current_user


# =============================================================================================
# ENDPOINT 6: Admin password reset
# =============================================================================================

@router.post(
    "/admin-reset-password",
    response_model=MessageOut,
    responses={
        **UNAUTHORIZED,
        status.HTTP_403_FORBIDDEN: {"model": ErrorOut},
        status.HTTP_404_NOT_FOUND: {"model": ErrorOut},
    },
)
def admin_reset_password(
    data: AdminResetPasswordIn,
    admin: CurrentUser = Depends(require_roles(Role.admin)),
    auth: AuthService = Depends(get_auth_service),
):
    """
    Replace another identity's password.

    ACCESS:
    - admin role only (403 "Admin access required" otherwise)
    - an admin tied to a school can only reach users of that school (403)

    ERRORS:
        404 Not Found: no such user
    """
    auth.admin_reset_password(admin, data.user_id, data.new_password)
    return MessageOut(message="Password reset successfully")
