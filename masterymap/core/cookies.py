# =============================================================================================
# MASTERYMAP/CORE/COOKIES.PY - COOKIE TRANSPORT FOR THE TOKEN PAIR
# =============================================================================================
# Both cookies: HttpOnly (no JS access), SameSite=Strict, Secure in production.
#
#   cookie          path                  max-age
#   access_token    /                     access lifetime (minutes)
#   refresh_token   REFRESH_COOKIE_PATH   refresh lifetime (days)
#
# The refresh cookie's path keeps browsers from sending it anywhere outside
# the auth router, so no other handler ever sees (or logs) it.
# =============================================================================================

from fastapi import Response

from masterymap.core.config import Settings
from masterymap.core.security import TokenPair


def set_auth_cookies(response: Response, tokens: TokenPair, settings: Settings) -> None:
    response.set_cookie(
        key=settings.ACCESS_COOKIE_NAME,
        value=tokens.access_token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_SECONDS,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite="strict",
    )
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=tokens.refresh_token,
        max_age=settings.REFRESH_TOKEN_EXPIRE_SECONDS,
        path=settings.REFRESH_COOKIE_PATH,
        secure=settings.cookie_secure,
        httponly=True,
        samesite="strict",
    )


def clear_auth_cookies(response: Response, settings: Settings) -> None:
    # Path must match the one used when setting, or the browser keeps the cookie
    response.delete_cookie(
        key=settings.ACCESS_COOKIE_NAME,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite="strict",
    )
    response.delete_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        path=settings.REFRESH_COOKIE_PATH,
        secure=settings.cookie_secure,
        httponly=True,
        samesite="strict",
    )
