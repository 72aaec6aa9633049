# =============================================================================================
# MASTERYMAP/SCHEMAS/AUTH.PY - PYDANTIC SCHEMAS FOR AUTH ACTION RESPONSES
# =============================================================================================
# Tokens never appear in a response body: they travel only as HttpOnly cookies.
# Actions that don't return an identity (logout, refresh, admin reset) answer
# with a short status message.
# =============================================================================================

from pydantic import BaseModel, Field


class MessageOut(BaseModel):
    """
    RESPONSE EXAMPLES:
        {"message": "Tokens refreshed"}
        {"message": "Logged out successfully"}
    """

    message: str = Field(..., examples=["Tokens refreshed"])


class ErrorOut(BaseModel):
    """Body of every 4xx/5xx produced by masterymap.core.errors."""

    detail: str = Field(..., examples=["Not authenticated"])
    code: str = Field(..., examples=["unauthorized"])
