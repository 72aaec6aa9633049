# =============================================================================================
# MASTERYMAP/SCHEMAS/USER.PY - PYDANTIC SCHEMAS FOR IDENTITY REQUESTS/RESPONSES
# =============================================================================================
# SQLAlchemy models (masterymap/models) describe tables; these describe the API.
# The split is what keeps password_hash out of every response: UserOut simply
# has no such field.
#
# - RegisterIn:            POST /auth/register body
# - LoginIn:               POST /auth/login body
# - AdminResetPasswordIn:  POST /auth/admin-reset-password body
# - UserOut:               identity in register/login/user responses
# =============================================================================================

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from masterymap.core.security import BCRYPT_MAX_BYTES as PASSWORD_MAX_BYTES
from masterymap.models.user import Role

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128


def check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes when UTF-8 encoded")
    return value


# =============================================================================================
# INPUT SCHEMAS (Request bodies)
# =============================================================================================

class RegisterIn(BaseModel):
    """
    Schema for registration requests.

    USAGE:
        POST /auth/register
        {
            "email": "alice@example.com",
            "password": "SecurePassword123!",
            "role": "student",
            "first_name": "Alice",
            "last_name": "Nguyen",
            "school_id": 3
        }
    """

    email: EmailStr = Field(..., description="Login identifier", examples=["alice@example.com"])

    password: str = Field(
        ...,
        min_length=PASSWORD_MIN_LENGTH,
        max_length=PASSWORD_MAX_LENGTH,
        description="Plaintext password (hashed before storage)",
        examples=["SecurePassword123!"],
    )

    role: Role = Field(default=Role.student, description="admin | teacher | student")

    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)

    school_id: int | None = Field(default=None, description="School affiliation", examples=[3])

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        # Alice@Example.com and alice@example.com are one identity
        return value.strip().lower()

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return check_password_bytes(value)


class LoginIn(BaseModel):
    """
    Schema for login requests.

    No length rule on the password here: rules are enforced at registration,
    and a login attempt only ever gets "Invalid credentials" back anyway.
    """

    email: EmailStr = Field(..., examples=["alice@example.com"])
    password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class AdminResetPasswordIn(BaseModel):
    user_id: int = Field(..., description="Identity whose password is replaced", examples=[42])
    new_password: str = Field(
        ...,
        min_length=PASSWORD_MIN_LENGTH,
        max_length=PASSWORD_MAX_LENGTH,
    )

    @field_validator("new_password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return check_password_bytes(value)


# =============================================================================================
# OUTPUT SCHEMAS (Response bodies)
# =============================================================================================

class UserOut(BaseModel):
    """
    Identity as returned to clients.

    from_attributes=True lets FastAPI build this straight from a User row or a
    CurrentUser value.
    """

    id: int
    email: str
    role: Role
    first_name: str | None = None
    last_name: str | None = None
    school_id: int | None = None

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 42,
                "email": "alice@example.com",
                "role": "student",
                "first_name": "Alice",
                "last_name": "Nguyen",
                "school_id": 3,
            }
        },
    )
