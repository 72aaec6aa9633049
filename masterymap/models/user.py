# =============================================================================================
# MASTERYMAP/MODELS/USER.PY - IDENTITY (CREDENTIAL STORE) DATABASE MODEL
# =============================================================================================
# One row per principal: admin, teacher or student.
#
# RULES THE AUTH CORE RELIES ON:
# - email is unique → login lookup returns at most one row
# - role never changes through any auth endpoint
# - password_hash is a bcrypt string and is never placed in a response schema
# - rows are never deleted here (deleting one elsewhere cascades to its auth_tokens)
# =============================================================================================

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Enum, Integer, String
from sqlalchemy.orm import relationship

from masterymap.core.db import Base


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite drops tzinfo, so every column stores naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Role(str, enum.Enum):
    admin = "admin"
    teacher = "teacher"
    student = "student"


class User(Base):
    """
    Identity record.

    DATABASE TABLE:
        CREATE TABLE users (
            id INTEGER PRIMARY KEY,
            email VARCHAR(255) NOT NULL UNIQUE,
            password_hash VARCHAR(255) NOT NULL,
            role VARCHAR(7) NOT NULL DEFAULT 'student',
            first_name VARCHAR(100),
            last_name VARCHAR(100),
            school_id INTEGER,
            created_at TIMESTAMP NOT NULL,
            updated_at TIMESTAMP NOT NULL
        );

    school_id is the tenant boundary for admin operations. Schools themselves
    are owned by the rest of the platform.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)

    email = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Login identifier",
    )

    # bcrypt output is 60 chars; room left for a future scheme in CryptContext
    password_hash = Column(String(255), nullable=False)

    role = Column(
        Enum(Role, name="user_role", native_enum=False, validate_strings=True),
        nullable=False,
        default=Role.student,
    )

    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)

    school_id = Column(Integer, nullable=True, index=True, comment="School affiliation (tenant)")

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    auth_tokens = relationship(
        "AuthToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="select",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
