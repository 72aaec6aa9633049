# =============================================================================================
# TESTS/TEST_AUTH.PY - AUTHENTICATION ENDPOINT TESTS
# =============================================================================================
# Full cookie-based flows against an in-memory SQLite database (see conftest.py).
#
# TEST STRATEGY:
# - Each test builds its own app with its own secrets
# - TestClient keeps cookies between calls, like a browser would
# - A token that has to be replayed (old refresh token, forged access token)
#   goes out on a fresh TestClient with an explicit Cookie header
#
# RUNNING TESTS:
#   pytest tests/test_auth.py -v
#   pytest -v  # Run all tests
# =============================================================================================

from datetime import datetime, timedelta, timezone

import jwt
from fastapi.testclient import TestClient

from masterymap.models.token import AuthToken
from masterymap.models.user import User

PASSWORD = "Secret123!"


def cookie_headers(response, name):
    return [h for h in response.headers.get_list("set-cookie") if h.startswith(f"{name}=")]


def cookie_attrs(header):
    """Lower-cased attributes of one Set-Cookie header, value stripped."""
    return {part.strip().lower() for part in header.split(";")[1:]}


def replay(app, **cookies):
    """Send cookies from a client with an empty jar."""
    header = "; ".join(f"{name}={value}" for name, value in cookies.items())
    return TestClient(app), {"Cookie": header}


# =============================================================================================
# TEST CASES: Full authentication flow
# =============================================================================================

def test_register_user_refresh_logout(app, client, register):
    """
    Happy path: register → user → refresh → replay old token → logout → refresh.

    1. Registration signs the identity in (both cookies set)
    2. The access cookie opens GET /auth/user
    3. Refresh rotates both cookies
    4. The rotated refresh token is dead
    5. Logout kills the current refresh token too
    """

    # -------------------------
    # STEP 1: Register
    # -------------------------
    response = register("test@example.com", first_name="Test", last_name="User", school_id=1)

    assert response.status_code == 201
    data = response.json()
    assert data["email"] == "test@example.com"
    assert data["role"] == "student"
    assert data["school_id"] == 1
    assert "id" in data
    assert "password" not in data
    assert "password_hash" not in data
    assert "access_token" not in data  # tokens only travel in cookies

    old_access = client.cookies.get("access_token")
    old_refresh = client.cookies.get("refresh_token")
    assert old_access and old_refresh

    # -------------------------
    # STEP 2: Current user
    # -------------------------
    response = client.get("/auth/user")

    assert response.status_code == 200
    assert response.json()["email"] == "test@example.com"
    assert response.json()["first_name"] == "Test"

    # -------------------------
    # STEP 3: Refresh
    # -------------------------
    response = client.post("/auth/refresh")

    assert response.status_code == 200
    assert response.json() == {"message": "Tokens refreshed"}
    assert client.cookies.get("access_token") != old_access
    assert client.cookies.get("refresh_token") != old_refresh

    # -------------------------
    # STEP 4: Replay the rotated refresh token
    # -------------------------
    other, headers = replay(app, refresh_token=old_refresh)
    response = other.post("/auth/refresh", headers=headers)

    assert response.status_code == 401
    assert response.json()["code"] == "unauthorized"

    # -------------------------
    # STEP 5: Logout, then refresh with the logged-out token
    # -------------------------
    current_refresh = client.cookies.get("refresh_token")
    response = client.post("/auth/logout")

    assert response.status_code == 200
    assert response.json() == {"message": "Logged out successfully"}

    other, headers = replay(app, refresh_token=current_refresh)
    response = other.post("/auth/refresh", headers=headers)
    assert response.status_code == 401


def test_login_sets_exactly_two_cookies(client, register):
    register("cookies@example.com")
    client.cookies.clear()

    response = client.post("/auth/login", json={"email": "cookies@example.com", "password": PASSWORD})

    assert response.status_code == 200
    assert "password_hash" not in response.json()

    set_cookies = response.headers.get_list("set-cookie")
    assert len(set_cookies) == 2
    assert len(cookie_headers(response, "access_token")) == 1
    assert len(cookie_headers(response, "refresh_token")) == 1


def test_auth_cookie_attributes(client, register):
    response = register("attrs@example.com")

    access = cookie_attrs(cookie_headers(response, "access_token")[0])
    refresh = cookie_attrs(cookie_headers(response, "refresh_token")[0])

    assert {"httponly", "samesite=strict", "path=/", "max-age=900"} <= access
    assert {"httponly", "samesite=strict", "path=/auth", "max-age=604800"} <= refresh
    # Not production, so no Secure flag
    assert "secure" not in access
    assert "secure" not in refresh


def test_login_email_is_case_insensitive(client, register):
    register("Mixed.Case@Example.com")
    client.cookies.clear()

    response = client.post("/auth/login", json={"email": "mixed.case@example.com", "password": PASSWORD})

    assert response.status_code == 200
    assert response.json()["email"] == "mixed.case@example.com"


# =============================================================================================
# TEST CASES: Registration errors
# =============================================================================================

def test_register_duplicate_email(client, register, db):
    """Second registration of an email: 409, and nothing new stored."""

    assert register("duplicate@example.com").status_code == 201
    users_before = db.query(User).count()
    tokens_before = db.query(AuthToken).count()

    response = register("duplicate@example.com", password="AnotherPass1!")

    assert response.status_code == 409
    assert response.json() == {"detail": "Email already registered", "code": "conflict"}
    assert db.query(User).count() == users_before
    assert db.query(AuthToken).count() == tokens_before


def test_register_password_too_short(register):
    response = register("short@example.com", password="short")

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "validation_error"
    assert any("password" in err["loc"] for err in body["errors"])


def test_register_invalid_email(register):
    response = register("not-an-email")

    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


def test_register_missing_fields(client):
    response = client.post("/auth/register", json={"email": "nopass@example.com"})

    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"


def test_register_stores_hash_not_password(register, db):
    register("hashed@example.com")

    user = db.query(User).filter(User.email == "hashed@example.com").one()
    assert user.password_hash != PASSWORD
    assert user.password_hash.startswith("$2")


# =============================================================================================
# TEST CASES: Login errors
# =============================================================================================

def test_login_wrong_password(client, register):
    register("user@example.com")
    client.cookies.clear()

    response = client.post("/auth/login", json={"email": "user@example.com", "password": "wrongpassword"})

    assert response.status_code == 401
    assert response.json() == {"detail": "Invalid credentials", "code": "unauthorized"}
    assert response.headers.get_list("set-cookie") == []


def test_login_nonexistent_email_matches_wrong_password(client, register):
    register("exists@example.com")
    client.cookies.clear()

    unknown = client.post("/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})
    wrong = client.post("/auth/login", json={"email": "exists@example.com", "password": "nope-nope"})

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json()


# =============================================================================================
# TEST CASES: Session gate (GET /auth/user)
# =============================================================================================

def test_user_without_cookie(client):
    response = client.get("/auth/user")

    assert response.status_code == 401
    assert response.json()["code"] == "unauthorized"


def test_user_with_garbage_cookie(app):
    other, headers = replay(app, access_token="invalid.token.here")
    response = other.get("/auth/user", headers=headers)

    assert response.status_code == 401


def test_user_with_refresh_token_as_access_cookie(app, client, register):
    register("swap@example.com")
    refresh_token = client.cookies.get("refresh_token")

    other, headers = replay(app, access_token=refresh_token)
    response = other.get("/auth/user", headers=headers)

    assert response.status_code == 401


def test_user_deleted_after_token_issued(client, register, db):
    register("gone@example.com")
    db.query(User).filter(User.email == "gone@example.com").delete()
    db.commit()

    response = client.get("/auth/user")

    assert response.status_code == 401


def test_expired_access_token_then_refresh(app, client, register, settings):
    """
    a@x.com logs in, the access token expires, GET /auth/user is 401,
    refresh succeeds and GET /auth/user works again.
    """
    user_id = register("a@x.com").json()["id"]
    client.cookies.clear()
    assert client.post("/auth/login", json={"email": "a@x.com", "password": PASSWORD}).status_code == 200

    response = client.get("/auth/user")
    assert response.status_code == 200
    assert response.json()["role"] == "student"

    now = datetime.now(timezone.utc)
    expired = jwt.encode(
        {
            "sub": str(user_id),
            "email": "a@x.com",
            "role": "student",
            "type": "access",
            "jti": "expired",
            "iat": now - timedelta(hours=1),
            "exp": now - timedelta(minutes=1),
        },
        settings.JWT_ACCESS_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )

    other, headers = replay(app, access_token=expired)
    assert other.get("/auth/user", headers=headers).status_code == 401

    assert client.post("/auth/refresh").status_code == 200

    response = client.get("/auth/user")
    assert response.status_code == 200
    assert response.json()["email"] == "a@x.com"


# =============================================================================================
# TEST CASES: Refresh and logout
# =============================================================================================

def test_refresh_without_cookie(client):
    response = client.post("/auth/refresh")

    assert response.status_code == 401
    assert response.headers.get_list("set-cookie") == []


def test_refresh_with_access_token_in_refresh_cookie(app, client, register):
    register("mixup@example.com")
    access_token = client.cookies.get("access_token")

    other, headers = replay(app, refresh_token=access_token)
    response = other.post("/auth/refresh", headers=headers)

    assert response.status_code == 401


def test_refresh_keeps_one_ledger_row(client, register, db):
    register("rotate@example.com")
    assert db.query(AuthToken).count() == 1

    client.post("/auth/refresh")
    client.post("/auth/refresh")

    assert db.query(AuthToken).count() == 1


def test_logout_twice(client, register):
    register("twice@example.com")

    first = client.post("/auth/logout")
    second = client.post("/auth/logout")

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json() == {"message": "Logged out successfully"}


def test_logout_clears_cookies(client, register, db):
    register("clear@example.com")

    response = client.post("/auth/logout")

    assert len(cookie_headers(response, "access_token")) == 1
    assert len(cookie_headers(response, "refresh_token")) == 1
    assert "path=/auth" in cookie_attrs(cookie_headers(response, "refresh_token")[0])
    assert client.cookies.get("access_token") is None
    assert client.cookies.get("refresh_token") is None
    assert db.query(AuthToken).count() == 0


def test_logout_one_session_keeps_the_other(app, client, register):
    """Two logins of the same identity are independent sessions."""

    register("multi@example.com")

    second = TestClient(app)
    response = second.post("/auth/login", json={"email": "multi@example.com", "password": PASSWORD})
    assert response.status_code == 200

    # Log out of the first session only
    first_refresh = client.cookies.get("refresh_token")
    assert client.post("/auth/logout").status_code == 200

    assert second.post("/auth/refresh").status_code == 200
    assert second.get("/auth/user").status_code == 200

    other, headers = replay(app, refresh_token=first_refresh)
    assert other.post("/auth/refresh", headers=headers).status_code == 401


# =============================================================================================
# TEST CASES: Admin password reset
# =============================================================================================

def _signed_in(app, email, role="student", school_id=None):
    session = TestClient(app)
    response = session.post(
        "/auth/register",
        json={"email": email, "password": PASSWORD, "role": role, "school_id": school_id},
    )
    assert response.status_code == 201
    return session, response.json()["id"]


def _can_login(app, email, password):
    response = TestClient(app).post("/auth/login", json={"email": email, "password": password})
    return response.status_code == 200


def test_admin_reset_password_same_school(app):
    admin, _ = _signed_in(app, "admin@school1.org", role="admin", school_id=1)
    _, target_id = _signed_in(app, "pupil@school1.org", school_id=1)

    response = admin.post(
        "/auth/admin-reset-password",
        json={"user_id": target_id, "new_password": "BrandNew123!"},
    )

    assert response.status_code == 200
    assert response.json() == {"message": "Password reset successfully"}
    assert not _can_login(app, "pupil@school1.org", PASSWORD)
    assert _can_login(app, "pupil@school1.org", "BrandNew123!")


def test_admin_reset_password_other_school(app, db):
    admin, _ = _signed_in(app, "admin@school1.org", role="admin", school_id=1)
    _, target_id = _signed_in(app, "pupil@school2.org", school_id=2)
    hash_before = db.get(User, target_id).password_hash
    db.expire_all()

    response = admin.post(
        "/auth/admin-reset-password",
        json={"user_id": target_id, "new_password": "BrandNew123!"},
    )

    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"
    assert db.get(User, target_id).password_hash == hash_before
    assert _can_login(app, "pupil@school2.org", PASSWORD)


def test_admin_without_school_is_unscoped(app):
    admin, _ = _signed_in(app, "root@district.org", role="admin")
    _, target_id = _signed_in(app, "pupil@school7.org", school_id=7)

    response = admin.post(
        "/auth/admin-reset-password",
        json={"user_id": target_id, "new_password": "BrandNew123!"},
    )

    assert response.status_code == 200


def test_admin_reset_password_requires_admin(app):
    teacher, _ = _signed_in(app, "teacher@school1.org", role="teacher", school_id=1)
    _, target_id = _signed_in(app, "pupil@school1.org", school_id=1)

    response = teacher.post(
        "/auth/admin-reset-password",
        json={"user_id": target_id, "new_password": "BrandNew123!"},
    )

    assert response.status_code == 403
    assert response.json() == {"detail": "Admin access required", "code": "forbidden"}
    assert _can_login(app, "pupil@school1.org", PASSWORD)


def test_admin_reset_password_unauthenticated(client):
    response = client.post(
        "/auth/admin-reset-password",
        json={"user_id": 1, "new_password": "BrandNew123!"},
    )

    assert response.status_code == 401


def test_admin_reset_password_unknown_user(app):
    admin, _ = _signed_in(app, "admin@school1.org", role="admin", school_id=1)

    response = admin.post(
        "/auth/admin-reset-password",
        json={"user_id": 9999, "new_password": "BrandNew123!"},
    )

    assert response.status_code == 404
    assert response.json() == {"detail": "User not found", "code": "not_found"}


def test_admin_reset_password_short_password(app):
    admin, _ = _signed_in(app, "admin@school1.org", role="admin", school_id=1)
    _, target_id = _signed_in(app, "pupil@school1.org", school_id=1)

    response = admin.post(
        "/auth/admin-reset-password",
        json={"user_id": target_id, "new_password": "short"},
    )

    assert response.status_code == 400
    assert _can_login(app, "pupil@school1.org", PASSWORD)


def test_admin_reset_keeps_sessions_by_default(app):
    admin, _ = _signed_in(app, "admin@school1.org", role="admin", school_id=1)
    pupil, target_id = _signed_in(app, "pupil@school1.org", school_id=1)

    admin.post("/auth/admin-reset-password", json={"user_id": target_id, "new_password": "BrandNew123!"})

    assert pupil.post("/auth/refresh").status_code == 200


def test_admin_reset_revokes_sessions_when_configured(make_app):
    app = make_app(REVOKE_SESSIONS_ON_PASSWORD_RESET=True)
    admin, _ = _signed_in(app, "admin@school1.org", role="admin", school_id=1)
    pupil, target_id = _signed_in(app, "pupil@school1.org", school_id=1)

    admin.post("/auth/admin-reset-password", json={"user_id": target_id, "new_password": "BrandNew123!"})

    assert pupil.post("/auth/refresh").status_code == 401
    # The admin's own session is untouched
    assert admin.post("/auth/refresh").status_code == 200


# =============================================================================================
# TEST CASES: bcrypt's 72-byte limit
# =============================================================================================
# bcrypt ignores everything past byte 72, so a longer password would share a
# hash with every other password that has the same first 72 bytes.

def test_register_rejects_password_over_72_bytes(register, db):
    response = register("long@example.com", password="A" * 72 + "correct-tail")

    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"
    assert db.query(User).count() == 0


def test_register_rejects_multibyte_password_over_72_bytes(register):
    # 40 characters, 80 bytes
    response = register("accents@example.com", password="é" * 40)

    assert response.status_code == 400


def test_login_with_longer_password_sharing_the_prefix_fails(client, register):
    stored = "A" * 72
    assert register("prefix@example.com", password=stored).status_code == 201
    client.cookies.clear()

    wrong_tail = client.post(
        "/auth/login", json={"email": "prefix@example.com", "password": stored + "totally-other"}
    )
    right = client.post("/auth/login", json={"email": "prefix@example.com", "password": stored})

    assert wrong_tail.status_code == 401
    assert wrong_tail.json() == {"detail": "Invalid credentials", "code": "unauthorized"}
    assert right.status_code == 200


def test_admin_reset_rejects_password_over_72_bytes(app):
    admin, _ = _signed_in(app, "admin@school1.org", role="admin", school_id=1)
    _, target_id = _signed_in(app, "pupil@school1.org", school_id=1)

    response = admin.post(
        "/auth/admin-reset-password",
        json={"user_id": target_id, "new_password": "B" * 72 + "tail"},
    )

    assert response.status_code == 400
    assert _can_login(app, "pupil@school1.org", PASSWORD)
