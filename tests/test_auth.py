import time

import jwt
import pytest

import auth
import database
from auth import AuthError, LoginThrottle
from conftest import make_user
from schemas import Role


def test_password_hashing():
    hashed = auth.hash_password("secret123")
    assert hashed != "secret123"
    assert auth.verify_password("secret123", hashed)
    assert not auth.verify_password("wrong", hashed)


def test_token_carries_role_claim():
    token = auth.create_access_token("abc", Role.DRIVER, name="Dee")
    payload = jwt.decode(token, auth.JWT_SECRET, algorithms=[auth.JWT_ALGO])
    assert payload["sub"] == "abc"
    assert payload["role"] == "driver"


def test_fresh_token_uses_cached_role(db):
    token = auth.create_access_token("507f1f77bcf86cd799439011", Role.ADMIN)
    session = auth.decode_session(token)
    assert session.authenticated
    assert session.role == Role.ADMIN
    assert not session.confirmed


def test_stale_token_is_confirmed_against_user_document(db, customer):
    uid = str(customer["_id"])
    # the stored role changed after the token was issued
    token = auth.create_access_token(uid, Role.ADMIN)
    later = time.time() + auth.ROLE_TRUST_SECONDS + 60
    session = auth.decode_session(token, now=later)
    assert session.confirmed
    assert session.role == Role.CUSTOMER


def test_stale_token_for_deleted_user_is_anonymous(db):
    token = auth.create_access_token("507f1f77bcf86cd799439011", Role.CUSTOMER)
    session = auth.decode_session(token, now=time.time() + auth.ROLE_TRUST_SECONDS + 60)
    assert not session.authenticated


def test_garbage_token_is_anonymous():
    assert auth.decode_session("not-a-token") == auth.ANONYMOUS
    assert not auth.get_session("Basic abc").authenticated


def test_register_duplicate_email(db, customer):
    with pytest.raises(AuthError) as exc:
        auth.register_user("Again", "CUSTOMER@carbooking.io", "secret123")
    assert exc.value.code == "duplicate-account"
    assert exc.value.status_code == 409


def test_authenticate(db, customer):
    doc = auth.authenticate("customer@carbooking.io", "secret123")
    assert doc["_id"] == customer["_id"]
    assert database.get_document("user", str(customer["_id"]))["last_login"]


def test_authenticate_wrong_password(db, customer):
    with pytest.raises(AuthError) as exc:
        auth.authenticate("customer@carbooking.io", "nope")
    assert exc.value.code == "invalid-credentials"


def test_role_specific_login_rejects_other_roles(db, customer):
    with pytest.raises(AuthError) as exc:
        auth.authenticate("customer@carbooking.io", "secret123", role=Role.ADMIN)
    assert exc.value.code == "permission-denied"
    assert exc.value.status_code == 403


def test_repeated_failures_are_rate_limited(db, customer):
    for _ in range(auth.LOGIN_MAX_ATTEMPTS):
        with pytest.raises(AuthError):
            auth.authenticate("customer@carbooking.io", "nope")
    with pytest.raises(AuthError) as exc:
        auth.authenticate("customer@carbooking.io", "secret123")
    assert exc.value.code == "rate-limited"
    assert exc.value.status_code == 429


def test_throttle_window_expires():
    throttle = LoginThrottle(max_attempts=2, window_seconds=10)
    throttle.record_failure("a", now=0)
    throttle.record_failure("a", now=1)
    with pytest.raises(AuthError):
        throttle.check("a", now=5)
    throttle.check("a", now=12)
    throttle.check("b", now=5)


def test_require_roles(db, customer):
    session = auth.session_from_user(customer)
    assert auth.require_roles(Role.CUSTOMER)(session) == session
    with pytest.raises(AuthError) as exc:
        auth.require_roles(Role.ADMIN)(session)
    assert exc.value.code == "permission-denied"
    with pytest.raises(AuthError) as exc:
        auth.require_roles(Role.ADMIN)(auth.ANONYMOUS)
    assert exc.value.code == "unauthenticated"


def test_require_roles_confirm_rereads_role(db, customer):
    token = auth.create_access_token(str(customer["_id"]), Role.ADMIN)
    cached = auth.decode_session(token)
    assert cached.role == Role.ADMIN
    with pytest.raises(AuthError) as exc:
        auth.require_roles(Role.ADMIN, confirm=True)(cached)
    assert exc.value.code == "permission-denied"


def test_throttle_forgets_expired_and_unknown_keys():
    throttle = LoginThrottle(max_attempts=2, window_seconds=10)
    for i in range(100):
        throttle.check(f"nobody{i}@carbooking.io", now=0)
    assert throttle._failures == {}

    throttle.record_failure("a", now=0)
    throttle.check("a", now=5)
    assert "a" in throttle._failures
    throttle.check("a", now=11)
    assert throttle._failures == {}


def test_session_has_role(db, driver):
    session = auth.session_from_user(driver)
    assert session.has_role(Role.DRIVER, Role.ADMIN)
    assert not session.has_role(Role.CUSTOMER)
    assert not auth.ANONYMOUS.has_role(Role.CUSTOMER)
