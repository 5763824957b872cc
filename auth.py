"""
Identity and session handling.

Passwords are bcrypt hashes (passlib), sessions are HS256 JWTs (PyJWT)
carrying the user id and role. The role in the token is a cache: it is
trusted for ROLE_TRUST_SECONDS after the token was issued and confirmed
against the user document after that, or whenever a caller asks for it.
"""

import os
import logging
import threading
import time
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Header
from passlib.context import CryptContext
from pydantic import BaseModel

import database
from schemas import Role

logger = logging.getLogger(__name__)

# Config
JWT_SECRET = os.getenv("JWT_SECRET", "dev_secret_change_me")
JWT_ALGO = os.getenv("JWT_ALGO", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "43200"))  # 30 days by default
ROLE_TRUST_SECONDS = int(os.getenv("ROLE_TRUST_SECONDS", "300"))
LOGIN_MAX_ATTEMPTS = int(os.getenv("LOGIN_MAX_ATTEMPTS", "5"))
LOGIN_WINDOW_SECONDS = int(os.getenv("LOGIN_WINDOW_SECONDS", "900"))
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class AuthError(Exception):
    STATUS_CODES = {
        "unauthenticated": 401,
        "invalid-credentials": 401,
        "permission-denied": 403,
        "duplicate-account": 409,
        "rate-limited": 429,
    }

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    @property
    def status_code(self) -> int:
        return self.STATUS_CODES.get(self.code, 400)


class Session(BaseModel):
    user_id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    role: Optional[Role] = None
    authenticated: bool = False
    confirmed: bool = False

    def has_role(self, *roles: Role) -> bool:
        return self.authenticated and self.role in roles


ANONYMOUS = Session()


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def create_access_token(sub: str, role: Role, name: Optional[str] = None, email: Optional[str] = None) -> str:
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "sub": sub,
        "role": Role(role).value,
        "name": name,
        "email": email,
        "iat": int(now.timestamp()),
        "exp": exp,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGO)


class LoginThrottle:
    """Sliding window of failed logins per email."""

    def __init__(self, max_attempts: int = LOGIN_MAX_ATTEMPTS, window_seconds: int = LOGIN_WINDOW_SECONDS):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._failures: Dict[str, deque] = {}
        self._lock = threading.Lock()

    def _prune(self, key: str, now: float) -> int:
        """Drop expired failures; keys with none left are removed."""
        failures = self._failures.get(key)
        if failures is None:
            return 0
        while failures and now - failures[0] > self.window_seconds:
            failures.popleft()
        if not failures:
            del self._failures[key]
        return len(failures)

    def check(self, key: str, now: Optional[float] = None) -> None:
        now = time.monotonic() if now is None else now
        with self._lock:
            if self._prune(key, now) >= self.max_attempts:
                raise AuthError("rate-limited", "Too many failed login attempts. Please try again later.")

    def record_failure(self, key: str, now: Optional[float] = None) -> None:
        now = time.monotonic() if now is None else now
        with self._lock:
            self._prune(key, now)
            self._failures.setdefault(key, deque()).append(now)

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._failures.clear()
            else:
                self._failures.pop(key, None)


login_throttle = LoginThrottle()


def session_from_user(doc: Dict[str, Any]) -> Session:
    return Session(
        user_id=str(doc["_id"]),
        email=doc.get("email"),
        name=doc.get("name"),
        role=Role(doc.get("role") or Role.CUSTOMER),
        authenticated=True,
        confirmed=True,
    )


def register_user(name: str, email: str, password: str, role: Role = Role.CUSTOMER, **extra: Any) -> Dict[str, Any]:
    email = email.lower()
    if database.get_documents("user", {"email": email}, 1):
        raise AuthError("duplicate-account", "Email already registered")
    data = {
        "name": name,
        "email": email,
        "role": Role(role).value,
        "hashed_password": hash_password(password),
        **extra,
    }
    uid = database.create_document("user", data)
    logger.info("Registered %s account %s", data["role"], uid)
    return database.get_document("user", uid)


def authenticate(email: str, password: str, role: Optional[Role] = None) -> Dict[str, Any]:
    """Check credentials; `role` restricts the login to one kind of account."""
    email = email.lower()
    login_throttle.check(email)
    docs = database.get_documents("user", {"email": email}, 1)
    doc = docs[0] if docs else None
    hashed = doc.get("hashed_password") if doc else None
    if not hashed or not verify_password(password, hashed):
        login_throttle.record_failure(email)
        raise AuthError("invalid-credentials", "Invalid email or password")
    if role is not None and doc.get("role") != Role(role).value:
        logger.warning("Rejected %s login for account %s", Role(role).value, doc["_id"])
        raise AuthError("permission-denied", f"Access denied. {Role(role).value.capitalize()} privileges required.")
    login_throttle.reset(email)
    database.update_document("user", str(doc["_id"]), {"last_login": datetime.now(timezone.utc)})
    return doc


def confirm_session(session: Session) -> Session:
    """Re-read the role from the user document."""
    if not session.authenticated or session.confirmed:
        return session
    doc = database.get_document("user", session.user_id)
    if not doc:
        return ANONYMOUS
    return session_from_user(doc)


def decode_session(token: str, now: Optional[float] = None) -> Session:
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGO])
    except jwt.PyJWTError:
        return ANONYMOUS
    sub = payload.get("sub")
    try:
        role = Role(payload.get("role"))
    except ValueError:
        role = None
    if not sub or role is None:
        return ANONYMOUS
    session = Session(
        user_id=sub,
        email=payload.get("email"),
        name=payload.get("name"),
        role=role,
        authenticated=True,
        confirmed=False,
    )
    now = time.time() if now is None else now
    if now - payload.get("iat", 0) > ROLE_TRUST_SECONDS:
        return confirm_session(session)
    return session


def get_session(authorization: Optional[str] = Header(None)) -> Session:
    if not authorization or not authorization.lower().startswith("bearer "):
        return ANONYMOUS
    token = authorization.split(" ", 1)[1].strip()
    return decode_session(token)


def require_roles(*roles: Role, confirm: bool = False):
    """Dependency factory: the caller must be signed in with one of `roles`."""
    def dependency(session: Session = Depends(get_session)) -> Session:
        if not session.authenticated:
            raise AuthError("unauthenticated", "Please login to continue")
        if confirm:
            session = confirm_session(session)
            if not session.authenticated:
                raise AuthError("unauthenticated", "Please login to continue")
        if roles and not session.has_role(*roles):
            raise AuthError("permission-denied", "You do not have permission to perform this action")
        return session
    return dependency


require_session = require_roles()
