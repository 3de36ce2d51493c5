"""
auth.py
Authentication: bcrypt hashing, staff user backends (SQLite or REST) and the
session gate that owns the signed-in staff member's session.
"""

from __future__ import annotations

import json
import logging
import secrets
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, MutableMapping

import bcrypt
import httpx

import db
from errors import AuthError, BackendError, MembershipError, NotFoundError, ValidationError
from models import EMAIL_RE, ROLES, Session, User

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_EMAIL = "admin@example.com"
DEFAULT_ADMIN_PASSWORD = "admin123"
MIN_PASSWORD_LENGTH = 6

TOKEN_KEY = "auth_token"
EXPIRES_KEY = "auth_expires_at"
USER_KEY = "auth_user"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_bcrypt_secret(password: str) -> bytes:
    """
    bcrypt only uses the first 72 BYTES of the password.
    We truncate to 72 bytes to avoid ValueError and to make behavior explicit.
    """
    pw = password.encode("utf-8")
    if len(pw) > 72:
        pw = pw[:72]
    return pw


def hash_password(password: str, rounds: int = 12) -> str:
    """
    Returns a bcrypt hash as a UTF-8 string (stored in SQLite).
    """
    secret = _to_bcrypt_secret(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(secret, salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    secret = _to_bcrypt_secret(password)
    stored = password_hash.encode("utf-8")
    return bcrypt.checkpw(secret, stored)


def validate_new_user(email: str, password: str, role: str) -> None:
    errors: list[str] = []
    if not EMAIL_RE.match(email.strip()):
        errors.append("Email must be a valid address.")
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if role not in ROLES:
        errors.append(f"Role must be one of: {', '.join(ROLES)}.")
    if errors:
        raise ValidationError(errors)


def _parse_expiry(value) -> datetime:
    expires = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires


# ---------- backends ----------

class AuthBackend(ABC):
    """Where staff credentials live. Admin operations check the role again here."""

    @abstractmethod
    def sign_in(self, email: str, password: str) -> tuple[User, Session]: ...

    @abstractmethod
    def sign_up(self, email: str, password: str, full_name: str, role: str = "staff") -> tuple[User, Session]: ...

    @abstractmethod
    def sign_out(self, token: str) -> None: ...

    @abstractmethod
    def current_user(self, token: str) -> User | None: ...

    @abstractmethod
    def list_users(self, token: str) -> list[User]: ...

    @abstractmethod
    def create_user(self, token: str, email: str, password: str, full_name: str, role: str = "staff") -> User: ...

    @abstractmethod
    def update_user(self, token: str, user_id: str, full_name: str, role: str) -> User: ...

    @abstractmethod
    def delete_user(self, token: str, user_id: str) -> None: ...

    @abstractmethod
    def change_password(self, token: str, new_password: str) -> None: ...


def _user_from_row(row) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        role=row["role"],
        full_name=row["full_name"],
        created_at=row["created_at"],
    )


class LocalAuthBackend(AuthBackend):
    """
    Users and sessions in the SQLite database (db.init_db() must have run).
    """

    def __init__(self, session_hours: int = 24, clock: Callable[[], datetime] = utcnow, hash_rounds: int = 12):
        self.session_lifetime = timedelta(hours=session_hours)
        self.clock = clock
        self.hash_rounds = hash_rounds

    def bootstrap_admin(self) -> None:
        """
        Insert the default admin if no user exists yet and force a password
        change on first login.
        """
        if db.fetch_one("SELECT id FROM users LIMIT 1"):
            return
        self._insert_user(DEFAULT_ADMIN_EMAIL, DEFAULT_ADMIN_PASSWORD, "Administrator", "admin")
        db.set_setting("force_password_change", "1")
        logger.info("Created default admin %s", DEFAULT_ADMIN_EMAIL)

    def _insert_user(self, email: str, password: str, full_name: str | None, role: str) -> User:
        validate_new_user(email, password, role)
        email = email.strip().lower()
        if db.fetch_one("SELECT id FROM users WHERE email = ?", (email,)):
            raise ValidationError(f"A user with email {email} already exists.")
        user_id = str(uuid.uuid4())
        db.execute(
            "INSERT INTO users(id, email, full_name, role, password_hash, created_at) VALUES(?,?,?,?,?,?)",
            (
                user_id,
                email,
                (full_name or "").strip() or None,
                role,
                hash_password(password, self.hash_rounds),
                self.clock().isoformat(timespec="seconds"),
            ),
        )
        return self._get_user(user_id)

    def _get_user(self, user_id: str) -> User | None:
        row = db.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
        return _user_from_row(row) if row else None

    def _purge_expired_sessions(self) -> None:
        now = self.clock()
        expired = [
            (row["token"],)
            for row in db.fetch_all("SELECT token, expires_at FROM sessions")
            if now >= _parse_expiry(row["expires_at"])
        ]
        if expired:
            with db.get_conn() as conn:
                conn.executemany("DELETE FROM sessions WHERE token = ?", expired)
            logger.info("Purged %d expired sessions", len(expired))

    def _issue_session(self, user: User) -> Session:
        self._purge_expired_sessions()
        session = Session(access_token=secrets.token_urlsafe(32), expires_at=self.clock() + self.session_lifetime)
        db.execute(
            "INSERT INTO sessions(token, user_id, expires_at) VALUES(?,?,?)",
            (session.access_token, user.id, session.expires_at.isoformat()),
        )
        return session

    def _require_admin(self, token: str) -> User:
        user = self.current_user(token)
        if user is None:
            raise AuthError("Not signed in.")
        if not user.is_admin:
            raise AuthError("Admin access required.")
        return user

    def sign_in(self, email, password):
        row = db.fetch_one("SELECT * FROM users WHERE email = ?", (email.strip().lower(),))
        if not row or not verify_password(password, row["password_hash"]):
            raise AuthError("Invalid email or password.")
        user = _user_from_row(row)
        return user, self._issue_session(user)

    def sign_up(self, email, password, full_name, role="staff"):
        user = self._insert_user(email, password, full_name, role)
        logger.info("Registered %s user %s", role, user.email)
        return user, self._issue_session(user)

    def sign_out(self, token):
        db.execute("DELETE FROM sessions WHERE token = ?", (token,))

    def current_user(self, token):
        row = db.fetch_one(
            """
            SELECT u.*, s.expires_at AS session_expires_at
            FROM sessions s JOIN users u ON u.id = s.user_id
            WHERE s.token = ?
            """,
            (token,),
        )
        if not row:
            return None
        if self.clock() >= _parse_expiry(row["session_expires_at"]):
            db.execute("DELETE FROM sessions WHERE token = ?", (token,))
            return None
        return _user_from_row(row)

    def list_users(self, token):
        self._require_admin(token)
        return [_user_from_row(r) for r in db.fetch_all("SELECT * FROM users ORDER BY created_at DESC")]

    def create_user(self, token, email, password, full_name, role="staff"):
        admin = self._require_admin(token)
        user = self._insert_user(email, password, full_name, role)
        logger.info("%s created %s user %s", admin.email, role, user.email)
        return user

    def update_user(self, token, user_id, full_name, role):
        self._require_admin(token)
        if role not in ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(ROLES)}.")
        touched = db.execute(
            "UPDATE users SET full_name = ?, role = ? WHERE id = ?",
            ((full_name or "").strip() or None, role, user_id),
        )
        if not touched:
            raise NotFoundError(f"User {user_id} not found.")
        return self._get_user(user_id)

    def delete_user(self, token, user_id):
        self._require_admin(token)
        db.execute("DELETE FROM sessions WHERE user_id = ?", (user_id,))
        if not db.execute("DELETE FROM users WHERE id = ?", (user_id,)):
            raise NotFoundError(f"User {user_id} not found.")

    def change_password(self, token, new_password):
        user = self.current_user(token)
        if user is None:
            raise AuthError("Not signed in.")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        db.execute(
            "UPDATE users SET password_hash = ? WHERE id = ?",
            (hash_password(new_password, self.hash_rounds), user.id),
        )
        db.clear_force_password_change()


class RestAuthBackend(AuthBackend):
    def __init__(self, base_url: str, timeout: float = 10.0, transport: httpx.BaseTransport | None = None):
        self.client = httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    def _call(self, method: str, endpoint: str, token: str | None = None, **kwargs):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        logger.debug("API call: %s %s", method, endpoint)
        try:
            response = self.client.request(method, endpoint, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise BackendError(f"{method} {endpoint} failed: {e}") from e
        try:
            body = response.json() if response.content else None
        except ValueError:
            body = None
        if response.status_code in (401, 403):
            raise AuthError((body or {}).get("error") or "Not authorised.")
        if response.status_code == 404:
            raise NotFoundError((body or {}).get("error") or f"{endpoint} not found.")
        if response.is_error:
            raise BackendError((body or {}).get("error") or f"HTTP {response.status_code}: {response.reason_phrase}")
        return body

    @staticmethod
    def _auth_response(body: dict) -> tuple[User, Session]:
        session = body.get("session") or {}
        if not session.get("access_token"):
            raise AuthError("The server did not return a session.")
        return User.from_dict(body["user"]), Session(
            access_token=session["access_token"],
            expires_at=_parse_expiry(session["expires_at"]),
        )

    def sign_in(self, email, password):
        body = self._call("POST", "/auth/signin", json={"email": email, "password": password})
        return self._auth_response(body)

    def sign_up(self, email, password, full_name, role="staff"):
        validate_new_user(email, password, role)
        body = self._call(
            "POST", "/auth/signup",
            json={"email": email, "password": password, "fullName": full_name, "role": role},
        )
        return self._auth_response(body)

    def sign_out(self, token):
        self._call("POST", "/auth/signout", token=token)

    def current_user(self, token):
        try:
            body = self._call("GET", "/auth/user", token=token)
        except AuthError:
            return None
        user = (body or {}).get("user")
        return User.from_dict(user) if user else None

    def list_users(self, token):
        return [User.from_dict(u) for u in self._call("GET", "/auth/users", token=token) or []]

    def create_user(self, token, email, password, full_name, role="staff"):
        validate_new_user(email, password, role)
        body = self._call(
            "POST", "/auth/signup", token=token,
            json={"email": email, "password": password, "fullName": full_name, "role": role},
        )
        return User.from_dict(body["user"])

    def update_user(self, token, user_id, full_name, role):
        body = self._call("PUT", f"/auth/users/{user_id}", token=token, json={"fullName": full_name, "role": role})
        return User.from_dict(body)

    def delete_user(self, token, user_id):
        self._call("DELETE", f"/auth/users/{user_id}", token=token)

    def change_password(self, token, new_password):
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        self._call("PUT", "/auth/password", token=token, json={"password": new_password})


def make_auth_backend(settings) -> AuthBackend:
    if settings.backend == "rest":
        return RestAuthBackend(settings.api_base_url, timeout=settings.api_timeout)
    db.configure(settings.db_file)
    db.init_db()
    backend = LocalAuthBackend(session_hours=settings.session_hours)
    backend.bootstrap_admin()
    return backend


# ---------- session gate ----------

class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


class AuthGate:
    """
    Owns the persisted session (three keys in `storage`, e.g. st.session_state).
    Expiry is checked on every read; nothing runs on a timer.
    """

    def __init__(
        self,
        backend: AuthBackend,
        storage: MutableMapping,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.backend = backend
        self.storage = storage
        self.clock = clock
        self.state = AuthState.AUTHENTICATED if self.stored_session() else AuthState.UNAUTHENTICATED

    def _persist(self, user: User, session: Session) -> None:
        self.storage[TOKEN_KEY] = session.access_token
        self.storage[EXPIRES_KEY] = session.expires_at.isoformat()
        self.storage[USER_KEY] = json.dumps(user.to_dict())

    def _clear(self) -> None:
        for key in (TOKEN_KEY, EXPIRES_KEY, USER_KEY):
            self.storage.pop(key, None)

    def stored_session(self) -> tuple[User, Session] | None:
        token = self.storage.get(TOKEN_KEY)
        expires_raw = self.storage.get(EXPIRES_KEY)
        user_raw = self.storage.get(USER_KEY)
        if not token or not expires_raw or not user_raw:
            return None

        try:
            expires_at = _parse_expiry(expires_raw)
            user = User.from_dict(json.loads(user_raw))
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding malformed stored session")
            self._clear()
            self.state = AuthState.UNAUTHENTICATED
            return None

        if self.clock() >= expires_at:
            logger.info("Session for %s has expired", user.email)
            self.state = AuthState.EXPIRED
            self._clear()
            self.state = AuthState.UNAUTHENTICATED
            return None

        return user, Session(access_token=token, expires_at=expires_at)

    def token(self) -> str | None:
        current = self.stored_session()
        return current[1].access_token if current else None

    def current_user(self) -> User | None:
        current = self.stored_session()
        return current[0] if current else None

    @property
    def is_authenticated(self) -> bool:
        return self.current_user() is not None

    def is_admin(self) -> bool:
        user = self.current_user()
        return bool(user and user.is_admin)

    def require_user(self) -> User:
        user = self.current_user()
        if user is None:
            raise AuthError("Please sign in again.")
        return user

    def sign_in(self, email: str, password: str) -> User:
        self.state = AuthState.AUTHENTICATING
        try:
            user, session = self.backend.sign_in(email.strip(), password)
        except Exception:
            self.state = AuthState.UNAUTHENTICATED
            raise
        self._persist(user, session)
        self.state = AuthState.AUTHENTICATED
        logger.info("Signed in %s", user.email)
        return user

    def sign_up(self, email: str, password: str, full_name: str, role: str = "staff") -> User:
        self.state = AuthState.AUTHENTICATING
        try:
            user, session = self.backend.sign_up(email.strip(), password, full_name, role)
        except Exception:
            self.state = AuthState.UNAUTHENTICATED
            raise
        self._persist(user, session)
        self.state = AuthState.AUTHENTICATED
        return user

    def sign_out(self) -> None:
        token = self.storage.get(TOKEN_KEY)
        try:
            if token:
                self.backend.sign_out(token)
        except MembershipError as e:
            logger.warning("Remote sign-out failed: %s", e)
        finally:
            self._clear()
            self.state = AuthState.UNAUTHENTICATED
            logger.info("Local session cleared")

    def refresh_user(self) -> User | None:
        """Re-fetch the signed-in user (role or name may have changed)."""
        current = self.stored_session()
        if current is None:
            return None
        _, session = current
        user = self.backend.current_user(session.access_token)
        if user is None:
            logger.info("Backend no longer recognises the session; clearing it")
            self._clear()
            self.state = AuthState.UNAUTHENTICATED
            return None
        self._persist(user, session)
        return user

    def change_password(self, new_password: str) -> None:
        self.require_user()
        self.backend.change_password(self.token(), new_password)

    # Admin screens. The backend checks the role again.

    def _admin_token(self) -> str:
        if not self.is_admin():
            raise AuthError("Admin access required.")
        return self.token()

    def list_users(self) -> list[User]:
        return self.backend.list_users(self._admin_token())

    def create_user(self, email: str, password: str, full_name: str, role: str = "staff") -> User:
        return self.backend.create_user(self._admin_token(), email, password, full_name, role)

    def update_user(self, user_id: str, full_name: str, role: str) -> User:
        user = self.backend.update_user(self._admin_token(), user_id, full_name, role)
        if user.id == self.require_user().id:
            self.refresh_user()
        return user

    def delete_user(self, user_id: str) -> None:
        self.backend.delete_user(self._admin_token(), user_id)
