from __future__ import annotations
import base64
import datetime
import hashlib
import hmac
import logging
import secrets

from db import (
    UserRepository,
    AuthSessionRepository,
    AccountRepository,
    utc_now,
)
from errors import AuthError

logger = logging.getLogger(__name__)

PASSWORD_ITERATIONS = 200_000
MIN_PASSWORD_LENGTH = 8


def _b64(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).decode().rstrip("=")


def _ub64(s: str) -> bytes:
    pad = "=" * ((4 - (len(s) % 4)) % 4)
    return base64.urlsafe_b64decode((s + pad).encode())


def hash_password(password: str, salt: bytes | None = None) -> str:
    salt = salt or secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, PASSWORD_ITERATIONS)
    return f"pbkdf2_sha256${PASSWORD_ITERATIONS}${_b64(salt)}${_b64(digest)}"


def verify_password(password: str, stored: str) -> bool:
    try:
        _, iterations, salt, digest = stored.split("$")
    except ValueError:
        return False
    candidate = hashlib.pbkdf2_hmac(
        "sha256", password.encode(), _ub64(salt), int(iterations)
    )
    return hmac.compare_digest(candidate, _ub64(digest))


class AuthService:
    """Email/password sign-up, sign-in and bearer session handling."""

    def __init__(
        self,
        users: UserRepository,
        sessions: AuthSessionRepository,
        accounts: AccountRepository,
        session_ttl_days: int = 7,
    ) -> None:
        self.users = users
        self.sessions = sessions
        self.accounts = accounts
        self.session_ttl = datetime.timedelta(days=session_ttl_days)

    @staticmethod
    def _normalize_email(email: str) -> str:
        email = (email or "").strip().lower()
        if "@" not in email:
            raise ValueError("invalid email")
        return email

    @staticmethod
    def _check_password(password: str) -> None:
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise ValueError(
                f"password must be at least {MIN_PASSWORD_LENGTH} characters"
            )

    def _issue(self, user_id: str, ip_address: str | None, user_agent: str | None) -> str:
        token = secrets.token_urlsafe(32)
        expires = datetime.datetime.now(datetime.timezone.utc) + self.session_ttl
        self.sessions.create(
            user_id,
            token,
            expires.isoformat(timespec="seconds"),
            ip_address,
            user_agent,
        )
        return token

    def sign_up(
        self,
        name: str,
        email: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> dict:
        email = self._normalize_email(email)
        self._check_password(password)
        if not (name or "").strip():
            raise ValueError("name is required")
        user_id = self.users.create(name.strip(), email)
        self.accounts.add(user_id, "credential", user_id, hash_password(password))
        logger.info("user %s signed up", user_id)
        return {"user_id": user_id, "token": self._issue(user_id, ip_address, user_agent)}

    def sign_in(
        self,
        email: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> dict:
        try:
            email = self._normalize_email(email)
        except ValueError:
            raise AuthError("invalid credentials")
        user = self.users.find_by_email(email)
        if user is None:
            raise AuthError("invalid credentials")
        stored = self.accounts.fetch_password_hash(user["id"])
        if stored is None or not verify_password(password, stored):
            raise AuthError("invalid credentials")
        self.sessions.delete_expired(utc_now())
        return {"user_id": user["id"], "token": self._issue(user["id"], ip_address, user_agent)}

    def sign_out(self, token: str) -> None:
        self.sessions.delete_by_token(token)

    def resolve(self, token: str | None) -> dict:
        """Return the user owning a live session token."""
        if not token:
            raise AuthError("invalid session")
        row = self.sessions.fetch_by_token(token)
        if row is None:
            raise AuthError("invalid session")
        user_id, expires_at = row
        if expires_at <= utc_now():
            self.sessions.delete_by_token(token)
            raise AuthError("invalid session")
        return self.users.fetch_detail(user_id)

    def has_password(self, user_id: str) -> bool:
        return self.accounts.fetch_password_hash(user_id) is not None

    def set_password(self, user_id: str, password: str) -> None:
        """Set a password for a user that signed up without one."""
        if self.has_password(user_id):
            raise ValueError("password already set")
        self._check_password(password)
        self.accounts.set_password(user_id, hash_password(password))

    def change_password(self, user_id: str, current: str, new: str) -> None:
        stored = self.accounts.fetch_password_hash(user_id)
        if stored is None or not verify_password(current, stored):
            raise AuthError("invalid credentials")
        self._check_password(new)
        self.accounts.set_password(user_id, hash_password(new))

    def has_google(self, user_id: str) -> bool:
        return self.accounts.has_provider(user_id, "google")

    def link_google(self, user_id: str, account_id: str) -> None:
        if not account_id:
            raise ValueError("account id is required")
        if self.has_google(user_id):
            raise ValueError("google account already linked")
        self.accounts.add(user_id, "google", account_id)

    def unlink_google(self, user_id: str) -> None:
        if not self.has_password(user_id):
            raise ValueError("set a password before unlinking google")
        if not self.has_google(user_id):
            raise ValueError("google account not found")
        self.accounts.remove_provider(user_id, "google")
        logger.info("user %s unlinked google", user_id)

    def delete_account(self, user_id: str) -> None:
        self.users.delete(user_id)
        logger.info("user %s deleted their account", user_id)
