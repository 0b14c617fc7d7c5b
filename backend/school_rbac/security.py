import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
import jwt

from .config import Settings
from .models import UserRole


MAX_PASSWORD_BYTES = 72  # bcrypt input limit


class InvalidToken(Exception):
    pass


def hash_password(password: str, rounds: int = 10) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class TokenService:
    """Issues and verifies the access/refresh token pair.

    Access tokens carry ``{id, role}`` and are signed with ``JWT_SECRET``;
    refresh tokens carry ``{id, jti}`` and are signed with
    ``JWT_REFRESH_SECRET``. Persisting the refresh token on the user row is
    the caller's job.
    """

    def __init__(self, settings: Settings):
        self.access_secret = settings.jwt_secret
        self.refresh_secret = settings.jwt_refresh_secret
        self.algorithm = settings.jwt_algorithm
        self.access_ttl = timedelta(minutes=settings.access_token_exp_minutes)
        self.refresh_ttl = timedelta(days=settings.refresh_token_exp_days)

    def _encode(self, claims: dict[str, Any], secret: str, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            **claims,
            "iat": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
        }
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    def issue_access_token(self, user_id: int, role: UserRole | str) -> str:
        return self._encode({"id": user_id, "role": UserRole(role).value}, self.access_secret, self.access_ttl)

    def issue_refresh_token(self, user_id: int) -> str:
        # jti keeps two tokens minted in the same second distinct
        return self._encode({"id": user_id, "jti": secrets.token_hex(16)}, self.refresh_secret, self.refresh_ttl)

    def verify(self, token: str, secret: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(token, secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise InvalidToken("Token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidToken("Invalid token") from exc
        if "id" not in payload:
            raise InvalidToken("Invalid token payload")
        return payload

    def verify_access(self, token: str) -> dict[str, Any]:
        payload = self.verify(token, self.access_secret)
        if "role" not in payload:
            raise InvalidToken("Invalid token payload")
        return payload

    def verify_refresh(self, token: str) -> dict[str, Any]:
        return self.verify(token, self.refresh_secret)
