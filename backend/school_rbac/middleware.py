import logging
from dataclasses import dataclass

from fastapi import Depends, Header, Request

from .errors import Forbidden, Unauthenticated
from .models import UserRole
from .security import InvalidToken, TokenService


logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class Identity:
    id: int
    role: UserRole


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def _parse_token(auth_header: str | None) -> str:
    if not auth_header or not auth_header.startswith(BEARER_PREFIX):
        raise Unauthenticated("Yetkilendirme gerekli")
    token = auth_header[len(BEARER_PREFIX):].strip()
    if not token or " " in token:
        raise Unauthenticated("Yetkilendirme gerekli")
    return token


def get_current_identity(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    tokens: TokenService = Depends(get_token_service),
) -> Identity:
    token = _parse_token(authorization)
    try:
        payload = tokens.verify_access(token)
        identity = Identity(id=int(payload["id"]), role=UserRole(payload["role"]))
    except (InvalidToken, TypeError, ValueError) as exc:
        logger.warning("JWT verification failed: %s", exc)
        raise Forbidden("Geçersiz veya süresi dolmuş token") from exc

    request.state.identity = identity
    return identity


def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    if identity.role is not UserRole.ADMIN:
        raise Forbidden("Bu işlem için admin yetkisi gerekli")
    return identity
