import logging
import re

from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import ConfigError, Settings
from .errors import Conflict, Forbidden, NotFound, Unauthenticated, ValidationFailed, store_errors
from .models import School, User, UserRole
from .schemas import ChangePasswordRequest, RegisterRequest, SchoolCreateRequest
from .security import MAX_PASSWORD_BYTES, InvalidToken, TokenService, hash_password, verify_password


logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
EMAIL_TAKEN = "Bu e-posta adresiyle kayıtlı bir kullanıcı var"


def _normalize_email(value: str) -> str:
    normalized = value.lower().strip()
    if not EMAIL_PATTERN.match(normalized):
        raise ValidationFailed("Geçersiz e-posta adresi")
    return normalized


def _get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFound("Kullanıcı bulunamadı")
    return user


def _start_session(db: Session, tokens: TokenService, user: User) -> tuple[str, str]:
    """Mint a token pair and make the new refresh token the only valid one."""
    access_token = tokens.issue_access_token(user.id, user.role)
    refresh_token = tokens.issue_refresh_token(user.id)
    user.refresh_token = refresh_token
    db.commit()
    db.refresh(user)
    return access_token, refresh_token


def register_user(db: Session, settings: Settings, payload: RegisterRequest) -> User:
    # admin accounts come only from ADMIN_EMAIL/ADMIN_PASSWORD seeding
    if payload.role is UserRole.ADMIN:
        raise Forbidden("Admin hesabı kayıt ile oluşturulamaz")
    email = _normalize_email(payload.email)
    with store_errors(db, "Kullanıcı oluşturulurken bir hata oluştu", conflict_message=EMAIL_TAKEN):
        if db.scalars(select(User).where(User.email == email)).first():
            raise Conflict(EMAIL_TAKEN)

        user = User(
            name=payload.name,
            email=email,
            password_hash=hash_password(payload.password, rounds=settings.bcrypt_rounds),
            role=payload.role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
    logger.info("[REGISTER] %s registered as %s", user.email, user.role.value)
    return user


def login_user(db: Session, tokens: TokenService, *, email: str, password: str) -> tuple[User, str, str]:
    with store_errors(db, "Giriş yapılırken bir hata oluştu"):
        user = db.scalars(select(User).where(User.email == email.lower().strip())).first()
        if not user:
            raise NotFound("Kullanıcı bulunamadı")
        if not verify_password(password, user.password_hash):
            raise Unauthenticated("Geçersiz şifre")
        access_token, refresh_token = _start_session(db, tokens, user)
    logger.info("[LOGIN SUCCESS] %s - token issued", user.email)
    return user, access_token, refresh_token


def get_profile(db: Session, user_id: int) -> User:
    with store_errors(db, "Kullanıcı bilgisi alınamadı"):
        return _get_user(db, user_id)


def refresh_session(db: Session, tokens: TokenService, refresh_token: str | None) -> tuple[str, str]:
    if not refresh_token:
        raise ValidationFailed("Refresh token gerekli")
    try:
        payload = tokens.verify_refresh(refresh_token)
    except InvalidToken as exc:
        logger.warning("Refresh token rejected: %s", exc)
        raise Forbidden("Refresh token geçersiz veya süresi dolmuş") from exc

    with store_errors(db, "Token yenilenirken bir hata oluştu"):
        user = db.get(User, payload["id"])
        if not user or user.refresh_token != refresh_token:
            raise Forbidden("Geçersiz veya eşleşmeyen refresh token")
        pair = _start_session(db, tokens, user)
    logger.info("[TOKEN REFRESH] new token pair issued for %s", user.email)
    return pair


def change_password(db: Session, settings: Settings, user_id: int, payload: ChangePasswordRequest) -> None:
    if not payload.old_password or not payload.new_password:
        raise ValidationFailed("Eski ve yeni şifre gereklidir")

    with store_errors(db, "Şifre değiştirilirken bir hata oluştu"):
        user = _get_user(db, user_id)
        if not verify_password(payload.old_password, user.password_hash):
            raise Unauthenticated("Eski şifre hatalı")
        user.password_hash = hash_password(payload.new_password, rounds=settings.bcrypt_rounds)
        db.commit()
    logger.info("[PASSWORD CHANGE] %s updated their password", user.email)


def logout_user(db: Session, user_id: int) -> None:
    with store_errors(db, "Çıkış yapılırken hata oluştu"):
        user = _get_user(db, user_id)
        user.refresh_token = None
        db.commit()
    logger.info("[LOGOUT] user %s logged out", user_id)


def list_users(db: Session) -> list[User]:
    with store_errors(db, "Kullanıcılar listelenirken hata oluştu"):
        return list(db.scalars(select(User).order_by(User.id)))


def list_schools(db: Session) -> list[School]:
    with store_errors(db, "Okullar listelenirken hata oluştu"):
        return list(db.scalars(select(School).order_by(School.id)))


def create_school(db: Session, payload: SchoolCreateRequest) -> School:
    with store_errors(db, "Okul eklenirken hata oluştu", conflict_message="Bu yönetici zaten bir okula atanmış"):
        if payload.manager_id is not None:
            manager = _get_user(db, payload.manager_id)
            if manager.role is not UserRole.MANAGER:
                raise ValidationFailed("Okul yöneticisi 'manager' rolünde olmalıdır")
            if db.scalars(select(School).where(School.manager_id == manager.id)).first():
                raise Conflict("Bu yönetici zaten bir okula atanmış")

        school = School(name=payload.name, manager_id=payload.manager_id)
        db.add(school)
        db.commit()
        db.refresh(school)
    return school


def seed_admin(db: Session, settings: Settings) -> None:
    if not settings.admin_email or not settings.admin_password:
        return
    if len(settings.admin_password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ConfigError(f"ADMIN_PASSWORD cannot be longer than {MAX_PASSWORD_BYTES} bytes")
    email = _normalize_email(settings.admin_email)
    if db.scalars(select(User).where(User.email == email)).first():
        return
    db.add(
        User(
            name="Admin",
            email=email,
            password_hash=hash_password(settings.admin_password, rounds=settings.bcrypt_rounds),
            role=UserRole.ADMIN,
        )
    )
    db.commit()
    logger.info("Seeded admin account %s", email)
