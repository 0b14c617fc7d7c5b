import os
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv


class ConfigError(Exception):
    pass


REQUIRED_SECRETS = ("JWT_SECRET", "JWT_REFRESH_SECRET")


@dataclass(frozen=True)
class Settings:
    jwt_secret: str
    jwt_refresh_secret: str
    database_url: str = "sqlite:///./smartq.db"
    app_name: str = "SmartQ API"
    env: str = "development"
    port: int = 5000
    log_level: str = "INFO"
    jwt_algorithm: str = "HS256"
    access_token_exp_minutes: int = 120
    refresh_token_exp_days: int = 7
    bcrypt_rounds: int = 10
    cors_origins: tuple[str, ...] = ("*",)
    admin_email: str = ""
    admin_password: str = ""

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv(find_dotenv(usecwd=True))
        missing = [name for name in REQUIRED_SECRETS if not os.getenv(name)]
        if missing:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

        origins = tuple(o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip())
        return cls(
            jwt_secret=os.environ["JWT_SECRET"],
            jwt_refresh_secret=os.environ["JWT_REFRESH_SECRET"],
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            env=os.getenv("APP_ENV", cls.env),
            port=int(os.getenv("PORT", str(cls.port))),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", cls.jwt_algorithm),
            access_token_exp_minutes=int(os.getenv("ACCESS_TOKEN_EXP_MINUTES", str(cls.access_token_exp_minutes))),
            refresh_token_exp_days=int(os.getenv("REFRESH_TOKEN_EXP_DAYS", str(cls.refresh_token_exp_days))),
            bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", str(cls.bcrypt_rounds))),
            cors_origins=origins or ("*",),
            admin_email=os.getenv("ADMIN_EMAIL", ""),
            admin_password=os.getenv("ADMIN_PASSWORD", ""),
        )
