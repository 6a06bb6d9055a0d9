import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    storage_backend: str
    storage_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    jwt_secret_key: str
    jwt_algorithm: str
    access_token_expire_minutes: int
    refresh_token_expire_days: int

    allowed_email_domain: str
    password_min_length: int
    max_upload_mb: int

    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    mail_from: str

    cors_origins: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def load_settings() -> Settings:
    secret_key = _getenv("SECRET_KEY", "change-me")
    return Settings(
        secret_key=secret_key,
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///murrs.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_root=_getenv("STORAGE_ROOT", ""),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        jwt_secret_key=_getenv("JWT_SECRET_KEY", secret_key),
        jwt_algorithm=_getenv("JWT_ALGORITHM", "HS256"),
        access_token_expire_minutes=_getenv_int("ACCESS_TOKEN_EXPIRE_MINUTES", 30),
        refresh_token_expire_days=_getenv_int("REFRESH_TOKEN_EXPIRE_DAYS", 7),
        # Empty string disables the domain check for self-registration.
        allowed_email_domain=(os.environ.get("ALLOWED_EMAIL_DOMAIN", "st.gimpa.edu.gh") or "").strip().lower(),
        password_min_length=_getenv_int("PASSWORD_MIN_LENGTH", 6),
        max_upload_mb=_getenv_int("MAX_UPLOAD_MB", 25),
        smtp_host=_getenv("SMTP_HOST", ""),
        smtp_port=_getenv_int("SMTP_PORT", 587),
        smtp_user=_getenv("SMTP_USER", ""),
        smtp_password=_getenv("SMTP_PASSWORD", ""),
        mail_from=_getenv("MAIL_FROM", "no-reply@murrs.local"),
        cors_origins=_getenv("CORS_ORIGINS", ""),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_ROOT": s.storage_root,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        # bearer tokens
        "JWT_SECRET_KEY": s.jwt_secret_key,
        "JWT_ALGORITHM": s.jwt_algorithm,
        "ACCESS_TOKEN_EXPIRE_MINUTES": s.access_token_expire_minutes,
        "REFRESH_TOKEN_EXPIRE_DAYS": s.refresh_token_expire_days,
        # registration rules
        "ALLOWED_EMAIL_DOMAIN": s.allowed_email_domain,
        "PASSWORD_MIN_LENGTH": s.password_min_length,
        # mail (disabled when SMTP_HOST is empty)
        "SMTP_HOST": s.smtp_host,
        "SMTP_PORT": s.smtp_port,
        "SMTP_USER": s.smtp_user,
        "SMTP_PASSWORD": s.smtp_password,
        "MAIL_FROM": s.mail_from,
        "CORS_ORIGINS": s.cors_origins,
        "PREFERRED_URL_SCHEME": "https" if is_production else "http",
        # file upload limit
        "MAX_CONTENT_LENGTH": s.max_upload_mb * 1024 * 1024,
    }
