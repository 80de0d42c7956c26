import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    storage_backend: str
    local_storage_root: str
    upload_url_prefix: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    mail_backend: str
    mail_from_email: str
    mail_from_name: str
    ses_region: str

    local_tz_offset_minutes: int
    institute_email_domain: str
    artwork_enforce_word_count: bool
    csrf_enabled: bool
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


def _getenv_flag(name: str, default: bool) -> bool:
    raw = _getenv(name).lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    env = _getenv("ENV", "development")
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=env,
        database_url=_getenv("DATABASE_URL", "sqlite:///palette.db"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        local_storage_root=_getenv("LOCAL_STORAGE_ROOT", "uploads"),
        upload_url_prefix=_getenv("UPLOAD_URL_PREFIX", "/uploads"),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "ap-south-1"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        mail_backend=_getenv("MAIL_BACKEND", "log"),
        mail_from_email=_getenv("MAIL_FROM_EMAIL", "noreply@palette.com"),
        mail_from_name=_getenv("MAIL_FROM_NAME", "Palette Art Club"),
        ses_region=_getenv("SES_REGION", "ap-south-1"),
        # IST (UTC+5:30) decides where "today" starts for event listings.
        local_tz_offset_minutes=_getenv_int("LOCAL_TZ_OFFSET_MINUTES", 330),
        institute_email_domain=_getenv("INSTITUTE_EMAIL_DOMAIN", "iitgn.ac.in").lower(),
        artwork_enforce_word_count=_getenv_flag("ARTWORK_ENFORCE_WORD_COUNT", False),
        csrf_enabled=_getenv_flag("CSRF_ENABLED", env not in ("test", "testing")),
        cors_origins=_getenv("CORS_ORIGINS", ""),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "STORAGE_BACKEND": s.storage_backend,
        "LOCAL_STORAGE_ROOT": s.local_storage_root,
        "UPLOAD_URL_PREFIX": s.upload_url_prefix,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "MAIL_BACKEND": s.mail_backend,
        "MAIL_FROM_EMAIL": s.mail_from_email,
        "MAIL_FROM_NAME": s.mail_from_name,
        "SES_REGION": s.ses_region,
        "LOCAL_TZ_OFFSET_MINUTES": s.local_tz_offset_minutes,
        "INSTITUTE_EMAIL_DOMAIN": s.institute_email_domain,
        "ARTWORK_ENFORCE_WORD_COUNT": s.artwork_enforce_word_count,
        "CSRF_ENABLED": s.csrf_enabled,
        "CORS_ORIGINS": s.cors_origins,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # image upload limit (5MB)
        "MAX_CONTENT_LENGTH": 5 * 1024 * 1024,
    }
