import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    app_url: str

    storage_backend: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str
    upload_max_bytes: int
    storage_root: str

    auth_jwt_key: str
    auth_jwt_algorithms: tuple[str, ...]
    auth_jwt_issuer: str
    clerk_secret_key: str
    clerk_api_url: str
    clerk_webhook_secret: str

    email_backend: str
    resend_api_key: str
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_pass: str
    smtp_secure: bool
    email_from: str
    email_from_name: str
    email_reply_to: str
    email_batch_size: int
    email_batch_delay_seconds: float
    notify_async: bool


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getint(name: str, default: int) -> int:
    raw = _getenv(name)
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _getfloat(name: str, default: float) -> float:
    raw = _getenv(name)
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _getbool(name: str, default: bool) -> bool:
    raw = _getenv(name).lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    algorithms = tuple(a.strip() for a in _getenv("AUTH_JWT_ALGORITHMS", "RS256").split(",") if a.strip())
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///blog.db"),
        app_url=_getenv("APP_URL", "http://localhost:5000").rstrip("/"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        upload_max_bytes=_getint("UPLOAD_MAX_BYTES", 5 * 1024 * 1024),
        storage_root=_getenv("STORAGE_ROOT", ""),
        auth_jwt_key=_getenv("AUTH_JWT_KEY", "").replace("\\n", "\n"),
        auth_jwt_algorithms=algorithms or ("RS256",),
        auth_jwt_issuer=_getenv("AUTH_JWT_ISSUER", ""),
        clerk_secret_key=_getenv("CLERK_SECRET_KEY", ""),
        clerk_api_url=_getenv("CLERK_API_URL", "https://api.clerk.com/v1"),
        clerk_webhook_secret=_getenv("CLERK_WEBHOOK_SECRET", ""),
        email_backend=_getenv("EMAIL_BACKEND", "console"),
        resend_api_key=_getenv("RESEND_API_KEY", ""),
        smtp_host=_getenv("SMTP_HOST", ""),
        smtp_port=_getint("SMTP_PORT", 587),
        smtp_user=_getenv("SMTP_USER", ""),
        smtp_pass=_getenv("SMTP_PASS", ""),
        smtp_secure=_getbool("SMTP_SECURE", False),
        email_from=_getenv("EMAIL_FROM", "noreply@techblog.com"),
        email_from_name=_getenv("EMAIL_FROM_NAME", "TechBlog"),
        email_reply_to=_getenv("EMAIL_REPLY_TO", ""),
        email_batch_size=max(1, _getint("EMAIL_BATCH_SIZE", 10)),
        email_batch_delay_seconds=max(0.0, _getfloat("EMAIL_BATCH_DELAY_SECONDS", 1.0)),
        notify_async=_getbool("NOTIFY_ASYNC", True),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "APP_URL": s.app_url,
        "STORAGE_BACKEND": s.storage_backend,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "UPLOAD_MAX_BYTES": s.upload_max_bytes,
        "STORAGE_ROOT": s.storage_root,
        # identity provider
        "AUTH_JWT_KEY": s.auth_jwt_key,
        "AUTH_JWT_ALGORITHMS": list(s.auth_jwt_algorithms),
        "AUTH_JWT_ISSUER": s.auth_jwt_issuer,
        "CLERK_SECRET_KEY": s.clerk_secret_key,
        "CLERK_API_URL": s.clerk_api_url,
        "CLERK_WEBHOOK_SECRET": s.clerk_webhook_secret,
        # outgoing email
        "EMAIL_BACKEND": s.email_backend,
        "RESEND_API_KEY": s.resend_api_key,
        "SMTP_HOST": s.smtp_host,
        "SMTP_PORT": s.smtp_port,
        "SMTP_USER": s.smtp_user,
        "SMTP_PASS": s.smtp_pass,
        "SMTP_SECURE": s.smtp_secure,
        "EMAIL_FROM": s.email_from,
        "EMAIL_FROM_NAME": s.email_from_name,
        "EMAIL_REPLY_TO": s.email_reply_to,
        "EMAIL_BATCH_SIZE": s.email_batch_size,
        "EMAIL_BATCH_DELAY_SECONDS": s.email_batch_delay_seconds,
        "NOTIFY_ASYNC": s.notify_async,
        # JSON API; uploads are capped per-route, this is the hard ceiling
        "MAX_CONTENT_LENGTH": 25 * 1024 * 1024,
        "JSON_SORT_KEYS": False,
    }
