import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    log_level: str
    database_url: str
    api_prefix: str
    dev_user_id: str
    frontend_url: str

    cognito_region: str
    cognito_user_pool_id: str
    cognito_client_id: str
    cognito_client_secret: str

    stripe_api_key: str
    stripe_webhook_secret: str
    stripe_success_url: str
    stripe_cancel_url: str
    stripe_currency: str

    resend_api_key: str
    email_from: str

    storage_backend: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str
    s3_public_base_url: str
    local_storage_root: str
    download_url_ttl_seconds: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        database_url=_getenv("DATABASE_URL", "sqlite:///template_store.db"),
        api_prefix=_getenv("API_PREFIX", "/api/v1").rstrip("/"),
        dev_user_id=_getenv("DEV_USER_ID", ""),
        frontend_url=_getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/"),
        cognito_region=_getenv("COGNITO_REGION", "us-east-1"),
        cognito_user_pool_id=_getenv("COGNITO_USER_POOL_ID", ""),
        cognito_client_id=_getenv("COGNITO_CLIENT_ID", ""),
        cognito_client_secret=_getenv("COGNITO_CLIENT_SECRET", ""),
        stripe_api_key=_getenv("STRIPE_API_KEY", ""),
        stripe_webhook_secret=_getenv("STRIPE_WEBHOOK_SECRET", ""),
        stripe_success_url=_getenv("STRIPE_SUCCESS_URL", "http://localhost:3000/payment/success"),
        stripe_cancel_url=_getenv("STRIPE_CANCEL_URL", "http://localhost:3000/payment/cancel"),
        stripe_currency=_getenv("STRIPE_CURRENCY", "usd").lower(),
        resend_api_key=_getenv("RESEND_API_KEY", ""),
        email_from=_getenv("EMAIL_FROM", "Template Store <noreply@templatestore.com>"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "us-east-1"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        s3_public_base_url=_getenv("S3_PUBLIC_BASE_URL", ""),
        local_storage_root=_getenv("LOCAL_STORAGE_ROOT", ""),
        download_url_ttl_seconds=_getenv_int("DOWNLOAD_URL_TTL_SECONDS", 3600),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "LOG_LEVEL": s.log_level,
        "DATABASE_URL": s.database_url,
        "API_PREFIX": s.api_prefix,
        "DEV_USER_ID": s.dev_user_id,
        "FRONTEND_URL": s.frontend_url,
        "COGNITO_REGION": s.cognito_region,
        "COGNITO_USER_POOL_ID": s.cognito_user_pool_id,
        "COGNITO_CLIENT_ID": s.cognito_client_id,
        "COGNITO_CLIENT_SECRET": s.cognito_client_secret,
        "STRIPE_API_KEY": s.stripe_api_key,
        "STRIPE_WEBHOOK_SECRET": s.stripe_webhook_secret,
        "STRIPE_SUCCESS_URL": s.stripe_success_url,
        "STRIPE_CANCEL_URL": s.stripe_cancel_url,
        "STRIPE_CURRENCY": s.stripe_currency,
        "RESEND_API_KEY": s.resend_api_key,
        "EMAIL_FROM": s.email_from,
        "STORAGE_BACKEND": s.storage_backend,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "S3_PUBLIC_BASE_URL": s.s3_public_base_url,
        "LOCAL_STORAGE_ROOT": s.local_storage_root,
        "DOWNLOAD_URL_TTL_SECONDS": s.download_url_ttl_seconds,
        # template uploads (25MB)
        "MAX_CONTENT_LENGTH": 25 * 1024 * 1024,
    }


def is_production(config: dict) -> bool:
    return (config.get("ENV") or "").strip().lower() in ("prod", "production")
