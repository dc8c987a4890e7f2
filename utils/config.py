"""Application configuration utilities."""
from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional
import os

from dotenv import load_dotenv


load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class JWTSettings:
    issuer: str = "https://solucomp.com/AuthCenter/"
    audience: str = "authcenter"
    ttl: int = 300
    refresh_ttl: int = 1209600
    leeway: int = 10
    private_key_path: Optional[str] = None
    public_key_path: Optional[str] = "oauth-keys/public.pem"
    refresh_rotation: bool = False


@dataclass(frozen=True)
class LockoutPolicy:
    name: str
    max_attempts: int
    lock_minutes: int


LOCKOUT_POLICIES = {
    "standard": LockoutPolicy(name="standard", max_attempts=3, lock_minutes=15),
    # Effectively permanent until an administrator unlocks the account.
    "strict": LockoutPolicy(name="strict", max_attempts=5, lock_minutes=60 * 24 * 365 * 10),
}


@dataclass(frozen=True)
class DomainServiceSettings:
    """Downstream tenant application endpoints, keyed by domain key."""

    base_urls: dict = field(default_factory=dict)
    update_sync_routes: dict = field(default_factory=dict)
    new_user_sync_routes: dict = field(default_factory=dict)
    delete_user_routes: dict = field(default_factory=dict)
    page_permissions_url: Optional[str] = None
    page_permission_sync_url: Optional[str] = None
    timeout: int = 10
    permissions_timeout: int = 5
    status_timeout: int = 3


@dataclass(frozen=True)
class AppConfig:
    secret_key: str
    database_url: str
    jwt: JWTSettings
    domains: DomainServiceSettings
    sync_secret: Optional[str] = None
    lockout_policy: str = "standard"
    max_pending_requests: int = 10
    default_domain_key: str = "jobfinder"
    totp_issuer: str = "AuthCenter"
    totp_valid_window: int = 1
    enforce_2fa_login_default: bool = False
    oauth_validate_checks_blacklist: bool = True
    propagation_mode: str = "celery"
    celery_broker_url: str = "redis://localhost:6379/1"
    celery_result_backend: Optional[str] = None
    cache_type: str = "SimpleCache"
    ratelimit_storage_uri: str = "memory://"
    allowed_origins: tuple[str, ...] = field(default_factory=lambda: ("*",))


def _routes(prefix_map: dict) -> dict:
    return {key: os.getenv(env_name) for key, env_name in prefix_map.items() if os.getenv(env_name)}


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    policy = os.getenv("LOCKOUT_POLICY", "standard")
    if policy not in LOCKOUT_POLICIES:
        raise ValueError(
            f"Unknown LOCKOUT_POLICY {policy!r}; expected one of: "
            + ", ".join(sorted(LOCKOUT_POLICIES))
        )

    return AppConfig(
        secret_key=os.getenv("SECRET_KEY", "change-me-in-production"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///authcenter.db"),
        jwt=JWTSettings(
            issuer=os.getenv("JWT_ISSUER", "https://solucomp.com/AuthCenter/"),
            audience=os.getenv("JWT_AUDIENCE", "authcenter"),
            ttl=int(os.getenv("JWT_TTL", "300")),
            refresh_ttl=int(os.getenv("JWT_REFRESH_TTL", "1209600")),
            private_key_path=os.getenv("JWT_PRIVATE_KEY_PATH", "oauth-keys/private.pem"),
            public_key_path=os.getenv("JWT_PUBLIC_KEY_PATH", "oauth-keys/public.pem"),
            refresh_rotation=_env_bool("REFRESH_TOKEN_ROTATION", False),
        ),
        domains=DomainServiceSettings(
            base_urls={
                "ccms": os.getenv("CCMS_BASE_URL", "http://localhost:8000"),
                "jobfinder": os.getenv("JOB_FINDER_BASE_URL", "http://localhost:8003"),
                "solucomp": os.getenv("SOLUCOMP_BASE_URL", "http://localhost:8004"),
            },
            update_sync_routes={
                "ccms": os.getenv("CCMS_SYNC", "http://localhost:8000/api/auth-sync"),
                "jobfinder": os.getenv("JOB_FINDER_SYNC", "http://localhost:8003/api/auth-sync"),
                "solucomp": os.getenv("SOLUCOMP_SYNC", "http://localhost:8004/api/auth-sync"),
            },
            new_user_sync_routes=_routes({
                "ccms": "CCMS_USER_SYNC",
                "jobfinder": "JOB_FINDER_USER_SYNC",
                "solucomp": "SOLUCOMP_USER_SYNC",
            }),
            delete_user_routes=_routes({
                "ccms": "CCMS_DELETE_SYNC",
                "jobfinder": "JOB_FINDER_DELETE_SYNC",
                "solucomp": "SOLUCOMP_DELETE_SYNC",
            }),
            page_permissions_url=os.getenv("SOLUCOMP_USERPAGE_PERMISSION"),
            page_permission_sync_url=os.getenv("SOLUCOMP_PAGE_PERMISSION"),
            timeout=int(os.getenv("DOWNSTREAM_TIMEOUT", "10")),
            permissions_timeout=int(os.getenv("PERMISSIONS_TIMEOUT", "5")),
            status_timeout=int(os.getenv("STATUS_TIMEOUT", "3")),
        ),
        sync_secret=os.getenv("SYNC_SECRET"),
        lockout_policy=policy,
        max_pending_requests=int(os.getenv("MAX_PENDING_REQUESTS", "10")),
        default_domain_key=os.getenv("DEFAULT_DOMAIN_KEY", "jobfinder"),
        totp_issuer=os.getenv("TOTP_ISSUER", "AuthCenter"),
        totp_valid_window=int(os.getenv("TOTP_VALID_WINDOW", "1")),
        enforce_2fa_login_default=_env_bool("ENFORCE_2FA_LOGIN_DEFAULT", False),
        oauth_validate_checks_blacklist=_env_bool("OAUTH_VALIDATE_CHECKS_BLACKLIST", True),
        propagation_mode=os.getenv("PROPAGATION_MODE", "celery"),
        celery_broker_url=os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1"),
        celery_result_backend=os.getenv("CELERY_RESULT_BACKEND"),
        cache_type=os.getenv("CACHE_TYPE", "SimpleCache"),
        ratelimit_storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
        allowed_origins=tuple(
            origin.strip()
            for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",")
        ),
    )
