import warnings
from typing import List, Optional
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ── Known insecure default tokens (must never be used in production) ──
_INSECURE_TOKENS = {
    "change_this",
    "change_this_internal_token",
    "secret",
    "",
}


class Settings(BaseSettings):
    APP_NAME: str = "Storefront Domains"
    APP_ENV: str = "development"
    API_V1_STR: str = "/api/v1"

    # Host platform → this service
    INTERNAL_API_TOKEN: str = "change_this"

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "storefront_domains"
    DATABASE_URL: Optional[str] = None  # overrides the POSTGRES_* parts (tests use sqlite)
    DB_ECHO: bool = False
    SLOW_QUERY_THRESHOLD_MS: int = 500

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"

    # Provisioning provider (Render custom-domain API)
    PROVIDER_API_URL: str = "https://api.render.com/v1"
    PROVIDER_API_KEY: str = ""
    PROVIDER_SERVICE_ID: str = ""
    PROVIDER_TIMEOUT_SECONDS: float = 15.0
    PROVIDER_MAX_RETRIES: int = 3
    PROVIDER_BACKOFF_BASE_SECONDS: float = 2.0
    PROVIDER_BACKOFF_MAX_SECONDS: float = 60.0

    # Health probe
    HEALTH_CHECK_TIMEOUT_SECONDS: float = 10.0
    HEALTH_CHECK_MAX_REDIRECTS: int = 3
    HEALTH_CHECK_VERIFY_TLS: bool = True
    HEALTH_CHECK_USER_AGENT: str = "StorefrontDomains-HealthChecker/1.0"

    # DNS target check (where apex / www must point)
    DNS_CNAME_TARGET: str = "storefronts.onrender.com"
    DNS_APEX_IP: str = "216.24.57.1"               # provider anycast IP for apex A records
    DNS_CHECK_TIMEOUT_SECONDS: float = 5.0

    # Monitoring loop
    DOMAIN_POLL_INTERVAL_SECONDS: int = 300      # 5 minutes
    DOMAIN_MAX_CHECK_ATTEMPTS: int = 12          # ~1 hour at 5-minute cadence
    DOMAIN_SETUP_MONITOR_DELAY_SECONDS: int = 60

    # Certificate-propagation retry loop
    CERT_RETRY_DELAYS_MINUTES: List[int] = [5, 10, 20, 30, 30, 30]
    CERT_RETRY_MAX_ATTEMPTS: int = 6
    CERT_RETRY_REBUILD_THRESHOLD: int = 3

    # Rebuild flow
    REBUILD_COOLDOWN_SECONDS: int = 10
    VERIFY_STAGGER_SECONDS: int = 30

    # Job-execution layer retries (transient provider errors)
    JOB_MAX_RETRIES: int = 3
    JOB_RETRY_BACKOFF_SECONDS: int = 30

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("CERT_RETRY_DELAYS_MINUTES")
    @classmethod
    def _delays_not_empty(cls, value: List[int]) -> List[int]:
        if not value:
            raise ValueError("CERT_RETRY_DELAYS_MINUTES must contain at least one delay")
        return value

    @model_validator(mode="after")
    def _validate_production_security(self) -> "Settings":
        """Block startup if critical secrets are insecure in production / staging."""
        if self.APP_ENV in ("production", "staging"):
            if self.INTERNAL_API_TOKEN in _INSECURE_TOKENS or len(self.INTERNAL_API_TOKEN) < 32:
                raise ValueError(
                    "INTERNAL_API_TOKEN is insecure. "
                    "Set a strong random token (≥ 32 chars) in .env or environment."
                )
            if not self.DATABASE_URL and self.POSTGRES_PASSWORD in ("postgres", ""):
                raise ValueError(
                    "POSTGRES_PASSWORD is set to default 'postgres'. "
                    "Set a strong password in .env or environment."
                )
            if not self.PROVIDER_API_KEY or not self.PROVIDER_SERVICE_ID:
                raise ValueError(
                    "PROVIDER_API_KEY and PROVIDER_SERVICE_ID are required outside development."
                )
            if not self.HEALTH_CHECK_VERIFY_TLS:
                warnings.warn(
                    "HEALTH_CHECK_VERIFY_TLS is disabled; domains may be activated "
                    "without a valid certificate.",
                    UserWarning,
                    stacklevel=2,
                )
        return self

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}/{self.POSTGRES_DB}"
        )

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_staging(self) -> bool:
        return self.APP_ENV == "staging"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

settings = Settings()
