from pydantic_settings import BaseSettings, SettingsConfigDict

from app.domain.entities.tenant_policy import TenantPolicy


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    DEFAULT_TENANT: str = "mc"
    TENANTS: list[str] = ["mc", "itp"]
    MANUAL_APPROVAL_TENANTS: list[str] = []
    VIP_SERVICES_BYPASS_TENANTS: list[str] = ["mc", "itp"]

    CRON_SECRET: str | None = None
    SESSION_SECRET: str | None = None
    BASE_URL: str = "http://localhost:8000"

    STORE_PROVIDER: str = "memory"
    DATA_DIR: str = "./data/bookings"

    GOOGLE_CALENDAR_ACCESS_TOKEN: str | None = None
    GOOGLE_CALENDAR_BASE_URL: str = "https://www.googleapis.com/calendar/v3"
    EMAIL_ENABLED: bool = False
    SIDE_EFFECT_TIMEOUT_SECONDS: float = 10.0

    AUTO_CHECKOUT_GRACE_MINUTES: int = 30
    AUTO_CHECKOUT_LOOKBACK_HOURS: int = 24
    CALENDAR_TITLE_MAX_LENGTH: int = 25

    @property
    def is_dev(self) -> bool:
        return self.ENV.lower() in {"dev", "local"}

    def tenant_policy(self, tenant: str) -> TenantPolicy:
        return TenantPolicy(
            tenant=tenant,
            require_manual_approval=tenant in self.MANUAL_APPROVAL_TENANTS,
            vip_services_bypass=tenant in self.VIP_SERVICES_BYPASS_TENANTS,
        )


settings = Settings()
