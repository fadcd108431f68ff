"""Application configuration"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # API
    API_V1_PREFIX: str = "/api"
    PROJECT_NAME: str = "Invoice Ledger API"
    VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./ledger.db"

    # URLs
    FRONTEND_URL: str = "http://localhost:3000"

    # Invoice defaults
    # WHY: Net-30 terms and USD match what freelancers pick most often;
    # both remain overridable per invoice.
    DEFAULT_CURRENCY: str = "USD"
    DEFAULT_PAYMENT_TERMS_DAYS: int = 30
    INVOICE_NUMBER_PREFIX: str = "INV"

    # Reminder cadence defaults (copied into each new invoice)
    DEFAULT_REMINDER_BEFORE_DUE_DAYS: int = 3
    DEFAULT_REMINDER_ON_DUE_DATE: bool = True
    DEFAULT_REMINDER_AFTER_DUE_DAYS: list[int] = [1, 7, 14, 30]

    # Reminder sweep
    REMINDER_SWEEP_ENABLED: bool = True
    REMINDER_SWEEP_INTERVAL_SECONDS: int = 3600
    REMINDER_SENDER: str = "system:reminder-scheduler"

    # Concurrency
    MAX_CONFLICT_RETRIES: int = 3

    # Branding snapshot defaults
    COMPANY_NAME: str = "Freelance Studio"
    COMPANY_EMAIL: Optional[str] = None

    # Email
    RESEND_API_KEY: Optional[str] = None

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    @property
    def default_reminder_settings(self) -> dict:
        """Reminder settings snapshot applied to invoices created without one."""
        return {
            "before_due_days": self.DEFAULT_REMINDER_BEFORE_DUE_DAYS,
            "on_due_date": self.DEFAULT_REMINDER_ON_DUE_DATE,
            "after_due_days": sorted(set(self.DEFAULT_REMINDER_AFTER_DUE_DAYS)),
        }

    @property
    def async_database_url(self) -> str:
        """Get async database URL"""
        return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")


settings = Settings()
