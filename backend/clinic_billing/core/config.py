from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "clinic-billing-ledger"
    DEBUG: bool = False
    APP_DATABASE_DSN: str = "sqlite:////tmp/clinic_billing.db"

    # Auth collaborator: HS256 tokens carrying sub/role/doctor_id claims
    AUTH_JWT_SECRET: str = "change-me"

    # Currencies: virtual appointments settle in the foreign unit,
    # in-person appointments in the local unit
    LOCAL_CURRENCY: str = "DOP"
    FOREIGN_CURRENCY: str = "USD"

    # Ledger
    INVOICE_DEFAULT_DUE_DAYS: int = 30
    LEDGER_LOCK_TIMEOUT_SECONDS: float = 5.0
    RECONCILIATION_POLICY: str = "exact"  # "exact" or "at_least"

    # Reporting
    BILLING_STATS_MONTHS: int = 6

    # Cash payment confirmation flow
    CASH_CONFIRM_SUCCESS_DELAY_SECONDS: float = 1.2

    # Remote client
    BILLING_API_URL: str = "http://localhost:8000"
    BILLING_API_TIMEOUT_SECONDS: float = 10.0

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    @property
    def version(self) -> str:
        return "0.1.0"


settings = Settings()
