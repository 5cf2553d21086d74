from typing import ClassVar, Optional

from pydantic_settings import BaseSettings


DEFAULT_BANK_INFO = {
    "beneficiary": "NEARBY PROPTECH SOLUTIONS SAS",
    "rnc": "1-32-53017-9",
    "banks": [
        {
            "name": "BHD LEON",
            "accounts": [
                {"currency": "DÓLARES", "number": "38226000021", "type": "AHORROS"},
                {"currency": "PESOS", "number": "38226000012", "type": "AHORROS"},
            ],
        },
        {
            "name": "BANRESERVAS",
            "accounts": [
                {"currency": "DÓLARES", "number": "9604603792", "type": "AHORROS"},
                {"currency": "PESOS", "number": "9604603841", "type": "AHORROS"},
            ],
        },
    ],
}


class Settings(BaseSettings):

    billing_currency: ClassVar[str] = "USD"
    proforma_validity_business_days: ClassVar[int] = 30

    # MySQL Configuration (Loaded from .env file)
    MYSQL_USER: str = "root"
    MYSQL_PASSWORD: str = ""
    MYSQL_HOST: str = "localhost"
    MYSQL_PORT: int = 3306
    MYSQL_DB: str = "crm_billing"

    # Full URL override, used by tests and non-MySQL deployments
    DATABASE_URL: Optional[str] = None
    SQL_ECHO: bool = False

    # Session tokens
    SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"

    # Cron trigger
    CRON_SECRET: Optional[str] = None
    CRON_AUTH_DISABLED: bool = False

    # Blob storage
    S3_BUCKET_NAME: str = "crm-billing-proformas"
    S3_REGION: Optional[str] = None
    S3_PUBLIC_HOST: str = "https://crm-billing-proformas.s3.amazonaws.com/"

    # SMTP
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 465
    SMTP_USE_TLS: bool = True
    SMTP_TIMEOUT_SECONDS: float = 30.0

    # AdmCloud
    ADMCLOUD_BASE_URL: str = "https://api.admcloud.net/api"
    ADMCLOUD_DEFAULT_ROLE: str = "Administradores"
    ADMCLOUD_TIMEOUT_SECONDS: float = 30.0

    # Celery (daily billing run)
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"
    BILLING_CRON_HOUR: int = 8
    CELERY_TIMEZONE: str = "UTC"

    @property
    def database_url(self):
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"mysql+aiomysql://{self.MYSQL_USER}:{self.MYSQL_PASSWORD}@{self.MYSQL_HOST}:{self.MYSQL_PORT}/{self.MYSQL_DB}"

    @property
    def cron_auth_mode(self) -> str:
        """
        How the cron endpoint authorizes callers.

        "secret" when CRON_SECRET is set, "disabled" when an operator opted in with
        CRON_AUTH_DISABLED, and "unconfigured" otherwise (every request is refused).
        """
        if self.CRON_SECRET:
            return "secret"
        if self.CRON_AUTH_DISABLED:
            return "disabled"
        return "unconfigured"

    class Config:
        env_file = ".env"


# Instantiate the settings object
settings = Settings()
