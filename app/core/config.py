from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'pos_user'
    POSTGRES_PASSWORD: str = 'pos_pass'
    POSTGRES_DB: str = 'pos_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Override completo (ej. sqlite:// en tests)
    DB_STATEMENT_TIMEOUT_MS: int = 5000

    # Redis settings (broker de Celery para impresión)
    REDIS_HOST: str = 'redis'
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # JWT settings
    APP_SECRET_STRING: str = 'your-super-secret-key-here-change-in-production-2024'
    ALGORITHM: str = 'HS256'
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Negocio
    BUSINESS_TIMEZONE: str = 'America/Asuncion'
    SALE_DEFAULT_STATUS: str = 'pending'
    AUTO_INVOICE_ON_COMPLETE: bool = False

    # Timbrado
    TIMBRADO_DEFAULT_ESTABLISHMENT: str = '001'
    TIMBRADO_DEFAULT_BRANCH: str = '001'
    TIMBRADO_DEFAULT_MAX_INVOICES: int = 999999

    # Impresoras
    PRINTER_ENABLED: bool = True
    PRINTER_NAME: str = 'MP-4200 TH'
    KITCHEN_PRINTER_NAME: str = 'MP-4200 TH'
    PRINTER_SPOOL_DIR: str = './spool'
    TICKET_BUSINESS_NAME: str = 'Eso Que Te Gusta'
    TICKET_BUSINESS_ADDRESS: str = 'Oliva entre 14 de Mayo y 15 de Agosto'
    TICKET_BUSINESS_PHONE: str = '0991 401621'

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", "AUTO_INVOICE_ON_COMPLETE", "PRINTER_ENABLED", mode="before")
    @classmethod
    def parse_bool(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("SALE_DEFAULT_STATUS")
    @classmethod
    def validate_default_status(cls, v):
        if v not in ("pending", "ordered", "completed"):
            raise ValueError("SALE_DEFAULT_STATUS debe ser pending, ordered o completed")
        return v

    @field_validator("TIMBRADO_DEFAULT_ESTABLISHMENT", "TIMBRADO_DEFAULT_BRANCH")
    @classmethod
    def validate_three_digits(cls, v):
        if not (len(v) == 3 and v.isdigit()):
            raise ValueError("Debe tener exactamente 3 dígitos")
        return v

settings = Settings()
