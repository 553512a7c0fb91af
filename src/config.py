from pydantic_settings import BaseSettings
from decimal import Decimal
from typing import Optional

class Settings(BaseSettings):
    # Database
    DATABASE_URL: Optional[str] = None
    PGHOST: Optional[str] = None
    PGDATABASE: Optional[str] = None
    PGUSER: Optional[str] = None
    PGPASSWORD: Optional[str] = None
    PGSSLMODE: str = "require"

    # Security
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    # Application
    PROJECT_NAME: str = "Exam Travel Agency Back Office"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Pricing defaults, used when the global service config row is first created
    CURRENCY: str = "YER"
    DEFAULT_REGISTRATION_PRICE: Decimal = Decimal("0")
    DEFAULT_EXAM_CHANGE_FEE: Decimal = Decimal("16000")
    DEFAULT_MAX_FREE_CHANGES: int = 1

    # Diff modifications/cancellations against the fare stored at issuance
    # instead of the current route price
    USE_BOOKED_FARE_SNAPSHOT: bool = False

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.PGHOST:
            return f"postgresql://{self.PGUSER}:{self.PGPASSWORD}@{self.PGHOST}/{self.PGDATABASE}?sslmode={self.PGSSLMODE}"
        return "sqlite:///./agency.db"

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
