from pydantic_settings import BaseSettings
from pathlib import Path

# Find .env file - check app/ directory first, then project root
BASE_DIR = Path(__file__).resolve().parent.parent.parent
APP_ENV = BASE_DIR / "app" / ".env"
ROOT_ENV = BASE_DIR / ".env"

# Use app/.env if it exists, otherwise try root .env
env_file = str(APP_ENV) if APP_ENV.exists() else (str(ROOT_ENV) if ROOT_ENV.exists() else ".env")


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str

    # JWT (tokens are issued by the identity service; we only verify them)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Ledger periods
    LEDGER_MIN_YEAR: int = 2020
    LEDGER_MAX_YEAR: int = 2030

    # Loans and withdrawals
    DAYS_PER_MONTH: float = 30.44
    MINIMUM_WITHDRAWAL: int = 100
    DEFAULT_LOAN_CATEGORY: str = "standard"

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = env_file
        case_sensitive = True


settings = Settings()

# Derived paths
LOGS_DIR = BASE_DIR / "logs"
