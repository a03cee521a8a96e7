import logging
import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    cors_origins: List[str] = field(
        default_factory=lambda: [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
            if origin.strip()
        ]
    )

    # Database
    db_file: str = os.getenv("LIBRARY_DB_FILE", "library.sqlite")

    # Lending policy
    loan_period_days: int = int(os.getenv("LOAN_PERIOD_DAYS", "14"))

    # Security
    token_expiration_minutes: int = int(os.getenv("TOKEN_EXPIRATION_MINUTES", "10080"))  # 7 days
    bcrypt_rounds: int = int(os.getenv("BCRYPT_ROUNDS", "12"))
    default_admin_password: str = os.getenv("DEFAULT_ADMIN_PASSWORD", "admin123")

    # E-books
    ebook_dir: str = os.getenv("EBOOK_DIR", os.path.join("uploads", "ebooks"))

    # Application
    app_name: str = os.getenv("APP_NAME", "School Library")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _env_flag("DEBUG", "False")
    environment: str = os.getenv("ENVIRONMENT", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()

_logging_configured = False


def configure_logging(level: str | None = None) -> None:
    """Install the root log handler once per process."""
    global _logging_configured
    if _logging_configured:
        return
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    _logging_configured = True
