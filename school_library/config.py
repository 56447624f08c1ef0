import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_key: str = os.getenv("API_KEY", "super-secret-key")

    # Storage
    storage_backend: str = os.getenv("LIBRARY_STORAGE_BACKEND", "sqlite")  # sqlite | memory
    database_file: str = os.getenv("LIBRARY_DB_FILE", "school_library.db")

    # Borrowing rules
    default_due_period_value: int = int(os.getenv("DEFAULT_DUE_PERIOD_VALUE", "24"))
    default_due_period_unit: str = os.getenv("DEFAULT_DUE_PERIOD_UNIT", "hours")
    overdue_grace_hours: int = int(os.getenv("OVERDUE_GRACE_HOURS", "24"))
    blacklist_low_severity: bool = _env_bool("BLACKLIST_LOW_SEVERITY", "False")
    min_unblacklist_reason_length: int = int(os.getenv("MIN_UNBLACKLIST_REASON_LENGTH", "10"))

    # Sweep scheduling
    sweep_interval_seconds: int = int(os.getenv("SWEEP_INTERVAL_SECONDS", "0"))  # 0 = disabled
    sweep_before_borrow: bool = _env_bool("SWEEP_BEFORE_BORROW", "True")

    # Application
    app_name: str = os.getenv("APP_NAME", "School Library")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _env_bool("DEBUG", "False")
    environment: str = os.getenv("ENVIRONMENT", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
