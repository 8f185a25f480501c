import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

@dataclass
class Settings:
    # Storage
    db_file: str = os.getenv("LIBRARY_DB_FILE", "library.db")

    # Logging
    log_file: str = os.getenv("LIBRARY_LOG_FILE", "library.log")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # API
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_key: str = os.getenv("API_KEY", "super-secret-key")

    # Application
    app_name: str = os.getenv("APP_NAME", "Library Desk")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = os.getenv("DEBUG", "False").lower() in ("true", "1", "yes")

    # Interactive login
    max_login_attempts: int = int(os.getenv("MAX_LOGIN_ATTEMPTS", "3"))


settings = Settings()
