from typing import Optional, List
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration with environment variable support"""

    # Server settings
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    RELOAD: bool = False
    LOG_LEVEL: str = "INFO"

    # Questionnaire document; the packaged data/questions.json when unset
    SCHEMA_FILE: Optional[str] = None

    # Base URL of the form UI, used to build session links
    PUBLIC_BASE_URL: str = "http://localhost:3000"

    # Notifications: "log" or "webhook"
    NOTIFICATION_BACKEND: str = "log"
    DEPARTMENT_WEBHOOK_URL: Optional[str] = None
    COMPLETE_WEBHOOK_URL: Optional[str] = None
    WEBHOOK_API_TOKEN: Optional[str] = None
    WEBHOOK_TIMEOUT: float = 10.0

    # Live form flows kept in memory
    MAX_FLOWS: int = 1000

    # CORS settings
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
