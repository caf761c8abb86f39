"""Configuration settings for the Finance Analytics Service."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Document store REST gateway
    repository_api_base: str = "http://localhost:8001"
    repository_timeout_seconds: float = 10.0

    # Service identification
    service_name: str = "finance-analytics"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
