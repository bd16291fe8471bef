"""
Application configuration using Pydantic Settings.

This module manages all configuration from environment variables.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    API_TITLE: str = "Unitas Excel Sections API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = "REST API for reading configured key/value sections from the template workbook"
    API_PREFIX: str = "/api"

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    RELOAD: bool = False

    # Template Storage Configuration
    TEMPLATE_DIR: str = "wwwroot/Upload/Templates"
    TEMPLATE_FILE_NAME: str = "Unitas.xlsx"
    WORK_DIR_NAME: str = "execute"
    MAX_BACKUP_FILES: int = 10
    FILE_RETENTION_DAYS: int = 5
    MAX_FILE_SIZE_MB: int = 100
    ALLOWED_EXTENSIONS: List[str] = [".xlsx", ".xlsm"]

    # Section Extraction Settings
    SECTIONS_FILE: str = "sections.json"
    SPREADSHEET_BACKEND: str = "openpyxl"  # openpyxl or ooxml
    SHEET_NAME: Optional[str] = None  # None reads the first sheet
    CURRENCY_SYMBOL: str = "$"

    # Recalculation Settings
    RECALC_ENABLED: bool = False
    RECALC_COMMAND: str = "soffice"
    RECALC_TIMEOUT: int = 120

    # Logging Configuration
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "api.log"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # CORS Configuration
    CORS_ORIGINS: List[str] = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = False
    CORS_ALLOW_METHODS: List[str] = ["*"]
    CORS_ALLOW_HEADERS: List[str] = ["*"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    """
    return Settings()


# Create global settings instance
settings = get_settings()
