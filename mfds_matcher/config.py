"""
Configuration settings for the MFDS catalog matching agent
"""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import CancelFilter, GenericCountBasis, GenericDefinition, ProcessingOptions


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Data directories
    DATA_DIR: Path = Path("data")
    OUTPUT_DIR: Path = DATA_DIR / "output"

    # Processing settings
    MAX_WORKERS: int = 1
    PROGRESS_INTERVAL: int = 50

    # Default processing options
    GENERIC_COUNT_BASIS: GenericCountBasis = GenericCountBasis.BASE
    GENERIC_DEFINITION: GenericDefinition = GenericDefinition.EXCL_ORIGINAL
    CANCEL_FILTER: CancelFilter = CancelFilter.ACTIVE_ONLY
    REVIEW_THRESHOLD: float = 0.90

    # API settings
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    API_RELOAD: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[Path] = DATA_DIR / "logs" / "matcher.log"

    def default_options(self) -> ProcessingOptions:
        """ProcessingOptions built from the configured defaults"""
        return ProcessingOptions(
            generic_count_basis=self.GENERIC_COUNT_BASIS,
            generic_definition=self.GENERIC_DEFINITION,
            cancel_filter=self.CANCEL_FILTER,
            review_threshold=self.REVIEW_THRESHOLD,
        )


# Global settings instance
settings = Settings()


def ensure_directories():
    """Ensure all required directories exist"""
    directories = [
        settings.DATA_DIR,
        settings.OUTPUT_DIR,
        settings.LOG_FILE.parent if settings.LOG_FILE else None
    ]

    for directory in directories:
        if directory:
            directory.mkdir(parents=True, exist_ok=True)
