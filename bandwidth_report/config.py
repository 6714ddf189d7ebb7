"""Application configuration using pydantic-settings."""

from typing import List, Optional

from pydantic_settings import BaseSettings

from bandwidth_report.schemas import RangePreset


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    APP_NAME: str = "Bandwidth Usage Report"
    REPORT_DATA_PATH: str = "./report_data.json"
    NAME_MAPPING_PATH: Optional[str] = None
    EXCLUDED_USERS: List[str] = []
    ADVISORY_TIMEOUT_SECONDS: float = 2.5
    DEFAULT_RANGE_PRESET: RangePreset = RangePreset.MONTH

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
