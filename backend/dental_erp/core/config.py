from typing import List, Union
import logging

from pydantic import AnyHttpUrl, validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    PROJECT_NAME: str = "Dental Lab ERP"
    API_V1_STR: str = "/api/v1"

    # CORS
    BACKEND_CORS_ORIGINS: List[Union[str, AnyHttpUrl]] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173"
    ]

    @validator("BACKEND_CORS_ORIGINS", pre=True)
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> Union[List[str], str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",")]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Database
    SQLITE_DATABASE_URI: str = "sqlite:///./dental_lab.db"
    SQL_DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # Billing
    DEFAULT_DUE_DAYS: int = 30  # invoice due date when the caller gives none
    SEED_PRICING_RULES: bool = True

    # Scheduled jobs
    SCHEDULER_ENABLED: bool = True
    EXPENSE_SWEEP_INTERVAL_MINUTES: int = 15
    RECONCILE_HOUR: int = 2  # daily aggregate reconciliation (0-23)
    RECONCILE_MINUTE: int = 30

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()
logger.info(f"Loaded settings: API_V1_STR={settings.API_V1_STR}, DB={settings.SQLITE_DATABASE_URI}")
