import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, Field

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')


class Settings(BaseModel):
    """Runtime configuration, read from the environment (and .env)"""
    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "talent_pipeline"
    store_timeout_seconds: float = Field(default=5.0, gt=0)
    store_retry_backoff_seconds: float = Field(default=0.2, ge=0)
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            mongo_url=os.environ.get('MONGO_URL', 'mongodb://localhost:27017'),
            db_name=os.environ.get('DB_NAME', 'talent_pipeline'),
            store_timeout_seconds=float(os.environ.get('STORE_TIMEOUT_SECONDS', '5')),
            store_retry_backoff_seconds=float(os.environ.get('STORE_RETRY_BACKOFF_SECONDS', '0.2')),
            cors_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
            log_level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
        )
