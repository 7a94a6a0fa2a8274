"""
scanwatch - Client Configuration
Loads environment variables from .env and exposes them as typed settings.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env from the repo root (two levels up from this file)
_ENV_PATH = Path(__file__).parent.parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings:
    # Status backend
    SCANWATCH_API_BASE_URL: str = os.getenv("SCANWATCH_API_BASE_URL", "http://localhost:8000")
    SCANWATCH_STATUS_PATH: str = os.getenv("SCANWATCH_STATUS_PATH", "/api/v1/scans/{job_id}/status")
    SCANWATCH_REQUEST_TIMEOUT_S: float = float(os.getenv("SCANWATCH_REQUEST_TIMEOUT_S", "30"))

    # Polling
    SCANWATCH_POLL_INTERVAL_MS: int = int(os.getenv("SCANWATCH_POLL_INTERVAL_MS", "5000"))
    # Gives the backend time to finish writing reports before callers re-fetch
    SCANWATCH_COMPLETE_DELAY_MS: int = int(os.getenv("SCANWATCH_COMPLETE_DELAY_MS", "0"))
    SCANWATCH_FAILED_DELAY_MS: int = int(os.getenv("SCANWATCH_FAILED_DELAY_MS", "0"))
    SCANWATCH_WAIT_TIMEOUT_S: float = float(os.getenv("SCANWATCH_WAIT_TIMEOUT_S", "600"))

    # Application
    SCANWATCH_SERVICE: str = os.getenv("SCANWATCH_SERVICE", "scanwatch")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def is_local(self) -> bool:
        return self.ENVIRONMENT.lower() in ("development", "local", "test")


settings = Settings()
