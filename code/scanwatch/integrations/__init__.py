from .logging_setup import configure_logging
from .status_client import JobStatusClient, StatusRequestError

__all__ = ["configure_logging", "JobStatusClient", "StatusRequestError"]
