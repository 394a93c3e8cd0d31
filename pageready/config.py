"""
pageready/config.py

Centralized environment variable configuration.
"""

import os
from typing import Any

from dotenv import load_dotenv

load_dotenv()


class Config():
    """
    Centralized configuration for environment variables.
    """

    # logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s:%(lineno)d - %(levelname)s - %(message)s")
    LOG_DATE_FORMAT: str = os.getenv("LOG_DATE_FORMAT", "%Y-%m-%d %H:%M:%S")

    # grace periods (milliseconds)
    PAGEREADY_RESOURCE_TIMEOUT_MS: int = int(os.getenv("PAGEREADY_RESOURCE_TIMEOUT_MS", "2000"))
    PAGEREADY_POST_TIMEOUT_MS: int = int(os.getenv("PAGEREADY_POST_TIMEOUT_MS", "5000"))
    PAGEREADY_DOM_READY_TIMEOUT_MS: int = int(os.getenv("PAGEREADY_DOM_READY_TIMEOUT_MS", "20000"))

    # CDP
    PAGEREADY_RESOURCE_TREE_TIMEOUT_S: float = float(os.getenv("PAGEREADY_RESOURCE_TREE_TIMEOUT_S", "5.0"))
    PAGEREADY_REMOTE_DEBUGGING_ADDRESS: str = os.getenv(
        "PAGEREADY_REMOTE_DEBUGGING_ADDRESS", "http://127.0.0.1:9222"
    )

    @classmethod
    def as_dict(cls) -> dict[str, Any]:
        """
        Return a dictionary of all UPPERCASE class attributes and their values.
        Return:
            dict[str, Any]: A dictionary of all UPPERCASE class attributes and their values.
        """
        return {
            key: getattr(cls, key)
            for key in dir(cls)
            if key.isupper()
        }
