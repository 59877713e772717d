"""
Server configuration loaded from environment variables.
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _optional_int(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    return int(value)


class Config:
    """Server configuration."""

    # Server settings
    HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("SERVER_PORT", "8765"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Dice seed for reproducible matches (unset = random)
    RANDOM_SEED: int | None = _optional_int(os.getenv("RANDOM_SEED"))

    # Transport
    CONNECT_TIMEOUT: float = 30.0
    PING_INTERVAL: int = 30
    PING_TIMEOUT: int = 10


config = Config()
settings = config
