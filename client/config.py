"""
Client configuration settings.
"""

import os
from dataclasses import dataclass, replace


@dataclass
class ClientSettings:
    """Client configuration."""

    # Server connection
    server_host: str = "localhost"
    server_port: int = 8765

    # Reconnection settings
    reconnect_attempts: int = 5
    reconnect_delay: float = 2.0

    # Seconds to wait for a response to a request
    request_timeout: float = 10.0

    @property
    def server_url(self) -> str:
        return f"ws://{self.server_host}:{self.server_port}"

    def with_server(self, host: str | None = None, port: int | None = None) -> "ClientSettings":
        """Copy with command-line overrides applied; None keeps the current value."""
        return replace(
            self,
            server_host=host or self.server_host,
            server_port=port or self.server_port,
        )


def load_settings() -> ClientSettings:
    """Load settings from environment variables."""
    return ClientSettings(
        server_host=os.getenv("FARKLE_SERVER_HOST", "localhost"),
        server_port=int(os.getenv("FARKLE_SERVER_PORT", "8765")),
        reconnect_attempts=int(os.getenv("FARKLE_RECONNECT_ATTEMPTS", "5")),
        reconnect_delay=float(os.getenv("FARKLE_RECONNECT_DELAY", "2.0")),
        request_timeout=float(os.getenv("FARKLE_REQUEST_TIMEOUT", "10.0")),
    )
