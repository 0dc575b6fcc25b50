"""Configuration for chatstream.

Centralizes the constants and environment-driven settings shared by the
store, the stream clients and the CLI.
"""

import logging
import os

from pydantic import BaseModel, Field, field_validator

# Remote service
DEFAULT_ENDPOINT = "http://localhost:8504/query-stream"
DEFAULT_CONNECT_TIMEOUT = 10.0  # Seconds to establish the stream

# Transcript text
ERROR_PREFIX = "Error: "  # Prepended to setup failures written into the transcript
CONTEXT_SEPARATOR = "\n"  # Joins messages when folding prior turns


class ClientSettings(BaseModel):
    """Settings for connecting to the text-generation service."""

    endpoint: str = Field(default=DEFAULT_ENDPOINT, description="SSE endpoint URL")
    connect_timeout: float = Field(
        default=DEFAULT_CONNECT_TIMEOUT,
        gt=0,
        description="Seconds allowed to open the stream"
    )
    read_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Seconds allowed between events (None waits forever)"
    )
    log_level: str = Field(default="WARNING", description="Logging level name")

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def from_env(cls) -> "ClientSettings":
        """Build settings from environment variables.

        Environment variables:
            CHATSTREAM_ENDPOINT: Service endpoint (default: DEFAULT_ENDPOINT)
            CHATSTREAM_CONNECT_TIMEOUT: Connect timeout in seconds (default: 10)
            CHATSTREAM_READ_TIMEOUT: Read timeout in seconds (default: none)
            CHATSTREAM_LOG_LEVEL: Logging level (default: WARNING)
        """
        read_timeout = os.getenv("CHATSTREAM_READ_TIMEOUT")
        return cls(
            endpoint=os.getenv("CHATSTREAM_ENDPOINT", DEFAULT_ENDPOINT),
            connect_timeout=os.getenv(
                "CHATSTREAM_CONNECT_TIMEOUT", str(DEFAULT_CONNECT_TIMEOUT)
            ),
            read_timeout=read_timeout or None,
            log_level=os.getenv("CHATSTREAM_LOG_LEVEL", "WARNING").upper(),
        )
