"""
Configuration for the Keystone SDK.

Uses pydantic-settings for environment variable loading. Every setting can be
overridden with a ``KEYSTONE_`` prefixed environment variable, e.g.
``KEYSTONE_HOST`` or ``KEYSTONE_ACCESS_TOKEN``.

Invariants:
    - All settings have sensible defaults for local development
    - The access token is never logged
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import Field
from pydantic_settings import BaseSettings


class KeystoneSettings(BaseSettings):
    """Keystone client configuration loaded from environment."""

    # Server connection
    host: str = Field(default="localhost", description="Keystone gRPC server host")
    port: int = Field(default=50031, description="Keystone gRPC server port")
    secure: bool = Field(default=False, description="Use TLS for the channel")

    # Application identity
    vendor_id: str = Field(default="", description="Vendor identifier")
    app_id: str = Field(default="", description="Application identifier")
    access_token: str = Field(default="", description="Application access token")

    # Channel tuning
    max_message_size: int = Field(default=50 * 1024 * 1024, description="Max gRPC message bytes")
    idle_timeout: float = Field(default=300.0, description="Channel idle timeout seconds")
    min_connect_timeout: float = Field(default=5.0, description="Minimum connect timeout seconds")

    # Log stream
    log_stream_capacity: int = Field(default=1000, description="Pending log batches per stream")

    # Timed RPC logging thresholds (seconds)
    log_error_after: float = Field(default=60.0)
    log_warn_after: float = Field(default=30.0)
    log_info_after: float = Field(default=2.0)
    log_debug_after: float = Field(default=0.1)

    model_config = {"env_prefix": "KEYSTONE_"}

    @property
    def endpoint(self) -> str:
        """Full Keystone gRPC endpoint."""
        return f"{self.host}:{self.port}"

    def timed_log_config(self) -> TimedLogConfig:
        return TimedLogConfig(
            error_after=self.log_error_after,
            warn_after=self.log_warn_after,
            info_after=self.log_info_after,
            debug_after=self.log_debug_after,
        )


@dataclass(frozen=True)
class TimedLogConfig:
    """Thresholds that map an RPC duration to a log level.

    Attributes:
        error_after: Seconds after which a call is logged as an error
        warn_after: Seconds after which a call is logged as a warning
        info_after: Seconds after which a call is logged at info
        debug_after: Seconds after which a call is logged at debug
    """

    error_after: float = 60.0
    warn_after: float = 30.0
    info_after: float = 2.0
    debug_after: float = 0.1

    def level_for(self, elapsed: float) -> int | None:
        """Return the logging level for a call duration, or None to stay quiet."""
        if elapsed >= self.error_after:
            return logging.ERROR
        if elapsed >= self.warn_after:
            return logging.WARNING
        if elapsed >= self.info_after:
            return logging.INFO
        if elapsed >= self.debug_after:
            return logging.DEBUG
        return None
