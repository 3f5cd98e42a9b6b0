"""
Centralized configuration using Pydantic Settings
Loads from environment variables (INTRINIO_*) and .env file
"""

from enum import Enum
from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class FanOutPolicy(str, Enum):
    """How inbound records are handed to multiple quote handlers"""
    BROADCAST = "broadcast"
    ROUND_ROBIN = "round_robin"


class RealtimeSettings(BaseSettings):
    """
    Client settings
    All settings can be overridden by environment variables
    """

    model_config = SettingsConfigDict(
        env_prefix="INTRINIO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # =============================================
    # CREDENTIALS
    # =============================================
    username: Optional[str] = Field(default=None, description="Intrinio API username")
    password: Optional[str] = Field(default=None, description="Intrinio API password")
    provider: str = Field(default="iex", description="Realtime provider (iex or quodd)")

    # =============================================
    # TIMING (seconds)
    # =============================================
    heartbeat_interval: float = Field(default=3.0, gt=0, description="Heartbeat period")
    write_timeout: float = Field(default=10.0, gt=0, description="Deadline for a single socket write")
    read_timeout: float = Field(default=30.0, gt=0, description="Idle deadline for a single socket read")
    auth_timeout: float = Field(default=10.0, gt=0, description="Timeout for the token request")
    drain_timeout: float = Field(default=10.0, gt=0, description="Max wait for the send queue on disconnect")

    # =============================================
    # HANDLERS
    # =============================================
    fan_out: FanOutPolicy = Field(
        default=FanOutPolicy.BROADCAST,
        description="Delivery policy when several quote handlers are registered"
    )

    # =============================================
    # LOGGING
    # =============================================
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="text", description="Log format (json or text)")


@lru_cache()
def get_settings() -> RealtimeSettings:
    """Settings from the environment, built on first use"""
    return RealtimeSettings()
