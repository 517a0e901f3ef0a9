"""
Configuration for livetable.

Uses pydantic-settings for environment variable loading. Every setting has a
default suitable for local development and can be overridden with a
LIVETABLE_-prefixed environment variable (e.g. LIVETABLE_REPLAY_CUTOFF=per_row).

How to change safely:
    - Add new settings with defaults that keep current behaviour
    - Document new variables in the field description
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from .apply.reconciler import ReplayCutoff


class LiveTableSettings(BaseSettings):
    """Live table configuration loaded from environment."""

    # Subscription scope
    schema_name: str = Field(default="public", description="Database schema of watched tables")
    channel_prefix: str = Field(default="", description="Prefix for default realtime channel names")

    # Reconciliation
    replay_cutoff: ReplayCutoff = Field(
        default=ReplayCutoff.WATERMARK,
        description="Pre-filter for buffered events on first snapshot (watermark, per_row)",
    )
    snapshot_timeout: float = Field(
        default=30.0,
        ge=0,
        description="Seconds to wait for the snapshot select (0 = no limit)",
    )
    stop_on_error: bool = Field(
        default=False,
        description="Unsubscribe after the first reported error",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "text"] = Field(default="json", description="Log format")

    model_config = {"env_prefix": "LIVETABLE_"}

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()
