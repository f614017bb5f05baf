"""
Environment-based configuration management for Switchyard.

Uses pydantic-settings to load configuration values from environment
variables and .env files. The reconciler and conference packages read
their tunables from this module so defaults live in one place.

All environment variables are prefixed with ``SY_`` to avoid collisions.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration loaded from ``SY_``-prefixed environment variables.

    Attributes:
        redis_url: Redis connection URL for the pub/sub transport bridge.
        ami_action_channel: Redis channel actions are published on.
        ami_event_channel: Redis channel unsolicited events arrive on.
        ami_response_prefix: Prefix of per-action response channels.
        request_timeout_s: Upper bound for a single request round trip.
        auto_refresh: Issue a full refresh whenever a session (re)connects.
        use_events: Subscribe to push events in addition to snapshots.
        speaker_threshold: Audio level at which a participant counts as speaking.
        speaker_debounce_ms: Stability window before the dominant speaker commits.
        speaker_history_size: Capacity of the speaker history ring buffer.
        gallery_gap: Gap between gallery tiles in pixels.
        gallery_max_cols: Upper bound on gallery columns.
        gallery_max_rows: Upper bound on gallery rows.
        mwi_default_context: Voicemail context appended to bare mailbox ids.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_json: Render log lines as JSON instead of console output.
        service_host: Bind address of the reconciler HTTP server.
        service_port: Port of the reconciler HTTP server.
    """

    model_config = SettingsConfigDict(
        env_prefix="SY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Redis transport bridge ──
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL.",
    )
    ami_action_channel: str = Field(default="ami:actions", description="Action channel.")
    ami_event_channel: str = Field(default="ami:events", description="Event channel.")
    ami_response_prefix: str = Field(
        default="ami:responses:",
        description="Prefix of per-action response channels.",
    )

    # ── Synchronizer ──
    request_timeout_s: float = Field(
        default=10.0,
        gt=0.0,
        description="Upper bound for a single request round trip.",
    )
    auto_refresh: bool = Field(default=True, description="Refresh on (re)connect.")
    use_events: bool = Field(default=True, description="Subscribe to push events.")

    # ── Active speaker ──
    speaker_threshold: float = Field(
        default=0.15,
        ge=0.0,
        le=1.0,
        description="Audio level at which a participant counts as speaking.",
    )
    speaker_debounce_ms: int = Field(
        default=300,
        ge=0,
        description="Stability window before the dominant speaker commits.",
    )
    speaker_history_size: int = Field(
        default=10,
        ge=1,
        description="Capacity of the speaker history ring buffer.",
    )

    # ── Gallery ──
    gallery_gap: int = Field(default=8, ge=0, description="Gap between tiles (px).")
    gallery_max_cols: int = Field(default=4, ge=1, description="Maximum columns.")
    gallery_max_rows: int = Field(default=4, ge=1, description="Maximum rows.")

    # ── Voicemail ──
    mwi_default_context: str = Field(
        default="default",
        description="Voicemail context appended to bare mailbox ids.",
    )

    # ── Logging ──
    log_level: str = Field(default="INFO", description="Logging level.")
    log_json: bool = Field(default=True, description="Render log lines as JSON.")

    # ── Service ──
    service_host: str = Field(default="0.0.0.0", description="HTTP bind address.")
    service_port: int = Field(default=8010, ge=1, le=65535, description="HTTP port.")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached application settings singleton.

    Returns:
        The global ``Settings`` instance.
    """
    return Settings()
