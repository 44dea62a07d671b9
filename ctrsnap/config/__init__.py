"""Configuration management for ctrsnap.

This module provides a unified Settings class with flat, environment-backed
fields and grouped views over them.

Usage:
    from ctrsnap.config import settings

    # Grouped access
    settings.runtime.containerd_address
    settings.orchestration.image_ref

    # Flat access
    settings.containerd_namespace
    settings.snapshot_enabled
"""

from typing import Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .logging import LoggingConfig
from .orchestration import OrchestrationConfig
from .runtime import RuntimeConfig


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # ========================================================================
    # RUNTIME SERVICE
    # ========================================================================

    containerd_address: str = Field(
        default="/run/containerd/containerd.sock",
        description="containerd socket the runtime client connects to",
    )
    containerd_namespace: str = Field(
        default="example",
        description="Namespace every runtime call is scoped to",
    )
    ctr_binary: str = Field(default="ctr", description="Path to the ctr binary")
    snapshotter: str = Field(default="overlayfs")
    runtime_command_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Bound on a single runtime command; unset runs commands to completion",
    )

    # ========================================================================
    # ORCHESTRATION PASS
    # ========================================================================

    image_ref: str = Field(default="docker.io/library/nginx:latest", min_length=1)
    container_id: str = Field(default="nginx-server", min_length=1)
    snapshot_key: str = Field(default="nginx-snapshot", min_length=1)
    checkpoint_prefix: str = Field(
        default="isim.dev",
        description="Leading segment of checkpoint image names",
    )
    restored_container_id: str = Field(default="restored-nginx", min_length=1)
    snapshot_enabled: bool = Field(
        default=True,
        description="Run the checkpoint/export/import/restore stage",
    )
    archive_dir: str = Field(default=".", description="Where archive files are created")
    timestamp_format: str = Field(default="%m-%d-%Y-%H:%M:%S")
    restore_image_name: Optional[str] = Field(
        default=None,
        description="Restore this image from the archive instead of the first one",
    )
    cleanup_wait_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Bound on the reaper's exit wait; unset waits indefinitely",
    )

    # ========================================================================
    # LOGGING
    # ========================================================================

    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    # ========================================================================
    # VALIDATORS
    # ========================================================================

    @validator("restored_container_id")
    def restored_id_differs(cls, v, values):
        """The restored container must not collide with the original."""
        if v == values.get("container_id"):
            raise ValueError("restored_container_id must differ from container_id")
        return v

    @validator("log_format")
    def validate_log_format(cls, v):
        """Only json and console renderers are supported."""
        v = v.lower()
        if v not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return v

    @validator("log_level")
    def normalize_log_level(cls, v):
        return v.upper()

    # ========================================================================
    # GROUPED CONFIG ACCESS
    # ========================================================================

    @property
    def runtime(self) -> RuntimeConfig:
        """Access runtime configuration group."""
        return RuntimeConfig(
            containerd_address=self.containerd_address,
            containerd_namespace=self.containerd_namespace,
            ctr_binary=self.ctr_binary,
            snapshotter=self.snapshotter,
            runtime_command_timeout_seconds=self.runtime_command_timeout_seconds,
        )

    @property
    def orchestration(self) -> OrchestrationConfig:
        """Access orchestration configuration group."""
        return OrchestrationConfig(
            image_ref=self.image_ref,
            container_id=self.container_id,
            snapshot_key=self.snapshot_key,
            checkpoint_prefix=self.checkpoint_prefix,
            restored_container_id=self.restored_container_id,
            snapshot_enabled=self.snapshot_enabled,
            archive_dir=self.archive_dir,
            timestamp_format=self.timestamp_format,
            restore_image_name=self.restore_image_name,
            cleanup_wait_timeout_seconds=self.cleanup_wait_timeout_seconds,
        )

    @property
    def logging(self) -> LoggingConfig:
        """Access logging configuration group."""
        return LoggingConfig(log_level=self.log_level, log_format=self.log_format)


# Global settings instance
settings = Settings()

__all__ = [
    "Settings",
    "settings",
    "RuntimeConfig",
    "OrchestrationConfig",
    "LoggingConfig",
]
