"""Orchestration pass configuration."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class OrchestrationConfig(BaseSettings):
    """Names, paths and policies for one orchestration pass."""

    image_ref: str = Field(default="docker.io/library/nginx:latest", min_length=1)
    container_id: str = Field(default="nginx-server", min_length=1)
    snapshot_key: str = Field(default="nginx-snapshot", min_length=1)
    checkpoint_prefix: str = Field(default="isim.dev")
    restored_container_id: str = Field(default="restored-nginx", min_length=1)
    snapshot_enabled: bool = Field(default=True)
    archive_dir: str = Field(default=".")
    timestamp_format: str = Field(default="%m-%d-%Y-%H:%M:%S")
    restore_image_name: Optional[str] = Field(default=None)
    cleanup_wait_timeout_seconds: Optional[float] = Field(default=None, gt=0)

    class Config:
        env_prefix = ""
        extra = "ignore"
