"""Runtime Service (containerd) configuration."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class RuntimeConfig(BaseSettings):
    """Connection settings for the container runtime."""

    containerd_address: str = Field(default="/run/containerd/containerd.sock")
    containerd_namespace: str = Field(default="example")
    ctr_binary: str = Field(default="ctr")
    snapshotter: str = Field(default="overlayfs")
    runtime_command_timeout_seconds: Optional[float] = Field(default=None, gt=0)

    class Config:
        env_prefix = ""
        extra = "ignore"
