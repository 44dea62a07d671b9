"""Runtime Service clients.

This package provides the container runtime surface the orchestrator drives:
- interfaces.py: RuntimeService / RuntimeContainer / RuntimeTask protocols
- ctr.py: containerd implementation driven through the ctr CLI
"""

from .interfaces import RuntimeService, RuntimeContainer, RuntimeTask
from .ctr import CtrRuntimeService, CtrContainer, CtrTask

__all__ = [
    "RuntimeService",
    "RuntimeContainer",
    "RuntimeTask",
    "CtrRuntimeService",
    "CtrContainer",
    "CtrTask",
]
