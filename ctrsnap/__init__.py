"""ctrsnap - container checkpoint, export, restore and cleanup orchestration."""

__version__ = "1.0.0"
