"""Playback and recording process management."""

from .process_manager import MediaProcessManager, ProcessHandle

__all__ = ["MediaProcessManager", "ProcessHandle"]
