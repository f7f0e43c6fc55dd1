"""Process manager for playback (ffplay) and recording (ffmpeg) processes.

Processes run detached with their output discarded; callers only ever get
the PID back. Only processes started here can be stopped here.
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List

from ..live.exceptions import ProcessError
from ..observability.metrics import set_media_processes

logger = logging.getLogger(__name__)


@dataclass
class ProcessHandle:
    """A spawned media process."""
    pid: int
    label: str
    command: List[str]
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class MediaProcessManager:
    """Starts and stops external media processes."""

    def __init__(self, ffplay_path: str = "ffplay", ffmpeg_path: str = "ffmpeg", stop_timeout: float = 5.0):
        self.ffplay_path = ffplay_path
        self.ffmpeg_path = ffmpeg_path
        self.stop_timeout = stop_timeout
        self.processes: Dict[int, asyncio.subprocess.Process] = {}
        self.handles: Dict[int, ProcessHandle] = {}

    @classmethod
    def from_settings(cls, settings) -> "MediaProcessManager":
        return cls(ffplay_path=settings.ffplay_path, ffmpeg_path=settings.ffmpeg_path)

    async def spawn(self, command: List[str], label: str) -> ProcessHandle:
        """Start ``command`` detached from this process.

        Raises:
            ProcessError: If the executable is missing or the process fails to start.
        """
        if not command or not command[0]:
            raise ProcessError("Command must start with a non-empty executable name")

        # Pre-validate that the command executable exists on PATH
        if not shutil.which(command[0]):
            raise ProcessError(f"Command '{command[0]}' not found on PATH")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
                start_new_session=True,
            )
        except Exception as e:
            raise ProcessError(f"Failed to start {label} process: {e}") from e

        handle = ProcessHandle(pid=process.pid, label=label, command=list(command))
        self._prune_exited()
        self.processes[process.pid] = process
        self.handles[process.pid] = handle
        set_media_processes(len(self.processes))
        logger.info("Started %s process (pid=%d)", label, process.pid)
        return handle

    async def play(self, url: str) -> ProcessHandle:
        """Play a stream URL with ffplay."""
        return await self.spawn([self.ffplay_path, "-autoexit", url], "playback")

    async def record(self, url: str, filename: str) -> ProcessHandle:
        """Record a stream URL to ``filename`` with ffmpeg, copying codecs."""
        return await self.spawn([self.ffmpeg_path, "-i", url, "-c", "copy", filename], "recording")

    async def terminate(self, pid: int) -> ProcessHandle:
        """Kill a process started by this manager.

        Raises:
            ProcessError: If ``pid`` was not started here.
        """
        process = self.processes.pop(pid, None)
        handle = self.handles.pop(pid, None)
        if process is None or handle is None:
            raise ProcessError(f"No process with PID {pid} was started by this server")
        self._prune_exited()

        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=self.stop_timeout)
            except asyncio.TimeoutError:
                logger.warning("%s process %d did not exit after kill", handle.label, pid)

        logger.info("Stopped %s process (pid=%d)", handle.label, pid)
        return handle

    def _prune_exited(self):
        """Forget processes that already exited on their own (e.g. ffplay -autoexit)."""
        exited = [pid for pid, process in self.processes.items() if process.returncode is not None]
        for pid in exited:
            process = self.processes.pop(pid)
            handle = self.handles.pop(pid, None)
            label = handle.label if handle is not None else "media"
            logger.info("%s process %d exited with code %s", label, pid, process.returncode)
        set_media_processes(len(self.processes))

    async def terminate_all(self):
        """Terminate every process started by this manager."""
        self._prune_exited()
        for pid in list(self.processes.keys()):
            if pid not in self.processes:
                continue
            try:
                await self.terminate(pid)
            except ProcessError as e:
                logger.warning("Error stopping process %d: %s", pid, e)
