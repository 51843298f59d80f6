"""FFmpeg/FFprobe process runner.

The runner is the only place that spawns the media engine. Every FFmpeg
invocation gets the same global flags prepended (``-hide_banner -y -threads
N``) and every process, FFmpeg or FFprobe, waits on one shared semaphore so
the number of live engine processes stays bounded across all jobs.
"""

import asyncio
import logging
import shlex
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Sequence

from mediasuite.config import get_settings
from mediasuite.exceptions import EngineError

logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Outcome of a successful engine invocation."""

    args: list[str]
    returncode: int
    stdout: str
    stderr: str
    elapsed_s: float


class ProcessRunner:
    """Spawns FFmpeg/FFprobe under a global process cap."""

    def __init__(
        self,
        ffmpeg_path: str | None = None,
        ffprobe_path: str | None = None,
        threads: int | None = None,
        max_processes: int | None = None,
        stderr_tail_chars: int | None = None,
    ):
        settings = get_settings()
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path
        self.ffprobe_path = ffprobe_path or settings.ffprobe_path
        self.threads = threads or settings.ffmpeg_threads
        self.max_processes = max_processes or settings.max_concurrent_processes
        self.stderr_tail_chars = stderr_tail_chars or settings.stderr_tail_chars
        self._semaphore: asyncio.Semaphore | None = None
        self.active = 0

    @property
    def semaphore(self) -> asyncio.Semaphore:
        # Created lazily so it is bound to the loop that first uses it
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_processes)
        return self._semaphore

    def build_ffmpeg_command(self, args: Sequence[str]) -> list[str]:
        """Prepend the binary and the global flags to caller arguments."""
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-y",
            "-threads", str(self.threads),
            *args,
        ]

    def tail(self, stderr: str) -> str:
        return stderr[-self.stderr_tail_chars:]

    async def _exec(self, cmd: list[str]) -> tuple[int, str, str, float]:
        async with self.semaphore:
            self.active += 1
            started = time.monotonic()
            try:
                proc = await asyncio.create_subprocess_exec(
                    *cmd,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
                try:
                    stdout, stderr = await proc.communicate()
                except asyncio.CancelledError:
                    # Sibling clip failed; don't leave the process behind
                    proc.kill()
                    await proc.wait()
                    raise
            finally:
                self.active -= 1
            elapsed = time.monotonic() - started
        return (
            proc.returncode,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
            elapsed,
        )

    async def run(self, args: Sequence[str], *, stage: str | None = None) -> RunResult:
        """Run FFmpeg with the given arguments.

        Raises:
            EngineError: non-zero exit status, carrying the stderr tail
        """
        cmd = self.build_ffmpeg_command(args)
        label = stage or "ffmpeg"
        logger.info(f"[RUNNER] {label}: {shlex.join(cmd)}")

        returncode, stdout, stderr, elapsed = await self._exec(cmd)
        if returncode != 0:
            tail = self.tail(stderr)
            logger.error(f"[RUNNER] {label} failed (exit {returncode}) after {elapsed:.1f}s:\n{tail}")
            raise EngineError(returncode, tail, stage=stage)

        logger.info(f"[RUNNER] {label} finished in {elapsed:.1f}s")
        return RunResult(list(cmd), returncode, stdout, stderr, elapsed)

    async def probe(self, args: Sequence[str]) -> str:
        """Run FFprobe and return its stdout."""
        cmd = [self.ffprobe_path, "-v", "error", *args]
        logger.debug(f"[RUNNER] probe: {shlex.join(cmd)}")

        returncode, stdout, stderr, _ = await self._exec(cmd)
        if returncode != 0:
            raise EngineError(returncode, self.tail(stderr), stage="probe")
        return stdout


@lru_cache
def get_runner() -> ProcessRunner:
    """Process-wide runner shared by all jobs."""
    return ProcessRunner()
