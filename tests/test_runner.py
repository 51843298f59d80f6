"""
Tests for the FFmpeg process runner.

Test cases:
1. Global flags are prepended to every FFmpeg invocation
2. Non-zero exit raises EngineError with the stderr tail
3. The process cap bounds concurrent processes
4. Cancellation kills the live process
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mediasuite.exceptions import EngineError
from mediasuite.render.runner import ProcessRunner


def _fake_process(returncode: int = 0, stdout: bytes = b"", stderr: bytes = b""):
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    proc.wait = AsyncMock(return_value=returncode)
    return proc


@pytest.fixture
def runner() -> ProcessRunner:
    return ProcessRunner(
        ffmpeg_path="/usr/bin/ffmpeg",
        ffprobe_path="/usr/bin/ffprobe",
        threads=3,
        max_processes=2,
        stderr_tail_chars=50,
    )


class TestProcessRunner:
    def test_global_flags(self, runner):
        assert runner.build_ffmpeg_command(["-i", "a.png", "out.mp4"]) == [
            "/usr/bin/ffmpeg", "-hide_banner", "-y", "-threads", "3", "-i", "a.png", "out.mp4",
        ]

    def test_tail_keeps_the_end(self, runner):
        stderr = "x" * 100 + "Conversion failed!"
        assert runner.tail(stderr).endswith("Conversion failed!")
        assert len(runner.tail(stderr)) == 50

    @pytest.mark.asyncio
    async def test_successful_run(self, runner):
        proc = _fake_process(stdout=b"ok")
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)) as spawn:
            result = await runner.run(["-i", "in.png", "out.mp4"], stage="scene 1")

        spawned = list(spawn.call_args.args)
        assert spawned[:5] == ["/usr/bin/ffmpeg", "-hide_banner", "-y", "-threads", "3"]
        assert result.returncode == 0
        assert result.stdout == "ok"
        assert runner.active == 0

    @pytest.mark.asyncio
    async def test_failure_raises_engine_error(self, runner):
        stderr = ("frame=1\n" * 20 + "Invalid argument\n").encode()
        proc = _fake_process(returncode=234, stderr=stderr)
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            with pytest.raises(EngineError) as exc_info:
                await runner.run(["out.mp4"], stage="transitions")

        error = exc_info.value
        assert error.exit_code == 234
        assert error.stage == "transitions"
        assert len(error.stderr_tail) <= 50
        assert error.message == "transitions: ffmpeg exited with code 234 (Invalid argument)"

    @pytest.mark.asyncio
    async def test_probe_uses_ffprobe(self, runner):
        proc = _fake_process(stdout=b"{}")
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)) as spawn:
            assert await runner.probe(["-show_format", "in.mp4"]) == "{}"

        assert list(spawn.call_args.args) == ["/usr/bin/ffprobe", "-v", "error", "-show_format", "in.mp4"]

    @pytest.mark.asyncio
    async def test_process_cap(self, runner):
        """No more than max_processes run at once."""
        peak = 0
        release = asyncio.Event()

        async def communicate():
            nonlocal peak
            peak = max(peak, runner.active)
            await release.wait()
            return b"", b""

        def spawn(*args, **kwargs):
            proc = _fake_process()
            proc.communicate = communicate
            return proc

        with patch("asyncio.create_subprocess_exec", AsyncMock(side_effect=spawn)):
            tasks = [asyncio.create_task(runner.run(["out.mp4"])) for _ in range(5)]
            for _ in range(10):
                await asyncio.sleep(0)
            assert runner.active == 2
            release.set()
            await asyncio.gather(*tasks)

        assert peak == 2
        assert runner.active == 0

    @pytest.mark.asyncio
    async def test_cancel_kills_process(self, runner):
        started = asyncio.Event()
        proc = _fake_process()

        async def communicate():
            started.set()
            await asyncio.Event().wait()

        proc.communicate = communicate
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            task = asyncio.create_task(runner.run(["out.mp4"]))
            await started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        proc.kill.assert_called_once()
        assert runner.active == 0
