"""
Pytest fixtures for Media Suite tests.

Most tests run against ``FakeRunner``, which records FFmpeg/FFprobe
invocations instead of spawning processes and writes a placeholder output
file so size checks pass.

CI/CD Note:
Tests that need a real FFmpeg binary are marked with @pytest.mark.requires_ffmpeg
and skipped when ffmpeg/ffprobe are not on PATH.
"""

import json
import os
import shutil
import tempfile
from pathlib import Path

import pytest

# Settings are read once at import time; point every directory at a scratch
# location before any mediasuite module is imported.
_SCRATCH = Path(tempfile.mkdtemp(prefix="mediasuite_test_"))
os.environ.setdefault("UPLOAD_DIR", str(_SCRATCH / "uploads"))
os.environ.setdefault("OUTPUT_DIR", str(_SCRATCH / "outputs"))
os.environ.setdefault("WORK_ROOT", str(_SCRATCH / "work"))

from PIL import Image  # noqa: E402

from mediasuite.exceptions import EngineError  # noqa: E402
from mediasuite.render.runner import ProcessRunner, RunResult  # noqa: E402
from mediasuite.services.job_registry import JobRegistry  # noqa: E402


def pytest_configure(config):
    """Register custom markers for CI/CD test filtering."""
    config.addinivalue_line(
        "markers",
        "requires_ffmpeg: mark test as requiring ffmpeg/ffprobe on PATH (skipped otherwise)",
    )


def _ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


def pytest_collection_modifyitems(config, items):
    """Skip engine tests when no FFmpeg is installed."""
    if _ffmpeg_available():
        return
    skip = pytest.mark.skip(reason="ffmpeg/ffprobe not available")
    for item in items:
        if "requires_ffmpeg" in item.keywords:
            item.add_marker(skip)


class FakeRunner(ProcessRunner):
    """Records invocations instead of running them.

    - ``fail_on``: stage prefix -> exit code to raise ``EngineError`` with
    - ``videos`` / ``with_audio``: paths probed as multi-frame video / having audio
    - ``durations``: path -> duration reported by the duration probe
    """

    def __init__(self, output_bytes: int = 4096):
        super().__init__(
            ffmpeg_path="ffmpeg",
            ffprobe_path="ffprobe",
            threads=2,
            max_processes=4,
            stderr_tail_chars=2000,
        )
        self.output_bytes = output_bytes
        self.calls: list[tuple[str | None, list[str]]] = []
        self.probe_calls: list[list[str]] = []
        self.fail_on: dict[str, int] = {}
        self.videos: set[str] = set()
        self.with_audio: set[str] = set()
        self.durations: dict[str, float] = {}

    @property
    def stages(self) -> list[str | None]:
        return [stage for stage, _ in self.calls]

    def args_for(self, stage: str) -> list[str]:
        for call_stage, args in self.calls:
            if call_stage == stage:
                return args
        raise AssertionError(f"No call for stage {stage!r}; got {self.stages}")

    async def run(self, args, *, stage=None) -> RunResult:
        args = list(args)
        self.calls.append((stage, args))
        for prefix, code in self.fail_on.items():
            if stage and stage.startswith(prefix):
                raise EngineError(code, "Error while filtering: simulated failure", stage=stage)
        Path(args[-1]).write_bytes(b"\0" * self.output_bytes)
        return RunResult(self.build_ffmpeg_command(args), 0, "", "", 0.0)

    async def probe(self, args) -> str:
        args = list(args)
        self.probe_calls.append(args)
        path = args[-1]
        selected = args[args.index("-select_streams") + 1] if "-select_streams" in args else None

        if selected == "a":
            streams = [{"codec_type": "audio"}] if path in self.with_audio else []
            return json.dumps({"streams": streams})
        if selected == "v:0":
            frames = "150" if path in self.videos else "1"
            return json.dumps({"streams": [{"codec_name": "h264", "nb_read_packets": frames}]})
        return json.dumps({"format": {"duration": str(self.durations.get(path, 3.0))}})


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def temp_output_dir():
    """Temporary directory for test outputs."""
    with tempfile.TemporaryDirectory(prefix="mediasuite_test_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def registry() -> JobRegistry:
    return JobRegistry(ttl_seconds=3600)


@pytest.fixture
def image_file(temp_output_dir: Path) -> Path:
    """A small solid-color PNG."""
    path = temp_output_dir / "still.png"
    Image.new("RGB", (320, 240), (40, 120, 200)).save(path)
    return path


@pytest.fixture
def make_images(temp_output_dir: Path):
    """Factory for N distinct PNG files."""

    def _make(count: int) -> list[Path]:
        paths = []
        for i in range(count):
            path = temp_output_dir / f"scene_src_{i}.png"
            Image.new("RGB", (320, 240), (40 * i % 255, 100, 200)).save(path)
            paths.append(path)
        return paths

    return _make
