"""Media file inspection through FFprobe.

All probes go through the shared ``ProcessRunner`` so they count against the
same process cap as renders. ``has_audio`` and ``is_real_video`` are boolean
oracles: a failing probe answers ``False`` instead of raising.
"""

import json
import logging

from mediasuite.exceptions import EngineError
from mediasuite.render.runner import ProcessRunner, get_runner

logger = logging.getLogger(__name__)


async def _probe_json(file_path: str, *args: str, runner: ProcessRunner | None = None) -> dict:
    runner = runner if runner is not None else get_runner()
    stdout = await runner.probe(["-print_format", "json", *args, file_path])
    try:
        return json.loads(stdout or "{}")
    except json.JSONDecodeError as e:
        raise EngineError(0, f"Failed to parse ffprobe output: {e}", stage="probe") from e


async def has_audio(file_path: str, runner: ProcessRunner | None = None) -> bool:
    """Check whether the file carries at least one audio stream."""
    try:
        data = await _probe_json(file_path, "-show_streams", "-select_streams", "a", runner=runner)
    except EngineError:
        logger.warning(f"[PROBE] Audio probe failed for {file_path}, assuming no audio")
        return False
    return len(data.get("streams", [])) > 0


async def is_real_video(file_path: str, runner: ProcessRunner | None = None) -> bool:
    """Check whether the first video stream has more than one frame.

    Still images (and single-frame containers) decode as a one-frame video
    stream, so a frame count above one is what distinguishes real video.
    """
    try:
        data = await _probe_json(
            file_path,
            "-count_packets",
            "-select_streams", "v:0",
            "-show_entries", "stream=nb_frames,nb_read_packets,codec_name",
            runner=runner,
        )
    except EngineError:
        logger.warning(f"[PROBE] Video probe failed for {file_path}, treating as image")
        return False

    streams = data.get("streams", [])
    if not streams:
        return False

    stream = streams[0]
    for key in ("nb_read_packets", "nb_frames"):
        value = stream.get(key)
        if value not in (None, "N/A"):
            try:
                return int(value) > 1
            except (TypeError, ValueError):
                continue
    return False


async def get_duration(file_path: str, runner: ProcessRunner | None = None) -> float | None:
    """Container duration in seconds, or None when unknown."""
    try:
        data = await _probe_json(file_path, "-show_entries", "format=duration", runner=runner)
    except EngineError:
        return None

    duration = data.get("format", {}).get("duration")
    try:
        return float(duration) if duration is not None else None
    except (TypeError, ValueError):
        return None

