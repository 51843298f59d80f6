"""
Background music mixing using FFmpeg.

The background track is looped at the source, scaled by its volume and mixed
under the assembled video's own audio. The mix always ends with the
foreground (``amix duration=first``); the video stream is copied untouched.
"""

import asyncio
import logging
import shutil
from pathlib import Path

from mediasuite.config import get_settings
from mediasuite.exceptions import EngineError, MixError
from mediasuite.render.filtergraph import Filter, FilterGraph
from mediasuite.render.runner import ProcessRunner, get_runner

logger = logging.getLogger(__name__)

settings = get_settings()


def build_mix_graph(volume: float) -> FilterGraph:
    graph = FilterGraph()
    graph.add(["1:a"], [Filter("volume", volume)], ["bg"])
    graph.add(
        ["0:a", "bg"],
        [Filter("amix", inputs=2, duration="first", dropout_transition=0, normalize=0)],
        ["a_out"],
    )
    return graph


class AudioMixer:
    """Mixes an optional looping background track into the final video."""

    def __init__(self, runner: ProcessRunner | None = None):
        self.runner = runner if runner is not None else get_runner()

    def build_command(
        self,
        foreground: str | Path,
        background: str | Path,
        volume: float,
        output_path: str | Path,
    ) -> list[str]:
        return [
            "-i", str(foreground),
            "-stream_loop", "-1",
            "-i", str(background),
            "-filter_complex", build_mix_graph(volume).render(),
            "-map", "0:v",
            "-map", "[a_out]",
            "-c:v", "copy",
            "-c:a", settings.render_audio_codec,
            "-b:a", settings.render_audio_bitrate,
            "-ar", str(settings.render_audio_sample_rate),
            "-movflags", "+faststart",
            str(output_path),
        ]

    async def mix(
        self,
        foreground: str | Path,
        background: str | Path | None,
        volume: float | None,
        output_path: str | Path,
    ) -> Path:
        """Mix ``background`` under ``foreground`` into ``output_path``.

        Without a background track the foreground file is copied as-is.
        """
        output_path = Path(output_path)
        if not background:
            await asyncio.to_thread(shutil.copyfile, foreground, output_path)
            return output_path

        if volume is None:
            volume = settings.default_music_volume
        logger.info(f"[MIX] Mixing background {background} at volume {volume}")
        try:
            await self.runner.run(
                self.build_command(foreground, background, volume, output_path),
                stage="mix",
            )
        except EngineError as e:
            raise MixError(f"Background mix failed: {e.message}") from e
        return output_path
