"""Per-clip normalization.

Each source clip becomes an intermediate MP4 of exactly its declared
duration, in the job's canonical geometry, with a stereo 44.1 kHz audio track
(its own audio file, the video's embedded audio, or generated silence). One
FFmpeg invocation per clip.
"""

import asyncio
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Sequence

from mediasuite.config import get_settings
from mediasuite.exceptions import EngineError, SceneRenderError
from mediasuite.render import captions, effects, motion
from mediasuite.render.filtergraph import Filter, FilterGraph, format_number
from mediasuite.render.project import Clip, Geometry, MediaType
from mediasuite.render.runner import ProcessRunner, get_runner
from mediasuite.utils import media_info

logger = logging.getLogger(__name__)

VIDEO_OUT = "v_out"
AUDIO_OUT = "a_out"


class AudioSource(str, Enum):
    FILE = "file"
    EMBEDDED = "embedded"
    SILENCE = "silence"


ClipDoneCallback = Callable[[int, int], Awaitable[None] | None]


def audio_filters(duration: float, volume: float = 1.0, sample_rate: int = 44100) -> list[Filter]:
    """Pad/trim to exactly ``duration`` and normalize the sample format."""
    filters = [
        Filter("apad"),
        Filter("atrim", duration=duration),
        Filter("asetpts", "PTS-STARTPTS"),
    ]
    if volume != 1.0:
        filters.append(Filter("volume", volume))
    filters.extend([
        Filter("aresample", sample_rate),
        Filter("aformat", sample_fmts="fltp", channel_layouts="stereo"),
    ])
    return filters


class ClipPreprocessor:
    """Turns source clips into normalized intermediate clips."""

    def __init__(self, runner: ProcessRunner | None = None):
        self.runner = runner if runner is not None else get_runner()
        self.settings = get_settings()

    async def detect_media_type(self, clip: Clip) -> MediaType:
        if clip.media_type is not None:
            return MediaType(clip.media_type)
        if await media_info.is_real_video(clip.media_path, runner=self.runner):
            return MediaType.VIDEO
        return MediaType.IMAGE

    async def select_audio_source(self, clip: Clip, media_type: MediaType) -> AudioSource:
        if clip.audio_path and os.path.exists(clip.audio_path):
            return AudioSource.FILE
        if media_type == MediaType.VIDEO and await media_info.has_audio(clip.media_path, runner=self.runner):
            return AudioSource.EMBEDDED
        return AudioSource.SILENCE

    def build_command(
        self,
        clip: Clip,
        geometry: Geometry,
        output_path: str,
        *,
        media_type: MediaType,
        audio_source: AudioSource,
        caption_path: str | None = None,
        effects_volume: float = 1.0,
    ) -> list[str]:
        """Build the FFmpeg arguments (without the runner's global flags)."""
        settings = self.settings
        duration = clip.effective_duration
        is_image = media_type == MediaType.IMAGE

        args: list[str] = []
        # Input 0: visual. Stills are read once and expanded by zoompan;
        # video loops so short sources still fill the duration.
        if not is_image:
            args.extend(["-stream_loop", "-1"])
        args.extend(["-i", clip.media_path])

        next_input = 1
        if audio_source == AudioSource.FILE:
            args.extend(["-i", clip.audio_path])
            audio_label = f"{next_input}:a"
            next_input += 1
        elif audio_source == AudioSource.EMBEDDED:
            audio_label = "0:a"
        else:
            args.extend([
                "-f", "lavfi",
                "-t", format_number(duration),
                "-i", f"anullsrc=channel_layout=stereo:sample_rate={settings.render_audio_sample_rate}",
            ])
            audio_label = f"{next_input}:a"
            next_input += 1

        caption_input = None
        if caption_path:
            args.extend(["-i", caption_path])
            caption_input = f"{next_input}:v"
            next_input += 1

        plan = motion.build_plan(
            clip.movement,
            duration,
            geometry.width,
            geometry.height,
            is_image=is_image,
            fps=geometry.fps,
            speed=clip.speed,
        )
        # Effects grade the oversized frame, before the post-stage rescale
        video_chain = [*plan.pre, *plan.transform, *effects.build_filters(clip.effect), *plan.post]

        graph = FilterGraph()
        if caption_input:
            base = graph.new_label("v_base")
            graph.add(["0:v"], video_chain, [base])
            graph.add([base, caption_input], captions.overlay_filters(), [VIDEO_OUT])
        else:
            graph.add(["0:v"], video_chain, [VIDEO_OUT])
        graph.add(
            [audio_label],
            audio_filters(duration, effects_volume, settings.render_audio_sample_rate),
            [AUDIO_OUT],
        )

        args.extend([
            "-filter_complex", graph.render(),
            "-map", f"[{VIDEO_OUT}]",
            "-map", f"[{AUDIO_OUT}]",
            "-c:v", settings.render_video_codec,
            "-preset", settings.render_video_preset,
            "-crf", str(settings.render_crf),
            "-pix_fmt", geometry.pix_fmt,
            "-r", str(geometry.fps),
            "-c:a", settings.render_audio_codec,
            "-b:a", settings.render_audio_bitrate,
            "-ar", str(settings.render_audio_sample_rate),
            "-t", format_number(duration),
            "-movflags", "+faststart",
            output_path,
        ])
        return args

    async def preprocess(
        self,
        clip: Clip,
        index: int,
        geometry: Geometry,
        work_dir: str | Path,
        *,
        effects_volume: float = 1.0,
    ) -> Path:
        """Normalize one clip.

        Args:
            clip: Source clip
            index: 1-based scene index, used in file names and errors
            geometry: Canonical geometry of the job
            work_dir: Job working directory

        Returns:
            Path of the intermediate clip

        Raises:
            SceneRenderError: engine failure or missing/too small output
        """
        work_dir = Path(work_dir)
        output_path = work_dir / f"scene_{index:03d}.mp4"

        media_type = await self.detect_media_type(clip)
        audio_source = await self.select_audio_source(clip, media_type)

        caption_path = None
        if clip.caption and clip.caption.strip():
            caption_path = str(
                await asyncio.to_thread(
                    captions.render_caption,
                    clip.caption,
                    work_dir / f"caption_{index:03d}.png",
                    geometry.width,
                )
            )

        logger.info(
            f"[PREPROCESS] Scene {index}: {media_type.value}, "
            f"{clip.effective_duration}s, movement={clip.movement or motion.DEFAULT_MOTION}, "
            f"audio={audio_source.value}"
        )
        args = self.build_command(
            clip,
            geometry,
            str(output_path),
            media_type=media_type,
            audio_source=audio_source,
            caption_path=caption_path,
            effects_volume=effects_volume,
        )

        try:
            await self.runner.run(args, stage=f"scene {index}")
        except EngineError as e:
            raise SceneRenderError(index, e.message) from e

        if not output_path.exists():
            raise SceneRenderError(index, "output file was not created")
        size = output_path.stat().st_size
        if size < self.settings.min_output_bytes:
            raise SceneRenderError(index, f"output file is too small ({size} bytes)")

        return output_path

    async def preprocess_all(
        self,
        clips: Sequence[Clip],
        geometry: Geometry,
        work_dir: str | Path,
        *,
        effects_volume: float = 1.0,
        concurrency: int | None = None,
        on_clip_done: ClipDoneCallback | None = None,
    ) -> list[Path]:
        """Preprocess all clips with bounded parallelism.

        Results keep the order of ``clips`` regardless of completion order.
        The first failure cancels the clips still in flight and is re-raised.
        """
        limit = asyncio.Semaphore(max(1, concurrency or self.settings.preprocess_concurrency))
        total = len(clips)
        done = 0

        async def run_one(index: int, clip: Clip) -> Path:
            nonlocal done
            async with limit:
                path = await self.preprocess(clip, index, geometry, work_dir, effects_volume=effects_volume)
            done += 1
            if on_clip_done is not None:
                result = on_clip_done(done, total)
                if asyncio.iscoroutine(result):
                    await result
            return path

        tasks = [asyncio.create_task(run_one(i, clip)) for i, clip in enumerate(clips, start=1)]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
