"""
Render pipeline orchestration.

One job runs three sequential stages, each awaiting its FFmpeg invocation
before the next begins:

1. preprocess: every clip to a normalized intermediate (bounded-parallel,
   results kept in clip order)
2. assemble: cross-fade chain or concatenation
3. mix: optional looping background music

Progress checkpoints: 1 on creation, ``5 + 40 * done / N`` per finished clip,
70 after assembly, 100 on completion. Any failure marks the job failed with
a readable message; the per-job working directory and the media ingested
for the job are removed either way.
"""

import logging
import os
import shutil
import tempfile
import time
from pathlib import Path

from mediasuite.config import get_settings
from mediasuite.exceptions import EngineError, JobNotFoundError, MediaSuiteError, ProcessingError
from mediasuite.render.audio_mixer import AudioMixer
from mediasuite.render.filtergraph import Filter, render_chain
from mediasuite.render.preprocess import ClipPreprocessor
from mediasuite.render.project import Project
from mediasuite.render.runner import ProcessRunner, get_runner
from mediasuite.render.transitions import TransitionAssembler
from mediasuite.services.job_registry import JobRegistry, job_registry
from mediasuite.utils import media_info

logger = logging.getLogger(__name__)

settings = get_settings()

PROGRESS_PREPROCESS_START = 5
PROGRESS_PREPROCESS_SPAN = 40
PROGRESS_ASSEMBLED = 70
PROGRESS_MIXING = 80


def download_url(filename: str) -> str:
    return f"/api/download/{filename}"


class RenderPipeline:
    """Runs render and merge jobs and reports their progress."""

    def __init__(
        self,
        registry: JobRegistry | None = None,
        runner: ProcessRunner | None = None,
        output_dir: str | None = None,
        work_root: str | None = None,
    ):
        self.registry = registry if registry is not None else job_registry
        self.runner = runner if runner is not None else get_runner()
        self.preprocessor = ClipPreprocessor(self.runner)
        self.assembler = TransitionAssembler(self.runner)
        self.mixer = AudioMixer(self.runner)
        self.output_dir = Path(output_dir or settings.output_dir)
        self.work_root = Path(work_root or settings.work_root)

    def _update_progress(self, job_id: str, progress: float, stage: str) -> None:
        """Update job progress (monotonic, clamped by the registry)."""
        self.registry.update_progress(job_id, progress, stage)

    def _create_work_dir(self, job_id: str) -> Path:
        self.work_root.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=f"mediasuite_job_{job_id}_", dir=self.work_root))

    def _cleanup_work_dir(self, work_dir: Path | None) -> None:
        if work_dir is None:
            return
        if settings.keep_work_dirs:
            logger.info(f"[JOB] Keeping work dir {work_dir}")
            return
        shutil.rmtree(work_dir, ignore_errors=True)

    def _remove_inputs(self, inputs: list[str]) -> None:
        """Delete the files ingested for this job once it is terminal."""
        for path in inputs:
            try:
                Path(path).unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"[JOB] Could not remove input {path}: {e}")

    def _record_failure(self, job_id: str, kind: str, message: str) -> None:
        try:
            self.registry.fail(job_id, message)
        except JobNotFoundError:
            logger.warning(f"[JOB] {kind} {job_id} failed after its record expired: {message}")

    async def _execute(self, job_id: str, kind: str, stages, inputs: list[str] | None = None) -> None:
        """Run ``stages(work_dir)`` and record the terminal state of the job."""
        started = time.monotonic()
        work_dir: Path | None = None
        try:
            work_dir = self._create_work_dir(job_id)
            output_path = await stages(work_dir)
            self.registry.complete(job_id, str(output_path), download_url(output_path.name))
            logger.info(f"[JOB] {kind} {job_id} finished in {time.monotonic() - started:.1f}s")
        except MediaSuiteError as e:
            logger.exception(f"[JOB] {kind} {job_id} failed: {e.message}")
            self._record_failure(job_id, kind, e.message)
        except Exception as e:
            logger.exception(f"[JOB] {kind} {job_id} crashed")
            self._record_failure(job_id, kind, f"Unexpected error: {type(e).__name__}: {e}")
        finally:
            self._cleanup_work_dir(work_dir)
            self._remove_inputs(inputs or [])

    # =========================================================================
    # Render
    # =========================================================================

    async def run(self, job_id: str, project: Project) -> None:
        """Execute a render job. Never raises; the outcome is on the job record."""

        async def stages(work_dir: Path) -> Path:
            return await self.render(job_id, project, work_dir)

        await self._execute(job_id, "render", stages, inputs=project.inputs)

    async def render(self, job_id: str, project: Project, work_dir: Path) -> Path:
        geometry = project.geometry
        durations = project.durations
        total = len(project.clips)
        logger.info(
            f"[JOB] Render {job_id}: {total} clip(s), {geometry.size}@{geometry.fps}, "
            f"transition={project.transition} ({project.transition_duration}s)"
        )

        # Stage 1: preprocess
        self._update_progress(job_id, PROGRESS_PREPROCESS_START, "preprocessing")

        def on_clip_done(done: int, count: int) -> None:
            progress = PROGRESS_PREPROCESS_START + PROGRESS_PREPROCESS_SPAN * done / count
            self._update_progress(job_id, progress, f"preprocessed {done}/{count}")

        intermediates = await self.preprocessor.preprocess_all(
            project.clips,
            geometry,
            work_dir,
            effects_volume=project.audio.effects_volume,
            on_clip_done=on_clip_done,
        )

        # Stage 2: transitions
        self._update_progress(job_id, PROGRESS_PREPROCESS_START + PROGRESS_PREPROCESS_SPAN, "assembling")
        assembled = await self.assembler.assemble(
            intermediates,
            durations,
            project.transition,
            project.transition_duration,
            work_dir / "assembled.mp4",
            work_dir,
        )
        self._update_progress(job_id, PROGRESS_ASSEMBLED, "assembled")

        # Stage 3: background music
        self.output_dir.mkdir(parents=True, exist_ok=True)
        final_path = self.output_dir / f"render_{job_id}.mp4"
        if project.audio.background_path:
            self._update_progress(job_id, PROGRESS_MIXING, "mixing")
        await self.mixer.mix(
            assembled,
            project.audio.background_path,
            project.audio.background_volume,
            final_path,
        )
        return final_path

    # =========================================================================
    # Merge
    # =========================================================================

    async def run_merge(
        self,
        job_id: str,
        visual_path: str,
        audio_path: str,
        inputs: list[str] | None = None,
    ) -> None:
        """Execute a merge job. Never raises; the outcome is on the job record.

        ``inputs`` are ingested files removed once the job is terminal.
        """

        async def stages(work_dir: Path) -> Path:
            return await self.merge(job_id, visual_path, audio_path)

        await self._execute(job_id, "merge", stages, inputs=inputs)

    def build_merge_command(
        self,
        visual_path: str,
        audio_path: str,
        output_path: str,
        *,
        is_image: bool,
        audio_duration: float | None = None,
    ) -> list[str]:
        """Image + audio: loop the still for the audio's length.
        Video + audio: copy the video stream, shortest input wins."""
        if is_image:
            args = ["-loop", "1", "-i", visual_path, "-i", audio_path]
            even = render_chain([
                Filter("scale", "trunc(iw/2)*2", "trunc(ih/2)*2"),
                Filter("format", settings.render_pix_fmt),
            ])
            args.extend([
                "-map", "0:v", "-map", "1:a",
                "-vf", even,
                "-c:v", settings.render_video_codec,
                "-preset", settings.render_video_preset,
                "-tune", "stillimage",
                "-r", str(settings.render_fps),
                "-c:a", settings.render_audio_codec,
                "-b:a", settings.render_audio_bitrate,
            ])
            if audio_duration:
                args.extend(["-t", f"{audio_duration:.3f}"])
            args.append("-shortest")
        else:
            args = [
                "-i", visual_path, "-i", audio_path,
                "-map", "0:v:0", "-map", "1:a:0",
                "-c:v", "copy",
                "-c:a", settings.render_audio_codec,
                "-b:a", settings.render_audio_bitrate,
                "-shortest",
            ]
        args.extend(["-movflags", "+faststart", output_path])
        return args

    async def merge(self, job_id: str, visual_path: str, audio_path: str) -> Path:
        self._update_progress(job_id, 10, "probing")
        is_image = not await media_info.is_real_video(visual_path, runner=self.runner)
        audio_duration = await media_info.get_duration(audio_path, runner=self.runner) if is_image else None

        self.output_dir.mkdir(parents=True, exist_ok=True)
        output_path = self.output_dir / f"merge_{job_id}.mp4"
        self._update_progress(job_id, 30, "merging")
        try:
            await self.runner.run(
                self.build_merge_command(
                    visual_path,
                    audio_path,
                    str(output_path),
                    is_image=is_image,
                    audio_duration=audio_duration,
                ),
                stage="merge",
            )
        except EngineError as e:
            raise ProcessingError(f"Merge failed: {e.message}", code="ENGINE_ERROR") from e

        if not os.path.exists(output_path):
            raise ProcessingError("Merge produced no output", code="ENGINE_ERROR")
        return output_path


_pipeline: RenderPipeline | None = None


def get_pipeline() -> RenderPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = RenderPipeline()
    return _pipeline
