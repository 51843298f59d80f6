"""
Tests for the render/merge job orchestration.

Test cases:
1. Stage order and progress checkpoints of a render
2. Single clip and cut renders
3. Scene failure is recorded on the job with the scene number
4. Working directory removed on success and failure
5. Merge of image + audio and video + audio
6. Injected empty registry is kept; unknown job ids never raise
7. Ingested inputs owned by the job are removed when it ends
"""

from pathlib import Path

import pytest

from mediasuite.exceptions import JobNotFoundError
from mediasuite.render.pipeline import RenderPipeline
from mediasuite.render.project import AudioConfig, Clip, Project
from mediasuite.services.job_registry import JobStatus


@pytest.fixture
def pipeline(fake_runner, registry, temp_output_dir: Path) -> RenderPipeline:
    return RenderPipeline(
        registry=registry,
        runner=fake_runner,
        output_dir=str(temp_output_dir / "outputs"),
        work_root=str(temp_output_dir / "work"),
    )


@pytest.fixture
def progress_log(registry, monkeypatch) -> list[int]:
    """Progress values as the registry reports them after each update."""
    log: list[int] = []
    original = registry.update_progress

    def update(job_id, progress, stage=None):
        job = original(job_id, progress, stage)
        log.append(job.progress)
        return job

    monkeypatch.setattr(registry, "update_progress", update)
    return log


@pytest.fixture
def work_dirs(pipeline, monkeypatch) -> list[Path]:
    created: list[Path] = []
    original = pipeline._create_work_dir

    def create(job_id):
        path = original(job_id)
        created.append(path)
        return path

    monkeypatch.setattr(pipeline, "_create_work_dir", create)
    return created


class TestRenderPipeline:
    @pytest.mark.asyncio
    async def test_three_scene_render(self, pipeline, registry, fake_runner, make_images, progress_log, work_dirs):
        project = Project(clips=[Clip(media_path=str(p), duration=5) for p in make_images(3)])
        job = registry.create()

        await pipeline.run(job.id, project)

        done = registry.get(job.id)
        assert done.status == JobStatus.COMPLETED
        assert done.progress == 100
        assert done.download_url == f"/api/download/render_{job.id}.mp4"
        assert Path(done.output_path).exists()

        assert fake_runner.stages == ["scene 1", "scene 2", "scene 3", "transitions"]
        transitions = fake_runner.args_for("transitions")
        assert transitions[transitions.index("-t") + 1] == "13"

        assert progress_log[0] == 5
        assert progress_log == sorted(progress_log)
        assert 45 in progress_log
        assert progress_log[-1] == 70
        assert not work_dirs[0].exists()

    @pytest.mark.asyncio
    async def test_single_scene_skips_transitions(self, pipeline, registry, fake_runner, image_file):
        job = registry.create()
        await pipeline.run(job.id, Project(clips=[Clip(media_path=str(image_file))]))

        assert registry.get(job.id).status == JobStatus.COMPLETED
        assert fake_runner.stages == ["scene 1"]

    @pytest.mark.asyncio
    async def test_cut_concatenates(self, pipeline, registry, fake_runner, make_images):
        project = Project(clips=[Clip(media_path=str(p)) for p in make_images(2)], transition="cut")
        job = registry.create()
        await pipeline.run(job.id, project)

        assert fake_runner.stages == ["scene 1", "scene 2", "concat"]

    @pytest.mark.asyncio
    async def test_background_music_is_mixed(self, pipeline, registry, fake_runner, make_images, progress_log):
        project = Project(
            clips=[Clip(media_path=str(p)) for p in make_images(2)],
            audio=AudioConfig(background_path="/uploads/bgm.mp3", background_volume=0.35),
        )
        job = registry.create()
        await pipeline.run(job.id, project)

        assert fake_runner.stages[-1] == "mix"
        assert "volume=0.35" in " ".join(fake_runner.args_for("mix"))
        assert progress_log[-1] == 80

    @pytest.mark.asyncio
    async def test_scene_failure_is_recorded(self, pipeline, registry, fake_runner, make_images, work_dirs):
        fake_runner.fail_on["scene 2"] = 1
        project = Project(clips=[Clip(media_path=str(p)) for p in make_images(3)])
        job = registry.create()

        await pipeline.run(job.id, project)

        failed = registry.get(job.id)
        assert failed.status == JobStatus.FAILED
        assert failed.error.startswith("Scene 2 failed")
        assert failed.download_url is None
        assert "transitions" not in fake_runner.stages
        assert not work_dirs[0].exists()

    @pytest.mark.asyncio
    async def test_unexpected_error_is_recorded(self, pipeline, registry, image_file, monkeypatch):
        async def explode(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(pipeline.preprocessor, "preprocess_all", explode)
        job = registry.create()
        await pipeline.run(job.id, Project(clips=[Clip(media_path=str(image_file))]))

        failed = registry.get(job.id)
        assert failed.status == JobStatus.FAILED
        assert failed.error == "Unexpected error: RuntimeError: disk on fire"

    @pytest.mark.asyncio
    async def test_assembly_failure(self, pipeline, registry, fake_runner, make_images):
        fake_runner.fail_on["transitions"] = 1
        job = registry.create()
        await pipeline.run(job.id, Project(clips=[Clip(media_path=str(p)) for p in make_images(2)]))

        failed = registry.get(job.id)
        assert failed.status == JobStatus.FAILED
        assert failed.error.startswith("Transition render failed")

    def test_keeps_injected_empty_registry(self, pipeline, registry, fake_runner):
        assert len(registry) == 0
        assert pipeline.registry is registry
        assert pipeline.runner is fake_runner

    @pytest.mark.asyncio
    async def test_unknown_job_does_not_raise(self, pipeline, registry, image_file, work_dirs):
        await pipeline.run("not-registered", Project(clips=[Clip(media_path=str(image_file))]))

        with pytest.raises(JobNotFoundError):
            registry.get("not-registered")
        assert not work_dirs[0].exists()


class TestJobInputs:
    @pytest.mark.asyncio
    async def test_removed_after_completion(self, pipeline, registry, make_images):
        images = make_images(2)
        project = Project(
            clips=[Clip(media_path=str(p)) for p in images],
            inputs=[str(p) for p in images],
        )
        job = registry.create()

        await pipeline.run(job.id, project)

        assert registry.get(job.id).status == JobStatus.COMPLETED
        assert not any(p.exists() for p in images)

    @pytest.mark.asyncio
    async def test_removed_after_failure(self, pipeline, registry, fake_runner, make_images):
        fake_runner.fail_on["scene 1"] = 1
        images = make_images(2)
        project = Project(
            clips=[Clip(media_path=str(p)) for p in images],
            inputs=[str(images[0])],
        )
        job = registry.create()

        await pipeline.run(job.id, project)

        assert registry.get(job.id).status == JobStatus.FAILED
        assert not images[0].exists()
        # Not owned by the job
        assert images[1].exists()

    @pytest.mark.asyncio
    async def test_merge_inputs_removed(self, pipeline, registry, image_file):
        job = registry.create("merge")

        await pipeline.run_merge(job.id, str(image_file), "/uploads/voice.mp3", inputs=[str(image_file)])

        assert registry.get(job.id).status == JobStatus.COMPLETED
        assert not image_file.exists()


class TestMerge:
    @pytest.mark.asyncio
    async def test_image_and_audio(self, pipeline, registry, fake_runner, image_file):
        fake_runner.durations["/uploads/voice.mp3"] = 7.25
        job = registry.create("merge")

        await pipeline.run_merge(job.id, str(image_file), "/uploads/voice.mp3")

        done = registry.get(job.id)
        assert done.status == JobStatus.COMPLETED
        assert done.download_url == f"/api/download/merge_{job.id}.mp4"
        args = fake_runner.args_for("merge")
        assert args[:4] == ["-loop", "1", "-i", str(image_file)]
        assert args[args.index("-t") + 1] == "7.250"
        assert "-shortest" in args

    @pytest.mark.asyncio
    async def test_video_and_audio_copies_video(self, pipeline, registry, fake_runner, image_file):
        fake_runner.videos.add(str(image_file))
        job = registry.create("merge")

        await pipeline.run_merge(job.id, str(image_file), "/uploads/voice.mp3")

        args = fake_runner.args_for("merge")
        assert "-loop" not in args
        assert args[args.index("-c:v") + 1] == "copy"
        assert "-shortest" in args

    @pytest.mark.asyncio
    async def test_merge_failure(self, pipeline, registry, fake_runner, image_file):
        fake_runner.fail_on["merge"] = 1
        job = registry.create("merge")
        await pipeline.run_merge(job.id, str(image_file), "/uploads/voice.mp3")

        failed = registry.get(job.id)
        assert failed.status == JobStatus.FAILED
        assert failed.error.startswith("Merge failed")
