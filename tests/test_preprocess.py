"""Tests for per-clip normalization."""

import pytest

from mediasuite.exceptions import SceneRenderError
from mediasuite.render.preprocess import AudioSource, ClipPreprocessor, audio_filters
from mediasuite.render.project import Clip, MediaType, resolve_geometry
from mediasuite.render.filtergraph import render_chain

GEOMETRY = resolve_geometry("16:9", "720p")


def _filter_complex(args: list[str]) -> str:
    return args[args.index("-filter_complex") + 1]


class TestAudioFilters:
    def test_pad_trim_and_format(self):
        assert render_chain(audio_filters(5)) == (
            "apad,atrim=duration=5,asetpts=PTS-STARTPTS,"
            "aresample=44100,aformat=sample_fmts=fltp:channel_layouts=stereo"
        )

    def test_volume_only_when_changed(self):
        names = [f.name for f in audio_filters(5, volume=0.5)]
        assert "volume" in names
        assert "volume" not in [f.name for f in audio_filters(5, volume=1.0)]


class TestSourceSelection:
    @pytest.mark.asyncio
    async def test_declared_media_type_skips_probe(self, fake_runner, image_file):
        clip = Clip(media_path=str(image_file), media_type=MediaType.VIDEO)
        assert await ClipPreprocessor(fake_runner).detect_media_type(clip) == MediaType.VIDEO
        assert fake_runner.probe_calls == []

    @pytest.mark.asyncio
    async def test_probe_detects_video(self, fake_runner, image_file):
        fake_runner.videos.add(str(image_file))
        clip = Clip(media_path=str(image_file))
        assert await ClipPreprocessor(fake_runner).detect_media_type(clip) == MediaType.VIDEO

    @pytest.mark.asyncio
    async def test_single_frame_is_image(self, fake_runner, image_file):
        clip = Clip(media_path=str(image_file))
        assert await ClipPreprocessor(fake_runner).detect_media_type(clip) == MediaType.IMAGE

    @pytest.mark.asyncio
    async def test_audio_file_wins(self, fake_runner, image_file, temp_output_dir):
        narration = temp_output_dir / "narration.mp3"
        narration.write_bytes(b"id3")
        clip = Clip(media_path=str(image_file), audio_path=str(narration))
        source = await ClipPreprocessor(fake_runner).select_audio_source(clip, MediaType.VIDEO)
        assert source == AudioSource.FILE

    @pytest.mark.asyncio
    async def test_missing_audio_file_is_ignored(self, fake_runner, image_file, temp_output_dir):
        clip = Clip(media_path=str(image_file), audio_path=str(temp_output_dir / "gone.mp3"))
        source = await ClipPreprocessor(fake_runner).select_audio_source(clip, MediaType.IMAGE)
        assert source == AudioSource.SILENCE

    @pytest.mark.asyncio
    async def test_embedded_audio_for_video_only(self, fake_runner, image_file):
        fake_runner.with_audio.add(str(image_file))
        clip = Clip(media_path=str(image_file))
        preprocessor = ClipPreprocessor(fake_runner)
        assert await preprocessor.select_audio_source(clip, MediaType.VIDEO) == AudioSource.EMBEDDED
        assert await preprocessor.select_audio_source(clip, MediaType.IMAGE) == AudioSource.SILENCE


class TestBuildCommand:
    def test_image_with_silence(self, fake_runner):
        clip = Clip(media_path="/in/still.png", duration=4)
        args = ClipPreprocessor(fake_runner).build_command(
            clip, GEOMETRY, "/out/scene_001.mp4",
            media_type=MediaType.IMAGE, audio_source=AudioSource.SILENCE,
        )

        assert "-stream_loop" not in args
        assert args[:2] == ["-i", "/in/still.png"]
        assert args[2:8] == [
            "-f", "lavfi", "-t", "4", "-i", "anullsrc=channel_layout=stereo:sample_rate=44100",
        ]
        graph = _filter_complex(args)
        assert graph.startswith("[0:v]scale=2560:1440")
        assert "[v_out];[1:a]apad,atrim=duration=4" in graph
        assert graph.endswith("[a_out]")
        assert args[args.index("-t", 8) + 1] == "4"
        assert args[-3:] == ["-movflags", "+faststart", "/out/scene_001.mp4"]

    def test_video_loops_and_uses_embedded_audio(self, fake_runner):
        clip = Clip(media_path="/in/clip.mp4", duration=6, movement="static")
        args = ClipPreprocessor(fake_runner).build_command(
            clip, GEOMETRY, "/out/scene_002.mp4",
            media_type=MediaType.VIDEO, audio_source=AudioSource.EMBEDDED,
        )

        assert args[:4] == ["-stream_loop", "-1", "-i", "/in/clip.mp4"]
        assert args.count("-i") == 1
        assert "[0:a]apad" in _filter_complex(args)

    def test_audio_file_is_second_input(self, fake_runner):
        clip = Clip(media_path="/in/still.png", audio_path="/in/voice.mp3")
        args = ClipPreprocessor(fake_runner).build_command(
            clip, GEOMETRY, "/out/scene_001.mp4",
            media_type=MediaType.IMAGE, audio_source=AudioSource.FILE, effects_volume=0.5,
        )

        assert args[2:4] == ["-i", "/in/voice.mp3"]
        graph = _filter_complex(args)
        assert "[1:a]apad" in graph
        assert "volume=0.5" in graph

    def test_effect_runs_before_final_scale(self, fake_runner):
        clip = Clip(media_path="/in/still.png", effect="mono")
        args = ClipPreprocessor(fake_runner).build_command(
            clip, GEOMETRY, "/out/scene_001.mp4",
            media_type=MediaType.IMAGE, audio_source=AudioSource.SILENCE,
        )
        graph = _filter_complex(args)
        assert graph.index("hue=s=0") < graph.index("scale=1280:720:flags=lanczos")

    def test_caption_is_overlaid_last(self, fake_runner):
        clip = Clip(media_path="/in/still.png", caption="Hello")
        args = ClipPreprocessor(fake_runner).build_command(
            clip, GEOMETRY, "/out/scene_001.mp4",
            media_type=MediaType.IMAGE, audio_source=AudioSource.SILENCE,
            caption_path="/work/caption_001.png",
        )

        assert args[args.index("/work/caption_001.png") - 1] == "-i"
        graph = _filter_complex(args)
        assert "[v_base1];[v_base1][2:v]overlay=x=(W-w)/2:y=H-h-120:format=auto,format=yuv420p[v_out]" in graph

    def test_portrait_geometry(self, fake_runner):
        portrait = resolve_geometry("9:16", "720p")
        clip = Clip(media_path="/in/still.png")
        args = ClipPreprocessor(fake_runner).build_command(
            clip, portrait, "/out/scene_001.mp4",
            media_type=MediaType.IMAGE, audio_source=AudioSource.SILENCE,
        )
        assert "scale=720:1280:flags=lanczos" in _filter_complex(args)


class TestPreprocess:
    @pytest.mark.asyncio
    async def test_writes_indexed_scene(self, fake_runner, image_file, temp_output_dir):
        clip = Clip(media_path=str(image_file), duration=3)
        path = await ClipPreprocessor(fake_runner).preprocess(clip, 4, GEOMETRY, temp_output_dir)

        assert path == temp_output_dir / "scene_004.mp4"
        assert fake_runner.stages == ["scene 4"]

    @pytest.mark.asyncio
    async def test_caption_png_is_rendered(self, fake_runner, image_file, temp_output_dir):
        clip = Clip(media_path=str(image_file), caption="A caption")
        await ClipPreprocessor(fake_runner).preprocess(clip, 1, GEOMETRY, temp_output_dir)

        caption = temp_output_dir / "caption_001.png"
        assert caption.exists()
        assert str(caption) in fake_runner.args_for("scene 1")

    @pytest.mark.asyncio
    async def test_blank_caption_is_skipped(self, fake_runner, image_file, temp_output_dir):
        clip = Clip(media_path=str(image_file), caption="   ")
        await ClipPreprocessor(fake_runner).preprocess(clip, 1, GEOMETRY, temp_output_dir)
        assert not (temp_output_dir / "caption_001.png").exists()

    @pytest.mark.asyncio
    async def test_engine_failure_names_the_scene(self, fake_runner, image_file, temp_output_dir):
        fake_runner.fail_on["scene 2"] = 1
        clip = Clip(media_path=str(image_file))
        with pytest.raises(SceneRenderError) as exc_info:
            await ClipPreprocessor(fake_runner).preprocess(clip, 2, GEOMETRY, temp_output_dir)
        assert exc_info.value.scene_index == 2
        assert exc_info.value.message.startswith("Scene 2 failed")

    @pytest.mark.asyncio
    async def test_tiny_output_is_a_failure(self, fake_runner, image_file, temp_output_dir):
        fake_runner.output_bytes = 10
        clip = Clip(media_path=str(image_file))
        with pytest.raises(SceneRenderError, match="too small"):
            await ClipPreprocessor(fake_runner).preprocess(clip, 1, GEOMETRY, temp_output_dir)


class TestPreprocessAll:
    @pytest.mark.asyncio
    async def test_results_keep_clip_order(self, fake_runner, make_images, temp_output_dir):
        clips = [Clip(media_path=str(p)) for p in make_images(4)]
        progress = []

        paths = await ClipPreprocessor(fake_runner).preprocess_all(
            clips, GEOMETRY, temp_output_dir, concurrency=2,
            on_clip_done=lambda done, total: progress.append((done, total)),
        )

        assert [p.name for p in paths] == [f"scene_{i:03d}.mp4" for i in range(1, 5)]
        assert progress == [(1, 4), (2, 4), (3, 4), (4, 4)]

    @pytest.mark.asyncio
    async def test_async_callback_is_awaited(self, fake_runner, make_images, temp_output_dir):
        clips = [Clip(media_path=str(p)) for p in make_images(2)]
        seen = []

        async def on_done(done, total):
            seen.append(done)

        await ClipPreprocessor(fake_runner).preprocess_all(
            clips, GEOMETRY, temp_output_dir, on_clip_done=on_done,
        )
        assert seen == [1, 2]

    @pytest.mark.asyncio
    async def test_failure_propagates(self, fake_runner, make_images, temp_output_dir):
        clips = [Clip(media_path=str(p)) for p in make_images(3)]
        fake_runner.fail_on["scene 2"] = 1

        with pytest.raises(SceneRenderError) as exc_info:
            await ClipPreprocessor(fake_runner).preprocess_all(
                clips, GEOMETRY, temp_output_dir, concurrency=1,
            )
        assert exc_info.value.scene_index == 2
        assert "scene 2" in fake_runner.stages
