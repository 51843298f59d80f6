"""Render API endpoints - jobs run as background tasks, clients poll status."""

import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, BackgroundTasks, File, Form, UploadFile, status
from pydantic import ValidationError as PydanticValidationError

from mediasuite.api.deps import AppSettings, MediaIngest, Pipeline, Registry
from mediasuite.config import Settings
from mediasuite.exceptions import EmptyProjectError, InvalidFieldValueError, MissingMediaError
from mediasuite.render.project import AudioConfig, Clip, MediaType, Project
from mediasuite.schemas.render import (
    JobStartResponse,
    JobStatusResponse,
    RenderConfig,
    RenderRequest,
    SceneSpec,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def build_clip(
    scene: SceneSpec,
    media_path: str,
    audio_path: str | None,
    config: RenderConfig,
    settings: Settings,
    media_type: MediaType | None = None,
) -> Clip:
    duration = scene.duration if scene.duration is not None else config.duration_per_image
    return Clip(
        media_path=media_path,
        audio_path=audio_path,
        duration=duration,
        movement=scene.movement or config.movement or settings.default_movement,
        media_type=MediaType(scene.media_type) if scene.media_type else media_type,
        effect=scene.effect,
        caption=scene.caption,
        speed=scene.speed,
    )


def build_project(
    clips: list[Clip],
    config: RenderConfig,
    music_path: str | None,
    inputs: list[str] | None = None,
) -> Project:
    return Project(
        clips=clips,
        transition=config.transition,
        transition_duration=config.transition_duration,
        aspect_ratio=config.aspect_ratio,
        resolution=config.resolution,
        audio=AudioConfig(
            background_path=music_path,
            background_volume=config.music_volume,
            effects_volume=config.effects_volume,
        ),
        inputs=list(inputs or []),
    )


def _parse_json_field(raw: str | None, field: str) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidFieldValueError(f"Field '{field}' is not valid JSON", field=field) from e


def _media_type_from_upload(upload: UploadFile) -> MediaType | None:
    content_type = upload.content_type or ""
    if content_type.startswith("image/"):
        return MediaType.IMAGE
    if content_type.startswith("video/"):
        return MediaType.VIDEO
    return None


@router.post("/render", response_model=JobStartResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_render(
    request: RenderRequest,
    background_tasks: BackgroundTasks,
    registry: Registry,
    pipeline: Pipeline,
    ingest: MediaIngest,
    settings: AppSettings,
) -> JobStartResponse:
    """Start a render from scene references (URLs, data URIs, base64)."""
    if not request.scenes:
        raise EmptyProjectError()

    batch = ingest.batch()
    try:
        clips: list[Clip] = []
        for index, scene in enumerate(request.scenes, start=1):
            if not scene.media:
                raise MissingMediaError(index)
            media_path = await batch.resolve_reference(scene.media, prefix=f"scene{index}")
            audio_path = await batch.resolve_reference(scene.audio, prefix=f"scene{index}_audio")
            clips.append(
                build_clip(
                    scene,
                    str(media_path),
                    str(audio_path) if audio_path else None,
                    request.config,
                    settings,
                )
            )

        music_path = await batch.resolve_reference(request.config.background_music, prefix="music")
        project = build_project(
            clips, request.config, str(music_path) if music_path else None, inputs=batch.paths
        )
    except Exception:
        batch.discard()
        raise

    job = registry.create("render")
    background_tasks.add_task(pipeline.run, job.id, project)
    logger.info(f"[API] Render job {job.id} queued with {len(clips)} scene(s)")
    return JobStartResponse(job_id=job.id)


@router.post("/render/upload", response_model=JobStartResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_render_upload(
    background_tasks: BackgroundTasks,
    registry: Registry,
    pipeline: Pipeline,
    ingest: MediaIngest,
    settings: AppSettings,
    visuals: Annotated[list[UploadFile] | None, File()] = None,
    audios: Annotated[list[UploadFile] | None, File()] = None,
    music: Annotated[UploadFile | None, File()] = None,
    config: Annotated[str | None, Form()] = None,
    scenes: Annotated[str | None, Form()] = None,
    narrations: Annotated[str | None, Form()] = None,
    resolution: Annotated[str | None, Form()] = None,
    aspect_ratio: Annotated[str | None, Form(alias="aspectRatio")] = None,
    duration_per_image: Annotated[float | None, Form(alias="durationPerImage")] = None,
) -> JobStartResponse:
    """Start a render from uploaded files.

    ``audios`` pair with ``visuals`` by index. ``config`` and ``scenes`` are
    JSON strings; the flat ``resolution``/``aspectRatio``/``durationPerImage``
    fields override the matching config entries.
    """
    if not visuals:
        raise EmptyProjectError()

    config_data = _parse_json_field(config, "config") or {}
    if not isinstance(config_data, dict):
        raise InvalidFieldValueError("Field 'config' must be a JSON object", field="config")
    if resolution:
        config_data["resolution"] = resolution
    if aspect_ratio:
        config_data["aspectRatio"] = aspect_ratio
    if duration_per_image is not None:
        config_data["durationPerImage"] = duration_per_image
    try:
        render_config = RenderConfig.model_validate(config_data)
    except PydanticValidationError as e:
        raise InvalidFieldValueError(f"Invalid config: {e.errors()[0]['msg']}", field="config") from e

    scene_data = _parse_json_field(scenes, "scenes") or []
    caption_data = _parse_json_field(narrations, "narrations") or []
    if not isinstance(scene_data, list) or not isinstance(caption_data, list):
        raise InvalidFieldValueError("Fields 'scenes' and 'narrations' must be JSON arrays")

    audios = audios or []
    batch = ingest.batch()
    try:
        clips: list[Clip] = []
        for i, upload in enumerate(visuals):
            try:
                scene = SceneSpec.model_validate(scene_data[i] if i < len(scene_data) else {})
            except PydanticValidationError as e:
                raise InvalidFieldValueError(
                    f"Scene {i + 1}: {e.errors()[0]['msg']}", field="scenes"
                ) from e
            if scene.caption is None and i < len(caption_data) and caption_data[i]:
                scene.caption = str(caption_data[i])

            media_path = await batch.save_upload(upload, prefix=f"scene{i + 1}")
            audio_path = None
            if i < len(audios) and audios[i].filename:
                audio_path = str(await batch.save_upload(audios[i], prefix=f"scene{i + 1}_audio"))
            clips.append(
                build_clip(
                    scene,
                    str(media_path),
                    audio_path,
                    render_config,
                    settings,
                    media_type=_media_type_from_upload(upload),
                )
            )

        music_path = None
        if music is not None and music.filename:
            music_path = str(await batch.save_upload(music, prefix="music"))
        elif render_config.background_music:
            resolved = await batch.resolve_reference(render_config.background_music, prefix="music")
            music_path = str(resolved) if resolved else None

        project = build_project(clips, render_config, music_path, inputs=batch.paths)
    except Exception:
        batch.discard()
        raise

    job = registry.create("render")
    background_tasks.add_task(pipeline.run, job.id, project)
    logger.info(f"[API] Upload render job {job.id} queued with {len(clips)} scene(s)")
    return JobStartResponse(job_id=job.id)


@router.get(
    "/render/{job_id}",
    response_model=JobStatusResponse,
    response_model_exclude_none=True,
)
async def get_render_status(job_id: str, registry: Registry) -> JobStatusResponse:
    """Poll a render or merge job."""
    job = registry.get(job_id)
    return JobStatusResponse.model_validate(job.to_dict())
