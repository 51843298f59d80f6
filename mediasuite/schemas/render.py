from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class SceneSpec(BaseModel):
    """One timeline entry of a render request.

    Accepts snake_case input. camelCase aliases are accepted for compatibility.
    """

    model_config = ConfigDict(populate_by_name=True)

    media: str | None = Field(
        default=None,
        validation_alias=AliasChoices("media", "url", "visual"),
        description="URL, data URI, base64 payload or /outputs/<name> reference",
    )
    audio: str | None = Field(default=None, description="Optional per-scene audio reference")
    duration: float | None = Field(default=None, description="Seconds; <=0 or missing means 5")
    movement: str | None = None
    media_type: Literal["image", "video"] | None = Field(default=None, alias="mediaType")
    effect: str | None = None
    caption: str | None = Field(default=None, validation_alias=AliasChoices("caption", "narration"))
    speed: float = Field(default=1.0, gt=0, le=10)


class RenderConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transition: str = "fade"
    transition_duration: float = Field(default=1.0, ge=0, le=30, alias="transitionDuration")
    movement: str | None = None
    aspect_ratio: Literal["16:9", "9:16"] = Field(default="16:9", alias="aspectRatio")
    resolution: Literal["1080p", "720p"] = "1080p"
    music_volume: float = Field(default=0.2, ge=0, le=4, alias="musicVolume")
    effects_volume: float = Field(default=1.0, ge=0, le=4, alias="effectsVolume")
    background_music: str | None = Field(default=None, alias="backgroundMusic")
    duration_per_image: float | None = Field(default=None, alias="durationPerImage")


class RenderRequest(BaseModel):
    scenes: list[SceneSpec] = Field(default_factory=list)
    config: RenderConfig = Field(default_factory=RenderConfig)


class JobStartResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")


class JobStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    kind: str = "render"
    progress: int
    status: str
    stage: str | None = None
    download_url: str | None = Field(default=None, alias="downloadUrl")
    error: str | None = None
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")
    finished_at: datetime | None = Field(default=None, alias="finishedAt")


class ProxyRequest(BaseModel):
    url: str
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD"] = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None


class PresetsResponse(BaseModel):
    movements: list[str]
    transitions: list[str]
    effects: list[str]
