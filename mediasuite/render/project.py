"""Render project model shared by the pipeline stages."""

from dataclasses import dataclass, field
from enum import Enum

from mediasuite.config import get_settings
from mediasuite.exceptions import EmptyProjectError, InvalidFieldValueError

RESOLUTIONS: dict[str, tuple[int, int]] = {
    "1080p": (1920, 1080),
    "720p": (1280, 720),
}
ASPECT_RATIOS = ("16:9", "9:16")


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


@dataclass(frozen=True)
class Geometry:
    """Canonical output shape fixed once per job."""

    width: int
    height: int
    fps: int = 30
    pix_fmt: str = "yuv420p"

    @property
    def size(self) -> str:
        return f"{self.width}x{self.height}"


def resolve_geometry(aspect_ratio: str = "16:9", resolution: str = "1080p") -> Geometry:
    """Select the canonical geometry from aspect ratio and resolution.

    Portrait (9:16) swaps width and height of the landscape preset.
    """
    if resolution not in RESOLUTIONS:
        raise InvalidFieldValueError(field="resolution", value=resolution)
    if aspect_ratio not in ASPECT_RATIOS:
        raise InvalidFieldValueError(field="aspectRatio", value=aspect_ratio)

    settings = get_settings()
    width, height = RESOLUTIONS[resolution]
    if aspect_ratio == "9:16":
        width, height = height, width
    return Geometry(width=width, height=height, fps=settings.render_fps, pix_fmt=settings.render_pix_fmt)


@dataclass
class Clip:
    """One timeline entry with its local media files."""

    media_path: str
    audio_path: str | None = None
    duration: float | None = None
    movement: str | None = None
    media_type: MediaType | None = None
    effect: str | None = None
    caption: str | None = None
    speed: float = 1.0

    @property
    def effective_duration(self) -> float:
        if self.duration is None or self.duration <= 0:
            return get_settings().default_clip_duration_s
        return float(self.duration)


@dataclass
class AudioConfig:
    background_path: str | None = None
    background_volume: float = 0.2
    effects_volume: float = 1.0


@dataclass
class Project:
    """Ordered clips plus the global transition and audio settings."""

    clips: list[Clip]
    transition: str = "fade"
    transition_duration: float = 1.0
    aspect_ratio: str = "16:9"
    resolution: str = "1080p"
    audio: AudioConfig = field(default_factory=AudioConfig)
    # Ingested files owned by the job, removed when it finishes
    inputs: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.clips:
            raise EmptyProjectError()

    @property
    def geometry(self) -> Geometry:
        return resolve_geometry(self.aspect_ratio, self.resolution)

    @property
    def durations(self) -> list[float]:
        return [clip.effective_duration for clip in self.clips]
