import json
from functools import lru_cache
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Media Suite API"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    # CORS - stored as string, parsed via computed property
    cors_origins_raw: str = "*"

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from pipe/comma-separated string or JSON array."""
        v = self.cors_origins_raw
        if v.startswith("["):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        if "|" in v:
            return [origin.strip() for origin in v.split("|") if origin.strip()]
        return [origin.strip() for origin in v.split(",") if origin.strip()]

    # Storage
    upload_dir: str = "/tmp/mediasuite/uploads"
    output_dir: str = "/tmp/mediasuite/outputs"
    work_root: str = "/tmp/mediasuite/work"
    # Keep per-job working directories after the job finishes (debugging)
    keep_work_dirs: bool = False
    # Finished job records (and their output files) expire after this many seconds
    job_retention_seconds: int = 86400

    # File Upload / ingestion
    max_upload_size_mb: int = 4096
    download_timeout_s: float = 120.0
    proxy_timeout_s: float = 60.0

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    # Threads per FFmpeg process (applied to every invocation)
    ffmpeg_threads: int = 2
    # Upper bound of live FFmpeg/FFprobe processes across all jobs
    max_concurrent_processes: int = 4
    # Clips preprocessed in parallel within one job
    preprocess_concurrency: int = 2
    stderr_tail_chars: int = 2000

    # Render settings
    render_fps: int = 30
    render_pix_fmt: str = "yuv420p"
    render_video_codec: str = "libx264"
    render_video_preset: str = "veryfast"
    render_crf: int = 20
    render_audio_codec: str = "aac"
    render_audio_bitrate: str = "192k"
    render_audio_sample_rate: int = 44100
    # Pre-stage oversizing factor so pan/zoom never reveals empty edges
    motion_supersample: int = 2
    # Intermediate outputs below this size are treated as failed renders
    min_output_bytes: int = 1024

    # Defaults applied to render requests
    default_clip_duration_s: float = 5.0
    default_transition: str = "fade"
    default_transition_duration_s: float = 1.0
    default_movement: str = "kenBurns"
    default_music_volume: float = 0.2

    # Captions
    caption_font_path: str = ""
    caption_font_size: int = 42
    caption_margin_bottom: int = 120


@lru_cache
def get_settings() -> Settings:
    return Settings()
