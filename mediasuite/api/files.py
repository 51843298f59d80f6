from pathlib import Path

from fastapi import APIRouter
from fastapi.responses import FileResponse

from mediasuite.api.deps import AppSettings
from mediasuite.exceptions import OutputNotFoundError

router = APIRouter()

MEDIA_TYPES = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".webm": "video/webm",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".aac": "audio/aac",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}


def resolve_output(output_dir: str, filename: str) -> Path:
    """Locate a finished file, rejecting anything outside the output dir."""
    root = Path(output_dir).resolve()
    candidate = (root / filename).resolve()
    if candidate.parent != root or not candidate.is_file():
        raise OutputNotFoundError(f"File not found: {filename}")
    return candidate


@router.get("/download/{filename}")
async def download_file(filename: str, settings: AppSettings) -> FileResponse:
    """Stream a finished render as an attachment."""
    file_path = resolve_output(settings.output_dir, filename)
    media_type = MEDIA_TYPES.get(file_path.suffix.lower(), "application/octet-stream")
    return FileResponse(path=str(file_path), media_type=media_type, filename=file_path.name)
