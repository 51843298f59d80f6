"""Custom exceptions for the media suite backend.

Request-level errors are raised out of the API layer and turned into JSON
responses by the handlers in ``mediasuite.main``. Processing errors are raised
inside a render job and recorded on the job record instead.
"""

from typing import Any

from mediasuite.constants.error_codes import get_error_spec


class MediaSuiteError(Exception):
    """Base exception for all application errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        field: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.field = field
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for an API error response."""
        spec = get_error_spec(self.code)
        data: dict[str, Any] = {
            "detail": self.message,
            "code": self.code,
            "retryable": spec.get("retryable", False),
        }
        if self.field:
            data["field"] = self.field
        if "suggested_fix" in spec:
            data["suggested_fix"] = spec["suggested_fix"]
        return data


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(MediaSuiteError):
    """Base class for validation errors."""

    code = "VALIDATION_ERROR"
    status_code = 400


class EmptyProjectError(ValidationError):
    """Render request without clips."""

    code = "EMPTY_PROJECT"
    message = "A render needs at least one scene"


class MissingMediaError(ValidationError):
    """A scene has no usable media reference."""

    code = "MISSING_MEDIA"
    message = "Scene media is missing"

    def __init__(self, scene_index: int | None = None, field: str = "media"):
        message = (
            f"Scene {scene_index}: {field} is missing" if scene_index is not None else self.message
        )
        super().__init__(message, field=field)


class InvalidFieldValueError(ValidationError):
    """Field value is invalid."""

    code = "INVALID_FIELD_VALUE"
    message = "Invalid field value"

    def __init__(
        self, message: str | None = None, *, field: str | None = None, value: Any = None
    ):
        msg = message or self.message
        if field and value is not None and message is None:
            msg = f"Invalid value for field '{field}': {value}"
        super().__init__(msg, field=field)


class MediaIngestError(ValidationError):
    """Uploaded, inline or remote media could not be saved locally."""

    code = "MEDIA_INGEST_FAILED"
    message = "Media could not be stored"


# =============================================================================
# Not Found Errors (404)
# =============================================================================


class ResourceNotFoundError(MediaSuiteError):
    """Base class for resource not found errors."""

    status_code = 404


class JobNotFoundError(ResourceNotFoundError):
    """Job not found (unknown or expired)."""

    code = "JOB_NOT_FOUND"
    message = "Job not found"

    def __init__(self, job_id: str | None = None):
        message = f"Job not found: {job_id}" if job_id else self.message
        super().__init__(message)


class OutputNotFoundError(ResourceNotFoundError):
    """Rendered file not found."""

    code = "OUTPUT_NOT_FOUND"
    message = "File not found"


# =============================================================================
# Processing Errors (recorded on the job)
# =============================================================================


class ProcessingError(MediaSuiteError):
    """Base class for failures inside a render job."""

    status_code = 500


class EngineError(ProcessingError):
    """FFmpeg/FFprobe exited with a non-zero status."""

    code = "ENGINE_ERROR"
    message = "Media engine failed"

    def __init__(self, exit_code: int, stderr_tail: str = "", stage: str | None = None):
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        self.stage = stage
        prefix = f"{stage}: " if stage else ""
        last_line = stderr_tail.strip().splitlines()[-1] if stderr_tail.strip() else ""
        message = f"{prefix}ffmpeg exited with code {exit_code}"
        if last_line:
            message += f" ({last_line})"
        super().__init__(message)


class SceneRenderError(ProcessingError):
    """A single clip could not be normalized."""

    code = "SCENE_RENDER_FAILED"
    message = "Scene failed to render"

    def __init__(self, scene_index: int, reason: str | None = None):
        self.scene_index = scene_index
        message = f"Scene {scene_index} failed"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class AssemblyError(ProcessingError):
    """The transition stage failed."""

    code = "ASSEMBLY_FAILED"
    message = "Assembling scenes failed"


class MixError(ProcessingError):
    """The background music stage failed."""

    code = "MIX_FAILED"
    message = "Mixing background music failed"


# =============================================================================
# System Errors
# =============================================================================


class ProxyError(MediaSuiteError):
    """Upstream request of the passthrough proxy failed."""

    code = "PROXY_ERROR"
    status_code = 502
    message = "Upstream request failed"
