"""Error codes dictionary.

Single source of truth for error codes and whether the client may retry the
request unchanged. Used by the exception handlers in ``mediasuite.main``.
"""

from typing import TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_fix: str


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Request validation
    # ==========================================================================
    "VALIDATION_ERROR": {"retryable": False},
    "EMPTY_PROJECT": {
        "retryable": False,
        "suggested_fix": "Send at least one scene with a media reference",
    },
    "MISSING_MEDIA": {
        "retryable": False,
        "suggested_fix": "Every scene needs a media url, data URI or uploaded file",
    },
    "INVALID_FIELD_VALUE": {"retryable": False},
    "MEDIA_INGEST_FAILED": {
        "retryable": True,
        "suggested_fix": "Check that remote media URLs are reachable",
    },
    # ==========================================================================
    # Lookups
    # ==========================================================================
    "JOB_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "Finished jobs expire; start a new render",
    },
    "OUTPUT_NOT_FOUND": {"retryable": False},
    # ==========================================================================
    # Processing (recorded on the job)
    # ==========================================================================
    "ENGINE_ERROR": {"retryable": False},
    "SCENE_RENDER_FAILED": {"retryable": False},
    "ASSEMBLY_FAILED": {"retryable": False},
    "MIX_FAILED": {"retryable": False},
    # ==========================================================================
    # System
    # ==========================================================================
    "PROXY_ERROR": {"retryable": True},
    "INTERNAL_ERROR": {"retryable": True},
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and optional fix hint
    """
    return ERROR_CODES.get(code, {"retryable": False})
