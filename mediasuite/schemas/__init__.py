from mediasuite.schemas.render import (
    JobStartResponse,
    JobStatusResponse,
    PresetsResponse,
    ProxyRequest,
    RenderConfig,
    RenderRequest,
    SceneSpec,
)

__all__ = [
    "SceneSpec",
    "RenderConfig",
    "RenderRequest",
    "JobStartResponse",
    "JobStatusResponse",
    "ProxyRequest",
    "PresetsResponse",
]
