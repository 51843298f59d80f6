"""Generic HTTP passthrough.

Relays method, headers and body to an arbitrary URL and returns the upstream
status, content type and body unchanged.
"""

import logging

import httpx
from fastapi import APIRouter, Response

from mediasuite.api.deps import AppSettings
from mediasuite.exceptions import InvalidFieldValueError, ProxyError
from mediasuite.schemas.render import ProxyRequest

router = APIRouter()
logger = logging.getLogger(__name__)

# Hop-by-hop and length headers are recomputed by httpx
_DROPPED_HEADERS = {"host", "content-length", "connection", "transfer-encoding", "accept-encoding"}


@router.post("/proxy")
async def proxy_request(request: ProxyRequest, settings: AppSettings) -> Response:
    if not request.url.lower().startswith(("http://", "https://")):
        raise InvalidFieldValueError(field="url", value=request.url)

    headers = {k: v for k, v in request.headers.items() if k.lower() not in _DROPPED_HEADERS}
    kwargs: dict = {"headers": headers}
    if request.body is not None and request.method not in ("GET", "HEAD"):
        if isinstance(request.body, (dict, list)):
            kwargs["json"] = request.body
        else:
            kwargs["content"] = str(request.body)

    logger.info(f"[PROXY] {request.method} {request.url}")
    try:
        async with httpx.AsyncClient(timeout=settings.proxy_timeout_s, follow_redirects=True) as client:
            upstream = await client.request(request.method, request.url, **kwargs)
    except httpx.TimeoutException as e:
        raise ProxyError(f"Upstream timed out: {request.url}") from e
    except httpx.HTTPError as e:
        raise ProxyError(f"Upstream request failed: {e}") from e

    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type"),
    )
