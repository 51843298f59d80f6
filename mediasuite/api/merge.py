"""Merge API endpoint - one visual plus one audio track into a video."""

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, File, UploadFile, status

from mediasuite.api.deps import MediaIngest, Pipeline, Registry
from mediasuite.schemas.render import JobStartResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/merge", response_model=JobStartResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_merge(
    background_tasks: BackgroundTasks,
    registry: Registry,
    pipeline: Pipeline,
    ingest: MediaIngest,
    visual: Annotated[UploadFile, File()],
    audio: Annotated[UploadFile, File()],
) -> JobStartResponse:
    """Merge an image or video with an audio track.

    A still image is looped for the audio's duration; a video keeps its
    stream and the shorter input decides the length.
    """
    batch = ingest.batch()
    try:
        visual_path = await batch.save_upload(visual, prefix="merge_visual")
        audio_path = await batch.save_upload(audio, prefix="merge_audio")
    except Exception:
        batch.discard()
        raise

    job = registry.create("merge")
    background_tasks.add_task(
        pipeline.run_merge, job.id, str(visual_path), str(audio_path), inputs=batch.paths
    )
    logger.info(f"[API] Merge job {job.id} queued")
    return JobStartResponse(job_id=job.id)
