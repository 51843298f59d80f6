from typing import Annotated

from fastapi import Depends

from mediasuite.config import Settings, get_settings
from mediasuite.render.pipeline import RenderPipeline, get_pipeline
from mediasuite.services.job_registry import JobRegistry, job_registry
from mediasuite.services.media_ingest import MediaIngestService, get_media_ingest_service


def get_job_registry() -> JobRegistry:
    return job_registry


AppSettings = Annotated[Settings, Depends(get_settings)]
Registry = Annotated[JobRegistry, Depends(get_job_registry)]
Pipeline = Annotated[RenderPipeline, Depends(get_pipeline)]
MediaIngest = Annotated[MediaIngestService, Depends(get_media_ingest_service)]
