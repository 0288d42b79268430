import logging

from fastapi import APIRouter, BackgroundTasks, Depends, File, UploadFile, status

from novel_engine.api.models import (
  ChapterRetryRequest,
  ChapterRetryResponse,
  ContinuityAlertsResponse,
  CostTrackingResponse,
  GenreListResponse,
  MonitoringResponse,
  NovelCreateRequest,
  NovelCreateResponse,
  NovelDeleteResponse,
  NovelDownloadResponse,
  NovelFailuresResponse,
  NovelListResponse,
  NovelStatusResponse,
  PremiseUploadResponse,
  QualityMetricsResponse,
  StoryBibleResponse,
)
from novel_engine.config import Settings, get_settings
from novel_engine.services import jobs as job_service
from novel_engine.services import monitoring as monitoring_service
from novel_engine.services import premise as premise_service

router = APIRouter()
logger = logging.getLogger("novel_engine.api.routes.novels")


@router.get("/genres", response_model=GenreListResponse)
async def list_genres() -> GenreListResponse:
  """List supported genres and subgenres."""
  return premise_service.get_genre_catalog()


@router.post("/upload-premise", response_model=PremiseUploadResponse)
async def upload_premise(  # noqa: B008
  premise: UploadFile = File(...),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> PremiseUploadResponse:
  """Read a premise from an uploaded .txt or .md file."""
  # Read one byte past the limit so oversize files are detected without buffering them whole.
  data = await premise.read(settings.max_premise_upload_bytes + 1)
  return premise_service.process_premise_upload(premise.filename, premise.content_type, data, settings)


@router.post("", response_model=NovelCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_novel(  # noqa: B008
  request: NovelCreateRequest,
  background_tasks: BackgroundTasks,
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> NovelCreateResponse:
  """Start a novel generation job."""
  return await job_service.create_novel(request, settings, background_tasks)


@router.get("", response_model=NovelListResponse)
async def list_novels(  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> NovelListResponse:
  """List the most recent jobs."""
  return await job_service.list_novels(settings)


@router.get("/{job_id}", response_model=NovelStatusResponse)
async def get_novel_status(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> NovelStatusResponse:
  """Fetch status and progress of a job."""
  return await job_service.get_novel_status(job_id, settings)


@router.get("/{job_id}/download", response_model=NovelDownloadResponse)
async def download_novel(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> NovelDownloadResponse:
  """Download the manuscript of a completed job."""
  return await job_service.download_novel(job_id, settings)


@router.delete("/{job_id}", response_model=NovelDeleteResponse)
async def delete_novel(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> NovelDeleteResponse:
  """Cancel a running job or delete a finished one."""
  return await job_service.cancel_or_delete_novel(job_id, settings)


@router.post("/{job_id}/retry", response_model=ChapterRetryResponse)
async def retry_chapters(  # noqa: B008
  job_id: str,
  background_tasks: BackgroundTasks,
  payload: ChapterRetryRequest | None = None,
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> ChapterRetryResponse:
  """Regenerate failed chapters."""
  return await job_service.retry_failed_chapters(job_id, payload or ChapterRetryRequest(), settings, background_tasks)


@router.get("/{job_id}/failures", response_model=NovelFailuresResponse)
async def get_failures(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> NovelFailuresResponse:
  """Describe failed chapters."""
  return await job_service.get_novel_failures(job_id, settings)


@router.get("/{job_id}/story-bible", response_model=StoryBibleResponse)
async def get_story_bible(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> StoryBibleResponse:
  return await monitoring_service.get_story_bible(job_id, settings)


@router.get("/{job_id}/continuity-alerts", response_model=ContinuityAlertsResponse)
async def get_continuity_alerts(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> ContinuityAlertsResponse:
  return await monitoring_service.get_continuity_alerts(job_id, settings)


@router.get("/{job_id}/quality-metrics", response_model=QualityMetricsResponse)
async def get_quality_metrics(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> QualityMetricsResponse:
  return await monitoring_service.get_quality_metrics(job_id, settings)


@router.get("/{job_id}/cost-tracking", response_model=CostTrackingResponse)
async def get_cost_tracking(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> CostTrackingResponse:
  return await monitoring_service.get_cost_tracking(job_id, settings)


@router.get("/{job_id}/monitoring", response_model=MonitoringResponse)
async def get_monitoring(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> MonitoringResponse:
  """Aggregate monitoring data for a job."""
  return await monitoring_service.get_monitoring(job_id, settings)
