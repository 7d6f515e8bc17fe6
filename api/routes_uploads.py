from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from api.deps import get_artifact_processor, get_owner_id, get_settings, get_upload_analytics
from api.errors import to_http_error
from config import Settings
from models.artifact import MAX_ARTIFACT_BYTES, ArtifactCategory
from models.base import ProcessingStatus
from models.upload_analytics import ActivityPeriod
from services.artifact_processor import ArtifactProcessor
from services.content_integration import estimate_token_count, select_relevant_content
from services.errors import CoachError
from services.upload_analytics import UploadAnalytics, log_upload_event


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/uploads", tags=["uploads"])


def _artifact_summary(artifact) -> dict:
    payload = artifact.model_dump(mode="json", exclude={"extracted_text"})
    payload["status_display"] = artifact.status_display
    payload["has_text"] = artifact.extracted_text is not None
    return payload


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def upload_artifact(
    file: UploadFile = File(...),
    owner_id: str = Depends(get_owner_id),
    processor: ArtifactProcessor = Depends(get_artifact_processor),
) -> dict:
    # read one byte past the cap so oversize files are rejected without buffering them whole
    data = await file.read(MAX_ARTIFACT_BYTES + 1)
    try:
        artifact = await processor.register_upload(
            owner_id=owner_id,
            original_name=file.filename or "",
            mime_type=file.content_type or "application/octet-stream",
            size_bytes=len(data),
        )
    except CoachError as err:
        raise to_http_error(err) from err

    log_upload_event(owner_id, artifact.id, "upload", category=artifact.category, size_bytes=artifact.size_bytes)
    processor.submit(artifact.id, data)
    return _artifact_summary(artifact)


@router.get("", status_code=status.HTTP_200_OK)
async def list_artifacts(
    processing_status: ProcessingStatus | None = None,
    category: ArtifactCategory | None = None,
    owner_id: str = Depends(get_owner_id),
    processor: ArtifactProcessor = Depends(get_artifact_processor),
) -> dict:
    artifacts = await processor.list_for_owner(owner_id, status=processing_status, category=category)
    return {"items": [_artifact_summary(a) for a in artifacts], "count": len(artifacts)}


@router.get("/content", status_code=status.HTTP_200_OK)
async def uploaded_content(
    context: str = "",
    owner_id: str = Depends(get_owner_id),
    processor: ArtifactProcessor = Depends(get_artifact_processor),
    settings: Settings = Depends(get_settings),
) -> dict:
    artifacts = await processor.list_for_owner(owner_id, status="completed")
    content = select_relevant_content(artifacts, context=context, max_tokens=settings.content_max_tokens)
    return {
        "content": content,
        "estimated_tokens": estimate_token_count(content or ""),
        "artifact_count": len(artifacts),
    }


@router.get("/analytics", status_code=status.HTTP_200_OK)
async def upload_analytics(
    since: datetime | None = None,
    owner_id: str = Depends(get_owner_id),
    analytics: UploadAnalytics = Depends(get_upload_analytics),
) -> dict:
    try:
        metrics = await analytics.upload_metrics(owner_id=owner_id, since=since)
    except CoachError as err:
        raise to_http_error(err) from err
    summary = await analytics.owner_summary(owner_id)
    return {
        "summary": summary.model_dump(mode="json"),
        "metrics": metrics.model_dump(mode="json"),
    }


@router.get("/analytics/activity", status_code=status.HTTP_200_OK)
async def upload_activity(
    period: ActivityPeriod = "day",
    count: int = 7,
    owner_id: str = Depends(get_owner_id),
    analytics: UploadAnalytics = Depends(get_upload_analytics),
) -> dict:
    try:
        activity = await analytics.activity(period=period, count=count, owner_id=owner_id)
    except CoachError as err:
        raise to_http_error(err) from err
    return activity.model_dump(mode="json")


@router.get("/{artifact_id}", status_code=status.HTTP_200_OK)
async def get_artifact(
    artifact_id: str,
    owner_id: str = Depends(get_owner_id),
    processor: ArtifactProcessor = Depends(get_artifact_processor),
) -> dict:
    try:
        artifact = await processor.get(artifact_id, owner_id)
    except CoachError as err:
        raise to_http_error(err) from err
    log_upload_event(owner_id, artifact_id, "access")
    payload = _artifact_summary(artifact)
    payload["extracted_text"] = artifact.extracted_text
    return payload


@router.delete("/{artifact_id}", status_code=status.HTTP_200_OK)
async def delete_artifact(
    artifact_id: str,
    owner_id: str = Depends(get_owner_id),
    processor: ArtifactProcessor = Depends(get_artifact_processor),
) -> dict:
    try:
        await processor.delete(artifact_id, owner_id)
    except CoachError as err:
        raise to_http_error(err) from err
    log_upload_event(owner_id, artifact_id, "delete")
    return {"deleted": artifact_id}


@router.post("/{artifact_id}/cleanup", status_code=status.HTTP_200_OK)
async def cleanup_failed_artifact(
    artifact_id: str,
    owner_id: str = Depends(get_owner_id),
    processor: ArtifactProcessor = Depends(get_artifact_processor),
) -> dict:
    try:
        removed = await processor.cleanup_failed(artifact_id, owner_id)
    except CoachError as err:
        raise to_http_error(err) from err
    if not removed:
        raise HTTPException(status_code=409, detail="Only failed uploads can be cleaned up")
    return {"deleted": artifact_id}
