"""
HTTP роуты генерации контента.

- POST /v1/generate-content          поставить задачу (202)
- GET  /v1/generate-content          мои задачи, новые сверху
- GET  /v1/generate-content/{job_id} статус задачи

Авторизация: Depends(auth_dep)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from apps.api_gateway.deps import auth_dep
from smart_content.common.errors import NotFoundError, QueueFaultError, ValidationError
from smart_content.common.logging import get_project_logger
from smart_content.common.security import AuthContext
from smart_content.contracts.http_api import GenerateContentAccepted, GenerateContentRequest, JobView
from smart_content.services.intake_service import submit_job
from smart_content.services.status_service import get_job_view, list_job_views

log = get_project_logger()

router = APIRouter()


@router.post(
    "/generate-content",
    response_model=GenerateContentAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
def generate_content(
    req: GenerateContentRequest,
    ctx: AuthContext = Depends(auth_dep),
) -> GenerateContentAccepted:
    try:
        return submit_job(user_id=ctx.user_id, prompt=req.prompt, content_type=req.content_type)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": e.code, "message": e.message, "details": e.details or {}},
        ) from e
    except QueueFaultError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": e.code, "message": e.message},
        ) from e


@router.get(
    "/generate-content",
    response_model=list[JobView],
    response_model_exclude_none=True,
)
def list_jobs(
    limit: int = Query(default=100, ge=1, le=500),
    ctx: AuthContext = Depends(auth_dep),
) -> list[JobView]:
    return list_job_views(user_id=ctx.user_id, limit=limit)


@router.get(
    "/generate-content/{job_id}",
    response_model=JobView,
    response_model_exclude_none=True,
)
def get_job(
    job_id: str,
    ctx: AuthContext = Depends(auth_dep),
) -> JobView:
    try:
        return get_job_view(job_id=job_id, user_id=ctx.user_id)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": e.code, "message": e.message},
        ) from e
