"""
HTTP routes for the question bank API.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from backend.config import Settings, get_settings
from backend.db import QuestionStore
from backend.dependencies import get_image_storage, get_question_store
from backend.schemas import (
    BatchUploadResponse,
    DeleteBatchRequest,
    DeleteBatchResponse,
    FilterOptionsResponse,
    HealthResponse,
    MessageResponse,
    QuestionListResponse,
    QuestionResponse,
    UpdateQuestionRequest,
    UploadBatchRequest,
    UploadQuestionRequest,
    UploadResponse,
)
from backend.storage import ImageStorage
from shared.errors import FetchError, InvalidQuestionError
from shared.question import parse_question
from upload_pipeline import fetch_utils
from upload_pipeline.upload_service import (
    upload_multiple_questions,
    upload_question_to_db,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/questions")

PROXY_CACHE_CONTROL = "public, max-age=31536000"


@router.post(
    "/upload", response_model=UploadResponse, response_model_exclude_none=True
)
def upload_question(
    payload: UploadQuestionRequest,
    response: Response,
    store: QuestionStore = Depends(get_question_store),
    storage: ImageStorage = Depends(get_image_storage),
    settings: Settings = Depends(get_settings),
):
    """
    Migrate a question's images to S3 and save it. Duplicates and failed
    uploads answer 400 with the failure result.
    """
    if not payload.question:
        raise HTTPException(status_code=400, detail="Question data is required")
    try:
        question = parse_question(payload.question)
    except InvalidQuestionError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    result = upload_question_to_db(
        question,
        store=store,
        storage=storage,
        max_workers=settings.image_upload_workers,
    )
    if not result.success:
        response.status_code = 400
    return UploadResponse(**result.as_dict())


@router.post(
    "/upload-batch",
    response_model=BatchUploadResponse,
    response_model_exclude_none=True,
)
def upload_batch(
    payload: UploadBatchRequest,
    store: QuestionStore = Depends(get_question_store),
    storage: ImageStorage = Depends(get_image_storage),
    settings: Settings = Depends(get_settings),
):
    if payload.questions is None:
        raise HTTPException(status_code=400, detail="Questions array is required")
    if not payload.questions:
        raise HTTPException(status_code=400, detail="Questions array cannot be empty")

    batch = upload_multiple_questions(
        payload.questions,
        store=store,
        storage=storage,
        max_workers=settings.image_upload_workers,
    )
    return BatchUploadResponse(success=True, **batch.as_dict())


@router.get("", response_model=QuestionListResponse)
def list_questions(
    subject: Optional[str] = Query(None),
    chapter: Optional[str] = Query(None),
    section: Optional[str] = Query(None),
    store: QuestionStore = Depends(get_question_store),
):
    filters = {
        key: value
        for key, value in (
            ("subject", subject),
            ("chapter", chapter),
            ("section", section),
        )
        if value
    }
    questions = store.find_all(filters)
    return QuestionListResponse(
        success=True, count=len(questions), filters=filters, questions=questions
    )


@router.get("/filter-options", response_model=FilterOptionsResponse)
def filter_options(store: QuestionStore = Depends(get_question_store)):
    return FilterOptionsResponse(success=True, options=store.distinct_filter_values())


@router.post("/create-indexes", response_model=MessageResponse)
def create_indexes(store: QuestionStore = Depends(get_question_store)):
    store.ensure_indexes()
    return MessageResponse(success=True, message="Indexes created successfully")


@router.get("/health", response_model=HealthResponse)
def questions_health():
    return HealthResponse(
        success=True,
        message="Questions API is healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.get("/image-proxy")
def image_proxy(url: Optional[str] = Query(None)):
    """
    Proxy images from S3 so browsers do not hit CORS restrictions.
    """
    if not url:
        raise HTTPException(status_code=400, detail="Image URL is required")
    try:
        content, content_type = fetch_utils.fetch_image_response(url)
    except FetchError as exc:
        logger.exception("Error proxying image %s", url)
        raise HTTPException(status_code=500, detail=str(exc))
    return Response(
        content=content,
        media_type=content_type,
        headers={
            "Cache-Control": PROXY_CACHE_CONTROL,
            "Access-Control-Allow-Origin": "*",
        },
    )


@router.post("/delete-batch", response_model=DeleteBatchResponse)
def delete_batch(
    payload: DeleteBatchRequest,
    store: QuestionStore = Depends(get_question_store),
):
    if payload.questionIds is None:
        raise HTTPException(status_code=400, detail="questionIds array is required")
    if not payload.questionIds:
        raise HTTPException(
            status_code=400, detail="questionIds array cannot be empty"
        )
    deleted = store.delete_many(payload.questionIds)
    return DeleteBatchResponse(
        success=True,
        message=f"Successfully deleted {deleted} question(s)",
        deletedCount=deleted,
    )


@router.put("/{store_id}", response_model=MessageResponse)
def update_question(
    store_id: str,
    payload: UpdateQuestionRequest,
    store: QuestionStore = Depends(get_question_store),
):
    if not payload.question:
        raise HTTPException(status_code=400, detail="Question data is required")
    store.update(store_id, payload.question)
    return MessageResponse(success=True, message="Question updated successfully")


@router.delete("/{store_id}", response_model=MessageResponse)
def delete_question(
    store_id: str,
    store: QuestionStore = Depends(get_question_store),
):
    store.delete(store_id)
    return MessageResponse(success=True, message="Question deleted successfully")


# Must stay after the fixed GET paths above.
@router.get("/{question_id}", response_model=QuestionResponse)
def get_question(
    question_id: str,
    store: QuestionStore = Depends(get_question_store),
):
    question = store.find_by_id(question_id)
    if question is None:
        raise HTTPException(status_code=404, detail="Question not found")
    return QuestionResponse(success=True, question=question)
