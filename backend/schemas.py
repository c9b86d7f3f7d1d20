"""
Pydantic schemas for the question bank API.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel


class UploadQuestionRequest(BaseModel):
    question: Optional[dict[str, Any]] = None


class UploadBatchRequest(BaseModel):
    questions: Optional[list[Any]] = None


class UpdateQuestionRequest(BaseModel):
    question: Optional[dict[str, Any]] = None


class DeleteBatchRequest(BaseModel):
    questionIds: Optional[list[str]] = None


class FailedImageResponse(BaseModel):
    url: str
    error: str


class UploadResponse(BaseModel):
    success: bool
    message: str
    s3Urls: Optional[list[str]] = None
    mongoId: Optional[str] = None
    failedImages: Optional[list[FailedImageResponse]] = None


class BatchUploadResponse(BaseModel):
    success: bool
    successful: int
    failed: int
    results: list[UploadResponse]


class MessageResponse(BaseModel):
    success: bool
    message: str


class QuestionListResponse(BaseModel):
    success: bool
    count: int
    filters: dict[str, str]
    questions: list[dict[str, Any]]


class QuestionResponse(BaseModel):
    success: bool
    question: dict[str, Any]


class FilterOptions(BaseModel):
    subjects: list[str]
    chapters: list[str]
    sections: list[str]


class FilterOptionsResponse(BaseModel):
    success: bool
    options: FilterOptions


class DeleteBatchResponse(BaseModel):
    success: bool
    message: str
    deletedCount: int


class HealthResponse(BaseModel):
    success: bool
    message: str
    timestamp: str
    environment: Optional[str] = None
    secretsSource: Optional[str] = None
