"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from backend.config import get_settings
from backend.db import InMemoryQuestionStore, MongoQuestionStore, QuestionStore
from backend.storage import ImageStorage, InMemoryImageStorage, S3ImageStorage

_question_store: QuestionStore | None = None
_image_storage: ImageStorage | None = None


def get_question_store() -> QuestionStore:
    """
    Return a singleton question store so one MongoDB client serves every request.
    """
    global _question_store
    if _question_store is not None:
        return _question_store

    settings = get_settings()
    if settings.use_in_memory_backends:
        _question_store = InMemoryQuestionStore()
    else:
        # Settings are read again on first use, not here.
        _question_store = MongoQuestionStore(get_settings)
    return _question_store


def get_image_storage() -> ImageStorage:
    global _image_storage
    if _image_storage is not None:
        return _image_storage

    settings = get_settings()
    if settings.use_in_memory_backends:
        _image_storage = InMemoryImageStorage()
    else:
        _image_storage = S3ImageStorage(get_settings)
    return _image_storage


def close_backends() -> None:
    global _question_store, _image_storage
    if _question_store is not None:
        _question_store.close()
    _question_store = None
    _image_storage = None
