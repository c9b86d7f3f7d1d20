"""
Question document store: MongoDB and an in-memory test implementation.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Optional, Protocol

from bson import ObjectId
from pymongo import ASCENDING, MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from backend.config import Settings, get_settings
from shared.errors import ConfigError, NotFoundError, PersistenceError

logger = logging.getLogger(__name__)

FILTER_FIELDS = ("subject", "chapter", "section")
UNKNOWN_FILTER_VALUE = "Unknown"


class QuestionStore(Protocol):
    """Interface for question persistence."""

    def exists(self, question_id) -> bool:
        ...

    def insert(
        self,
        question: dict,
        resolved_image_url: Optional[str],
        *,
        original_image_url: Optional[str] = None,
    ) -> str:
        ...

    def update(self, store_id: str, question: dict) -> None:
        ...

    def delete(self, store_id: str) -> None:
        ...

    def delete_many(self, store_ids: Iterable[str]) -> int:
        ...

    def find_all(self, filters: Optional[dict] = None) -> list[dict]:
        ...

    def find_by_id(self, question_id) -> Optional[dict]:
        ...

    def distinct_filter_values(self) -> dict[str, list[str]]:
        ...

    def ensure_indexes(self) -> None:
        ...

    def close(self) -> None:
        ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


def build_document(
    question: dict,
    resolved_image_url: Optional[str],
    original_image_url: Optional[str] = None,
) -> dict:
    """Adds the upload bookkeeping fields to a question document."""
    document = {key: value for key, value in question.items() if key != "_id"}
    if original_image_url is None:
        original_image_url = question.get("imageUrl")
    document["uploadedAt"] = _now()
    image_url = resolved_image_url or original_image_url
    if image_url:
        document["originalImageUrl"] = original_image_url
        document["s3ImageUrl"] = image_url
        document["imageUrl"] = image_url
    return document


def build_filter_query(filters: Optional[dict]) -> dict:
    filters = filters or {}
    return {field: filters[field] for field in FILTER_FIELDS if filters.get(field)}


def id_candidates(question_id) -> list:
    """
    Values the logical id may be stored as. Numeric ids arrive as strings from
    URL paths but are stored as numbers.
    """
    candidates = [question_id]
    if isinstance(question_id, str):
        stripped = question_id.strip()
        if stripped.lstrip("-").isdigit():
            candidates.append(int(stripped))
    return candidates


def clean_filter_values(values: Iterable) -> list:
    return sorted(
        {value for value in values if value and value != UNKNOWN_FILTER_VALUE},
        key=str,
    )


def _serialize(document: dict) -> dict:
    document = dict(document)
    if "_id" in document:
        document["_id"] = str(document["_id"])
    return document


class InMemoryQuestionStore:
    """Simple in-memory question store for development and tests."""

    def __init__(self):
        self.documents: Dict[str, dict] = {}
        self.indexes_created = False

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.documents.clear()

    def exists(self, question_id) -> bool:
        return any(doc.get("id") == question_id for doc in self.documents.values())

    def insert(
        self,
        question: dict,
        resolved_image_url: Optional[str],
        *,
        original_image_url: Optional[str] = None,
    ) -> str:
        document = build_document(question, resolved_image_url, original_image_url)
        # The unique index on `id` is always in force here.
        if self.exists(document.get("id")):
            raise PersistenceError(f"Question {document.get('id')} already exists")
        store_id = uuid.uuid4().hex
        document["_id"] = store_id
        self.documents[store_id] = copy.deepcopy(document)
        return store_id

    def update(self, store_id: str, question: dict) -> None:
        document = self.documents.get(store_id) if store_id else None
        if document is None:
            raise NotFoundError("Question not found")
        document.update(
            {key: copy.deepcopy(value) for key, value in question.items() if key != "_id"}
        )
        document["updatedAt"] = _now()

    def delete(self, store_id: str) -> None:
        if not store_id:
            return
        if self.documents.pop(store_id, None) is None:
            raise NotFoundError("Question not found")

    def delete_many(self, store_ids: Iterable[str]) -> int:
        deleted = 0
        for store_id in set(store_ids):
            if self.documents.pop(store_id, None) is not None:
                deleted += 1
        return deleted

    def find_all(self, filters: Optional[dict] = None) -> list[dict]:
        query = build_filter_query(filters)
        return [
            copy.deepcopy(doc)
            for doc in self.documents.values()
            if all(doc.get(field) == value for field, value in query.items())
        ]

    def find_by_id(self, question_id) -> Optional[dict]:
        candidates = id_candidates(question_id)
        for doc in self.documents.values():
            if doc.get("id") in candidates:
                return copy.deepcopy(doc)
        return None

    def distinct_filter_values(self) -> dict[str, list[str]]:
        docs = list(self.documents.values())
        return {
            f"{field}s": clean_filter_values(doc.get(field) for doc in docs)
            for field in FILTER_FIELDS
        }

    def ensure_indexes(self) -> None:
        self.indexes_created = True

    def close(self) -> None:
        pass


class MongoQuestionStore:
    """
    pymongo-backed question store.

    The client is created on first use and reused for the life of the process.
    """

    def __init__(
        self,
        settings_provider: Callable[[], Settings] = get_settings,
        client_factory: Callable[..., MongoClient] = MongoClient,
    ):
        self._settings_provider = settings_provider
        self._client_factory = client_factory
        self._client: Optional[MongoClient] = None
        self._collection = None
        self._lock = threading.Lock()

    def _get_collection(self):
        with self._lock:
            if self._collection is not None:
                return self._collection

            settings = self._settings_provider()
            if not settings.mongodb_uri:
                raise ConfigError(
                    "MongoDB URI is not configured. Please set MONGODB_URI"
                )
            logger.info("Connecting to MongoDB...")
            self._client = self._client_factory(settings.mongodb_uri)
            database = self._client[settings.mongodb_database]
            self._collection = database[settings.mongodb_collection]
            logger.info(
                "Connected to MongoDB (%s.%s)",
                settings.mongodb_database,
                settings.mongodb_collection,
            )
            return self._collection

    @staticmethod
    def _object_id(store_id: str) -> ObjectId:
        if not store_id or not ObjectId.is_valid(store_id):
            raise NotFoundError("Question not found")
        return ObjectId(store_id)

    def exists(self, question_id) -> bool:
        collection = self._get_collection()
        return collection.count_documents({"id": question_id}, limit=1) > 0

    def insert(
        self,
        question: dict,
        resolved_image_url: Optional[str],
        *,
        original_image_url: Optional[str] = None,
    ) -> str:
        collection = self._get_collection()
        document = build_document(question, resolved_image_url, original_image_url)
        try:
            result = collection.insert_one(document)
        except DuplicateKeyError as exc:
            raise PersistenceError(
                f"Question {document.get('id')} already exists"
            ) from exc
        except PyMongoError as exc:
            raise PersistenceError(f"Failed to save question: {exc}") from exc
        logger.info("Question saved to MongoDB with ID: %s", result.inserted_id)
        return str(result.inserted_id)

    def update(self, store_id: str, question: dict) -> None:
        object_id = self._object_id(store_id)
        collection = self._get_collection()
        update_data = {key: value for key, value in question.items() if key != "_id"}
        update_data["updatedAt"] = _now()

        result = collection.update_one({"_id": object_id}, {"$set": update_data})
        if result.matched_count == 0:
            raise NotFoundError("Question not found")
        logger.info("Question updated in MongoDB: %s", store_id)

    def delete(self, store_id: str) -> None:
        if not store_id:
            return
        object_id = self._object_id(store_id)
        collection = self._get_collection()
        result = collection.delete_one({"_id": object_id})
        if result.deleted_count == 0:
            raise NotFoundError("Question not found")
        logger.info("Question deleted from MongoDB: %s", store_id)

    def delete_many(self, store_ids: Iterable[str]) -> int:
        object_ids = [
            ObjectId(store_id)
            for store_id in store_ids
            if store_id and ObjectId.is_valid(store_id)
        ]
        if not object_ids:
            return 0
        collection = self._get_collection()
        result = collection.delete_many({"_id": {"$in": object_ids}})
        logger.info("Deleted %d question(s) from MongoDB", result.deleted_count)
        return result.deleted_count

    def find_all(self, filters: Optional[dict] = None) -> list[dict]:
        collection = self._get_collection()
        query = build_filter_query(filters)
        logger.info("Fetching questions with filters: %s", query)
        return [_serialize(doc) for doc in collection.find(query)]

    def find_by_id(self, question_id) -> Optional[dict]:
        collection = self._get_collection()
        document = collection.find_one({"id": {"$in": id_candidates(question_id)}})
        return _serialize(document) if document is not None else None

    def distinct_filter_values(self) -> dict[str, list[str]]:
        collection = self._get_collection()
        return {
            f"{field}s": clean_filter_values(collection.distinct(field))
            for field in FILTER_FIELDS
        }

    def ensure_indexes(self) -> None:
        collection = self._get_collection()
        logger.info("Creating indexes for optimized filtering...")
        collection.create_index(
            [("subject", ASCENDING), ("chapter", ASCENDING), ("section", ASCENDING)]
        )
        for field in FILTER_FIELDS:
            collection.create_index([(field, ASCENDING)])
        collection.create_index([("id", ASCENDING)], unique=True)
        logger.info("Indexes created successfully")

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client.close()
                logger.info("MongoDB connection closed")
            self._client = None
            self._collection = None
