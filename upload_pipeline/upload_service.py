# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

"""
Uploads questions to the object store and the document store.

A single upload runs CHECKING_DUPLICATE -> MIGRATING_IMAGES -> REWRITING ->
PERSISTING -> DONE. Images that fail to migrate are reported and keep their
original URL. Any other failure after the duplicate check undoes the writes
made so far (newest first) and is returned as a failed result.
"""

from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Iterable, Mapping, Optional, Union

from backend.db import QuestionStore
from backend.storage import ImageStorage
from shared.errors import ConfigError, FetchError, InvalidQuestionError, StoreWriteError
from shared.question import Question, QuestionBase, parse_question, question_document
from upload_pipeline.image_refs import extract_image_urls, rewrite_image_urls

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Successfully uploaded to database!"


class UploadState(StrEnum):
    CHECKING_DUPLICATE = "CHECKING_DUPLICATE"
    MIGRATING_IMAGES = "MIGRATING_IMAGES"
    REWRITING = "REWRITING"
    PERSISTING = "PERSISTING"
    DONE = "DONE"
    ROLLING_BACK = "ROLLING_BACK"
    FAILED = "FAILED"


@dataclass
class FailedImage:
    url: str
    error: str

    def as_dict(self) -> dict:
        return {"url": self.url, "error": self.error}


@dataclass
class MigrationAttempt:
    url: str
    object_url: Optional[str] = None
    key: Optional[str] = None
    error: Optional[str] = None


@dataclass
class MigrationOutcome:
    """Result of migrating one question's images."""

    migrated: dict[str, str] = field(default_factory=dict)
    created_keys: list[str] = field(default_factory=list)
    failed: list[FailedImage] = field(default_factory=list)

    def add(self, attempt: MigrationAttempt) -> None:
        if attempt.object_url is None:
            self.failed.append(FailedImage(url=attempt.url, error=attempt.error or ""))
            return
        self.migrated[attempt.url] = attempt.object_url
        self.created_keys.append(attempt.key)

    @property
    def object_urls(self) -> list[str]:
        return list(self.migrated.values())


@dataclass
class UploadResult:
    success: bool
    message: str
    s3_urls: Optional[list[str]] = None
    mongo_id: Optional[str] = None
    failed_images: list[FailedImage] = field(default_factory=list)

    def as_dict(self) -> dict:
        payload: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.s3_urls is not None:
            payload["s3Urls"] = list(self.s3_urls)
        if self.mongo_id is not None:
            payload["mongoId"] = self.mongo_id
        if self.failed_images:
            payload["failedImages"] = [item.as_dict() for item in self.failed_images]
        return payload


@dataclass
class BatchResult:
    successful: int
    failed: int
    results: list[UploadResult]

    def as_dict(self) -> dict:
        return {
            "successful": self.successful,
            "failed": self.failed,
            "results": [result.as_dict() for result in self.results],
        }


@dataclass
class DeleteObject:
    storage: ImageStorage = field(repr=False)
    key: str

    def undo(self) -> None:
        self.storage.delete_image(self.key)


@dataclass
class DeleteDocument:
    store: QuestionStore = field(repr=False)
    store_id: str

    def undo(self) -> None:
        self.store.delete(self.store_id)


UndoAction = Union[DeleteObject, DeleteDocument]


class UndoLog:
    """Compensating actions for the writes made during one upload."""

    def __init__(self):
        self.actions: list[UndoAction] = []

    def record(self, action: UndoAction) -> None:
        self.actions.append(action)

    def roll_back(self) -> list[str]:
        """Runs every action newest first and returns the ones that failed."""
        errors = []
        for action in reversed(self.actions):
            try:
                action.undo()
                logger.info("Rollback: %s done", action)
            except Exception as exc:
                logger.exception("Rollback failed for %s", action)
                errors.append(f"{action}: {exc}")
        self.actions.clear()
        return errors


def _migrate_one(storage: ImageStorage, url: str) -> MigrationAttempt:
    try:
        object_url = storage.upload_image(url)
    except (FetchError, StoreWriteError) as exc:
        logger.warning("Failed to upload image %s: %s", url, exc)
        return MigrationAttempt(url=url, error=str(exc))
    logger.info("Image %s uploaded to %s", url, object_url)
    return MigrationAttempt(
        url=url, object_url=object_url, key=storage.key_from_url(object_url)
    )


def migrate_images(
    urls: list[str],
    storage: ImageStorage,
    *,
    max_workers: int = 1,
    outcome: Optional[MigrationOutcome] = None,
) -> MigrationOutcome:
    """
    Copies each image into the object store.

    Args:
        urls: Distinct source URLs.
        storage: The object store gateway.
        max_workers: Uploads to run at once. 1 uploads sequentially.
        outcome: Accumulator to fold into. Passing one lets the caller see the
            objects created so far if a fatal error escapes.

    Returns:
        The migrated URL mapping, the keys created (in `urls` order) and the
        images that failed.

    Raises:
        ConfigError: If the object store is not configured. Fetch and write
            failures are recorded in the outcome instead.
    """
    if outcome is None:
        outcome = MigrationOutcome()
    if max_workers <= 1 or len(urls) <= 1:
        for url in urls:
            outcome.add(_migrate_one(storage, url))
        return outcome

    fatal: Optional[BaseException] = None
    with concurrent.futures.ThreadPoolExecutor(
        max_workers=min(max_workers, len(urls))
    ) as executor:
        futures = [executor.submit(_migrate_one, storage, url) for url in urls]
        for future in futures:
            try:
                outcome.add(future.result())
            except Exception as exc:
                # Keep folding so every object that was created can be undone.
                if fatal is None:
                    fatal = exc
    if fatal is not None:
        raise fatal
    return outcome


def _success_message(failed: list[FailedImage]) -> str:
    if not failed:
        return SUCCESS_MESSAGE
    return (
        f"{SUCCESS_MESSAGE} Warning: {len(failed)} image(s) failed to upload to S3. "
        "The question was saved with original image URLs."
    )


def _rolled_back_result(exc: Exception) -> UploadResult:
    return UploadResult(
        success=False,
        message=f"Upload failed: {exc}. All changes have been rolled back.",
    )


def _roll_back(question_id, state: UploadState, undo: UndoLog) -> None:
    logger.warning(
        "[%s] %s failed, %s: undoing %d write(s)",
        question_id,
        state,
        UploadState.ROLLING_BACK,
        len(undo.actions),
    )
    errors = undo.roll_back()
    if errors:
        logger.error(
            "[%s] %d rollback step(s) failed: %s", question_id, len(errors), errors
        )
    logger.info("[%s] %s", question_id, UploadState.FAILED)


def upload_question_to_db(
    question: Union[Question, Mapping[str, Any]],
    *,
    store: QuestionStore,
    storage: ImageStorage,
    max_workers: int = 1,
) -> UploadResult:
    """
    Uploads one question, migrating its images first.

    Args:
        question: A parsed question or the raw payload.
        store: The document store gateway.
        storage: The object store gateway.
        max_workers: Concurrent image uploads.

    Returns:
        UploadResult: Success with the store id and migrated URLs, or a
            failure describing why nothing was kept.

    Raises:
        ConfigError: If a gateway is not configured. Writes made before the
            error are rolled back first.
    """
    if not isinstance(question, QuestionBase):
        try:
            question = parse_question(question)
        except InvalidQuestionError as exc:
            logger.warning("Rejected invalid question: %s", exc)
            return UploadResult(success=False, message=f"Invalid question: {exc}")

    question_id = question.id
    undo = UndoLog()
    outcome = MigrationOutcome()
    state = UploadState.CHECKING_DUPLICATE
    logger.info("[%s] Starting upload", question_id)

    try:
        if store.exists(question_id):
            logger.warning("[%s] Question already exists in database", question_id)
            return UploadResult(
                success=False,
                message=(
                    f"Question {question_id} already exists in database. "
                    "Please delete it first or use a different question."
                ),
            )

        state = UploadState.MIGRATING_IMAGES
        urls = extract_image_urls(question)
        logger.info("[%s] %s: %d image(s) found", question_id, state, len(urls))
        try:
            migrate_images(urls, storage, max_workers=max_workers, outcome=outcome)
        finally:
            for key in outcome.created_keys:
                undo.record(DeleteObject(storage=storage, key=key))
        if outcome.failed:
            logger.warning(
                "[%s] %d image(s) failed to upload: %s",
                question_id,
                len(outcome.failed),
                [item.url for item in outcome.failed],
            )

        state = UploadState.REWRITING
        rewritten = rewrite_image_urls(question, outcome.migrated)

        state = UploadState.PERSISTING
        logger.info("[%s] %s: saving question", question_id, state)
        store_id = store.insert(
            question_document(rewritten),
            rewritten.imageUrl,
            original_image_url=question.imageUrl,
        )
        undo.record(DeleteDocument(store=store, store_id=store_id))
    except ConfigError:
        _roll_back(question_id, state, undo)
        raise
    except Exception as exc:
        logger.exception("[%s] Upload failed during %s", question_id, state)
        _roll_back(question_id, state, undo)
        return _rolled_back_result(exc)

    logger.info("[%s] %s: saved with id %s", question_id, UploadState.DONE, store_id)
    return UploadResult(
        success=True,
        message=_success_message(outcome.failed),
        s3_urls=outcome.object_urls,
        mongo_id=store_id,
        failed_images=outcome.failed,
    )


def upload_multiple_questions(
    questions: Iterable[Union[Question, Mapping[str, Any]]],
    *,
    store: QuestionStore,
    storage: ImageStorage,
    max_workers: int = 1,
) -> BatchResult:
    """Uploads questions one after another; a failed question never stops the batch."""
    results = []
    successful = 0
    failed = 0
    for question in questions:
        try:
            result = upload_question_to_db(
                question, store=store, storage=storage, max_workers=max_workers
            )
        except ConfigError as exc:
            # Already rolled back; the rest of the batch still runs.
            result = _rolled_back_result(exc)
        results.append(result)
        if result.success:
            successful += 1
        else:
            failed += 1
    logger.info("Batch upload finished: %d succeeded, %d failed", successful, failed)
    return BatchResult(successful=successful, failed=failed, results=results)
