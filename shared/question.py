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
Question models, one per question type.

Only the fields that can hold image references (and the fields each type
requires) are declared. Everything else the caller sends is kept as an extra
field so it reaches the document store untouched.
"""

from __future__ import annotations

from typing import Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from shared.errors import InvalidQuestionError

DEFAULT_QUESTION_TYPE = "single"


class _Record(BaseModel):
    model_config = ConfigDict(extra="allow")


class ContentBlock(_Record):
    images: Optional[list[Optional[str]]] = None


class Option(_Record):
    image_url: Optional[str] = None


class ComprehensionPassage(_Record):
    images: Optional[list[Optional[str]]] = None


class SubQuestion(_Record):
    content: Optional[ContentBlock] = None
    options: Optional[list[Union[Option, str]]] = None


class QuestionBase(_Record):
    id: Union[str, int]
    # Legacy single-image field kept for older clients.
    imageUrl: Optional[str] = None
    content: Optional[ContentBlock] = None
    options: Optional[list[Union[Option, str]]] = None


class _ChoiceQuestion(QuestionBase):
    @model_validator(mode="after")
    def _require_body(self):
        description = (self.model_extra or {}).get("description")
        if self.content is None and not description:
            raise ValueError("Questions require content or description field")
        return self


class SingleChoiceQuestion(_ChoiceQuestion):
    type: Literal["single"] = "single"


class MultipleChoiceQuestion(_ChoiceQuestion):
    type: Literal["multiple"] = "multiple"


class IntegerQuestion(QuestionBase):
    type: Literal["integer"] = "integer"

    @model_validator(mode="after")
    def _require_content(self):
        if self.content is None:
            raise ValueError("Integer questions require content field")
        return self


class MatrixQuestion(QuestionBase):
    type: Literal["matrix"] = "matrix"
    matrix_match: Any = None

    @model_validator(mode="after")
    def _require_matrix(self):
        if self.matrix_match is None:
            raise ValueError("Matrix questions require matrix_match field")
        return self


class ComprehensionQuestion(QuestionBase):
    type: Literal["comprehension"] = "comprehension"
    comprehension_passage: Optional[ComprehensionPassage] = None
    sub_questions: Optional[list[SubQuestion]] = None

    @model_validator(mode="after")
    def _require_passage(self):
        if self.comprehension_passage is None or self.sub_questions is None:
            raise ValueError(
                "Comprehension questions require passage and sub_questions"
            )
        return self


Question = Union[
    SingleChoiceQuestion,
    MultipleChoiceQuestion,
    IntegerQuestion,
    MatrixQuestion,
    ComprehensionQuestion,
]

QUESTION_MODELS: dict[str, type[QuestionBase]] = {
    "single": SingleChoiceQuestion,
    "multiple": MultipleChoiceQuestion,
    "integer": IntegerQuestion,
    "matrix": MatrixQuestion,
    "comprehension": ComprehensionQuestion,
}


def _describe_validation_error(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        # Messages raised from our own validators are passed through verbatim.
        ctx_error = (error.get("ctx") or {}).get("error")
        message = str(ctx_error) if ctx_error else error["msg"]
        location = ".".join(str(part) for part in error["loc"])
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages)


def parse_question(data: Mapping[str, Any]) -> Question:
    """
    Builds the typed question for a raw payload.

    Args:
        data: The question as received from the client.

    Returns:
        The model matching the payload's `type` (``single`` when absent).

    Raises:
        InvalidQuestionError: If the payload is missing its id, names an
            unknown type or lacks the fields its type requires.
    """
    if not isinstance(data, Mapping):
        raise InvalidQuestionError("Question data must be an object")
    if data.get("id") in (None, ""):
        raise InvalidQuestionError("Invalid question format. Required field: id")

    question_type = data.get("type") or DEFAULT_QUESTION_TYPE
    model = (
        QUESTION_MODELS.get(question_type) if isinstance(question_type, str) else None
    )
    if model is None:
        raise InvalidQuestionError(f"Unsupported question type: {question_type}")

    payload = dict(data)
    if "type" in payload:
        payload["type"] = question_type

    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise InvalidQuestionError(_describe_validation_error(exc)) from exc


def question_document(question: QuestionBase) -> dict:
    """Returns the question as a plain dict holding only the fields it was given."""
    return question.model_dump(exclude_unset=True)
