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
Finds and replaces the image URLs embedded in a question.

Every question type carries the legacy `imageUrl`, content images and option
images. Comprehension questions add passage images and one level of
sub-questions, each with its own content and option images.
"""

from __future__ import annotations

from typing import Iterator, Mapping, Optional

from shared.question import (
    ComprehensionQuestion,
    IntegerQuestion,
    MatrixQuestion,
    MultipleChoiceQuestion,
    Option,
    Question,
    SingleChoiceQuestion,
)


def _block_images(block) -> list:
    if block is None or not block.images:
        return []
    return list(block.images)


def _option_images(options) -> list:
    return [
        option.image_url
        for option in options or []
        if isinstance(option, Option) and option.image_url
    ]


def _iter_image_urls(question: Question) -> Iterator[Optional[str]]:
    yield question.imageUrl
    yield from _block_images(question.content)
    yield from _option_images(question.options)

    match question:
        case ComprehensionQuestion():
            yield from _block_images(question.comprehension_passage)
            for sub_question in question.sub_questions or []:
                yield from _block_images(sub_question.content)
                yield from _option_images(sub_question.options)
        case (
            SingleChoiceQuestion()
            | MultipleChoiceQuestion()
            | IntegerQuestion()
            | MatrixQuestion()
        ):
            pass
        case _:
            raise TypeError(f"Unsupported question model: {type(question).__name__}")


def extract_image_urls(question: Question) -> list[str]:
    """
    Collects the distinct image URLs referenced anywhere in a question.

    Blank values are skipped and surrounding whitespace is trimmed. The result
    keeps first-seen order so repeated runs produce the same sequence.
    """
    seen: dict[str, None] = {}
    for url in _iter_image_urls(question):
        if not isinstance(url, str):
            continue
        trimmed = url.strip()
        if trimmed:
            seen.setdefault(trimmed, None)
    return list(seen)


def _resolve(url, migrated: Mapping[str, str]):
    if not isinstance(url, str):
        return url
    if url in migrated:
        return migrated[url]
    return migrated.get(url.strip(), url)


def _rewrite_block(block, migrated: Mapping[str, str]) -> None:
    if block is None or block.images is None:
        return
    block.images = [_resolve(url, migrated) for url in block.images]


def _rewrite_options(options, migrated: Mapping[str, str]) -> None:
    for option in options or []:
        if not isinstance(option, Option) or not option.image_url:
            continue
        resolved = _resolve(option.image_url, migrated)
        if resolved != option.image_url:
            option.image_url = resolved


def rewrite_image_urls(question: Question, migrated: Mapping[str, str]) -> Question:
    """
    Returns a copy of the question with migrated image URLs substituted.

    Args:
        question: The question as submitted. It is never modified.
        migrated: Original URL to object store URL. URLs missing from the
            mapping (including ones whose migration failed) are left as is.

    Returns:
        A deep copy of the question with every mapped URL replaced.
    """
    rewritten = question.model_copy(deep=True)
    if not migrated:
        return rewritten

    if rewritten.imageUrl:
        resolved = _resolve(rewritten.imageUrl, migrated)
        if resolved != rewritten.imageUrl:
            rewritten.imageUrl = resolved
    _rewrite_block(rewritten.content, migrated)
    _rewrite_options(rewritten.options, migrated)

    match rewritten:
        case ComprehensionQuestion():
            _rewrite_block(rewritten.comprehension_passage, migrated)
            for sub_question in rewritten.sub_questions or []:
                _rewrite_block(sub_question.content, migrated)
                _rewrite_options(sub_question.options, migrated)
        case (
            SingleChoiceQuestion()
            | MultipleChoiceQuestion()
            | IntegerQuestion()
            | MatrixQuestion()
        ):
            pass
        case _:
            raise TypeError(f"Unsupported question model: {type(rewritten).__name__}")
    return rewritten
