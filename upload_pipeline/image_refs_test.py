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

import copy
import unittest

from shared.question import parse_question, question_document
from upload_pipeline import image_refs


def _comprehension_payload():
    return {
        "id": "c1",
        "type": "comprehension",
        "imageUrl": "http://x/legacy.png",
        "content": {"text": "Intro", "images": ["http://x/content.png", ""]},
        "options": [
            {"text": "A", "image_url": "http://x/option.png"},
            {"text": "B", "image_url": "   "},
        ],
        "comprehension_passage": {
            "text": "Passage",
            "images": ["http://x/passage.png", "http://x/content.png"],
        },
        "sub_questions": [
            {
                "content": {"text": "Sub 1", "images": ["http://x/sub-content.png"]},
                "options": [
                    {"text": "A", "image_url": "http://x/sub-option.png"},
                    {"text": "B"},
                ],
            },
            {"content": {"text": "Sub 2"}},
        ],
    }


class ExtractImageUrlsTest(unittest.TestCase):

    def test_collects_every_location_once(self):
        question = parse_question(_comprehension_payload())

        urls = image_refs.extract_image_urls(question)

        self.assertEqual(
            urls,
            [
                "http://x/legacy.png",
                "http://x/content.png",
                "http://x/option.png",
                "http://x/passage.png",
                "http://x/sub-content.png",
                "http://x/sub-option.png",
            ],
        )

    def test_trims_whitespace_and_deduplicates(self):
        question = parse_question(
            {
                "id": "q1",
                "imageUrl": " http://x/a.png ",
                "content": {"images": ["http://x/a.png", None, "\t"]},
            }
        )
        self.assertEqual(image_refs.extract_image_urls(question), ["http://x/a.png"])

    def test_question_without_images(self):
        question = parse_question({"id": "q1", "description": "No pictures"})
        self.assertEqual(image_refs.extract_image_urls(question), [])

    def test_sub_questions_ignored_outside_comprehension(self):
        question = parse_question(
            {
                "id": "q1",
                "content": {"text": "x"},
                "sub_questions": [{"content": {"images": ["http://x/ignored.png"]}}],
            }
        )
        self.assertEqual(image_refs.extract_image_urls(question), [])

    def test_string_options_are_skipped(self):
        question = parse_question(
            {"id": "q1", "content": {"text": "x"}, "options": ["A", "B"]}
        )
        self.assertEqual(image_refs.extract_image_urls(question), [])


class RewriteImageUrlsTest(unittest.TestCase):

    def test_replaces_mapped_urls_everywhere(self):
        payload = _comprehension_payload()
        question = parse_question(payload)
        migrated = {
            "http://x/legacy.png": "https://s3/legacy.png",
            "http://x/content.png": "https://s3/content.png",
            "http://x/sub-option.png": "https://s3/sub-option.png",
        }

        document = question_document(image_refs.rewrite_image_urls(question, migrated))

        self.assertEqual(document["imageUrl"], "https://s3/legacy.png")
        self.assertEqual(document["content"]["images"], ["https://s3/content.png", ""])
        self.assertEqual(
            document["comprehension_passage"]["images"],
            ["http://x/passage.png", "https://s3/content.png"],
        )
        self.assertEqual(
            document["sub_questions"][0]["options"][0]["image_url"],
            "https://s3/sub-option.png",
        )
        # Unmapped references are untouched.
        self.assertEqual(document["options"][0]["image_url"], "http://x/option.png")
        self.assertEqual(
            document["sub_questions"][0]["content"]["images"],
            ["http://x/sub-content.png"],
        )
        self.assertNotIn("images", document["sub_questions"][1]["content"])

    def test_does_not_mutate_input(self):
        payload = _comprehension_payload()
        question = parse_question(payload)
        before = copy.deepcopy(question_document(question))

        urls = image_refs.extract_image_urls(question)
        migrated = {url: f"https://s3/{i}.png" for i, url in enumerate(urls)}
        image_refs.rewrite_image_urls(question, migrated)

        self.assertEqual(question_document(question), before)
        self.assertEqual(question_document(question), payload)

    def test_empty_mapping_is_identity(self):
        question = parse_question(_comprehension_payload())
        rewritten = image_refs.rewrite_image_urls(question, {})
        self.assertIsNot(rewritten, question)
        self.assertEqual(question_document(rewritten), question_document(question))

    def test_padded_reference_uses_trimmed_mapping(self):
        question = parse_question(
            {"id": "q1", "content": {"images": [" http://x/a.png"]}}
        )
        rewritten = image_refs.rewrite_image_urls(
            question, {"http://x/a.png": "https://s3/a.png"}
        )
        self.assertEqual(rewritten.content.images, ["https://s3/a.png"])


if __name__ == "__main__":
    unittest.main()
