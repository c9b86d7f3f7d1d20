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

import unittest
from unittest.mock import MagicMock, patch

import requests

from shared.errors import FetchError
from upload_pipeline import fetch_utils


class FetchImageBytesTest(unittest.TestCase):

    @patch("upload_pipeline.fetch_utils.requests.get")
    def test_returns_body(self, mock_get):
        mock_get.return_value = MagicMock(ok=True, content=b"png")

        self.assertEqual(fetch_utils.fetch_image_bytes("http://x/a.png"), b"png")
        mock_get.assert_called_once_with(
            "http://x/a.png", timeout=fetch_utils.REQUEST_TIMEOUT
        )

    @patch("upload_pipeline.fetch_utils.requests.get")
    def test_error_status(self, mock_get):
        mock_get.return_value = MagicMock(ok=False, status_code=404, reason="Not Found")

        with self.assertRaises(FetchError) as ctx:
            fetch_utils.fetch_image_bytes("http://x/missing.png")
        self.assertIn("404", str(ctx.exception))

    @patch("upload_pipeline.fetch_utils.requests.get")
    def test_transport_error(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("refused")

        with self.assertRaises(FetchError):
            fetch_utils.fetch_image_bytes("http://x/a.png")

    def test_empty_url(self):
        with self.assertRaises(FetchError):
            fetch_utils.fetch_image_bytes("")


class FetchImageResponseTest(unittest.TestCase):

    @patch("upload_pipeline.fetch_utils.requests.get")
    def test_defaults_content_type(self, mock_get):
        mock_get.return_value = MagicMock(content=b"img", headers={})

        content, content_type = fetch_utils.fetch_image_response("http://x/a")

        self.assertEqual(content, b"img")
        self.assertEqual(content_type, "image/jpeg")

    @patch("upload_pipeline.fetch_utils.requests.get")
    def test_http_error(self, mock_get):
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
        mock_get.return_value = response

        with self.assertRaises(FetchError):
            fetch_utils.fetch_image_response("http://x/a")


if __name__ == "__main__":
    unittest.main()
