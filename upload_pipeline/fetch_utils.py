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

import requests

from shared.errors import FetchError

REQUEST_TIMEOUT = 30  # seconds

DEFAULT_IMAGE_CONTENT_TYPE = "image/jpeg"


def fetch_image_bytes(url: str) -> bytes:
    """
    Downloads the image at the given URL.

    Args:
        url (str): The source image URL.

    Returns:
        bytes: The response body.

    Raises:
        FetchError: If the request fails or the server answers with a
            non-success status.
    """
    if not url:
        raise FetchError("No image URL provided")
    try:
        response = requests.get(url, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as exc:
        raise FetchError(f"Failed to download image from {url}: {exc}") from exc

    if not response.ok:
        raise FetchError(
            f"Failed to download image from {url}: {response.status_code} {response.reason}"
        )
    return response.content


def fetch_image_response(url: str) -> tuple[bytes, str]:
    """
    Fetches an image for proxying to the browser.

    Returns:
        tuple[bytes, str]: The body and the upstream content type, defaulting
            to JPEG when the upstream does not send one.
    """
    try:
        response = requests.get(url, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise FetchError(f"Failed to fetch image: {exc}") from exc

    content_type = response.headers.get("Content-Type") or DEFAULT_IMAGE_CONTENT_TYPE
    return response.content, content_type
