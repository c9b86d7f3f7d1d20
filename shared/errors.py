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
Exceptions shared by the storage gateways, the upload pipeline and the API.
"""


class QuestionBankError(Exception):
    """Base class for all question bank errors."""


class ConfigError(QuestionBankError):
    """Required configuration was not available when a gateway needed it."""


class FetchError(QuestionBankError):
    """A source image could not be downloaded."""


class StoreWriteError(QuestionBankError):
    """The object store rejected a write or delete."""


class PersistenceError(QuestionBankError):
    """The document store rejected an insert."""


class NotFoundError(QuestionBankError):
    """An update or delete addressed a document that does not exist."""


class InvalidQuestionError(QuestionBankError):
    """A question payload failed structural validation."""
