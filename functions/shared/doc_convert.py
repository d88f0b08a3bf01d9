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
Helpers to convert between dataclasses and Firestore documents.

Documents are stored with camelCase keys and without their `id`, which is the
document name.
"""

from dataclasses import asdict
from enum import Enum
from typing import Any, Type, TypeVar

from dacite import Config, from_dict

from shared.json_utils import convert_keys

T = TypeVar("T")

DACITE_CONFIG = Config(check_types=False, cast=[Enum])


def to_document(obj: Any) -> dict:
    doc = convert_keys(asdict(obj), "snake_to_camel")
    doc.pop("id", None)
    return doc


def from_document(data_class: Type[T], doc_id: str, data: dict) -> T:
    payload = convert_keys(dict(data), "camel_to_snake")
    payload["id"] = doc_id
    return from_dict(data_class=data_class, data=payload, config=DACITE_CONFIG)


def to_payload(obj: Any) -> dict:
    """Like `to_document` but keeps the id, for API and callable responses."""
    return convert_keys(asdict(obj), "snake_to_camel")
