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

from dataclasses import dataclass, field
from typing import List, Optional

from shared.types import ContactCategory


@dataclass
class Contact:
    id: str
    owner_uid: str
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone_number: Optional[str] = None
    category: ContactCategory = ContactCategory.PERSONAL
    is_favorite: bool = False
    notes: Optional[str] = None
    created_date: float = 0.0
    updated_date: float = 0.0

    @property
    def full_name(self) -> str:
        return " ".join(
            part for part in (self.first_name, self.last_name) if part
        ).strip()

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        if self.email:
            return self.email
        if self.phone_number:
            return self.phone_number
        return "Unknown Contact"


@dataclass
class DeviceContact:
    """A contact as exported from a phone's address book."""

    given_name: str = ""
    family_name: str = ""
    emails: List[str] = field(default_factory=list)
    phone_numbers: List[str] = field(default_factory=list)
    organization: Optional[str] = None
    note: Optional[str] = None


@dataclass
class ImportResults:
    imported: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.imported + self.skipped + self.failed
