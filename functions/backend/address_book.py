"""
Per-user address book stored in the top-level `contacts` collection.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from dataclasses import replace
from typing import Iterable, List, Optional

from backend.db import DbClient, FieldFilter
from shared.contacts import Contact, DeviceContact, ImportResults
from shared.doc_convert import from_document, to_document
from shared.firebase_constants import CONTACTS_COLLECTION
from shared.types import ContactCategory

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[A-Z0-9a-z._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,64}")
PHONE_PATTERN = re.compile(r"^[\d\s\-\(\)\+]{7,15}$")


class AddressBookError(Exception):
    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class ContactNotFoundError(AddressBookError):
    def __init__(self, contact_id: str):
        super().__init__(f"Contact not found: {contact_id}")
        self.contact_id = contact_id


def validate_contact(contact: Contact) -> List[str]:
    """Returns the validation errors for `contact`; empty when it is valid."""
    errors = []
    if not contact.first_name.strip() and not contact.last_name.strip():
        errors.append("At least first name or last name is required")
    if contact.email and not EMAIL_PATTERN.fullmatch(contact.email):
        errors.append("Invalid email format")
    if contact.phone_number and not PHONE_PATTERN.match(contact.phone_number):
        errors.append("Invalid phone number format")
    return errors


def _normalized_phone(phone: Optional[str]) -> str:
    return re.sub(r"\D", "", phone or "")


def _is_duplicate(candidate: Contact, existing: Iterable[Contact]) -> bool:
    email = (candidate.email or "").lower()
    phone = _normalized_phone(candidate.phone_number)
    name = candidate.full_name.lower()
    for contact in existing:
        if email and email == (contact.email or "").lower():
            return True
        if phone and phone == _normalized_phone(contact.phone_number):
            return True
        if name and name == contact.full_name.lower():
            return True
    return False


def contact_from_device(
    owner_uid: str, device: DeviceContact, now: Optional[float] = None
) -> Contact:
    now = now if now is not None else time.time()
    notes = "\n".join(part for part in (device.note, device.organization) if part)
    return Contact(
        id=uuid.uuid4().hex,
        owner_uid=owner_uid,
        first_name=device.given_name.strip(),
        last_name=device.family_name.strip(),
        email=device.emails[0] if device.emails else None,
        phone_number=device.phone_numbers[0] if device.phone_numbers else None,
        notes=notes or None,
        created_date=now,
        updated_date=now,
    )


class AddressBookManager:
    def __init__(self, db: DbClient):
        self.db = db

    def list_contacts(self, owner_uid: str) -> List[Contact]:
        docs = self.db.query(
            CONTACTS_COLLECTION,
            [FieldFilter("ownerUid", "==", owner_uid)],
            order_by="firstName",
        )
        return [from_document(Contact, d.id, d.data) for d in docs]

    def get_contact(self, owner_uid: str, contact_id: str) -> Contact:
        data = self.db.get(CONTACTS_COLLECTION, contact_id)
        if data is None or data.get("ownerUid") != owner_uid:
            raise ContactNotFoundError(contact_id)
        return from_document(Contact, contact_id, data)

    def add_contact(self, contact: Contact, now: Optional[float] = None) -> Contact:
        errors = validate_contact(contact)
        if errors:
            raise AddressBookError(
                f"Validation failed: {', '.join(errors)}", errors
            )
        now = now if now is not None else time.time()
        contact = replace(
            contact,
            id=contact.id or uuid.uuid4().hex,
            created_date=contact.created_date or now,
            updated_date=now,
        )
        self.db.set(CONTACTS_COLLECTION, contact.id, to_document(contact))
        logger.info("[%s] Added contact %s", contact.owner_uid, contact.id)
        return contact

    def update_contact(self, contact: Contact, now: Optional[float] = None) -> Contact:
        existing = self.get_contact(contact.owner_uid, contact.id)
        errors = validate_contact(contact)
        if errors:
            raise AddressBookError(
                f"Validation failed: {', '.join(errors)}", errors
            )
        updated = replace(
            contact,
            created_date=existing.created_date,
            updated_date=now if now is not None else time.time(),
        )
        self.db.set(CONTACTS_COLLECTION, updated.id, to_document(updated))
        return updated

    def delete_contact(self, owner_uid: str, contact_id: str) -> None:
        self.get_contact(owner_uid, contact_id)
        self.db.delete(CONTACTS_COLLECTION, contact_id)

    def toggle_favorite(
        self, owner_uid: str, contact_id: str, now: Optional[float] = None
    ) -> bool:
        contact = self.get_contact(owner_uid, contact_id)
        is_favorite = not contact.is_favorite
        self.db.update(
            CONTACTS_COLLECTION,
            contact_id,
            {
                "isFavorite": is_favorite,
                "updatedDate": now if now is not None else time.time(),
            },
        )
        return is_favorite

    def contacts_by_category(
        self, owner_uid: str, category: ContactCategory
    ) -> List[Contact]:
        return [c for c in self.list_contacts(owner_uid) if c.category == category]

    def favorite_contacts(self, owner_uid: str) -> List[Contact]:
        return [c for c in self.list_contacts(owner_uid) if c.is_favorite]

    def search_contacts(self, owner_uid: str, text: str) -> List[Contact]:
        contacts = self.list_contacts(owner_uid)
        needle = text.strip().lower()
        if not needle:
            return contacts
        return [
            c
            for c in contacts
            if needle in c.full_name.lower()
            or needle in (c.email or "").lower()
            or needle in (c.phone_number or "").lower()
        ]

    def import_device_contacts(
        self,
        owner_uid: str,
        device_contacts: Iterable[DeviceContact],
        now: Optional[float] = None,
    ) -> ImportResults:
        results = ImportResults()
        known = self.list_contacts(owner_uid)
        for device in device_contacts:
            contact = contact_from_device(owner_uid, device, now=now)
            if not (contact.full_name or contact.email or contact.phone_number):
                results.skipped += 1
                continue
            if _is_duplicate(contact, known):
                results.skipped += 1
                continue
            try:
                self.add_contact(contact, now=now)
            except AddressBookError as e:
                logger.warning(
                    "[%s] Could not import %s: %s", owner_uid, contact.display_name, e
                )
                results.failed += 1
                continue
            known.append(contact)
            results.imported += 1
        logger.info(
            "[%s] Imported %d contacts (%d skipped, %d failed)",
            owner_uid,
            results.imported,
            results.skipped,
            results.failed,
        )
        return results
