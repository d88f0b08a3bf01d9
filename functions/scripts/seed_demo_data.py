"""
Seed a user's account with demo SIFs, contacts, a custom folder and a few
responses so the app has something to show in local development.

Writes go to whatever backend the settings select (Firestore, SQL or memory).
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.address_book import AddressBookError
from backend.dependencies import (
    get_address_book,
    get_delivery_service,
    get_impact_tracker,
    get_sif_manager,
)
from backend.sif_manager import SIFDraft
from shared.contacts import Contact
from shared.templates import TEMPLATES
from shared.types import ContactCategory, ResponseCategory

logger = logging.getLogger(__name__)

DEMO_CONTACTS = [
    ("Ada", "Lovelace", "ada@example.com", ContactCategory.FRIENDS),
    ("Grace", "Hopper", "grace@example.com", ContactCategory.WORK),
    ("Alan", "Turing", "alan@example.com", ContactCategory.PERSONAL),
    ("Mom", "", "mom@example.com", ContactCategory.FAMILY),
]

DEMO_RESPONSES = [
    ("Thank you so much, this made my day!", ResponseCategory.GRATITUDE),
    ("What a wonderful message, love it.", ResponseCategory.COMPLIMENT),
    ("Maybe add a photo next time?", ResponseCategory.SUGGESTION),
]


def seed_contacts(user_uid: str) -> int:
    address_book = get_address_book()
    added = 0
    for first, last, email, category in DEMO_CONTACTS:
        contact = Contact(
            id="",
            owner_uid=user_uid,
            first_name=first,
            last_name=last,
            email=email,
            category=category,
        )
        try:
            address_book.add_contact(contact)
            added += 1
        except AddressBookError as exc:
            logger.warning("Skipping contact %s: %s", email, exc)
    return added


def seed_sifs(user_uid: str, count: int, deliver: bool) -> list[str]:
    manager = get_sif_manager()
    delivery = get_delivery_service()
    recipients = [email for _, _, email, _ in DEMO_CONTACTS]
    now = time.time()
    sif_ids = []
    for template in random.sample(TEMPLATES, min(count, len(TEMPLATES))):
        draft = SIFDraft(
            recipients=random.sample(recipients, random.randint(1, 2)),
            subject=template.name,
            message=template.message,
            template_name=template.name,
            category_name=template.category.display_name,
            tags=[template.category.value],
        )
        sif = manager.create_sif(user_uid, draft, now=now - random.randint(0, 60 * 86400))
        if deliver:
            delivery.deliver_sif(sif.id)
        sif_ids.append(sif.id)
    return sif_ids


def seed_responses(user_uid: str, sif_ids: list[str]) -> int:
    manager = get_sif_manager()
    tracker = get_impact_tracker()
    recorded = 0
    for sif_id in sif_ids[: len(DEMO_RESPONSES)]:
        text, category = DEMO_RESPONSES[recorded]
        tracker.record_response(
            manager.load_sif(sif_id),
            text,
            respondent_uid=f"demo-respondent-{recorded}",
            category=category,
        )
        recorded += 1
    tracker.record_signature(user_uid, sif_ids[0] if sif_ids else None)
    return recorded


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed iSIF demo data")
    parser.add_argument("user_uid", type=str, help="User to seed data for")
    parser.add_argument(
        "-n",
        "--num-sifs",
        type=int,
        default=8,
        help="How many SIFs to create",
    )
    parser.add_argument(
        "--no-deliver",
        action="store_true",
        help="Leave the created SIFs pending",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )
    if args.seed is not None:
        random.seed(args.seed)

    contacts = seed_contacts(args.user_uid)
    sif_ids = seed_sifs(args.user_uid, args.num_sifs, deliver=not args.no_deliver)
    get_sif_manager().create_custom_folder(args.user_uid, "Favorites from friends")
    responses = seed_responses(args.user_uid, sif_ids)

    logger.info(
        "Seeded %d contacts, %d SIFs and %d responses for %s",
        contacts,
        len(sif_ids),
        responses,
        args.user_uid,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
