import unittest

from backend.address_book import (
    AddressBookError,
    AddressBookManager,
    ContactNotFoundError,
    contact_from_device,
    validate_contact,
)
from backend.db import InMemoryDbClient
from shared.contacts import Contact, DeviceContact
from shared.types import ContactCategory

NOW = 1_700_000_000.0


class ValidateContactTests(unittest.TestCase):
    def test_valid_contact(self):
        contact = Contact(
            id="", owner_uid="alice", first_name="Bob", email="bob@example.com",
            phone_number="+1 (555) 123-4567",
        )
        self.assertEqual(validate_contact(contact), [])

    def test_invalid_contact(self):
        contact = Contact(
            id="", owner_uid="alice", email="not-an-email", phone_number="12"
        )
        self.assertEqual(
            validate_contact(contact),
            [
                "At least first name or last name is required",
                "Invalid email format",
                "Invalid phone number format",
            ],
        )

    def test_contact_from_device(self):
        contact = contact_from_device(
            "alice",
            DeviceContact(
                given_name=" Carol ",
                family_name="Smith",
                emails=["carol@example.com", "other@example.com"],
                organization="Acme",
                note="Met at conference",
            ),
            now=NOW,
        )
        self.assertEqual(contact.full_name, "Carol Smith")
        self.assertEqual(contact.email, "carol@example.com")
        self.assertIsNone(contact.phone_number)
        self.assertEqual(contact.notes, "Met at conference\nAcme")
        self.assertEqual(contact.created_date, NOW)


class AddressBookManagerTests(unittest.TestCase):
    def setUp(self):
        self.manager = AddressBookManager(InMemoryDbClient())
        self.bob = self.manager.add_contact(
            Contact(id="", owner_uid="alice", first_name="Bob", last_name="Jones",
                    email="bob@example.com", category=ContactCategory.WORK),
            now=NOW,
        )
        self.ann = self.manager.add_contact(
            Contact(id="", owner_uid="alice", first_name="Ann", phone_number="555-123-4567"),
            now=NOW,
        )

    def test_add_assigns_id_and_dates(self):
        self.assertTrue(self.bob.id)
        self.assertEqual(self.bob.created_date, NOW)
        self.assertEqual(self.manager.get_contact("alice", self.bob.id), self.bob)

    def test_add_rejects_invalid_contact(self):
        with self.assertRaises(AddressBookError) as ctx:
            self.manager.add_contact(Contact(id="", owner_uid="alice", email="x"))
        self.assertEqual(len(ctx.exception.errors), 2)

    def test_list_is_per_owner_and_sorted(self):
        self.manager.add_contact(Contact(id="", owner_uid="zed", first_name="Zoe"))
        self.assertEqual(
            [c.first_name for c in self.manager.list_contacts("alice")], ["Ann", "Bob"]
        )

    def test_get_other_owners_contact(self):
        with self.assertRaises(ContactNotFoundError):
            self.manager.get_contact("mallory", self.bob.id)
        with self.assertRaises(ContactNotFoundError):
            self.manager.delete_contact("mallory", self.bob.id)

    def test_update_keeps_created_date(self):
        edited = Contact(
            id=self.bob.id, owner_uid="alice", first_name="Robert", last_name="Jones",
            created_date=0.0,
        )
        updated = self.manager.update_contact(edited, now=NOW + 60)

        self.assertEqual(updated.created_date, NOW)
        self.assertEqual(updated.updated_date, NOW + 60)
        self.assertEqual(self.manager.get_contact("alice", self.bob.id).first_name, "Robert")

    def test_delete(self):
        self.manager.delete_contact("alice", self.ann.id)
        self.assertEqual([c.id for c in self.manager.list_contacts("alice")], [self.bob.id])

    def test_favorites_categories_and_search(self):
        self.assertTrue(self.manager.toggle_favorite("alice", self.ann.id))
        self.assertEqual([c.id for c in self.manager.favorite_contacts("alice")], [self.ann.id])
        self.assertFalse(self.manager.toggle_favorite("alice", self.ann.id))

        self.assertEqual(
            [c.id for c in self.manager.contacts_by_category("alice", ContactCategory.WORK)],
            [self.bob.id],
        )
        self.assertEqual(
            [c.id for c in self.manager.search_contacts("alice", "JONES")], [self.bob.id]
        )
        self.assertEqual(
            [c.id for c in self.manager.search_contacts("alice", "555")], [self.ann.id]
        )
        self.assertEqual(len(self.manager.search_contacts("alice", "  ")), 2)

    def test_import_device_contacts(self):
        results = self.manager.import_device_contacts(
            "alice",
            [
                DeviceContact(given_name="Dana", emails=["dana@example.com"]),
                # Duplicates by email, phone and name.
                DeviceContact(given_name="Robert", emails=["BOB@example.com"]),
                DeviceContact(given_name="Annie", phone_numbers=["(555) 123 4567"]),
                DeviceContact(given_name="Dana"),
                DeviceContact(),
                DeviceContact(emails=["nameless@example.com"]),
            ],
            now=NOW,
        )

        self.assertEqual(
            (results.imported, results.skipped, results.failed, results.total),
            (1, 4, 1, 6),
        )
        self.assertIn(
            "Dana", [c.first_name for c in self.manager.list_contacts("alice")]
        )


if __name__ == "__main__":
    unittest.main()
