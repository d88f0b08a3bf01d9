import io
import json
import unittest

from PIL import Image

from backend.db import InMemoryDbClient
from backend.notifications import NotificationService
from backend.qr_codes import DeepLinkKind, QRCodeService
from backend.storage import InMemoryStorageClient
from shared.doc_convert import to_document
from shared.firebase_constants import NOTIFICATIONS_COLLECTION, SIFS_COLLECTION
from shared.sif import SIFItem

NOW = 1_700_000_000.0


class QRCodeServiceTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()
        self.notifications = NotificationService(self.db)
        self.service = QRCodeService(self.db, self.storage, self.notifications)
        self.sif = self._store(
            SIFItem(
                id="sif-1",
                author_uid="alice",
                recipients=["bob"],
                subject="Thank you",
                message="For everything",
                created_date=NOW - 3600,
                notify_on_open=True,
            )
        )

    def _store(self, sif):
        self.db.set(SIFS_COLLECTION, sif.id, to_document(sif))
        return sif

    def test_qr_code_data_is_compact_json(self):
        payload = json.loads(self.service.create_qr_code_data(self.sif))
        self.assertEqual(
            payload,
            {
                "sifId": "sif-1",
                "url": "https://isayitforward.app/sif/sif-1",
                "subject": "Thank you",
                "authorUid": "alice",
                "createdDate": NOW - 3600,
                "type": "sif",
                "expirationDate": None,
            },
        )

    def test_generated_images(self):
        plain = Image.open(io.BytesIO(self.service.generate_qr_code(self.sif, size=240)))
        self.assertEqual(plain.size, (240, 240))

        styled = Image.open(io.BytesIO(self.service.generate_styled_qr_code(self.sif)))
        self.assertEqual(styled.size, (300, 300))
        self.assertEqual(styled.convert("RGB").getpixel((150, 150)), (0, 122, 255))

    def test_store_qr_code(self):
        url = self.service.store_qr_code(self.sif)

        self.assertEqual(url, "https://example.test/storage/sifs/sif-1/qr_code.png")
        self.assertEqual(self.storage.content_types["sifs/sif-1/qr_code.png"], "image/png")
        self.assertEqual(self.db.get(SIFS_COLLECTION, "sif-1")["qrCodeImageUrl"], url)

    def test_links(self):
        self.assertEqual(
            self.service.generate_shareable_url(self.sif),
            "https://isayitforward.app/share/sif-1",
        )
        self.assertEqual(
            self.service.generate_deep_link_url(self.sif), "isayitforward://sif/sif-1"
        )

    def test_scan_json_payload_notifies_author(self):
        code = self.service.create_qr_code_data(self.sif)

        result = self.service.process_scanned_code(code, scanner_uid="bob", now=NOW)

        self.assertTrue(result.ok)
        self.assertEqual(result.sif.id, "sif-1")
        self.assertIsNotNone(
            self.db.get(NOTIFICATIONS_COLLECTION, f"qr-scan-sif-1-{int(NOW)}")
        )

    def test_scan_without_notify_on_open(self):
        sif = self._store(
            SIFItem(
                id="sif-2",
                author_uid="alice",
                recipients=["bob"],
                subject="Quiet",
                message="",
                created_date=NOW,
            )
        )
        result = self.service.process_scanned_code(
            self.service.create_qr_code_data(sif), scanner_uid="bob", now=NOW
        )
        self.assertTrue(result.ok)
        self.assertEqual(self.db.query(NOTIFICATIONS_COLLECTION), [])

    def test_scan_expired_payload(self):
        sif = self._store(
            SIFItem(
                id="sif-3",
                author_uid="alice",
                recipients=["bob"],
                subject="Old",
                message="",
                created_date=NOW - 7200,
                expiration_date=NOW - 1,
            )
        )
        result = self.service.process_scanned_code(
            self.service.create_qr_code_data(sif), now=NOW
        )
        self.assertFalse(result.ok)
        self.assertEqual(result.error, "This SIF has expired")

    def test_scan_urls(self):
        self.assertEqual(
            self.service.process_scanned_code(
                "https://isayitforward.app/share/sif-1", now=NOW
            ).sif.id,
            "sif-1",
        )
        self.assertEqual(
            self.service.process_scanned_code(
                "https://isayitforward.app/share/missing", now=NOW
            ).error,
            "Failed to load SIF from URL",
        )
        self.assertEqual(
            self.service.process_scanned_code("https://isayitforward.app/", now=NOW).error,
            "Invalid SIF URL",
        )

    def test_scan_invalid_codes(self):
        for code in ["hello", "[1, 2]", '{"foo": "bar"}', "https://example.com/sif/1"]:
            result = self.service.process_scanned_code(code, now=NOW)
            self.assertEqual(result.error, "Invalid QR code format", code)

        missing = json.dumps({"sifId": "nope", "url": "u", "subject": "s",
                              "authorUid": "a", "createdDate": NOW})
        self.assertEqual(
            self.service.process_scanned_code(missing, now=NOW).error,
            "Failed to load SIF: SIF not found",
        )

    def test_scan_payload_with_wrong_field_types(self):
        base = {"sifId": "sif-1", "url": "u", "subject": "s", "authorUid": "a",
                "createdDate": NOW}
        for overrides in [
            {"expirationDate": "tomorrow"},
            {"createdDate": "yesterday"},
            {"sifId": 42},
            {"expirationDate": True},
        ]:
            result = self.service.process_scanned_code(
                json.dumps({**base, **overrides}), now=NOW
            )
            self.assertEqual(result.error, "Invalid QR code format", overrides)

    def test_scan_payload_with_integer_dates(self):
        code = json.dumps({"sifId": "sif-1", "url": "u", "subject": "s",
                           "authorUid": "a", "createdDate": int(NOW),
                           "expirationDate": int(NOW) + 60})
        result = self.service.process_scanned_code(code, now=NOW)
        self.assertEqual(result.sif.id, "sif-1")

    def test_deep_links(self):
        cases = [
            ("isayitforward://sif/sif-1", DeepLinkKind.SIF),
            ("https://isayitforward.app/sif/sif-1", DeepLinkKind.SIF),
            ("https://isayitforward.app/share/sif-1", DeepLinkKind.SHARE),
            ("isayitforward://profile/alice", DeepLinkKind.UNSUPPORTED),
            ("https://isayitforward.app/", DeepLinkKind.UNSUPPORTED),
            ("https://example.com/sif/sif-1", DeepLinkKind.UNSUPPORTED),
        ]
        for url, kind in cases:
            result = self.service.handle_deep_link(url)
            self.assertEqual(result.kind, kind, url)
            if kind in (DeepLinkKind.SIF, DeepLinkKind.SHARE):
                self.assertEqual(result.sif.id, "sif-1")

        missing = self.service.handle_deep_link("isayitforward://share/missing")
        self.assertEqual(missing.kind, DeepLinkKind.ERROR)
        self.assertEqual(missing.error, "Failed to load shared SIF: SIF not found")


if __name__ == "__main__":
    unittest.main()
