import os
import unittest

from fastapi.testclient import TestClient

from backend.app import create_app
from backend.config import get_settings
from backend.dependencies import get_queue_client, reset_dependencies

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}
MALLORY = {"X-User-Id": "mallory"}
CAROL = {"X-User-Id": "carol"}
MODERATOR = {"X-User-Id": "mod"}


class BackendApiTests(unittest.TestCase):
    def setUp(self):
        os.environ["ISIF_USE_IN_MEMORY_BACKENDS"] = "true"
        os.environ["MODERATOR_UIDS"] = '["mod"]'
        get_settings.cache_clear()
        reset_dependencies()
        self.client = TestClient(create_app())

    def tearDown(self):
        os.environ.pop("ISIF_USE_IN_MEMORY_BACKENDS", None)
        os.environ.pop("MODERATOR_UIDS", None)
        get_settings.cache_clear()
        reset_dependencies()

    def _create_sif(self, **overrides):
        payload = {"recipients": ["bob"], "subject": "Thank you", "message": "Hi"}
        payload.update(overrides)
        response = self.client.post("/api/sifs", json=payload, headers=ALICE)
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["sif"]

    def test_requires_authentication(self):
        self.assertEqual(self.client.get("/api/sifs").status_code, 401)
        response = self.client.get(
            "/api/sifs", headers={"Authorization": "Basic abc"}
        )
        self.assertEqual(response.status_code, 401)

    def test_healthz(self):
        self.assertEqual(self.client.get("/healthz").json(), {"status": "ok"})

    def test_create_sif_queues_delivery(self):
        sif = self._create_sif()

        self.assertEqual(sif["authorUid"], "alice")
        self.assertEqual(sif["deliveryStatus"], "pending")
        self.assertEqual(get_queue_client().items, [sif["id"]])

        progress = self.client.get(f"/api/sifs/{sif['id']}/progress", headers=ALICE)
        self.assertEqual(progress.status_code, 200)
        self.assertEqual(progress.json()["status"], "pending")

    def test_create_sif_validation(self):
        response = self.client.post(
            "/api/sifs", json={"recipients": [], "subject": "x"}, headers=ALICE
        )
        self.assertEqual(response.status_code, 422)

    def test_create_sif_with_schedule_after_expiration_is_not_stored(self):
        response = self.client.post(
            "/api/sifs",
            json={
                "recipients": ["bob"],
                "subject": "Late",
                "scheduled_date": 4_000_000_100.0,
                "expiration_date": 4_000_000_000.0,
            },
            headers=ALICE,
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.client.get("/api/sifs", headers=ALICE).json()["sent"], [])
        self.assertEqual(get_queue_client().items, [])

    def test_list_sifs_for_author_and_recipient(self):
        sif = self._create_sif()

        sent = self.client.get("/api/sifs", headers=ALICE).json()["sent"]
        received = self.client.get("/api/sifs", headers=BOB).json()["received"]

        self.assertEqual([s["id"] for s in sent], [sif["id"]])
        self.assertEqual([s["id"] for s in received], [sif["id"]])

    def test_permissions(self):
        sif = self._create_sif()

        self.assertEqual(
            self.client.get(f"/api/sifs/{sif['id']}", headers=MALLORY).status_code, 403
        )
        self.assertEqual(
            self.client.post(f"/api/sifs/{sif['id']}/cancel", headers=BOB).status_code, 403
        )
        self.assertEqual(self.client.get("/api/sifs/missing", headers=ALICE).status_code, 404)

    def test_schedule_and_cancel(self):
        sif = self._create_sif()

        scheduled = self.client.post(
            f"/api/sifs/{sif['id']}/schedule",
            json={"scheduled_date": 4_000_000_000.0},
            headers=ALICE,
        )
        self.assertEqual(scheduled.status_code, 200)
        self.assertEqual(scheduled.json()["sif"]["deliveryStatus"], "scheduled")

        cancelled = self.client.post(f"/api/sifs/{sif['id']}/cancel", headers=ALICE)
        self.assertEqual(cancelled.json()["sif"]["deliveryStatus"], "cancelled")

        again = self.client.post(f"/api/sifs/{sif['id']}/deliver", headers=ALICE)
        self.assertEqual(again.status_code, 400)

    def test_folders_tags_and_favorites(self):
        sif = self._create_sif()

        folder = self.client.post("/api/folders", json={"name": "Family"}, headers=ALICE)
        self.assertEqual(folder.status_code, 201)
        folder_id = folder.json()["folder"]["id"]

        moved = self.client.post(
            f"/api/sifs/{sif['id']}/move", json={"folder_id": folder_id}, headers=ALICE
        )
        self.assertEqual(moved.status_code, 200)
        in_folder = self.client.get(f"/api/folders/{folder_id}/sifs", headers=ALICE)
        self.assertEqual([s["id"] for s in in_folder.json()["sifs"]], [sif["id"]])

        tags = self.client.post(
            f"/api/sifs/{sif['id']}/tags", json={"tags": ["family"]}, headers=ALICE
        )
        self.assertEqual(tags.json()["tags"], ["family"])

        favorite = self.client.post(f"/api/sifs/{sif['id']}/favorite", headers=ALICE)
        self.assertTrue(favorite.json()["value"])

        deleted = self.client.delete(f"/api/folders/{folder_id}", headers=ALICE)
        self.assertEqual(deleted.json()["count"], 1)

    def test_attachment_upload(self):
        sif = self._create_sif()

        response = self.client.post(
            f"/api/sifs/{sif['id']}/attachments",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            headers=ALICE,
        )
        self.assertEqual(response.status_code, 201, response.text)
        self.assertEqual(response.json()["file"]["type"], "document")

        listed = self.client.get(f"/api/sifs/{sif['id']}/attachments", headers=ALICE)
        self.assertEqual(len(listed.json()["files"]), 1)

        rejected = self.client.post(
            f"/api/sifs/{sif['id']}/attachments",
            files={"file": ("virus.exe", b"MZ", "application/octet-stream")},
            headers=ALICE,
        )
        self.assertEqual(rejected.status_code, 400)

    def test_sign_url_is_limited_to_sif_participants(self):
        sif = self._create_sif()
        path = f"sifs/{sif['id']}/attachments/f1_photo.png"

        response = self.client.get("/api/sign-url", params={"path": path}, headers=ALICE)
        self.assertEqual(response.status_code, 200)
        self.assertIn(path, response.json()["url"])
        read = self.client.get("/api/sign-url", params={"path": path}, headers=BOB)
        self.assertEqual(read.status_code, 200)

        cases = [
            (BOB, {"path": path, "op": "put"}),
            (MALLORY, {"path": path}),
            (MALLORY, {"path": path, "op": "put"}),
            (ALICE, {"path": "foo/bar.png"}),
            (ALICE, {"path": "sifs/missing/attachments/a.png"}),
            (ALICE, {"path": f"sifs/{sif['id']}/../other/a.png"}),
        ]
        for headers, params in cases:
            response = self.client.get("/api/sign-url", params=params, headers=headers)
            self.assertEqual(response.status_code, 403, params)

    def test_qr_code_and_share_links(self):
        sif = self._create_sif()

        image = self.client.get(f"/api/sifs/{sif['id']}/qr-code", headers=ALICE)
        self.assertEqual(image.headers["content-type"], "image/png")
        self.assertTrue(image.content.startswith(b"\x89PNG"))

        links = self.client.get(f"/api/sifs/{sif['id']}/share", headers=ALICE).json()
        self.assertEqual(links["deep_link_url"], f"isayitforward://sif/{sif['id']}")

        scanned = self.client.post(
            "/api/qr/scan", json={"code": links["qr_code_data"]}, headers=BOB
        )
        self.assertEqual(scanned.json()["sif"]["id"], sif["id"])

        bad = self.client.post(
            "/api/qr/scan",
            json={"code": '{"sifId": "x", "url": "u", "subject": "s", "authorUid": "a", "createdDate": 1, "expirationDate": "soon"}'},
            headers=BOB,
        )
        self.assertEqual(bad.status_code, 200)
        self.assertEqual(bad.json()["error"], "Invalid QR code format")

        link = self.client.post(
            "/api/deep-link", json={"url": links["deep_link_url"]}, headers=BOB
        )
        self.assertEqual(link.json()["kind"], "sif")

    def test_search_records_history(self):
        self._create_sif(subject="Birthday wishes")

        results = self.client.post(
            "/api/search", json={"query": "birthday"}, headers=ALICE
        )
        self.assertEqual(results.status_code, 200)
        self.assertGreaterEqual(len(results.json()["results"]), 1)

        recent = self.client.get("/api/search/history/recent", headers=ALICE)
        self.assertEqual(recent.json()["queries"], ["birthday"])

        unknown = self.client.post(
            "/api/search", json={"query": "x", "preset": "nope"}, headers=ALICE
        )
        self.assertEqual(unknown.status_code, 400)

    def test_templates(self):
        response = self.client.get("/api/templates", params={"category": "holiday"})
        templates = response.json()["templates"]
        self.assertTrue(templates)
        self.assertTrue(all(t["category"] == "holiday" for t in templates))

    def test_impact_report(self):
        sif = self._create_sif()
        recorded = self.client.post(
            "/api/responses",
            json={"sif_id": sif["id"], "response_text": "Thank you so much!"},
            headers=BOB,
        )
        self.assertEqual(recorded.status_code, 201)

        report = self.client.post(
            "/api/impact/report", json={"period": "monthly"}, headers=ALICE
        )
        self.assertEqual(report.status_code, 200)
        self.assertEqual(report.json()["metrics"]["totalResponses"], 1)

        history = self.client.get("/api/impact/history", headers=ALICE)
        self.assertEqual(len(history.json()["metrics"]), 1)

    def test_notification_preferences(self):
        updated = self.client.put(
            "/api/notifications/preferences",
            json={"push_enabled": False, "disabled_types": ["new_sif"]},
            headers=ALICE,
        )
        self.assertEqual(updated.status_code, 200)

        loaded = self.client.get("/api/notifications/preferences", headers=ALICE).json()
        self.assertEqual(loaded, {"push_enabled": False, "disabled_types": ["new_sif"]})
        self.assertEqual(
            self.client.get("/api/notifications/unread-count", headers=ALICE).json(),
            {"count": 0},
        )

    def test_contacts(self):
        created = self.client.post(
            "/api/contacts",
            json={"first_name": "Bob", "email": "bob@example.com"},
            headers=ALICE,
        )
        self.assertEqual(created.status_code, 201)

        invalid = self.client.post(
            "/api/contacts", json={"email": "nope"}, headers=ALICE
        )
        self.assertEqual(invalid.status_code, 400)

        imported = self.client.post(
            "/api/contacts/import",
            json={"contacts": [{"given_name": "Bob"}, {"given_name": "Carol"}]},
            headers=ALICE,
        )
        self.assertEqual(
            imported.json(), {"imported": 1, "skipped": 1, "failed": 0, "total": 2}
        )

        listed = self.client.get("/api/contacts", params={"q": "car"}, headers=ALICE)
        self.assertEqual([c["firstName"] for c in listed.json()["contacts"]], ["Carol"])
        self.assertEqual(
            self.client.get("/api/contacts", headers=MALLORY).json()["contacts"], []
        )

    def _received_ids(self, headers):
        received = self.client.get("/api/sifs", headers=headers).json()["received"]
        return [s["id"] for s in received]

    def test_blocking_hides_sifs_and_prevents_responses(self):
        sif = self._create_sif()

        blocked = self.client.post(
            "/api/blocks", json={"user_id": "alice", "reason": "spam"}, headers=BOB
        )
        self.assertEqual(blocked.status_code, 201, blocked.text)
        self.assertEqual(blocked.json()["block"]["blockedUserId"], "alice")
        self.assertEqual(self._received_ids(BOB), [])
        self.assertEqual(
            self.client.post(
                "/api/responses",
                json={"sif_id": sif["id"], "response_text": "Thanks"},
                headers=BOB,
            ).status_code,
            403,
        )

        listed = self.client.get("/api/blocks", headers=BOB).json()["blocked"]
        self.assertEqual([b["block"]["blockedUserId"] for b in listed], ["alice"])
        self.assertEqual(listed[0]["userName"], "Unknown User")
        self.assertEqual(
            self.client.get("/api/blocks/bob", headers=ALICE).json(),
            {"blocked": False, "blocked_by": True, "prevent_interaction": True},
        )

        self.assertEqual(
            self.client.post("/api/blocks", json={"user_id": "alice"}, headers=BOB).status_code,
            409,
        )
        self.assertEqual(
            self.client.post("/api/blocks", json={"user_id": "bob"}, headers=BOB).status_code,
            400,
        )

        self.assertEqual(self.client.delete("/api/blocks/alice", headers=BOB).status_code, 200)
        self.assertEqual(self._received_ids(BOB), [sif["id"]])
        self.assertEqual(self.client.delete("/api/blocks/alice", headers=BOB).status_code, 404)

    def test_response_listing(self):
        sif = self._create_sif(recipients=["bob", "carol"])
        for headers, text in ((BOB, "Thank you!"), (CAROL, "Message received")):
            recorded = self.client.post(
                "/api/responses",
                json={"sif_id": sif["id"], "response_text": text},
                headers=headers,
            )
            self.assertEqual(recorded.status_code, 201, recorded.text)
        self.assertEqual(recorded.json()["response"]["category"], "acknowledgment")

        for_author = self.client.get(f"/api/sifs/{sif['id']}/responses", headers=ALICE)
        self.assertEqual(len(for_author.json()["responses"]), 2)
        for_bob = self.client.get(f"/api/sifs/{sif['id']}/responses", headers=BOB)
        self.assertEqual(
            [r["respondentUid"] for r in for_bob.json()["responses"]], ["bob"]
        )
        self.assertEqual(
            self.client.get(f"/api/sifs/{sif['id']}/responses", headers=MALLORY).status_code,
            403,
        )

        mine = self.client.get("/api/responses", headers=BOB).json()["responses"]
        self.assertEqual([r["responseText"] for r in mine], ["Thank you!"])
        response_id = mine[0]["id"]
        self.assertEqual(
            self.client.delete(f"/api/responses/{response_id}", headers=ALICE).status_code, 404
        )
        self.assertEqual(
            self.client.delete(f"/api/responses/{response_id}", headers=BOB).status_code, 200
        )
        self.assertEqual(self.client.get("/api/responses", headers=BOB).json()["responses"], [])

    def test_reporting_and_moderation(self):
        sif = self._create_sif(recipients=["bob", "carol"])

        reported = self.client.post(
            "/api/reports",
            json={"content_id": sif["id"], "reason": "spam", "description": "Ads"},
            headers=BOB,
        )
        self.assertEqual(reported.status_code, 201, reported.text)
        report = reported.json()["report"]
        self.assertEqual(report["reportedUserId"], "alice")
        self.assertEqual(report["status"], "pending")

        def _report(headers):
            return self.client.post(
                "/api/reports",
                json={"content_id": sif["id"], "reason": "spam"},
                headers=headers,
            ).status_code

        self.assertEqual(_report(BOB), 409)
        self.assertEqual(_report(ALICE), 400)
        self.assertEqual(_report(MALLORY), 403)
        self.assertEqual(self._received_ids(BOB), [])
        self.assertEqual(self._received_ids(CAROL), [sif["id"]])

        self.assertEqual(self.client.get("/api/moderation/reports", headers=BOB).status_code, 403)
        queue = self.client.get("/api/moderation/reports", headers=MODERATOR).json()["reports"]
        self.assertEqual([r["id"] for r in queue], [report["id"]])

        moderated = self.client.post(
            f"/api/moderation/reports/{report['id']}/moderate",
            json={"action": "content_removed", "notes": "Confirmed"},
            headers=MODERATOR,
        )
        self.assertEqual(moderated.status_code, 200, moderated.text)
        self.assertEqual(moderated.json()["report"]["status"], "resolved")
        self.assertEqual(self._received_ids(CAROL), [])
        sent = self.client.get("/api/sifs", headers=ALICE).json()["sent"]
        self.assertTrue(sent[0]["isRemoved"])

        stats = self.client.get(
            f"/api/moderation/content/{sif['id']}/stats", headers=MODERATOR
        ).json()["stats"]
        self.assertEqual(stats["totalReports"], 1)
        self.assertEqual(stats["reasonBreakdown"], {"spam": 1})
        overall = self.client.get("/api/moderation/stats", headers=MODERATOR).json()["stats"]
        self.assertEqual(overall["resolvedReports"], 1)
        self.assertEqual(overall["actionsTaken"], {"content_removed": 1})
        self.assertEqual(
            self.client.post(
                "/api/moderation/reports/missing/status",
                json={"status": "dismissed"},
                headers=MODERATOR,
            ).status_code,
            404,
        )


if __name__ == "__main__":
    unittest.main()
