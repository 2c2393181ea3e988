import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import patch

from fastapi.testclient import TestClient

import bidtracker.app as app_module
import bidtracker.db as db_module


class TestProfilesEndpoint(unittest.TestCase):
    def setUp(self):
        app_module.API_KEY = None
        app_module._REQUEST_BUCKETS.clear()
        self._tmp = TemporaryDirectory()
        self._patch = patch.object(db_module, "DB_PATH", Path(self._tmp.name) / "test.db")
        self._patch.start()
        self.client = TestClient(app_module.app)

    def tearDown(self):
        self._patch.stop()
        self._tmp.cleanup()

    def _create(self, **overrides):
        body = {"full_name": "Jane Doe", "email": "Jane@Example.com", "current_role": "Software Engineer"}
        body.update(overrides)
        resp = self.client.post("/profiles?user_id=u1", json=body)
        self.assertEqual(resp.status_code, 201, resp.text)
        return resp.json()

    def test_create_and_fetch_profile(self):
        created = self._create(skills=["Python", "SQL"])

        self.assertEqual(created["email"], "jane@example.com")
        self.assertEqual(created["user_id"], "u1")

        fetched = self.client.get(f"/profiles/{created['id']}?user_id=u1")
        self.assertEqual(fetched.status_code, 200, fetched.text)
        self.assertEqual(fetched.json()["skills"], ["Python", "SQL"])

        other = self.client.get(f"/profiles/{created['id']}?user_id=u2")
        self.assertEqual(other.status_code, 404)

    def test_invalid_profile_fields_are_rejected(self):
        bad_email = self.client.post("/profiles?user_id=u1", json={"full_name": "Jane", "email": "not-an-email"})
        self.assertEqual(bad_email.status_code, 422, bad_email.text)

        no_name = self.client.post("/profiles?user_id=u1", json={"full_name": "", "email": "jane@example.com"})
        self.assertEqual(no_name.status_code, 422, no_name.text)

        bad_style = self.client.post(
            "/profiles?user_id=u1",
            json={"full_name": "Jane", "email": "jane@example.com", "style_settings": {"bg_color": "blue"}},
        )
        self.assertEqual(bad_style.status_code, 422, bad_style.text)
        self.assertEqual(self.client.get("/profiles?user_id=u1").json(), [])

    def test_style_patch_merges_and_validates(self):
        created = self._create(style_settings={"full_name_color": "#111111"})

        resp = self.client.patch(f"/profiles/{created['id']}/style?user_id=u1", json={"text_font": "Georgia, serif"})
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(resp.json()["full_name_color"], "#111111")
        self.assertEqual(resp.json()["text_font"], "Georgia, serif")

        bad = self.client.patch(f"/profiles/{created['id']}/style?user_id=u1", json={"line_height": "9"})
        self.assertEqual(bad.status_code, 422, bad.text)

        missing = self.client.patch("/profiles/nope/style?user_id=u1", json={"line_height": "1.2"})
        self.assertEqual(missing.status_code, 404)

    def test_primary_profile_listed_first(self):
        first = self._create(is_primary=True)
        second = self._create(full_name="John Roe", email="john@example.com", is_primary=True)

        listed = self.client.get("/profiles?user_id=u1").json()

        self.assertEqual(listed[0]["id"], second["id"])
        self.assertEqual([p["is_primary"] for p in listed], [True, False])
        self.assertEqual(listed[1]["id"], first["id"])

    def test_update_and_delete(self):
        created = self._create()

        resp = self.client.put(f"/profiles/{created['id']}?user_id=u1", json={"current_role": "Staff Engineer"})
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(resp.json()["current_role"], "Staff Engineer")
        self.assertEqual(resp.json()["full_name"], "Jane Doe")

        deleted = self.client.delete(f"/profiles/{created['id']}?user_id=u1")
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(self.client.delete(f"/profiles/{created['id']}?user_id=u1").status_code, 404)

    def test_bids_require_owned_profile(self):
        created = self._create()
        bid_body = {
            "profile_id": created["id"],
            "company_name": "Acme",
            "job_title": "Engineer",
            "job_description": "Build",
            "link": "https://jobs.example.com/1",
        }

        resp = self.client.post("/bids?user_id=u1", json=bid_body)
        self.assertEqual(resp.status_code, 201, resp.text)
        bid_id = resp.json()["id"]

        self.assertEqual(self.client.post("/bids?user_id=u2", json=bid_body).status_code, 404)
        bad_link = dict(bid_body, link="jobs.example.com/1")
        self.assertEqual(self.client.post("/bids?user_id=u1", json=bad_link).status_code, 422)

        reported = self.client.put(f"/bids/{bid_id}/report?user_id=u1", json={"reported": True})
        self.assertEqual(reported.status_code, 200, reported.text)
        self.assertTrue(reported.json()["reported"])

        listed = self.client.get("/bids?user_id=u1&limit=10&offset=0")
        self.assertEqual([b["id"] for b in listed.json()], [bid_id])


if __name__ == "__main__":
    unittest.main()
