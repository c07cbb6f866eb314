"""End-to-end tests for the overtime service HTTP API."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from overtime.api import create_app
from overtime.database import Database

ADMIN_TOKEN = "admin-token-123"


class OvertimeServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = tempfile.TemporaryDirectory()
        db_path = Path(self._tempdir.name) / "overtime.sqlite3"
        self.database = Database(db_path)
        self.database.initialize()
        self.app = create_app(database=self.database, admin_tokens=[ADMIN_TOKEN])
        self.manager_auth = ("manager@example.com", "ManagerPass1")
        self.member_auth = ("member@example.com", "MemberPass1")

    def tearDown(self) -> None:
        self._tempdir.cleanup()

    def _admin_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {ADMIN_TOKEN}"}

    def _bootstrap(self, client: TestClient) -> int:
        created = client.post(
            "/v1/admin/users",
            headers=self._admin_headers(),
            json={
                "email": self.manager_auth[0],
                "name": "Manager",
                "temp_password": self.manager_auth[1],
                "role": "manager",
            },
        )
        self.assertEqual(created.status_code, 201, created.text)

        member = client.post(
            "/v1/manager/members",
            auth=self.manager_auth,
            json={"email": self.member_auth[0], "name": "Member", "temp_password": self.member_auth[1]},
        )
        self.assertEqual(member.status_code, 201, member.text)
        return member.json()["id"]

    def test_overtime_lifecycle(self) -> None:
        with TestClient(self.app) as client:
            member_id = self._bootstrap(client)

            period = client.post(
                "/v1/manager/periods",
                auth=self.manager_auth,
                json={"user_id": member_id, "start_date": "2024-01-01", "end_date": "2024-01-31", "reason": "Release"},
            )
            self.assertEqual(period.status_code, 201, period.text)
            self.assertEqual(period.json()["reason"], "Release")

            created = client.post(
                "/v1/overtime",
                auth=self.member_auth,
                json={"date": "2024-01-09", "start_time": "19:00", "end_time": "22:00", "note": "deploy"},
            )
            self.assertEqual(created.status_code, 201, created.text)
            entry = created.json()
            self.assertEqual((entry["minutes_150"], entry["minutes_200"]), (120, 60))
            self.assertEqual(entry["status"], "pending")

            duplicate = client.post(
                "/v1/overtime",
                auth=self.member_auth,
                json={"date": "2024-01-09", "start_time": "06:00", "end_time": "07:00"},
            )
            self.assertEqual(duplicate.status_code, 409)
            self.assertEqual(duplicate.json()["code"], "conflict")

            closed = client.post(
                "/v1/overtime",
                auth=self.member_auth,
                json={"date": "2024-02-01", "start_time": "18:00", "end_time": "19:00"},
            )
            self.assertEqual(closed.status_code, 409)
            self.assertEqual(closed.json()["code"], "period_closed")

            approvals = client.get("/v1/manager/approvals", params={"month": "2024-01"}, auth=self.manager_auth)
            self.assertEqual(approvals.status_code, 200, approvals.text)
            self.assertEqual([item["user_name"] for item in approvals.json()], ["Member"])

            decided = client.post(
                "/v1/manager/approvals",
                auth=self.manager_auth,
                json={"entry_id": entry["id"], "action": "approve"},
            )
            self.assertEqual(decided.status_code, 200, decided.text)
            self.assertEqual(decided.json()["status"], "approved")

            totals = client.get("/v1/manager/totals", params={"month": "2024-01"}, auth=self.manager_auth)
            self.assertEqual(totals.status_code, 200, totals.text)
            payload = totals.json()
            self.assertEqual(payload["month"], "2024-01")
            self.assertEqual(payload["totals"][0]["approved_150"], 120)
            self.assertEqual(payload["totals"][0]["approved_200"], 60)

            own = client.get("/v1/overtime", params={"month": "2024-01"}, auth=self.member_auth)
            self.assertEqual(len(own.json()), 1)

            deleted = client.delete(f"/v1/overtime/{entry['id']}", auth=self.member_auth)
            self.assertEqual(deleted.status_code, 204)

            cleared = client.post("/v1/manager/overtime/clear", auth=self.manager_auth)
            self.assertEqual(cleared.json(), {"deleted": 0})

    def test_split_preview_and_validation_errors(self) -> None:
        with TestClient(self.app) as client:
            self._bootstrap(client)

            preview = client.post(
                "/v1/overtime/split",
                auth=self.member_auth,
                json={"date": "2024-01-07", "start_time": "10:00", "end_time": "12:00"},
            )
            self.assertEqual(preview.json(), {"minutes_150": 0, "minutes_200": 120, "total_minutes": 120})

            cross_midnight = client.post(
                "/v1/overtime/split",
                auth=self.member_auth,
                json={"date": "2024-01-02", "start_time": "23:00", "end_time": "01:00"},
            )
            self.assertEqual(cross_midnight.status_code, 400)
            self.assertEqual(cross_midnight.json()["code"], "validation_error")

            bad_month = client.get("/v1/manager/totals", params={"month": "2024-13"}, auth=self.manager_auth)
            self.assertEqual(bad_month.status_code, 400)

            trailing_newline = client.get("/v1/manager/totals", params={"month": "2024-01\n"}, auth=self.manager_auth)
            self.assertEqual(trailing_newline.status_code, 400)
            self.assertEqual(trailing_newline.json()["code"], "validation_error")

            non_ascii_time = client.post(
                "/v1/overtime/split",
                auth=self.member_auth,
                json={"date": "2024-01-02", "start_time": "\u0661\u0668:00", "end_time": "20:00"},
            )
            self.assertEqual(non_ascii_time.status_code, 422)

    def test_role_and_scope_errors(self) -> None:
        with TestClient(self.app) as client:
            member_id = self._bootstrap(client)

            forbidden = client.get("/v1/manager/totals", params={"month": "2024-01"}, auth=self.member_auth)
            self.assertEqual(forbidden.status_code, 403)

            outsider = client.post(
                "/v1/admin/users",
                headers=self._admin_headers(),
                json={"email": "outsider@example.com", "name": "Outsider", "temp_password": "Outsider1", "role": "manager"},
            )
            self.assertEqual(outsider.status_code, 201)
            foreign_period = client.post(
                "/v1/manager/periods",
                auth=("outsider@example.com", "Outsider1"),
                json={"user_id": member_id, "start_date": "2024-01-01", "end_date": "2024-01-31"},
            )
            self.assertEqual(foreign_period.status_code, 403)

            claim = client.put(f"/v1/manager/members/{member_id}", auth=("outsider@example.com", "Outsider1"))
            self.assertEqual(claim.status_code, 409)

            unauthenticated = client.get("/v1/me")
            self.assertEqual(unauthenticated.status_code, 401)
            wrong_password = client.get("/v1/me", auth=(self.member_auth[0], "nope"))
            self.assertEqual(wrong_password.status_code, 401)

            me = client.get("/v1/me", auth=self.member_auth)
            self.assertEqual(me.json()["role"], "member")

    def test_admin_routes_require_token(self) -> None:
        with TestClient(self.app) as client:
            missing = client.get("/v1/admin/users")
            self.assertEqual(missing.status_code, 401)
            wrong = client.get("/v1/admin/users", headers={"Authorization": "Bearer nope"})
            self.assertEqual(wrong.status_code, 403)

            self._bootstrap(client)
            listed = client.get("/v1/admin/users", headers=self._admin_headers())
            self.assertEqual(listed.status_code, 200)
            self.assertEqual({user["email"] for user in listed.json()}, {self.manager_auth[0], self.member_auth[0]})

            duplicate = client.post(
                "/v1/admin/users",
                headers=self._admin_headers(),
                json={"email": self.member_auth[0], "name": "Again", "temp_password": "Another1"},
            )
            self.assertEqual(duplicate.status_code, 409)

            missing_user = client.delete("/v1/admin/users/999", headers=self._admin_headers())
            self.assertEqual(missing_user.status_code, 404)

    def test_admin_routes_disabled_without_tokens(self) -> None:
        app = create_app(database=self.database, admin_tokens=[])
        with TestClient(app) as client:
            response = client.get("/v1/admin/users", headers=self._admin_headers())
            self.assertEqual(response.status_code, 503)

    def test_healthcheck(self) -> None:
        with TestClient(self.app) as client:
            response = client.get("/healthz")
            self.assertEqual(response.json(), {"status": "ok"})


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
