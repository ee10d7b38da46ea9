"""
tests/test_api_vendors.py -- Integration tests for /api/vendors, /api/users and /api/dashboard.

Coverage:
  - Vendor directory: list (optional auth), filters, search, get, completion
  - Admin verification-status update and its role guard
  - Ownership: GET /api/users/{id} for owner, admin, and a stranger
  - Role dashboards: a vendor calling the planner dashboard gets a 403 naming both roles
"""

from __future__ import annotations


def _set_profile(accounts, info: dict, body: dict) -> None:
    resp = accounts.client.put("/api/auth/profile", json=body, headers=info["headers"])
    assert resp.status_code == 200, resp.text


class TestVendorDirectory:
    def test_list_is_public_and_hides_contact_details(self, accounts) -> None:
        vendor = accounts.verified("vendor")
        resp = accounts.client.get("/api/vendors")
        assert resp.status_code == 200, resp.text
        rows = resp.json()["data"]["vendors"]
        mine = next(r for r in rows if r["id"] == vendor["userId"])
        assert "email" not in mine
        assert mine["isOwnProfile"] is False

    def test_list_marks_own_profile_for_authenticated_vendor(self, accounts) -> None:
        vendor = accounts.verified("vendor")
        resp = accounts.client.get("/api/vendors", headers=vendor["headers"])
        rows = {r["id"]: r for r in resp.json()["data"]["vendors"]}
        assert rows[vendor["userId"]]["isOwnProfile"] is True

    def test_list_with_bad_token_still_public(self, accounts) -> None:
        accounts.verified("vendor")
        resp = accounts.client.get("/api/vendors", headers={"Authorization": "Bearer broken"})
        assert resp.status_code == 200

    def test_list_survives_store_failure_while_resolving_caller(self, accounts, monkeypatch) -> None:
        from sqlalchemy.exc import OperationalError

        vendor = accounts.verified("vendor")

        def broken_lookup(user_id):
            raise OperationalError("SELECT", {}, Exception("locked"))

        monkeypatch.setattr(accounts.store, "get_by_id", broken_lookup)
        resp = accounts.client.get("/api/vendors", headers=vendor["headers"])
        assert resp.status_code == 200, resp.text
        rows = {r["id"]: r for r in resp.json()["data"]["vendors"]}
        assert rows[vendor["userId"]]["isOwnProfile"] is False

    def test_list_excludes_planners(self, accounts) -> None:
        planner = accounts.verified("planner")
        ids = {r["id"] for r in accounts.client.get("/api/vendors").json()["data"]["vendors"]}
        assert planner["userId"] not in ids

    def test_filter_by_category_and_city(self, accounts) -> None:
        caterer = accounts.verified("vendor")
        _set_profile(accounts, caterer, {"category": "Catering-Filter", "address": {"city": "Ibadan"}})
        other = accounts.verified("vendor")
        _set_profile(accounts, other, {"category": "Catering-Filter", "address": {"city": "Kano"}})

        resp = accounts.client.get("/api/vendors", params={"category": "Catering-Filter", "city": "Ibadan"})
        assert resp.status_code == 200
        assert [r["id"] for r in resp.json()["data"]["vendors"]] == [caterer["userId"]]

    def test_search(self, accounts) -> None:
        vendor = accounts.verified("vendor")
        _set_profile(accounts, vendor, {"businessName": "Zanzibar Chairs Unique"})
        resp = accounts.client.get("/api/vendors/search", params={"q": "zanzibar chairs"})
        assert resp.status_code == 200
        assert [r["id"] for r in resp.json()["data"]["vendors"]] == [vendor["userId"]]

    def test_search_without_query_is_400(self, api_client) -> None:
        client, _mailer, _store = api_client
        resp = client.get("/api/vendors/search")
        assert resp.status_code == 400
        assert resp.json()["message"] == "Search query is required"

    def test_get_vendor(self, accounts) -> None:
        vendor = accounts.verified("vendor")
        resp = accounts.client.get(f"/api/vendors/{vendor['userId']}")
        assert resp.status_code == 200
        assert resp.json()["data"]["vendor"]["profile"]["verificationStatus"] == "pending"

    def test_get_planner_as_vendor_is_404(self, accounts) -> None:
        planner = accounts.verified("planner")
        resp = accounts.client.get(f"/api/vendors/{planner['userId']}")
        assert resp.status_code == 404

    def test_completion_for_vendor(self, accounts) -> None:
        vendor = accounts.verified("vendor")
        resp = accounts.client.get("/api/vendors/profile/completion", headers=vendor["headers"])
        assert resp.status_code == 200, resp.text
        data = resp.json()["data"]
        assert data["percentage"] == 20
        assert data["completed"] is False
        assert "Business Description" in data["missingFields"]

    def test_completion_for_planner_is_403(self, accounts) -> None:
        planner = accounts.verified("planner")
        resp = accounts.client.get("/api/vendors/profile/completion", headers=planner["headers"])
        assert resp.status_code == 403
        assert resp.json()["message"] == "Access denied. Required role: vendor. Your role: planner"


class TestVerificationStatus:
    def test_admin_approves_vendor(self, accounts) -> None:
        vendor = accounts.verified("vendor")
        admin = accounts.admin()
        resp = accounts.client.put(
            f"/api/vendors/{vendor['userId']}/verification",
            json={"status": "approved"},
            headers=admin["headers"],
        )
        assert resp.status_code == 200, resp.text
        profile = resp.json()["data"]["vendor"]["profile"]
        assert profile["verified"] is True
        assert profile["verifiedBy"] == admin["userId"]

        listed = accounts.client.get("/api/vendors", params={"verified": "true"}).json()["data"]["vendors"]
        assert vendor["userId"] in {r["id"] for r in listed}

    def test_invalid_status_is_400(self, accounts) -> None:
        vendor = accounts.verified("vendor")
        admin = accounts.admin()
        resp = accounts.client.put(
            f"/api/vendors/{vendor['userId']}/verification",
            json={"status": "maybe"},
            headers=admin["headers"],
        )
        assert resp.status_code == 400

    def test_unknown_vendor_is_404(self, accounts) -> None:
        admin = accounts.admin()
        resp = accounts.client.put(
            "/api/vendors/no-such-vendor/verification",
            json={"status": "approved"},
            headers=admin["headers"],
        )
        assert resp.status_code == 404

    def test_vendor_cannot_verify_self(self, accounts) -> None:
        vendor = accounts.verified("vendor")
        resp = accounts.client.put(
            f"/api/vendors/{vendor['userId']}/verification",
            json={"status": "approved"},
            headers=vendor["headers"],
        )
        assert resp.status_code == 403
        assert resp.json()["message"] == "Access denied. Required role: admin. Your role: vendor"


class TestOwnership:
    def test_owner_reads_own_record(self, accounts) -> None:
        planner = accounts.verified("planner")
        resp = accounts.client.get(f"/api/users/{planner['userId']}", headers=planner["headers"])
        assert resp.status_code == 200, resp.text
        assert resp.json()["data"]["user"]["email"] == planner["email"]

    def test_stranger_is_403(self, accounts) -> None:
        planner = accounts.verified("planner")
        stranger = accounts.verified("vendor")
        resp = accounts.client.get(f"/api/users/{planner['userId']}", headers=stranger["headers"])
        assert resp.status_code == 403
        assert resp.json()["message"] == "Access denied. You can only access your own resources."

    def test_admin_reads_anyone(self, accounts) -> None:
        planner = accounts.verified("planner")
        admin = accounts.admin()
        resp = accounts.client.get(f"/api/users/{planner['userId']}", headers=admin["headers"])
        assert resp.status_code == 200

    def test_admin_unknown_id_is_404(self, accounts) -> None:
        admin = accounts.admin()
        resp = accounts.client.get("/api/users/nobody-here", headers=admin["headers"])
        assert resp.status_code == 404

    def test_requires_auth(self, api_client) -> None:
        client, _mailer, _store = api_client
        assert client.get("/api/users/anything").status_code == 401


class TestDashboards:
    def test_planner_dashboard(self, accounts) -> None:
        planner = accounts.verified("planner")
        resp = accounts.client.get("/api/dashboard/planner", headers=planner["headers"])
        assert resp.status_code == 200, resp.text
        data = resp.json()["data"]
        assert data["eventsCount"] == 0
        assert data["unreadNotifications"] == 0

    def test_vendor_on_planner_route_is_403_naming_roles(self, accounts) -> None:
        vendor = accounts.verified("vendor")
        resp = accounts.client.get("/api/dashboard/planner", headers=vendor["headers"])
        assert resp.status_code == 403
        body = resp.json()
        assert body["success"] is False
        assert body["message"] == "Access denied. Required role: planner. Your role: vendor"

    def test_vendor_dashboard(self, accounts) -> None:
        vendor = accounts.verified("vendor")
        resp = accounts.client.get("/api/dashboard/vendor", headers=vendor["headers"])
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["verificationStatus"] == "pending"
        assert data["profileCompletionPercentage"] == 20

    def test_admin_is_not_a_planner(self, accounts) -> None:
        admin = accounts.admin()
        resp = accounts.client.get("/api/dashboard/planner", headers=admin["headers"])
        assert resp.status_code == 403
