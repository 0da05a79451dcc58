"""
Church administration API: structure and user management by the Super Admin.
"""

import pytest

from churchdesk.models import db
from churchdesk.models.auth import User
from tests.factories import PASSWORD, auth_header, make_org


def _new_user(**overrides):
    data = {
        "name": "Nina New",
        "email": "nina@example.org",
        "password": "NinaPass99",
        "role": "Member",
    }
    data.update(overrides)
    return data


class TestChurchStructure:
    def test_get_church_with_tree(self, client, org):
        res = client.get(f"/api/v1/churches/{org.church.id}", headers=auth_header(org.member))
        assert res.status_code == 200
        body = res.get_json()
        assert body["subscription_status"] == "Trial"
        [section] = body["sections"]
        assert section["name"] == "Main"
        assert sorted(d["name"] for d in section["departments"]) == ["Music", "Youth"]

    def test_other_church_is_not_found(self, client, org):
        other = make_org(name="Other", prefix="Other ")
        res = client.get(f"/api/v1/churches/{org.church.id}", headers=auth_header(other.admin))
        assert res.status_code == 404

    def test_create_section_and_department(self, client, org):
        res = client.post(
            f"/api/v1/churches/{org.church.id}/sections", json={"name": "East Branch"},
            headers=auth_header(org.admin),
        )
        assert res.status_code == 201
        section = res.get_json()
        assert section["departments"] == []

        res = client.post(
            f"/api/v1/sections/{section['id']}/departments", json={"name": "Ushers"},
            headers=auth_header(org.admin),
        )
        assert res.status_code == 201
        assert res.get_json()["section_id"] == section["id"]

    def test_duplicate_names(self, client, org):
        res = client.post(
            f"/api/v1/churches/{org.church.id}/sections", json={"name": "Main"}, headers=auth_header(org.admin),
        )
        assert res.status_code == 409
        assert res.get_json()["details"]["field"] == "name"
        res = client.post(
            f"/api/v1/sections/{org.section.id}/departments", json={"name": "Youth"},
            headers=auth_header(org.admin),
        )
        assert res.status_code == 409

    def test_only_super_admin_changes_structure(self, client, org):
        res = client.post(
            f"/api/v1/churches/{org.church.id}/sections", json={"name": "X"}, headers=auth_header(org.president),
        )
        assert res.status_code == 403

    def test_name_required(self, client, org):
        res = client.post(
            f"/api/v1/churches/{org.church.id}/sections", json={}, headers=auth_header(org.admin),
        )
        assert res.status_code == 400


class TestUsers:
    def test_list_users(self, client, org):
        res = client.get(f"/api/v1/churches/{org.church.id}/users", headers=auth_header(org.admin))
        assert res.status_code == 200
        assert res.get_json()["total"] == 9
        assert all("password_hash" not in u for u in res.get_json()["items"])

    def test_create_member_who_can_log_in(self, client, org):
        res = client.post(
            "/api/v1/users",
            json=_new_user(section_id=org.section.id, department_id=org.music.id),
            headers=auth_header(org.admin),
        )
        assert res.status_code == 201
        body = res.get_json()
        assert body["church_id"] == org.church.id
        assert body["department_name"] == "Music"

        res = client.post("/api/v1/auth/login", json={"email": "nina@example.org", "password": "NinaPass99"})
        assert res.status_code == 200

    def test_church_wide_auditor(self, client, org):
        res = client.post(
            "/api/v1/users", json=_new_user(role="Auditor", email="aud@example.org"),
            headers=auth_header(org.admin),
        )
        assert res.status_code == 201
        assert res.get_json()["section_id"] is None

    @pytest.mark.parametrize("overrides", [
        {"role": "Member"},                                   # missing section/department
        {"role": "Finance"},                                  # missing section
        {"role": "Super Admin"},                              # not assignable
        {"role": "App Owner"},
        {"role": "Wizard"},
        {"email": "not-an-email"},
        {"password": "short"},
    ])
    def test_create_user_validation(self, client, org, overrides):
        res = client.post("/api/v1/users", json=_new_user(**overrides), headers=auth_header(org.admin))
        assert res.status_code == 422

    def test_department_must_belong_to_section(self, client, org):
        other = make_org(name="Other", prefix="Other ")
        res = client.post(
            "/api/v1/users",
            json=_new_user(section_id=org.section.id, department_id=other.youth.id),
            headers=auth_header(org.admin),
        )
        assert res.status_code == 422

    def test_duplicate_email(self, client, org):
        res = client.post(
            "/api/v1/users",
            json=_new_user(email="mary.member@example.org", section_id=org.section.id, department_id=org.youth.id),
            headers=auth_header(org.admin),
        )
        assert res.status_code == 409

    def test_only_super_admin_creates_users(self, client, org):
        res = client.post(
            "/api/v1/users",
            json=_new_user(section_id=org.section.id, department_id=org.youth.id),
            headers=auth_header(org.president),
        )
        assert res.status_code == 403
        assert db.session.query(User).filter_by(email="nina@example.org").count() == 0

    def test_missing_fields(self, client, org):
        res = client.post("/api/v1/users", json={"name": "x"}, headers=auth_header(org.admin))
        assert res.status_code == 400
        assert set(res.get_json()["details"]) == {"email", "password", "role"}


def test_fixture_password_is_shared(client, org):
    res = client.post("/api/v1/auth/login", json={"email": "ada.admin@example.org", "password": PASSWORD})
    assert res.status_code == 200
    assert res.get_json()["user"]["role"] == "Super Admin"
