"""
Audit trail projection: newest-first activity across a church.
"""

from datetime import datetime

import pytest

from churchdesk.core.exceptions import ValidationError
from churchdesk.services import audit_service
from tests.factories import act, add_section, auth_header, caller_for, make_org, submit


@pytest.fixture()
def history(client, org):
    first = submit(client, org.member, title="Hymn books")
    act(client, org.dept_head, first["id"], "APPROVE")
    second = submit(client, org.music_member, title="Guitar strings")
    act(client, org.music_head, second["id"], "REJECT", comments="Use the old ones")
    return first, second


class TestAuditTrail:
    def test_newest_first_with_requisition_context(self, client, org, history):
        res = client.get(f"/api/v1/churches/{org.church.id}/audit-logs", headers=auth_header(org.admin))
        assert res.status_code == 200
        items = res.get_json()["items"]
        assert len(items) == 4
        stamps = [datetime.fromisoformat(i["timestamp"]) for i in items]
        assert stamps == sorted(stamps, reverse=True)
        assert items[0]["event"] == "REJECT"
        assert items[0]["requisition_title"] == "Guitar strings"
        assert items[0]["details"] == "Use the old ones"
        assert items[-1]["event"] == "CREATE"

    def test_limit(self, client, org, history):
        res = client.get(
            f"/api/v1/churches/{org.church.id}/audit-logs", query_string={"limit": 2},
            headers=auth_header(org.church_auditor),
        )
        assert len(res.get_json()["items"]) == 2

    def test_limit_must_be_positive(self, org):
        with pytest.raises(ValidationError):
            audit_service.list_for_church(caller_for(org.admin), org.church.id, limit=0)

    def test_section_auditor_sees_only_section(self, client, org, history):
        east = add_section(org, "East")
        submit(client, east.member, title="East roof")
        church_wide = client.get(
            f"/api/v1/churches/{org.church.id}/audit-logs", headers=auth_header(org.church_auditor),
        ).get_json()["items"]
        section_only = client.get(
            f"/api/v1/churches/{org.church.id}/audit-logs", headers=auth_header(org.auditor),
        ).get_json()["items"]
        assert len(church_wide) == 5
        assert len(section_only) == 4
        assert "East roof" not in {i["requisition_title"] for i in section_only}

    @pytest.mark.parametrize("role_attr", ["member", "dept_head", "president", "finance"])
    def test_other_roles_forbidden(self, client, org, role_attr):
        res = client.get(
            f"/api/v1/churches/{org.church.id}/audit-logs", headers=auth_header(getattr(org, role_attr)),
        )
        assert res.status_code == 403

    def test_other_church_not_found(self, client, org, history):
        other = make_org(name="Other", prefix="Other ")
        res = client.get(f"/api/v1/churches/{org.church.id}/audit-logs", headers=auth_header(other.admin))
        assert res.status_code == 404

    def test_app_owner_reads_any_church(self, client, org, history, app_owner):
        res = client.get(f"/api/v1/churches/{org.church.id}/audit-logs", headers=auth_header(app_owner))
        assert res.status_code == 200
        assert res.get_json()["total"] == 4
