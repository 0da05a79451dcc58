"""
Finance dashboards and the section cash book.
"""

from datetime import date, timedelta

from tests.factories import act, add_section, auth_header, payment, submit


def _post_entry(client, user, section_id, **body):
    data = {"direction": "inflow", "amount": "1000", "description": "Sunday offering"}
    data.update(body)
    return client.post(f"/api/v1/sections/{section_id}/ledger-entries", json=data, headers=auth_header(user))


def _disbursed(client, org, amount="750"):
    req = submit(client, org.member, amount_requested=amount)
    act(client, org.dept_head, req["id"], "APPROVE")
    act(client, org.president, req["id"], "APPROVE")
    client.post(
        f"/api/v1/requisitions/{req['id']}/disburse",
        json={"payment_details": payment(amount_paid=amount)},
        headers=auth_header(org.finance),
    )
    return req


class TestFinancialSummary:
    def test_balance_is_inflow_minus_outflow(self, client, org):
        assert _post_entry(client, org.finance, org.section.id, amount="2500.25").status_code == 201
        _post_entry(client, org.finance, org.section.id, direction="outflow", amount="100", description="Fuel")
        _disbursed(client, org, amount="400")

        res = client.get(f"/api/v1/financial-summary/{org.section.id}", headers=auth_header(org.president))
        assert res.status_code == 200
        body = res.get_json()
        assert body["total_inflow"] == 2500.25
        assert body["total_outflow"] == 500.0
        assert body["balance"] == 2000.25

    def test_empty_section(self, client, org):
        body = client.get(
            f"/api/v1/financial-summary/{org.section.id}", headers=auth_header(org.finance),
        ).get_json()
        assert body == {"section_id": org.section.id, "balance": 0.0, "total_inflow": 0.0, "total_outflow": 0.0}

    def test_member_forbidden(self, client, org):
        res = client.get(f"/api/v1/financial-summary/{org.section.id}", headers=auth_header(org.member))
        assert res.status_code == 403

    def test_other_section_finance_forbidden(self, client, org):
        east = add_section(org, "East")
        res = client.get(f"/api/v1/financial-summary/{org.section.id}", headers=auth_header(east.finance))
        assert res.status_code == 403

    def test_unknown_section(self, client, org):
        res = client.get("/api/v1/financial-summary/nope", headers=auth_header(org.admin))
        assert res.status_code == 404


class TestFinanceOverview:
    def test_queues(self, client, org):
        waiting = submit(client, org.member, title="Chairs")
        act(client, org.dept_head, waiting["id"], "APPROVE")
        act(client, org.president, waiting["id"], "APPROVE")
        paid = _disbursed(client, org, amount="300")
        client.post(
            f"/api/v1/requisitions/{paid['id']}/upload-receipt", json={"name": "r.pdf"},
            headers=auth_header(org.member),
        )

        res = client.get(f"/api/v1/finance-overview/{org.section.id}", headers=auth_header(org.finance))
        assert res.status_code == 200
        body = res.get_json()
        assert [r["id"] for r in body["awaiting_disbursement"]] == [waiting["id"]]
        assert [r["id"] for r in body["pending_verification"]] == [paid["id"]]
        assert body["recently_completed"] == []
        assert body["total_disbursed"] == 300.0


class TestLedger:
    def test_only_section_finance_records(self, client, org):
        assert _post_entry(client, org.president, org.section.id).status_code == 403
        east = add_section(org, "East")
        assert _post_entry(client, east.finance, org.section.id).status_code == 403

    def test_validation(self, client, org):
        assert _post_entry(client, org.finance, org.section.id, direction="sideways").status_code == 422
        assert _post_entry(client, org.finance, org.section.id, amount="-5").status_code == 422
        assert _post_entry(client, org.finance, org.section.id, description="").status_code == 422
        assert _post_entry(client, org.finance, org.section.id, amount="0.001").status_code == 422
        assert _post_entry(client, org.finance, org.section.id, amount="1e30").status_code == 422

    def test_list_with_date_window(self, client, org):
        today = date.today()
        _post_entry(client, org.finance, org.section.id, entry_date=(today - timedelta(days=40)).isoformat())
        _post_entry(client, org.finance, org.section.id, entry_date=today.isoformat(), description="Tithe")

        res = client.get(
            f"/api/v1/sections/{org.section.id}/ledger-entries",
            query_string={"from": (today - timedelta(days=7)).isoformat()},
            headers=auth_header(org.auditor),
        )
        assert res.status_code == 200
        items = res.get_json()["items"]
        assert [e["description"] for e in items] == ["Tithe"]

        res = client.get(f"/api/v1/sections/{org.section.id}/ledger-entries", headers=auth_header(org.finance))
        assert res.get_json()["total"] == 2


class TestDashboard:
    def test_counts_follow_visibility(self, client, org):
        submit(client, org.member, amount_requested="100")
        submit(client, org.music_member, amount_requested="250")
        approved = submit(client, org.member, amount_requested="50")
        act(client, org.dept_head, approved["id"], "APPROVE")
        act(client, org.president, approved["id"], "APPROVE")

        body = client.get("/api/v1/dashboard", headers=auth_header(org.president)).get_json()
        assert body["total"] == 3
        assert body["pending"] == 2
        assert body["awaiting_payment"] == 1
        assert body["total_amount"] == 400.0
        assert body["status_counts"]["Approved by Section President"] == 1

        body = client.get("/api/v1/dashboard", headers=auth_header(org.member)).get_json()
        assert body["total"] == 2
        assert body["total_amount"] == 150.0

    def test_section_filter(self, client, org):
        submit(client, org.member)
        east = add_section(org, "East")
        submit(client, east.member, title="East roof")
        body = client.get(
            "/api/v1/dashboard", query_string={"section_id": east.section.id}, headers=auth_header(org.admin),
        ).get_json()
        assert body["total"] == 1
