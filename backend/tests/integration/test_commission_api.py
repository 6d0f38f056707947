"""
HTTP tests for the commission blueprint against the in-memory database.

Money travels as strings; the tenant comes from X-Tenant-ID and the acting
user from X-User-ID.
"""

import uuid

import pytest

API = "/api/commissions"


@pytest.fixture
def headers(tenant_id, user_id):
    return {"X-Tenant-ID": tenant_id, "X-User-ID": user_id}


def _data(resp):
    payload = resp.get_json()
    assert payload is not None
    return payload.get("data")


def _create_advance(client, headers, professional_id, amount="80.00"):
    resp = client.post(
        f"{API}/advances",
        json={"professional_id": professional_id, "amount": amount},
        headers=headers,
    )
    assert resp.status_code == 201
    return _data(resp)["id"]


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.get_json()["status"] == "healthy"


class TestRulesApi:
    def test_create_and_resolve_global_rule(self, client, headers):
        resp = client.post(
            f"{API}/rules",
            json={
                "name": "Padrão",
                "type": "PERCENTUAL",
                "default_rate": "40",
                "effective_from": "2025-01-01",
            },
            headers=headers,
        )
        assert resp.status_code == 201
        rule = _data(resp)
        assert rule["default_rate"] == "40.00"
        assert rule["is_active"] is True

        resp = client.get(
            f"{API}/rules/resolve", query_string={"on_date": "2025-03-10"}, headers=headers
        )

        assert resp.status_code == 200
        resolved = _data(resp)
        assert resolved["source"] == "REGRA"
        assert resolved["rate"] == "40.00"
        assert resolved["rule"]["id"] == rule["id"]

    def test_resolve_without_rules(self, client, headers):
        resp = client.get(f"{API}/rules/resolve", headers=headers)

        assert resp.status_code == 200
        assert resp.get_json()["success"] is True
        assert "data" not in resp.get_json()

    def test_invalid_rule_is_rejected(self, client, headers):
        resp = client.post(
            f"{API}/rules",
            json={"name": "", "type": "OUTRO", "default_rate": "-1"},
            headers=headers,
        )

        assert resp.status_code == 400
        data = _data(resp)
        assert data["code"] == "validation_error"
        assert len(data["errors"]) >= 2

    def test_preview_requires_gross_value(self, client, headers):
        resp = client.get(f"{API}/rules/{uuid.uuid4()}/preview", headers=headers)

        assert resp.status_code == 400

    def test_unknown_rule(self, client, headers):
        resp = client.get(f"{API}/rules/{uuid.uuid4()}", headers=headers)

        assert resp.status_code == 404
        assert _data(resp)["code"] == "commission_rule_not_found"


class TestItemsApi:
    def test_create_item_computes_value(self, client, headers, professional_id):
        resp = client.post(
            f"{API}/items",
            json={
                "professional_id": professional_id,
                "gross_value": "33.33",
                "commission_rate": "33.33",
                "commission_type": "PERCENTUAL",
                "reference_date": "2025-03-10",
            },
            headers=headers,
        )

        assert resp.status_code == 201
        item = _data(resp)
        assert item["commission_value"] == "11.11"
        assert item["status"] == "PENDENTE"

    def test_float_money_is_rejected(self, client, headers, professional_id):
        resp = client.post(
            f"{API}/items",
            json={
                "professional_id": professional_id,
                "gross_value": 200.5,
                "commission_rate": "50",
                "commission_type": "PERCENTUAL",
            },
            headers=headers,
        )

        assert resp.status_code == 400

    def test_missing_required_fields(self, client, headers):
        resp = client.post(f"{API}/items", json={}, headers=headers)

        assert resp.status_code == 400
        assert _data(resp)["code"] == "validation_error"

    def test_cancel_unknown_command_item(self, client, headers):
        resp = client.delete(
            f"{API}/items/by-command-item/{uuid.uuid4()}", headers=headers
        )

        assert resp.status_code == 200
        assert _data(resp) == {"removed": False}


class TestAdvancesApi:
    def test_approve_advance(self, client, headers, professional_id, user_id):
        advance_id = _create_advance(client, headers, professional_id)

        resp = client.post(f"{API}/advances/{advance_id}/approve", headers=headers)

        assert resp.status_code == 200
        advance = _data(resp)
        assert advance["status"] == "APPROVED"
        assert advance["approved_by"] == user_id

        resp = client.post(f"{API}/advances/{advance_id}/approve", headers=headers)
        assert resp.status_code == 409
        assert _data(resp)["code"] == "advance_cannot_approve"

    def test_reject_requires_reason(self, client, headers, professional_id):
        advance_id = _create_advance(client, headers, professional_id)

        resp = client.post(
            f"{API}/advances/{advance_id}/reject", json={"reason": "  "}, headers=headers
        )
        assert resp.status_code == 400

        resp = client.get(f"{API}/advances/{advance_id}", headers=headers)
        assert _data(resp)["status"] == "PENDING"

    def test_reject_with_reason(self, client, headers, professional_id):
        advance_id = _create_advance(client, headers, professional_id)

        resp = client.post(
            f"{API}/advances/{advance_id}/reject",
            json={"reason": "Limite excedido"},
            headers=headers,
        )

        assert resp.status_code == 200
        assert _data(resp)["status"] == "REJECTED"
        assert _data(resp)["rejection_reason"] == "Limite excedido"

    def test_sub_cent_amount_is_rejected(self, client, headers, professional_id):
        resp = client.post(
            f"{API}/advances",
            json={"professional_id": professional_id, "amount": "0.004"},
            headers=headers,
        )

        assert resp.status_code == 400
        assert _data(resp)["code"] == "validation_error"
        resp = client.get(f"{API}/advances", headers=headers)
        assert _data(resp) == []

    def test_balance(self, client, headers, professional_id):
        approved = _create_advance(client, headers, professional_id, "50.00")
        _create_advance(client, headers, professional_id, "30.00")
        client.post(f"{API}/advances/{approved}/approve", headers=headers)

        resp = client.get(f"{API}/advances/balance/{professional_id}", headers=headers)

        assert _data(resp) == {"approved": "50.00", "pending": "30.00"}


class TestPeriodsApi:
    def test_open_and_close_period(self, client, headers, professional_id):
        client.post(
            f"{API}/items",
            json={
                "professional_id": professional_id,
                "gross_value": "200.00",
                "commission_rate": "50",
                "commission_type": "PERCENTUAL",
                "reference_date": "2025-03-12",
            },
            headers=headers,
        )
        advance_id = _create_advance(client, headers, professional_id)
        client.post(f"{API}/advances/{advance_id}/approve", headers=headers)

        resp = client.post(
            f"{API}/periods",
            json={"professional_id": professional_id, "reference_month": "2025-03"},
            headers=headers,
        )
        assert resp.status_code == 200
        period_id = _data(resp)["id"]
        assert _data(resp)["status"] == "ABERTO"

        resp = client.post(f"{API}/periods/{period_id}/close", headers=headers)

        assert resp.status_code == 200
        result = _data(resp)
        assert result["period"]["status"] == "FECHADO"
        assert result["period"]["total_net"] == "20.00"
        assert result["advances_deducted"] == 1
        assert result["total_advances_amount"] == "80.00"
        assert result["payable"]["amount"] == "20.00"
        assert result["payable"]["description"] == "Comissão 2025-03 - Profissional"
        assert result["period"]["conta_pagar_id"] == result["payable"]["id"]

        resp = client.post(f"{API}/periods/{period_id}/close", headers=headers)
        assert resp.status_code == 409
        assert _data(resp)["code"] == "period_cannot_close"

        resp = client.post(f"{API}/periods/{period_id}/pay", headers=headers)
        assert resp.status_code == 200
        assert _data(resp)["status"] == "PAGO"

    def test_open_period_is_reused(self, client, headers, professional_id):
        body = {"professional_id": professional_id, "reference_month": "2025-03"}

        first = _data(client.post(f"{API}/periods", json=body, headers=headers))
        second = _data(client.post(f"{API}/periods", json=body, headers=headers))

        assert first["id"] == second["id"]

    def test_unknown_period(self, client, headers):
        resp = client.get(f"{API}/periods/{uuid.uuid4()}", headers=headers)

        assert resp.status_code == 404
        assert _data(resp)["code"] == "commission_period_not_found"

    def test_missing_tenant(self, client, professional_id):
        resp = client.post(
            f"{API}/periods",
            json={"professional_id": professional_id, "reference_month": "2025-03"},
        )

        assert resp.status_code == 400

    def test_reconcile_requires_closed_period(self, client, headers, professional_id):
        body = {"professional_id": professional_id, "reference_month": "2025-03"}
        period_id = _data(client.post(f"{API}/periods", json=body, headers=headers))["id"]

        resp = client.post(f"{API}/periods/{period_id}/reconcile", headers=headers)
        assert resp.status_code == 409
        assert _data(resp)["code"] == "period_cannot_reconcile"

        client.post(f"{API}/periods/{period_id}/close", headers=headers)
        resp = client.post(f"{API}/periods/{period_id}/reconcile", headers=headers)

        assert resp.status_code == 200
        assert _data(resp)["period"]["status"] == "FECHADO"
        assert _data(resp)["payable"] is None
