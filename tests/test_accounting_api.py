"""
QLedger - Accounting API Tests

End-to-end tests through the HTTP surface.
"""

import pytest
import pytest_asyncio
from decimal import Decimal
from uuid import uuid4

from httpx import AsyncClient


API = "/api/v1/accounting"


@pytest_asyncio.fixture
async def headers(client: AsyncClient) -> dict:
    """Register a tenant and return gateway headers for it."""
    response = await client.post(f"{API}/tenants", json={"name_en": "Api Co", "name_ar": "شركة"})
    assert response.status_code == 201
    return {"X-Tenant-ID": response.json()["id"], "X-User-ID": str(uuid4())}


@pytest_asyncio.fixture
async def ledger(client: AsyncClient, headers: dict) -> dict:
    """Fiscal year 2024 plus a cash and a revenue account."""
    response = await client.post(
        f"{API}/fiscal-years",
        json={"name": "FY2024", "start_date": "2024-01-01", "end_date": "2024-12-31"},
        headers=headers,
    )
    assert response.status_code == 201

    accounts = {}
    for key, code, account_type in (("cash", "1110", "asset"), ("revenue", "4100", "revenue")):
        response = await client.post(
            f"{API}/accounts",
            json={"code": code, "name_en": key.title(), "name_ar": key, "type": account_type},
            headers=headers,
        )
        assert response.status_code == 201
        accounts[key] = response.json()
    return accounts


def journal_body(ledger: dict, debit: str = "150.00", credit: str = "150.00") -> dict:
    return {
        "description_ar": "قيد",
        "transaction_date": "2024-03-15",
        "lines": [
            {"account_id": ledger["cash"]["id"], "debit": debit},
            {"account_id": ledger["revenue"]["id"], "credit": credit},
        ],
    }


class TestHealthAndTenants:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_tenant_codes_are_sequential(self, client):
        first = await client.post(f"{API}/tenants", json={"name_en": "A", "name_ar": "أ"})
        second = await client.post(f"{API}/tenants", json={"name_en": "B", "name_ar": "ب"})

        assert first.json()["code"] == "TEN000001"
        assert second.json()["code"] == "TEN000002"


class TestRequestContext:

    @pytest.mark.asyncio
    async def test_missing_tenant_header(self, client):
        response = await client.get(f"{API}/accounts", headers={"X-User-ID": str(uuid4())})

        assert response.status_code == 401
        detail = response.json()["detail"]
        assert detail["code"] == "UNAUTHORIZED"
        assert detail["message"] == "Missing X-Tenant-ID header"
        assert "timestamp" in detail

    @pytest.mark.asyncio
    async def test_malformed_user_header(self, client):
        response = await client.get(
            f"{API}/accounts", headers={"X-Tenant-ID": str(uuid4()), "X-User-ID": "bob"},
        )

        assert response.status_code == 401
        assert response.json()["detail"]["message"] == "Invalid X-User-ID header"


class TestAccountEndpoints:

    @pytest.mark.asyncio
    async def test_tree_and_detail(self, client, headers, ledger):
        response = await client.post(
            f"{API}/accounts",
            json={"code": "1111", "name_en": "Petty", "name_ar": "عهدة", "type": "asset",
                  "parent_id": ledger["cash"]["id"]},
            headers=headers,
        )
        assert response.json()["level"] == 2

        tree = (await client.get(f"{API}/accounts", headers=headers)).json()
        assert [node["code"] for node in tree] == ["1110", "4100"]
        assert [child["code"] for child in tree[0]["children"]] == ["1111"]

        detail = (await client.get(f"{API}/accounts/{ledger['cash']['id']}", headers=headers)).json()
        assert detail["balance_type"] == "debit"
        assert [child["code"] for child in detail["children"]] == ["1111"]

    @pytest.mark.asyncio
    async def test_duplicate_code_conflict(self, client, headers, ledger):
        response = await client.post(
            f"{API}/accounts",
            json={"code": "1110", "name_en": "Again", "name_ar": "مكرر", "type": "asset"},
            headers=headers,
        )

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "DUPLICATE_ENTRY"

    @pytest.mark.asyncio
    async def test_by_code_and_by_type(self, client, headers, ledger):
        response = await client.get(f"{API}/accounts/by-code/4100", headers=headers)
        assert response.json()["id"] == ledger["revenue"]["id"]

        response = await client.get(f"{API}/accounts/by-type/asset", headers=headers)
        assert [a["code"] for a in response.json()] == ["1110"]

        response = await client.get(f"{API}/accounts/by-code/0000", headers=headers)
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "ACCOUNT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_patch_and_delete(self, client, headers, ledger):
        response = await client.patch(
            f"{API}/accounts/{ledger['revenue']['id']}", json={"name_en": "Sales"}, headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["name_en"] == "Sales"

        response = await client.patch(
            f"{API}/accounts/{ledger['revenue']['id']}", json={"code": "9"}, headers=headers,
        )
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

        response = await client.patch(
            f"{API}/accounts/{ledger['revenue']['id']}", json={"is_active": None}, headers=headers,
        )
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

        response = await client.delete(f"{API}/accounts/{ledger['revenue']['id']}", headers=headers)
        assert response.status_code == 204

    @pytest.mark.asyncio
    async def test_seed_default(self, client, headers):
        response = await client.post(f"{API}/accounts/seed-default", headers=headers)
        assert response.status_code == 201
        assert len(response.json()) > 20

        again = await client.post(f"{API}/accounts/seed-default", headers=headers)
        assert again.status_code == 409


class TestFiscalEndpoints:

    @pytest.mark.asyncio
    async def test_period_lookup_and_lock(self, client, headers, ledger):
        response = await client.get(f"{API}/fiscal-periods/for-date", params={"on": "2024-03-15"}, headers=headers)
        assert response.status_code == 200
        period = response.json()
        assert period["period_number"] == 3

        locked = await client.post(f"{API}/fiscal-periods/{period['id']}/lock", headers=headers)
        assert locked.json()["is_locked"] is True

        response = await client.post(f"{API}/journals", json=journal_body(ledger), headers=headers)
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "PERIOD_LOCKED"

        unlocked = await client.post(f"{API}/fiscal-periods/{period['id']}/unlock", headers=headers)
        assert unlocked.json()["is_locked"] is False

    @pytest.mark.asyncio
    async def test_no_period_for_date(self, client, headers, ledger):
        response = await client.get(f"{API}/fiscal-periods/for-date", params={"on": "2030-01-01"}, headers=headers)

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "FISCAL_PERIOD_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_list_periods(self, client, headers, ledger):
        response = await client.get(f"{API}/fiscal-periods", headers=headers)
        assert len(response.json()) == 12


class TestJournalEndpoints:

    @pytest.mark.asyncio
    async def test_post_and_balance(self, client, headers, ledger):
        response = await client.post(f"{API}/journals", json=journal_body(ledger), headers=headers)
        assert response.status_code == 201
        journal = response.json()
        assert journal["status"] == "draft"
        assert journal["journal_number"] == "GN000001"
        assert Decimal(journal["total_debit"]) == Decimal("150")

        for action, status in (("submit", "submitted"), ("approve", "approved"), ("post", "posted")):
            response = await client.post(f"{API}/journals/{journal['id']}/{action}", headers=headers)
            assert response.status_code == 200
            assert response.json()["status"] == status

        response = await client.get(f"{API}/accounts/{ledger['cash']['id']}/balance", headers=headers)
        balance = response.json()
        assert Decimal(balance["balance"]) == Decimal("150")
        assert balance["balance_type"] == "debit"

        history = (await client.get(f"{API}/journals/{journal['id']}/history", headers=headers)).json()
        assert [h["action"] for h in history] == ["created", "submitted", "approved", "posted"]

    @pytest.mark.asyncio
    async def test_unbalanced_error_body(self, client, headers, ledger):
        response = await client.post(
            f"{API}/journals", json=journal_body(ledger, debit="100", credit="90"), headers=headers,
        )

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "UNBALANCED_JOURNAL"
        assert detail["message"] == "Debit must equal credit"
        assert detail["details"]["total_debit"] == "100.00"

    @pytest.mark.asyncio
    async def test_invalid_transition(self, client, headers, ledger):
        journal = (await client.post(f"{API}/journals", json=journal_body(ledger), headers=headers)).json()

        response = await client.post(f"{API}/journals/{journal['id']}/post", headers=headers)

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_STATE_TRANSITION"

    @pytest.mark.asyncio
    async def test_edit_and_delete_draft(self, client, headers, ledger):
        journal = (await client.post(f"{API}/journals", json=journal_body(ledger), headers=headers)).json()

        response = await client.patch(
            f"{API}/journals/{journal['id']}", json={"notes": "checked"}, headers=headers,
        )
        assert response.json()["notes"] == "checked"

        body = journal_body(ledger, debit="75", credit="75")
        response = await client.put(
            f"{API}/journals/{journal['id']}/lines", json={"lines": body["lines"]}, headers=headers,
        )
        assert Decimal(response.json()["total_credit"]) == Decimal("75")

        response = await client.delete(f"{API}/journals/{journal['id']}", headers=headers)
        assert response.status_code == 204

        response = await client.get(f"{API}/journals/{journal['id']}", headers=headers)
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "JOURNAL_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_reverse(self, client, headers, ledger):
        journal = (await client.post(f"{API}/journals", json=journal_body(ledger), headers=headers)).json()
        for action in ("submit", "approve", "post"):
            await client.post(f"{API}/journals/{journal['id']}/{action}", headers=headers)

        response = await client.post(
            f"{API}/journals/{journal['id']}/reverse",
            json={"reversal_date": "2024-04-01", "reason": "Duplicate"},
            headers=headers,
        )
        assert response.status_code == 200
        mirror = response.json()
        assert mirror["status"] == "posted"
        assert mirror["reference_number"] == journal["journal_number"]

        original = (await client.get(f"{API}/journals/{journal['id']}", headers=headers)).json()
        assert original["status"] == "reversed"
        assert original["reversal_journal_id"] == mirror["id"]

        listed = (await client.get(f"{API}/journals", params={"status": "reversed"}, headers=headers)).json()
        assert [j["id"] for j in listed] == [journal["id"]]

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_see_journal(self, client, headers, ledger):
        journal = (await client.post(f"{API}/journals", json=journal_body(ledger), headers=headers)).json()
        outsider = {"X-Tenant-ID": str(uuid4()), "X-User-ID": str(uuid4())}

        response = await client.get(f"{API}/journals/{journal['id']}", headers=outsider)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_inverted_date_range(self, client, headers):
        response = await client.get(
            f"{API}/journals",
            params={"start_date": "2024-02-01", "end_date": "2024-01-01"},
            headers=headers,
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_DATE_RANGE"

    @pytest.mark.asyncio
    async def test_empty_lines_rejected(self, client, headers, ledger):
        body = journal_body(ledger)
        body["lines"] = []

        response = await client.post(f"{API}/journals", json=body, headers=headers)

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"
