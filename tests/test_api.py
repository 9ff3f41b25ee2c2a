"""HTTP surface: status codes, payload shapes and access control."""

import pytest

from conftest import auth, make_order, make_supplier
from utils import email


def _pay(client, supplier_id, refs, key, headers=None):
    return client.post(
        f"/api/suppliers/{supplier_id}/payouts",
        json={
            "itemRefs": [{"orderId": o, "itemId": i} for o, i in refs],
            "idempotencyKey": key,
        },
        headers=headers or auth("admin"),
    )


class TestPayoutScenarios:
    def test_end_to_end(self, client, db):
        supplier = make_supplier(db)
        a, b = make_order(db, supplier, [10, 20])

        # 1. balance before payout
        res = client.get(f"/api/suppliers/{supplier.id}/balance", headers=auth("staff"))
        assert res.status_code == 200
        body = res.json()
        assert body["totalEarned"] == 30.0
        assert body["totalPaid"] == 0.0
        assert body["pendingAmount"] == 30.0
        assert body["pendingItemsCount"] == 2
        assert [(p["orderId"], p["itemId"]) for p in body["pendingItems"]] == [a, b]
        assert set(body["pendingItems"][0]) >= {"orderId", "itemId", "name", "quantity", "unitPrice", "total"}

        # 2. pay both
        res = _pay(client, supplier.id, [a, b], "k1")
        assert res.status_code == 201
        created = res.json()
        assert created["amount"] == 30.0
        assert created["payoutId"]

        # 3. balance after payout
        body = client.get(f"/api/suppliers/{supplier.id}/balance", headers=auth("admin")).json()
        assert (body["totalEarned"], body["totalPaid"], body["pendingAmount"]) == (30.0, 30.0, 0.0)

        # 4. paying A again conflicts
        res = _pay(client, supplier.id, [a], "k2")
        assert res.status_code == 409
        assert res.json()["conflictingItems"] == [{"orderId": a[0], "itemId": a[1]}]

        # 6. verbatim retry replays
        res = _pay(client, supplier.id, [a, b], "k1")
        assert res.status_code == 200
        assert res.json() == created

        history = client.get(f"/api/suppliers/{supplier.id}/payouts", headers=auth("admin")).json()
        assert history["total"] == 1
        assert history["payouts"][0]["payoutId"] == created["payoutId"]
        assert len(history["payouts"][0]["items"]) == 2

    def test_empty_item_refs_is_bad_request(self, client, db):
        supplier = make_supplier(db)
        res = client.post(
            f"/api/suppliers/{supplier.id}/payouts",
            json={"itemRefs": [], "idempotencyKey": "k1"},
            headers=auth("admin"),
        )
        assert res.status_code == 400
        assert "reason" in res.json()

    def test_foreign_item_is_bad_request(self, client, db):
        supplier = make_supplier(db)
        other = make_supplier(db, name="Other")
        (theirs,) = make_order(db, other, [5])

        res = _pay(client, supplier.id, [theirs], "k1")
        assert res.status_code == 400
        assert res.json()["invalidItems"] == [{"orderId": theirs[0], "itemId": theirs[1]}]

    def test_unknown_supplier_is_not_found(self, client):
        res = _pay(client, 999, [(1, 1)], "k1")
        assert res.status_code == 404
        assert "reason" in res.json()

    def test_only_admin_can_pay(self, client, db):
        supplier = make_supplier(db)
        (a,) = make_order(db, supplier, [10])

        assert _pay(client, supplier.id, [a], "k1", headers=auth("staff")).status_code == 403
        assert _pay(client, supplier.id, [a], "k1", headers=auth("supplier", supplier.id)).status_code == 403

    def test_payout_email_sent_once(self, client, db, monkeypatch):
        supplier = make_supplier(db, email="supplier@example.com")
        (a,) = make_order(db, supplier, [10])
        sent = []
        monkeypatch.setattr(email, "PAYOUT_EMAILS_ENABLED", True)
        monkeypatch.setattr(email, "send_payout_email", lambda *args: sent.append(args))

        assert _pay(client, supplier.id, [a], "k1").status_code == 201
        assert _pay(client, supplier.id, [a], "k1").status_code == 200

        assert len(sent) == 1
        to_email, name, amount, order_numbers = sent[0]
        assert to_email == "supplier@example.com"
        assert float(amount) == 10.0
        assert len(order_numbers) == 1

    def test_email_failure_does_not_fail_payout(self, client, db, monkeypatch):
        supplier = make_supplier(db, email="supplier@example.com")
        (a,) = make_order(db, supplier, [10])

        def broken(*args):
            raise Exception("Brevo error: 500")

        monkeypatch.setattr(email, "PAYOUT_EMAILS_ENABLED", True)
        monkeypatch.setattr(email, "send_payout_email", broken)

        assert _pay(client, supplier.id, [a], "k1").status_code == 201


class TestAccessControl:
    def test_missing_token(self, client, db):
        supplier = make_supplier(db)
        assert client.get(f"/api/suppliers/{supplier.id}/balance").status_code == 401

    def test_invalid_token(self, client, db):
        supplier = make_supplier(db)
        res = client.get(
            f"/api/suppliers/{supplier.id}/balance",
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert res.status_code == 403

    def test_supplier_sees_only_itself(self, client, db):
        supplier = make_supplier(db)
        other = make_supplier(db, name="Other")

        assert client.get(
            f"/api/suppliers/{supplier.id}/balance", headers=auth("supplier", supplier.id)
        ).status_code == 200
        assert client.get(
            f"/api/suppliers/{other.id}/balance", headers=auth("supplier", supplier.id)
        ).status_code == 403
        assert client.get(
            f"/api/suppliers/{other.id}/payouts", headers=auth("supplier", supplier.id)
        ).status_code == 403

    def test_customer_cannot_view_balances(self, client, db):
        supplier = make_supplier(db)
        res = client.get(f"/api/suppliers/{supplier.id}/balance", headers=auth("customer", 5))
        assert res.status_code == 403

    def test_unknown_supplier_balance(self, client):
        assert client.get("/api/suppliers/4242/balance", headers=auth("admin")).status_code == 404


class TestAdminEndpoints:
    def test_payment_analysis(self, client, db):
        supplier = make_supplier(db)
        a, b = make_order(db, supplier, [10, 20])
        _pay(client, supplier.id, [a], "k1")

        res = client.get("/api/suppliers/payments/analysis", headers=auth("admin"))
        assert res.status_code == 200
        body = res.json()
        assert body["totalPaid"] == 10.0
        assert body["totalPending"] == 20.0
        assert body["suppliers"][0]["businessName"] == supplier.business_name

    def test_payment_analysis_admin_only(self, client):
        assert client.get("/api/suppliers/payments/analysis", headers=auth("staff")).status_code == 403

    def test_reverse_line_item_and_reconcile(self, client, db):
        supplier = make_supplier(db)
        a, b = make_order(db, supplier, [10, 20])
        _pay(client, supplier.id, [a, b], "k1")

        res = client.post(
            f"/api/suppliers/line-items/{a[0]}/{a[1]}/reversal",
            json={"reason": "customer refund"},
            headers=auth("admin"),
        )
        assert res.status_code == 201
        assert res.json()["previousState"] == "paid"

        body = client.get(f"/api/suppliers/{supplier.id}/balance", headers=auth("admin")).json()
        assert body["totalPaid"] == 20.0
        assert body["totalReversed"] == 10.0

        res = client.get(f"/api/suppliers/{supplier.id}/reconciliation", headers=auth("admin"))
        assert res.json()["ok"] is True

    def test_reversing_twice_conflicts(self, client, db):
        supplier = make_supplier(db)
        (a,) = make_order(db, supplier, [10])
        url = f"/api/suppliers/line-items/{a[0]}/{a[1]}/reversal"

        assert client.post(url, json={"reason": "refund"}, headers=auth("admin")).status_code == 201
        assert client.post(url, json={"reason": "refund"}, headers=auth("admin")).status_code == 409

    def test_reverse_payout(self, client, db):
        supplier = make_supplier(db)
        a, b = make_order(db, supplier, [10, 20])
        payout_id = _pay(client, supplier.id, [a, b], "k1").json()["payoutId"]

        res = client.post(
            f"/api/suppliers/payouts/{payout_id}/reversal",
            json={"reason": "chargeback"},
            headers=auth("admin"),
        )
        assert res.status_code == 201
        assert len(res.json()) == 2

        payout = client.get(f"/api/suppliers/payouts/{payout_id}", headers=auth("admin")).json()
        assert payout["reversedAt"] is not None

    def test_mark_order_delivered(self, client, db):
        supplier = make_supplier(db)
        (a,) = make_order(db, supplier, [10], delivered=False)

        res = client.post(f"/api/orders/{a[0]}/delivered", headers=auth("staff"))
        assert res.status_code == 200
        assert res.json()["payableItems"] == 1
        assert res.json()["shipmentStatus"] == "delivered"

        body = client.get(f"/api/suppliers/{supplier.id}/balance", headers=auth("admin")).json()
        assert body["pendingAmount"] == 10.0


@pytest.mark.parametrize("path", ["/api/nope", "/api/suppliers/1/unknown"])
def test_unknown_route(client, path):
    res = client.get(path, headers=auth("admin"))
    assert res.status_code == 404
    assert res.json() == {"error": "Route not found"}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
