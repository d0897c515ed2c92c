"""Contract tests for admin endpoints."""

from decimal import Decimal

import pytest

from conftest import ADMIN_WALLET, OTHER_WALLET, USER_WALLET, tx_hash


@pytest.mark.asyncio
class TestAdminAccess:

    @pytest.mark.parametrize("method,path", [
        ("GET", "/api/v1/admin/revenue"),
        ("POST", "/api/v1/admin/subscriptions/sweep"),
    ])
    async def test_non_admin_is_forbidden(self, client, auth_headers, method, path):
        response = await client.request(method, path, headers=auth_headers(USER_WALLET))

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    async def test_broadcast_is_admin_only(self, client, auth_headers, notifier):
        response = await client.post(
            "/api/v1/admin/notifications/broadcast",
            json={"title": "Hi", "body": "Hello"},
            headers=auth_headers(USER_WALLET)
        )

        assert response.status_code == 403
        notifier.send_to_all.assert_not_awaited()


@pytest.mark.asyncio
class TestAdminEndpoints:

    async def test_revenue(self, client, auth_headers, store):
        await store.record_payment(USER_WALLET, tx_hash(1), "7", "premium")
        await store.record_payment(OTHER_WALLET, tx_hash(2), "25", "pro")

        response = await client.get("/api/v1/admin/revenue", headers=auth_headers(ADMIN_WALLET))

        assert response.status_code == 200
        assert Decimal(response.json()["total_revenue_usdc"]) == Decimal("32")

    async def test_broadcast(self, client, auth_headers, store, notifier):
        await store.create_user(USER_WALLET)
        await store.save_user_notification_details(USER_WALLET, "tok-1", "https://notify.example/send")
        notifier.send_to_all.return_value = 1

        response = await client.post(
            "/api/v1/admin/notifications/broadcast",
            json={"title": "New feature", "body": "Counter narratives are live"},
            headers=auth_headers(ADMIN_WALLET)
        )

        assert response.status_code == 200
        assert response.json() == {"sent": 1, "total": 1}
        users, title, body = notifier.send_to_all.await_args.args
        assert [u.wallet_address for u in users] == [USER_WALLET.lower()]
        assert title == "New feature"

    async def test_broadcast_title_length(self, client, auth_headers):
        response = await client.post(
            "/api/v1/admin/notifications/broadcast",
            json={"title": "x" * 40, "body": "Hello"},
            headers=auth_headers(ADMIN_WALLET)
        )

        assert response.status_code == 422

    async def test_sweep(self, client, auth_headers, store, clock):
        subscription = await store.create_subscription(USER_WALLET, "premium", tx_hash(1))
        clock.advance(days=31)

        response = await client.post("/api/v1/admin/subscriptions/sweep", headers=auth_headers(ADMIN_WALLET))

        assert response.status_code == 200
        data = response.json()
        assert data["subscriptions_expired"] == 1
        assert data["errors"] == []
        assert (await store.get_subscription(subscription.id)).status == "expired"
