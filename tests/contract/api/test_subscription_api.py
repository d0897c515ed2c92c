"""Contract tests for user and subscription endpoints."""

from decimal import Decimal

import pytest

from conftest import OTHER_WALLET, SUBSCRIPTION_WALLET, USER_WALLET, tx_hash
from echoecho.core.exceptions.entitlement import PaymentVerificationError
from echoecho.core.service.payments.verifier import UsdcBalance, VerifiedPayment


@pytest.mark.asyncio
class TestMeEndpoint:

    async def test_first_contact_creates_free_user(self, client, auth_headers, store):
        response = await client.get("/api/v1/me", headers=auth_headers())

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["wallet_address"] == USER_WALLET.lower()
        assert data["tier"] == "free"
        assert data["subscription"] is None
        assert data["is_admin"] is False
        assert await store.get_user(USER_WALLET) is not None

    async def test_admin_flag(self, client, auth_headers):
        response = await client.get("/api/v1/me", headers=auth_headers("0x" + "ad" * 20))

        assert response.json()["is_admin"] is True


@pytest.mark.asyncio
class TestSubscriptionEndpoints:

    async def test_plans(self, client):
        response = await client.get("/api/v1/subscription/plans")

        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["pricing"]["premium"]) == Decimal("7")
        assert Decimal(data["pricing"]["pro"]) == Decimal("25")
        assert set(data["features"]) == {"free", "premium", "pro"}
        assert data["subscription_wallet"] == SUBSCRIPTION_WALLET.lower()

    async def test_purchase_premium(self, client, auth_headers, payment_verifier):
        response = await client.post(
            "/api/v1/subscription",
            json={"tier": "premium", "transaction_hash": tx_hash(1)},
            headers=auth_headers()
        )

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["tier"] == "premium"
        assert data["subscription"]["status"] == "active"
        payment_verifier.verify.assert_awaited_once_with(tx_hash(1))

        status = await client.get("/api/v1/subscription", headers=auth_headers())
        assert status.json()["tier"] == "premium"
        assert status.json()["subscription"]["transaction_hash"] == tx_hash(1)

    async def test_subscription_expires_after_duration(self, client, auth_headers, clock):
        await client.post(
            "/api/v1/subscription",
            json={"tier": "premium", "transaction_hash": tx_hash(1)},
            headers=auth_headers()
        )

        clock.advance(days=31)
        response = await client.get("/api/v1/subscription", headers=auth_headers())

        assert response.json()["tier"] == "free"
        assert response.json()["subscription"] is None

    async def test_invalid_tier(self, client, auth_headers, payment_verifier):
        response = await client.post(
            "/api/v1/subscription",
            json={"tier": "gold", "transaction_hash": tx_hash(1)},
            headers=auth_headers()
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "INVALID_TIER"
        assert response.json()["success"] is False
        payment_verifier.verify.assert_not_awaited()

    async def test_invalid_transaction_hash(self, client, auth_headers):
        response = await client.post(
            "/api/v1/subscription",
            json={"tier": "pro", "transaction_hash": "0x1234"},
            headers=auth_headers()
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_TX_HASH"

    async def test_missing_fields(self, client, auth_headers):
        response = await client.post("/api/v1/subscription", json={"tier": "pro"}, headers=auth_headers())

        assert response.status_code == 422
        fields = [e["field"] for e in response.json()["error"]["details"]["validation_errors"]]
        assert "body.transaction_hash" in fields

    async def test_underpaid_pro(self, client, auth_headers):
        response = await client.post(
            "/api/v1/subscription",
            json={"tier": "pro", "transaction_hash": tx_hash(1)},
            headers=auth_headers()
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "PAYMENT_MISMATCH"
        assert error["details"]["required_amount_usdc"] == "25"

    async def test_payment_sent_by_someone_else(self, client, auth_headers):
        response = await client.post(
            "/api/v1/subscription",
            json={"tier": "premium", "transaction_hash": tx_hash(1)},
            headers=auth_headers(OTHER_WALLET)
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "PAYMENT_MISMATCH"

    async def test_failed_transaction(self, client, auth_headers, payment_verifier):
        payment_verifier.verify.side_effect = PaymentVerificationError(
            "Invalid or failed transaction",
            details={"transaction_hash": tx_hash(1)}
        )

        response = await client.post(
            "/api/v1/subscription",
            json={"tier": "premium", "transaction_hash": tx_hash(1)},
            headers=auth_headers()
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "PAYMENT_VERIFICATION_FAILED"

    async def test_transaction_reuse(self, client, auth_headers):
        body = {"tier": "premium", "transaction_hash": tx_hash(1)}
        first = await client.post("/api/v1/subscription", json=body, headers=auth_headers())
        second = await client.post("/api/v1/subscription", json=body, headers=auth_headers())

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json()["error"]["code"] == "DUPLICATE_PAYMENT"

    async def test_upgrade_to_pro(self, client, auth_headers, payment_verifier, clock):
        await client.post(
            "/api/v1/subscription",
            json={"tier": "premium", "transaction_hash": tx_hash(1)},
            headers=auth_headers()
        )
        clock.advance(days=3)
        payment_verifier.verify.return_value = VerifiedPayment(
            tx_hash=tx_hash(2),
            payer=USER_WALLET.lower(),
            payee=SUBSCRIPTION_WALLET.lower(),
            amount_usdc=Decimal("25")
        )

        response = await client.post(
            "/api/v1/subscription",
            json={"tier": "pro", "transaction_hash": tx_hash(2)},
            headers=auth_headers()
        )

        assert response.status_code == 201
        status = await client.get("/api/v1/subscription", headers=auth_headers())
        assert status.json()["tier"] == "pro"

    async def test_usdc_balance(self, client, auth_headers, payment_verifier):
        payment_verifier.get_usdc_balance.return_value = UsdcBalance(
            address=USER_WALLET.lower(),
            balance=Decimal("12.5"),
            contract="0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"
        )

        response = await client.get("/api/v1/subscription/usdc-balance", headers=auth_headers())

        assert response.status_code == 200
        assert Decimal(response.json()["balance"]) == Decimal("12.5")
        payment_verifier.get_usdc_balance.assert_awaited_once_with(USER_WALLET.lower())

    async def test_usdc_balance_rejects_bad_address(self, client, auth_headers):
        response = await client.get(
            "/api/v1/subscription/usdc-balance",
            params={"address": "0xnope"},
            headers=auth_headers()
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_ADDRESS"
