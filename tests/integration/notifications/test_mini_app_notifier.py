"""Integration tests for mini app push notifications."""

import json
from datetime import datetime, timezone

import httpx
import pytest

from conftest import OTHER_WALLET, USER_WALLET
from echoecho.core.service.entitlement.models import User
from echoecho.core.service.notifications.notifier import MiniAppNotifier

NOTIFY_URL = "https://notify.example/send"


def _user(wallet: str, token: str = "tok-1", url: str = NOTIFY_URL) -> User:
    return User(
        id=f"user_{wallet[-6:]}",
        wallet_address=wallet.lower(),
        created_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
        notification_token=token,
        notification_url=url
    )


@pytest.mark.asyncio
class TestMiniAppNotifier:

    @pytest.fixture
    def captured(self):
        return []

    def _notifier(self, captured, status_code: int = 200, target_url: str = "https://echoecho.app") -> MiniAppNotifier:
        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(status_code, json={"result": {"successfulTokens": []}})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return MiniAppNotifier(client=client, target_url=target_url)

    async def test_send_posts_notification(self, captured):
        notifier = self._notifier(captured)

        sent = await notifier.send(_user(USER_WALLET), "Hello", "World", notification_id="n-1")

        assert sent is True
        assert len(captured) == 1
        assert str(captured[0].url) == NOTIFY_URL
        payload = json.loads(captured[0].content)
        assert payload == {
            "notificationId": "n-1",
            "title": "Hello",
            "body": "World",
            "tokens": ["tok-1"],
            "targetUrl": "https://echoecho.app",
        }

    async def test_long_text_is_truncated(self, captured):
        notifier = self._notifier(captured)

        await notifier.send(_user(USER_WALLET), "T" * 50, "B" * 200)

        payload = json.loads(captured[0].content)
        assert len(payload["title"]) == 32
        assert len(payload["body"]) == 128
        assert payload["notificationId"].startswith("echoecho-")

    async def test_user_without_details_is_skipped(self, captured):
        notifier = self._notifier(captured)

        sent = await notifier.send(_user(USER_WALLET, token=None), "Hello", "World")

        assert sent is False
        assert captured == []

    async def test_http_error_propagates(self, captured):
        notifier = self._notifier(captured, status_code=500)

        with pytest.raises(httpx.HTTPStatusError):
            await notifier.send(_user(USER_WALLET), "Hello", "World")

    async def test_send_to_all_counts_deliveries(self, captured):
        notifier = self._notifier(captured)
        users = [_user(USER_WALLET), _user(OTHER_WALLET, token="tok-2"), _user(OTHER_WALLET, url=None)]

        sent = await notifier.send_to_all(users, "News", "Something happened")

        assert sent == 2
        assert len(captured) == 2

    async def test_send_to_all_survives_failures(self, captured):
        notifier = self._notifier(captured, status_code=503)

        sent = await notifier.send_to_all([_user(USER_WALLET), _user(OTHER_WALLET)], "News", "Body")

        assert sent == 0
        assert len(captured) == 2
