"""
Mini app push notifications.

Farcaster clients hand each user a notification URL and token; sending is a
JSON POST of the notification with the token list to that URL.
"""

import uuid
from typing import Iterable, Optional

import httpx

from echoecho.core.http_client import create_temp_client
from echoecho.core.logger.logger import get_logger
from echoecho.core.service.entitlement.models import User
from echoecho.infra.config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()


class MiniAppNotifier:
    """Sends push notifications to users who enabled them"""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, target_url: Optional[str] = None):
        self._client = client
        self.target_url = target_url or settings.NOTIFICATION_TARGET_URL

    async def _post(self, url: str, payload: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, json=payload)
        async with create_temp_client("notifications") as client:
            return await client.post(url, json=payload)

    async def send(self, user: User, title: str, body: str, notification_id: Optional[str] = None) -> bool:
        """
        Send one notification. Returns False when the user has no notification
        details; raises httpx.HTTPError on transport or HTTP failures.
        """
        if not user.notification_token or not user.notification_url:
            return False

        payload = {
            "notificationId": notification_id or f"echoecho-{uuid.uuid4().hex}",
            "title": title[:32],
            "body": body[:128],
            "tokens": [user.notification_token],
        }
        if self.target_url:
            payload["targetUrl"] = self.target_url

        response = await self._post(user.notification_url, payload)
        response.raise_for_status()

        logger.debug(
            "Notification sent",
            extra={"wallet_address": user.wallet_address, "notification_id": payload["notificationId"]}
        )
        return True

    async def send_to_all(self, users: Iterable[User], title: str, body: str) -> int:
        """Broadcast to every user with notification details; returns how many were sent"""
        sent = 0
        for user in users:
            try:
                if await self.send(user, title, body):
                    sent += 1
            except httpx.HTTPError as e:
                logger.error(
                    "Failed to send notification",
                    extra={"wallet_address": user.wallet_address, "error": str(e)}
                )
        logger.info("Broadcast notification finished", extra={"sent": sent})
        return sent
