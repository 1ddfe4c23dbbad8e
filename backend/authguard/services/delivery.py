"""
Out-of-band delivery of emergency access codes.

Channels:
- webhook: JSON POST to an operator-controlled endpoint (e-mail/SMS relay)
- multi: fan-out over several channels, succeeding if any one succeeds
"""

import logging
from datetime import datetime
from typing import Protocol

import httpx

from authguard.core.exceptions import DeliveryError

logger = logging.getLogger(__name__)


class CodeDeliveryChannel(Protocol):
    name: str

    async def send(self, user_id: str, code: str, expires_at: datetime) -> None: ...


class WebhookDeliveryChannel:
    """POST the code to a relay that forwards it by e-mail or SMS."""

    def __init__(
        self,
        url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
    ):
        self.url = url
        self.client = client
        self.timeout = timeout
        self.headers = headers or {}
        self.name = f"webhook:{httpx.URL(url).host}"

    async def send(self, user_id: str, code: str, expires_at: datetime) -> None:
        payload = {
            "type": "emergency_access_code",
            "user_id": user_id,
            "code": code,
            "expires_at": expires_at.isoformat(),
        }
        try:
            if self.client is not None:
                response = await self.client.post(self.url, json=payload, headers=self.headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.url, json=payload, headers=self.headers)
        except httpx.HTTPError as e:
            raise DeliveryError(self.name, type(e).__name__) from e

        if response.status_code >= 300:
            raise DeliveryError(self.name, f"HTTP {response.status_code}")

        logger.info("Emergency code for user %s delivered via %s", user_id, self.name)


class MultiChannelDelivery:
    """Send through every channel; at least one must succeed."""

    name = "multi"

    def __init__(self, channels: list[CodeDeliveryChannel]):
        if not channels:
            raise ValueError("MultiChannelDelivery needs at least one channel")
        self.channels = channels

    async def send(self, user_id: str, code: str, expires_at: datetime) -> None:
        failures: list[str] = []
        for channel in self.channels:
            try:
                await channel.send(user_id, code, expires_at)
            except DeliveryError as e:
                logger.warning("Emergency code delivery via %s failed: %s", channel.name, e.reason)
                failures.append(channel.name)

        if len(failures) == len(self.channels):
            raise DeliveryError(self.name, f"all channels failed: {', '.join(failures)}")
