"""WhatsApp Cloud API client over httpx.

Errors are not swallowed: HTTP failures raise ``httpx.HTTPStatusError``
(or a transport error) to the caller, which owns retry and logging.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from group_facilitator.domain.delivery import DeliveryResult

logger = logging.getLogger(__name__)


class WhatsAppCloudClient:
    """MessagingClient backed by the WhatsApp Cloud (Graph) API.

    Args:
        api_url: Graph API base URL, e.g. ``https://graph.facebook.com/v19.0``.
        token: Bearer token.
        phone_number_id: Sender phone-number id.
        timeout: Per-request timeout in seconds.
        http_client: Optional pre-built AsyncClient (tests inject a MockTransport).
    """

    def __init__(
        self,
        api_url: str,
        token: str,
        phone_number_id: str,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._phone_number_id = phone_number_id
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }

    async def send_to_destination(self, destination_id: str, text: str) -> DeliveryResult:
        data = await self._post(
            f"{self._phone_number_id}/messages",
            {
                "messaging_product": "whatsapp",
                "recipient_type": "individual",
                "to": destination_id,
                "type": "text",
                "text": {"body": text},
            },
        )
        messages = data.get("messages") or [{}]
        message_id = str(messages[0].get("id", ""))
        logger.debug("WhatsApp accepted message %s for %s", message_id, destination_id)
        return DeliveryResult(destination_id=destination_id, message_id=message_id, raw=data)

    async def create_group(self, name: str, participants: list[str]) -> dict[str, Any]:
        return await self._post("groups", {"name": name, "participants": participants})

    async def add_member(self, destination_id: str, member_id: str) -> dict[str, Any]:
        return await self._post(f"groups/{destination_id}/participants", {"participants": [member_id]})

    async def remove_member(self, destination_id: str, member_id: str) -> dict[str, Any]:
        response = await self._client.request(
            "DELETE",
            f"{self._api_url}/groups/{destination_id}/participants",
            json={"participants": [member_id]},
            headers=self._headers,
        )
        return self._json(response)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        response = await self._client.post(f"{self._api_url}/{path}", json=payload, headers=self._headers)
        return self._json(response)

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        if response.status_code >= 400:
            logger.error("WhatsApp API error %s: %s", response.status_code, response.text)
        response.raise_for_status()
        return response.json() if response.content else {}
