# lcs/transport/heyreach_adapter.py
"""
HeyReach LinkedIn adapter (channel HR).

HeyReach API: POST {base}/messages/send
Auth: Bearer token

HeyReach queues the message; acceptance is SENT, not DELIVERED.
"""
from __future__ import annotations

import aiohttp

from lcs.config import settings
from lcs.core.engine.adapters import Adapter, AdapterPayload, AdapterResponse
from lcs.core.engine.domain import Channel, FailureType
from lcs.infra.logging_config import get_logger
from lcs.transport.provider_http import post_to_provider

logger = get_logger(__name__)


class HeyReachAdapter(Adapter):
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.heyreach_api_key
        self._base_url = (base_url or settings.heyreach_base_url).rstrip("/")
        self._session = session

    @property
    def channel(self) -> Channel:
        return Channel.HR

    def is_configured(self) -> bool:
        return bool(self._api_key)

    @staticmethod
    def build_body(payload: AdapterPayload) -> dict:
        return {
            "linkedin_url": payload.recipient_linkedin_url,
            "message": payload.body_text,
            "sender_identity": payload.sender_identity,
            "metadata": {
                "communication_id": payload.communication_id,
                "message_run_id": payload.message_run_id,
                **payload.metadata,
            },
        }

    async def send(self, payload: AdapterPayload) -> AdapterResponse:
        if not payload.recipient_linkedin_url:
            return AdapterResponse.failed(
                "HeyReach requires recipient_linkedin_url",
                FailureType.VALIDATION_ERROR,
                raw_response={"error": "No recipient LinkedIn URL provided"},
            )
        if not payload.body_text:
            return AdapterResponse.failed(
                "HeyReach requires body_text for LinkedIn messages",
                FailureType.VALIDATION_ERROR,
                raw_response={"error": "No message text provided"},
            )
        if not self._api_key:
            return AdapterResponse.failed(
                "Missing HEYREACH_API_KEY",
                FailureType.AUTH_FAILURE,
                raw_response={"error": "HEYREACH_API_KEY not configured"},
            )

        logger.info(
            "HeyReach send queued",
            extra={"communication_id": payload.communication_id, "message_run_id": payload.message_run_id},
        )
        return await post_to_provider(
            "heyreach",
            f"{self._base_url}/messages/send",
            message_id_keys=("id", "message_id"),
            error_keys=("error", "message"),
            session=self._session,
            json=self.build_body(payload),
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
