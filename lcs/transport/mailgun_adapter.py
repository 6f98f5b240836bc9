# lcs/transport/mailgun_adapter.py
"""
Mailgun email adapter (channel MG).

Mailgun API: POST {base}/{sender_domain}/messages
Auth: Basic api:{MAILGUN_API_KEY}

The communication and message run ids travel as Mailgun user variables
(``v:communication_id`` / ``v:message_run_id``) so webhook events can be
correlated back to the run.
"""
from __future__ import annotations

import aiohttp

from lcs.config import settings
from lcs.core.engine.adapters import Adapter, AdapterPayload, AdapterResponse
from lcs.core.engine.domain import Channel, FailureType
from lcs.infra.logging_config import get_logger, mask_email
from lcs.transport.provider_http import post_to_provider

logger = get_logger(__name__)


class MailgunAdapter(Adapter):
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.mailgun_api_key
        self._base_url = (base_url or settings.mailgun_base_url).rstrip("/")
        self._session = session

    @property
    def channel(self) -> Channel:
        return Channel.MG

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def build_form(self, payload: AdapterPayload) -> aiohttp.FormData:
        sender = payload.sender_email or f"noreply@{payload.sender_domain}"
        form = aiohttp.FormData()
        form.add_field("from", f"{payload.sender_identity} <{sender}>")
        form.add_field("to", payload.recipient_email)
        if payload.subject:
            form.add_field("subject", payload.subject)
        if payload.body_html:
            form.add_field("html", payload.body_html)
        if payload.body_text:
            form.add_field("text", payload.body_text)
        form.add_field("v:communication_id", payload.communication_id)
        form.add_field("v:message_run_id", payload.message_run_id)
        return form

    async def send(self, payload: AdapterPayload) -> AdapterResponse:
        if not payload.recipient_email:
            return AdapterResponse.failed(
                "Mailgun requires recipient_email",
                FailureType.VALIDATION_ERROR,
                raw_response={"error": "No recipient email provided"},
            )
        if not payload.sender_domain:
            return AdapterResponse.failed(
                "Mailgun requires sender_domain for domain routing",
                FailureType.VALIDATION_ERROR,
                raw_response={"error": "No sender domain provided"},
            )
        if not self._api_key:
            return AdapterResponse.failed(
                "Missing MAILGUN_API_KEY",
                FailureType.AUTH_FAILURE,
                raw_response={"error": "MAILGUN_API_KEY not configured"},
            )

        logger.info(
            f"Mailgun send: to={mask_email(payload.recipient_email)}",
            extra={"communication_id": payload.communication_id, "message_run_id": payload.message_run_id},
        )
        return await post_to_provider(
            "mailgun",
            f"{self._base_url}/{payload.sender_domain}/messages",
            message_id_keys=("id",),
            error_keys=("message",),
            session=self._session,
            data=self.build_form(payload),
            auth=aiohttp.BasicAuth("api", self._api_key),
        )
