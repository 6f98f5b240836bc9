# lcs/transport/provider_http.py
"""
Shared HTTP call + failure classification for provider adapters.

Failure classification (AdapterResponse.failure_type):
- 401 / 403          → AUTH_FAILURE       (needs human intervention)
- 429                → RATE_LIMIT         (retry later)
- 400 / 422          → PAYLOAD_REJECTED   (provider refused the message)
- other non-2xx      → ADAPTER_ERROR
- timeout            → TIMEOUT
- connection errors  → CONNECTION_FAILED

Adapters never raise for any of the above; the failed response goes
back to the pipeline and from there to ORBT.

HTTP session lifecycle:
- Uses the shared adapter session from lcs.infra.http_client.
- Call close_all_sessions() during application shutdown.
"""
from __future__ import annotations

import asyncio
from typing import Any

import aiohttp

from lcs.core.engine.adapters import AdapterResponse
from lcs.core.engine.domain import DeliveryStatus, FailureType
from lcs.infra.http_client import get_adapter_session
from lcs.infra.logging_config import get_logger
from lcs.infra.metrics import inc_counter

logger = get_logger(__name__)


def classify_status(status: int) -> FailureType:
    if status in (401, 403):
        return FailureType.AUTH_FAILURE
    if status == 429:
        return FailureType.RATE_LIMIT
    if status in (400, 422):
        return FailureType.PAYLOAD_REJECTED
    return FailureType.ADAPTER_ERROR


async def _safe_response_json(resp: aiohttp.ClientResponse) -> dict[str, Any]:
    """Parse JSON from response, falling back to the (truncated) text body."""
    try:
        body = await resp.json(content_type=None)
    except Exception:
        try:
            text = await resp.text()
        except Exception:
            text = "<unreadable>"
        return {"status": resp.status, "body": text[:300]}
    if isinstance(body, dict):
        return body
    return {"status": resp.status, "body": body}


async def post_to_provider(
    provider: str,
    url: str,
    *,
    message_id_keys: tuple[str, ...] = ("id",),
    error_keys: tuple[str, ...] = ("message",),
    session: aiohttp.ClientSession | None = None,
    **request_kwargs,
) -> AdapterResponse:
    """
    POST to a provider API and normalize the outcome.

    An accepted request maps to ``SENT``: the provider queued it, delivery
    is confirmed later through webhook feedback.
    """
    session = session or get_adapter_session()
    try:
        async with session.post(url, **request_kwargs) as resp:
            body = await _safe_response_json(resp)

            if 200 <= resp.status < 300:
                message_id = next((body[k] for k in message_id_keys if body.get(k)), None)
                inc_counter("lcs_adapter_requests_total", provider=provider, result="accepted")
                return AdapterResponse(
                    success=True,
                    delivery_status=DeliveryStatus.SENT,
                    adapter_message_id=message_id,
                    raw_response=body,
                )

            failure_type = classify_status(resp.status)
            error = next((str(body[k]) for k in error_keys if body.get(k)), None)
            error = error or f"{provider} HTTP {resp.status}"
            inc_counter("lcs_adapter_requests_total", provider=provider, result=failure_type.value)
            logger.warning(f"{provider} rejected request: status={resp.status}, error={error}")
            return AdapterResponse.failed(error, failure_type, raw_response=body)

    except asyncio.TimeoutError:
        inc_counter("lcs_adapter_requests_total", provider=provider, result=FailureType.TIMEOUT.value)
        logger.error(f"{provider} request timed out")
        return AdapterResponse.failed(
            f"{provider} request timed out",
            FailureType.TIMEOUT,
            raw_response={"error": "timeout"},
        )
    except aiohttp.ClientError as exc:
        inc_counter(
            "lcs_adapter_requests_total", provider=provider, result=FailureType.CONNECTION_FAILED.value
        )
        logger.error(f"{provider} connection error: {exc}", exc_info=True)
        return AdapterResponse.failed(
            f"{provider} request failed: {exc}",
            FailureType.CONNECTION_FAILED,
            raw_response={"error": str(exc)},
        )
