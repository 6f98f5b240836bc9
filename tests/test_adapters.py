# tests/test_adapters.py
"""Tests for delivery adapters and the adapter registry"""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from lcs.core.engine.adapters import AdapterPayload
from lcs.core.engine.domain import Channel, DeliveryStatus, FailureType
from lcs.core.engine.errors import UnknownChannelError
from lcs.transport.adapter_registry import AdapterRegistry
from lcs.transport.heyreach_adapter import HeyReachAdapter
from lcs.transport.mailgun_adapter import MailgunAdapter
from lcs.transport.provider_http import classify_status
from lcs.transport.sales_handoff_adapter import SalesHandoffAdapter

COMM_ID = "LCS-OUT-20260302-01HQXK5M7N8P9Q0R1S2T3V4W5X"


def _payload(channel=Channel.MG, **overrides):
    fields = dict(
        message_run_id=f"RUN-{COMM_ID}-{Channel(channel).value}-001",
        communication_id=COMM_ID,
        channel=channel,
        sender_identity="outreach-sender",
        recipient_email="ceo@acme.example",
        recipient_linkedin_url="https://linkedin.com/in/acme-ceo",
        subject="Quick question",
        body_html="<p>Hello</p>",
        body_text="Hello",
        sender_email="outreach@mg.example.com",
        sender_domain="mg.example.com",
        metadata={"frame_id": "OUT-HAMMER-T2", "signal_set_hash": "sig-hash-abc123"},
    )
    fields.update(overrides)
    return AdapterPayload(**fields)


def _make_mock_response(status=200, json_data=None):
    """Create a mock aiohttp response."""
    resp = AsyncMock()
    resp.status = status
    resp.json = AsyncMock(return_value=json_data or {})
    return resp


def _make_mock_session(response=None, error=None):
    """Mock session whose .post() yields ``response`` (or raises ``error``) on enter."""
    ctx = AsyncMock()
    if error is not None:
        ctx.__aenter__ = AsyncMock(side_effect=error)
    else:
        ctx.__aenter__ = AsyncMock(return_value=response)
    ctx.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.post = MagicMock(return_value=ctx)
    return session


class TestClassifyStatus:
    @pytest.mark.parametrize("status,failure_type", [
        (401, FailureType.AUTH_FAILURE),
        (403, FailureType.AUTH_FAILURE),
        (429, FailureType.RATE_LIMIT),
        (400, FailureType.PAYLOAD_REJECTED),
        (422, FailureType.PAYLOAD_REJECTED),
        (500, FailureType.ADAPTER_ERROR),
        (502, FailureType.ADAPTER_ERROR),
    ])
    def test_classification(self, status, failure_type):
        assert classify_status(status) is failure_type


class TestMailgunAdapter:
    @pytest.mark.asyncio
    async def test_accepted_message_is_sent(self):
        session = _make_mock_session(_make_mock_response(200, {"id": "<msg-1@mg>", "message": "Queued"}))
        adapter = MailgunAdapter(api_key="key-123", base_url="https://api.mailgun.test/v3/", session=session)

        response = await adapter.send(_payload())

        assert response.success is True
        assert response.delivery_status is DeliveryStatus.SENT
        assert response.adapter_message_id == "<msg-1@mg>"
        url = session.post.call_args.args[0]
        assert url == "https://api.mailgun.test/v3/mg.example.com/messages"
        assert session.post.call_args.kwargs["auth"] == aiohttp.BasicAuth("api", "key-123")

    @pytest.mark.asyncio
    async def test_rejected_request(self):
        session = _make_mock_session(_make_mock_response(400, {"message": "'to' parameter is not a valid address"}))
        adapter = MailgunAdapter(api_key="key-123", session=session)

        response = await adapter.send(_payload())

        assert response.success is False
        assert response.delivery_status is DeliveryStatus.FAILED
        assert response.failure_type is FailureType.PAYLOAD_REJECTED
        assert "not a valid address" in response.error_message

    @pytest.mark.asyncio
    async def test_auth_failure(self):
        session = _make_mock_session(_make_mock_response(401, {}))
        response = await MailgunAdapter(api_key="bad", session=session).send(_payload())
        assert response.failure_type is FailureType.AUTH_FAILURE
        assert response.error_message == "mailgun HTTP 401"

    @pytest.mark.asyncio
    async def test_timeout(self):
        session = _make_mock_session(error=asyncio.TimeoutError())
        response = await MailgunAdapter(api_key="key-123", session=session).send(_payload())
        assert response.success is False
        assert response.failure_type is FailureType.TIMEOUT

    @pytest.mark.asyncio
    async def test_connection_error(self):
        session = _make_mock_session(error=aiohttp.ClientConnectionError("Connection refused"))
        response = await MailgunAdapter(api_key="key-123", session=session).send(_payload())
        assert response.failure_type is FailureType.CONNECTION_FAILED
        assert "Connection refused" in response.error_message

    @pytest.mark.asyncio
    async def test_missing_recipient_email(self):
        session = _make_mock_session(_make_mock_response())
        response = await MailgunAdapter(api_key="key-123", session=session).send(
            _payload(recipient_email=None)
        )
        assert response.failure_type is FailureType.VALIDATION_ERROR
        session.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_sender_domain(self):
        response = await MailgunAdapter(api_key="key-123", session=MagicMock()).send(
            _payload(sender_domain=None)
        )
        assert response.failure_type is FailureType.VALIDATION_ERROR

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        adapter = MailgunAdapter(api_key="", session=MagicMock())
        assert adapter.is_configured() is False
        response = await adapter.send(_payload())
        assert response.failure_type is FailureType.AUTH_FAILURE

    def test_form_carries_tracking_variables(self):
        with patch("lcs.transport.mailgun_adapter.aiohttp.FormData") as form_cls:
            MailgunAdapter(api_key="key-123").build_form(_payload())

        fields = {c.args[0]: c.args[1] for c in form_cls.return_value.add_field.call_args_list}
        assert fields["v:communication_id"] == COMM_ID
        assert fields["v:message_run_id"].startswith("RUN-")
        assert fields["from"] == "outreach-sender <outreach@mg.example.com>"
        assert fields["subject"] == "Quick question"


class TestHeyReachAdapter:
    @pytest.mark.asyncio
    async def test_accepted_message_is_sent(self):
        session = _make_mock_session(_make_mock_response(200, {"message_id": "hr-42"}))
        adapter = HeyReachAdapter(api_key="hr-key", base_url="https://heyreach.test/api", session=session)

        response = await adapter.send(_payload(Channel.HR))

        assert response.success is True
        assert response.delivery_status is DeliveryStatus.SENT
        assert response.adapter_message_id == "hr-42"
        call = session.post.call_args
        assert call.args[0] == "https://heyreach.test/api/messages/send"
        assert call.kwargs["headers"] == {"Authorization": "Bearer hr-key"}
        assert call.kwargs["json"]["linkedin_url"] == "https://linkedin.com/in/acme-ceo"
        assert call.kwargs["json"]["metadata"]["communication_id"] == COMM_ID

    @pytest.mark.asyncio
    async def test_rate_limited(self):
        session = _make_mock_session(_make_mock_response(429, {"error": "Too many requests"}))
        response = await HeyReachAdapter(api_key="hr-key", session=session).send(_payload(Channel.HR))
        assert response.failure_type is FailureType.RATE_LIMIT
        assert response.error_message == "Too many requests"

    @pytest.mark.asyncio
    async def test_requires_linkedin_url(self):
        response = await HeyReachAdapter(api_key="hr-key", session=MagicMock()).send(
            _payload(Channel.HR, recipient_linkedin_url=None)
        )
        assert response.failure_type is FailureType.VALIDATION_ERROR

    @pytest.mark.asyncio
    async def test_requires_message_text(self):
        response = await HeyReachAdapter(api_key="hr-key", session=MagicMock()).send(
            _payload(Channel.HR, body_text=None)
        )
        assert response.failure_type is FailureType.VALIDATION_ERROR


class TestSalesHandoffAdapter:
    @pytest.mark.asyncio
    async def test_handoff_is_delivered_immediately(self):
        response = await SalesHandoffAdapter().send(_payload(Channel.SH))

        assert response.success is True
        assert response.delivery_status is DeliveryStatus.DELIVERED
        assert response.adapter_message_id == f"SH-{COMM_ID}"
        assert response.raw_response["frame_id"] == "OUT-HAMMER-T2"
        assert response.raw_response["handoff_reason"] == "sig-hash-abc123"

    @pytest.mark.asyncio
    async def test_missing_metadata_defaults(self):
        response = await SalesHandoffAdapter().send(_payload(Channel.SH, metadata={}))
        assert response.raw_response["frame_id"] == "UNKNOWN"


class TestAdapterRegistry:
    def test_resolve_registered_channel(self):
        handoff = SalesHandoffAdapter()
        registry = AdapterRegistry([handoff])
        assert registry.resolve(Channel.SH) is handoff
        assert registry.resolve("SH") is handoff

    def test_unknown_channel_raises(self):
        registry = AdapterRegistry([SalesHandoffAdapter()])
        with pytest.raises(UnknownChannelError):
            registry.resolve(Channel.MG)
        with pytest.raises(UnknownChannelError):
            registry.resolve("XX")

    def test_get_returns_none_for_garbage(self):
        assert AdapterRegistry().get("not-a-channel") is None

    def test_register_replaces(self):
        first, second = SalesHandoffAdapter(), SalesHandoffAdapter()
        registry = AdapterRegistry([first])
        registry.register(second)
        assert registry.resolve(Channel.SH) is second
        assert registry.channels() == [Channel.SH]
