"""Unit tests for the Crisp adapter.

Tests REST calls with a mocked httpx.AsyncClient and web hook dispatch
to subscribed handlers.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from crispsync_core.providers.base import EventKind, MessageActor, UpstreamEvent
from crispsync_core.providers.crisp import CrispAdapter, CrispAPIError
from tests.factories import WEBSITE_ID, raw_conversation, raw_message


@pytest.fixture
def adapter() -> CrispAdapter:
    return CrispAdapter(
        identifier="test-identifier",
        key="test-key",
        base_url="https://crisp.test/v1/",
    )


def crisp_response(data, status_code: int = 200, error: bool = False, reason: str = "ok"):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = {"error": error, "reason": reason, "data": data}
    return response


class TestRestCalls:
    """Tests for REST endpoints."""

    @pytest.mark.asyncio
    async def test_list_conversations(self, adapter, mock_httpx_client):
        """Conversations are listed per page with per_page and auth."""
        mock_httpx_client.get.return_value = crisp_response([raw_conversation("s1")])

        result = await adapter.list_conversations(WEBSITE_ID, page=2, per_page=20)

        assert result[0]["session_id"] == "s1"
        args, kwargs = mock_httpx_client.get.call_args
        assert args[0] == f"https://crisp.test/v1/website/{WEBSITE_ID}/conversations/2"
        assert kwargs["params"] == {"per_page": 20}
        assert kwargs["auth"] == ("test-identifier", "test-key")
        assert kwargs["headers"]["X-Crisp-Tier"] == "plugin"

    @pytest.mark.asyncio
    async def test_get_conversation(self, adapter, mock_httpx_client):
        """A single conversation is unwrapped from the data member."""
        mock_httpx_client.get.return_value = crisp_response(raw_conversation("s1"))

        result = await adapter.get_conversation(WEBSITE_ID, "s1")

        assert result["session_id"] == "s1"
        args, _ = mock_httpx_client.get.call_args
        assert args[0].endswith(f"/website/{WEBSITE_ID}/conversation/s1")

    @pytest.mark.asyncio
    async def test_list_messages(self, adapter, mock_httpx_client):
        """Messages are listed for one conversation."""
        mock_httpx_client.get.return_value = crisp_response([raw_message(1, "s1")])

        result = await adapter.list_messages(WEBSITE_ID, "s1")

        assert result[0]["fingerprint"] == 1
        args, _ = mock_httpx_client.get.call_args
        assert args[0].endswith(f"/website/{WEBSITE_ID}/conversation/s1/messages")

    @pytest.mark.asyncio
    async def test_bare_list_body_is_accepted(self, adapter, mock_httpx_client):
        """A body that is already a list is returned as is."""
        response = MagicMock()
        response.status_code = 200
        response.json.return_value = [raw_message(1, "s1")]
        mock_httpx_client.get.return_value = response

        result = await adapter.list_messages(WEBSITE_ID, "s1")

        assert len(result) == 1

    @pytest.mark.asyncio
    async def test_non_list_data_is_empty(self, adapter, mock_httpx_client):
        """Listings without a list yield no records."""
        mock_httpx_client.get.return_value = crisp_response({"unexpected": True})

        assert await adapter.list_conversations(WEBSITE_ID, 1, 20) == []

    @pytest.mark.asyncio
    async def test_http_error_status_raises(self, adapter, mock_httpx_client):
        """Non-200 responses raise CrispAPIError with the reason."""
        mock_httpx_client.get.return_value = crisp_response(
            None, status_code=404, error=True, reason="conversation_not_found"
        )

        with pytest.raises(CrispAPIError) as exc_info:
            await adapter.get_conversation(WEBSITE_ID, "missing")

        assert exc_info.value.status_code == 404
        assert exc_info.value.reason == "conversation_not_found"

    @pytest.mark.asyncio
    async def test_error_flag_raises(self, adapter, mock_httpx_client):
        """A 200 body flagged as error still raises."""
        mock_httpx_client.get.return_value = crisp_response(None, error=True, reason="invalid_session")

        with pytest.raises(CrispAPIError):
            await adapter.list_messages(WEBSITE_ID, "s1")

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, adapter, mock_httpx_client):
        """Network failures are wrapped in CrispAPIError."""
        mock_httpx_client.get.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(CrispAPIError):
            await adapter.list_conversations(WEBSITE_ID, 1, 20)

    @pytest.mark.asyncio
    async def test_malformed_conversation_raises(self, adapter, mock_httpx_client):
        """A conversation payload that is not an object is an error."""
        mock_httpx_client.get.return_value = crisp_response([])

        with pytest.raises(CrispAPIError):
            await adapter.get_conversation(WEBSITE_ID, "s1")


class TestDispatch:
    """Tests for web hook dispatch."""

    @pytest.mark.asyncio
    async def test_dispatches_to_every_handler(self, adapter):
        """Recognised events are delivered to all subscribers."""
        first = AsyncMock()
        second = AsyncMock()
        adapter.subscribe(first)
        adapter.subscribe(second)

        delivered = await adapter.dispatch(
            {"event": "message:send", "website_id": WEBSITE_ID, "data": raw_message(1, "s1")}
        )

        assert delivered is True
        event = first.await_args.args[0]
        assert isinstance(event, UpstreamEvent)
        assert event.kind == EventKind.MESSAGE_SENT
        assert event.actor == MessageActor.VISITOR
        assert event.website_id == WEBSITE_ID
        second.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_injects_website_id(self, adapter):
        """The web hook website id is copied into the event payload."""
        handler = AsyncMock()
        adapter.subscribe(handler)

        await adapter.dispatch(
            {"event": "session:request:initiated", "website_id": WEBSITE_ID, "data": {"session_id": "s1"}}
        )

        event = handler.await_args.args[0]
        assert event.payload == {"session_id": "s1", "website_id": WEBSITE_ID}
        assert event.is_message is False

    @pytest.mark.asyncio
    async def test_unknown_event_is_ignored(self, adapter):
        """Events outside the supported kinds are not delivered."""
        handler = AsyncMock()
        adapter.subscribe(handler)

        delivered = await adapter.dispatch({"event": "people:profile:created", "data": {}})

        assert delivered is False
        handler.assert_not_called()

    def test_received_messages_are_from_operator(self):
        """Received message events carry the operator actor."""
        event = UpstreamEvent(kind=EventKind.MESSAGE_RECEIVED, payload={})

        assert event.is_message is True
        assert event.actor == MessageActor.OPERATOR
