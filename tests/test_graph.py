"""Tests for mailvault.graph."""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from mailvault.config import GraphConfig
from mailvault.errors import UpstreamAPIFailure
from mailvault.graph import GraphClient
from mailvault.models import FileAttachment, ItemAttachment

from tests.conftest import GRAPH_BASE, make_file_attachment, make_item_attachment, make_message


@pytest.fixture
def graph(graph_config: GraphConfig) -> GraphClient:
    return GraphClient(graph_config)


class TestGraphClientLifecycle:
    @pytest.mark.asyncio
    async def test_start_creates_httpx_client(self, graph: GraphClient):
        await graph.start()
        assert graph._client is not None
        await graph.stop()
        assert graph._client is None

    @pytest.mark.asyncio
    async def test_stop_when_not_started(self, graph: GraphClient):
        await graph.stop()  # should not raise

    @pytest.mark.asyncio
    async def test_request_before_start_raises(self, graph: GraphClient):
        with pytest.raises(AssertionError, match="Graph client not started"):
            await graph.get_message("m1", "tok")


class TestMailboxPath:
    def test_defaults_to_me(self, graph: GraphClient):
        assert graph.mailbox_path == "me"

    def test_shared_mailbox_is_quoted(self):
        client = GraphClient(GraphConfig(base_url=GRAPH_BASE, mailbox="invoices@contoso.com"))
        assert client.mailbox_path == "users/invoices%40contoso.com"


class TestMailReads:
    @pytest.mark.asyncio
    @respx.mock
    async def test_get_message(self, graph: GraphClient):
        route = respx.get(f"{GRAPH_BASE}/me/messages/m1").respond(200, json=make_message())

        await graph.start()
        try:
            message = await graph.get_message("m1", "tok")
        finally:
            await graph.stop()

        assert message.id == "m1"
        assert message.has_attachments is True
        request = route.calls[0].request
        assert request.headers["authorization"] == "Bearer tok"
        assert "receivedDateTime" in request.url.params["$select"]
        assert "hasAttachments" in request.url.params["$select"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_message_for_shared_mailbox(self):
        client = GraphClient(GraphConfig(base_url=GRAPH_BASE, mailbox="shared@contoso.com"))
        route = respx.get(f"{GRAPH_BASE}/users/shared%40contoso.com/messages/m1").respond(
            200, json=make_message()
        )

        await client.start()
        try:
            await client.get_message("m1", "tok")
        finally:
            await client.stop()

        assert route.called

    @pytest.mark.asyncio
    @respx.mock
    async def test_list_attachments_parses_variants(self, graph: GraphClient):
        respx.get(f"{GRAPH_BASE}/me/messages/m1/attachments").respond(
            200,
            json={"value": [make_file_attachment(), make_item_attachment()]},
        )

        await graph.start()
        try:
            attachments = await graph.list_attachments("m1", "tok")
        finally:
            await graph.stop()

        assert isinstance(attachments[0], FileAttachment)
        assert isinstance(attachments[1], ItemAttachment)

    @pytest.mark.asyncio
    @respx.mock
    async def test_list_attachments_follows_next_link(self, graph: GraphClient):
        route = respx.get(f"{GRAPH_BASE}/me/messages/m1/attachments").mock(
            side_effect=[
                httpx.Response(
                    200,
                    json={
                        "value": [make_file_attachment(attachment_id="a1")],
                        "@odata.nextLink": f"{GRAPH_BASE}/me/messages/m1/attachments?$skiptoken=p2",
                    },
                ),
                httpx.Response(200, json={"value": [make_file_attachment(attachment_id="a2")]}),
            ]
        )

        await graph.start()
        try:
            attachments = await graph.list_attachments("m1", "tok")
        finally:
            await graph.stop()

        assert [a.id for a in attachments] == ["a1", "a2"]
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_attachment_bytes(self, graph: GraphClient):
        route = respx.get(f"{GRAPH_BASE}/me/messages/m1/attachments/a1/$value").respond(
            200, content=b"\x00\x01binary"
        )

        await graph.start()
        try:
            data = await graph.get_attachment_bytes("m1", "a1", "tok")
        finally:
            await graph.stop()

        assert data == b"\x00\x01binary"
        assert route.calls[0].request.headers["authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    @respx.mock
    async def test_error_status_raises_upstream_failure(self, graph: GraphClient):
        respx.get(f"{GRAPH_BASE}/me/messages/m1").respond(404, json={"error": {"code": "ErrorItemNotFound"}})

        await graph.start()
        try:
            with pytest.raises(UpstreamAPIFailure) as exc_info:
                await graph.get_message("m1", "tok")
        finally:
            await graph.stop()

        assert exc_info.value.status_code == 404
        assert exc_info.value.is_unauthorized is False

    @pytest.mark.asyncio
    @respx.mock
    async def test_unauthorized_flagged(self, graph: GraphClient):
        respx.get(f"{GRAPH_BASE}/me/messages/m1/attachments").respond(401)

        await graph.start()
        try:
            with pytest.raises(UpstreamAPIFailure) as exc_info:
                await graph.list_attachments("m1", "tok")
        finally:
            await graph.stop()

        assert exc_info.value.is_unauthorized is True

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_error_raises_upstream_failure(self, graph: GraphClient):
        respx.get(f"{GRAPH_BASE}/me/messages/m1").mock(side_effect=httpx.ConnectError("boom"))

        await graph.start()
        try:
            with pytest.raises(UpstreamAPIFailure):
                await graph.get_message("m1", "tok")
        finally:
            await graph.stop()


class TestSubscriptionCalls:
    @pytest.mark.asyncio
    @respx.mock
    async def test_create_subscription_posts_payload(self, graph: GraphClient):
        route = respx.post(f"{GRAPH_BASE}/subscriptions").respond(201, json={"id": "sub-9"})

        await graph.start()
        try:
            created = await graph.create_subscription({"changeType": "created"}, "tok")
        finally:
            await graph.stop()

        assert created == {"id": "sub-9"}
        assert json.loads(route.calls[0].request.content) == {"changeType": "created"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_update_subscription_no_content(self, graph: GraphClient):
        respx.patch(f"{GRAPH_BASE}/subscriptions/sub-9").respond(204)

        await graph.start()
        try:
            updated = await graph.update_subscription("sub-9", {"expirationDateTime": "x"}, "tok")
        finally:
            await graph.stop()

        assert updated is None
