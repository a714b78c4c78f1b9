"""Tests for the HTTP collaborators, using httpx.MockTransport."""

import json

import httpx
import pytest

from conftest import make_item
from outreach_queue.config.config_loader import ProviderConfig, TrackerConfig
from outreach_queue.config.trace_context import TRACE_ID_HEADER, get_trace_id, trace_context
from outreach_queue.core.errors import MessagingProviderError, TrackerServiceError
from outreach_queue.core.model.queue_item import MessageType
from outreach_queue.core.providers.messaging_client import UnipileMessagingClient
from outreach_queue.core.providers.tracker_client import TrackerServiceClient

PROVIDER = ProviderConfig(dsn="api8", port=13443, api_key="key-1", account_id="acc-1")


def mock_client(handler, requests):
    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return httpx.Client(transport=httpx.MockTransport(record))


# --- Messaging provider ---


def test_unconfigured_provider_rejected():
    with pytest.raises(ValueError):
        UnipileMessagingClient(ProviderConfig())


def test_connection_request_posts_invite_with_note():
    requests = []
    client = UnipileMessagingClient(
        PROVIDER, client=mock_client(lambda r: httpx.Response(201, json={"object": "UserInvitationSent"}), requests)
    )

    client.send(make_item("a"), "Hi Jane")

    request = requests[0]
    assert str(request.url) == "https://api8.unipile.com:13443/api/v1/users/invite"
    assert request.headers["X-API-KEY"] == "key-1"
    assert json.loads(request.content) == {
        "provider_id": "prov-a",
        "account_id": "acc-1",
        "message": "Hi Jane",
    }


def test_connection_only_posts_invite_without_note():
    requests = []
    client = UnipileMessagingClient(
        PROVIDER, client=mock_client(lambda r: httpx.Response(201, json={}), requests)
    )

    client.send(make_item("a", message_type=MessageType.CONNECTION_ONLY), None)

    assert "message" not in json.loads(requests[0].content)


def test_inmail_opens_chat_with_inmail_option():
    requests = []
    client = UnipileMessagingClient(
        PROVIDER, client=mock_client(lambda r: httpx.Response(201, json={"chat_id": "c1"}), requests)
    )

    client.send(make_item("a", message_type=MessageType.INMAIL), "Hello")

    request = requests[0]
    assert request.url.path == "/api/v1/chats"
    body = json.loads(request.content)
    assert body["attendees_ids"] == ["prov-a"]
    assert body["text"] == "Hello"
    assert body["options"] == {"linkedin": {"api": "classic", "inmail": True}}


def test_direct_message_has_no_inmail_option():
    requests = []
    client = UnipileMessagingClient(
        PROVIDER, client=mock_client(lambda r: httpx.Response(200, json={}), requests)
    )

    client.send(make_item("a", message_type=MessageType.MESSAGE), "Hello")

    assert "options" not in json.loads(requests[0].content)


def test_provider_error_carries_status_and_body():
    client = UnipileMessagingClient(
        PROVIDER,
        client=mock_client(lambda r: httpx.Response(422, text="already invited"), []),
    )

    with pytest.raises(MessagingProviderError) as exc:
        client.send(make_item("a"), "Hi")
    assert exc.value.status_code == 422
    assert str(exc.value) == "Failed to send connection request: 422 - already invited"


def test_provider_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = UnipileMessagingClient(PROVIDER, client=mock_client(handler, []))
    with pytest.raises(MessagingProviderError, match="connection refused"):
        client.send(make_item("a"), "Hi")


# --- Tracker service ---


def tracker_client(handler, requests):
    return TrackerServiceClient(
        TrackerConfig(base_url="http://backend:3000/"), client=mock_client(handler, requests)
    )


def test_track_returns_tracker_id_and_forwards_trace():
    requests = []
    client = tracker_client(
        lambda r: httpx.Response(200, json={"success": True, "tracker": {"id": "trk-1"}}),
        requests,
    )
    item = make_item(
        "a",
        message_type=MessageType.MESSAGE,
        search_criteria={"job_title": "Engineer", "skills": []},
        job_requisition_id="req-1",
    )

    with trace_context("trace-123"):
        tracker_id = client.track(item, "Hello")

    assert tracker_id == "trk-1"
    request = requests[0]
    assert str(request.url) == "http://backend:3000/api/outreach/track"
    assert request.headers[TRACE_ID_HEADER] == "trace-123"
    body = json.loads(request.content)
    assert body["outreachType"] == "DIRECT_MESSAGE"
    assert body["candidateProviderId"] == "prov-a"
    assert body["jobTitle"] == "Engineer"
    assert body["sourceQueueItemId"] == "a"
    assert "assessmentTemplateId" not in body


def test_track_without_tracker_in_response():
    client = tracker_client(lambda r: httpx.Response(200, json={"success": True}), [])
    assert client.track(make_item("a"), None) is None


def test_status_by_providers_parses_records():
    requests = []
    payload = {
        "success": True,
        "statuses": [
            {
                "providerId": "prov-a",
                "status": "CONNECTION_ACCEPTED",
                "trackerId": "trk-a",
                "acceptedAt": "2026-10-18T09:30:00Z",
            },
            {"providerId": "prov-b", "status": "SENT"},
        ],
    }
    client = tracker_client(lambda r: httpx.Response(200, json=payload), requests)

    records = client.status_by_providers(["prov-a", "prov-b"])

    assert json.loads(requests[0].content) == {"providerIds": ["prov-a", "prov-b"]}
    assert [r.provider_id for r in records] == ["prov-a", "prov-b"]
    assert records[0].tracker_id == "trk-a"
    assert records[0].accepted_at.year == 2026
    assert records[1].tracker_id is None


def test_status_by_providers_empty_input_makes_no_call():
    requests = []
    client = tracker_client(lambda r: httpx.Response(500), requests)
    assert client.status_by_providers([]) == []
    assert requests == []


def test_tracker_error_response():
    client = tracker_client(lambda r: httpx.Response(503, text="down"), [])
    with pytest.raises(TrackerServiceError) as exc:
        client.sync_connections(["prov-a"])
    assert exc.value.status_code == 503
    assert "sync-connections-from-linkedin" in str(exc.value)


def test_status_by_providers_non_object_response():
    client = tracker_client(lambda r: httpx.Response(200, json=["prov-a"]), [])
    with pytest.raises(TrackerServiceError, match="Malformed tracker status response"):
        client.status_by_providers(["prov-a"])


def test_trace_context_nests_and_restores():
    with trace_context("outer"):
        with trace_context() as inner:
            assert get_trace_id() == inner != "outer"
        assert get_trace_id() == "outer"
    assert get_trace_id() == "no-trace"
