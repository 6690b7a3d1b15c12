"""Directory client: pagination, guest filtering, retries and fail-soft signals."""

import httpx
import pytest

from sentinel.core.errors import DirectoryApiError, DirectoryUnavailableError
from sentinel.services.directory import (
    NETWORK_RETRY_DELAY_SECONDS,
    PRESENCE_ACTIVE,
    PRESENCE_AWAY,
    RATE_LIMIT_DEFAULT_WAIT_SECONDS,
    DirectoryClient,
)


def _client(handler, sleeps: list[float] | None = None, max_retries: int = 3) -> DirectoryClient:
    recorded = sleeps if sleeps is not None else []

    async def _sleep(seconds: float) -> None:
        recorded.append(seconds)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DirectoryClient(
        http, api_url="https://slack.test/api", max_retries=max_retries, sleep=_sleep,
    )


def _method(request: httpx.Request) -> str:
    return request.url.path.rsplit("/", 1)[-1]


@pytest.mark.asyncio
async def test_list_guests_follows_every_page():
    pages_served = []

    def handler(request: httpx.Request) -> httpx.Response:
        cursor = request.url.params.get("cursor")
        page = int(cursor) if cursor else 0
        pages_served.append(page)
        members = [
            {"id": f"G{page}-{i}", "is_restricted": True, "updated": 1700000000}
            for i in range(100)
        ]
        next_cursor = str(page + 1) if page < 4 else ""
        return httpx.Response(200, json={
            "ok": True,
            "members": members,
            "response_metadata": {"next_cursor": next_cursor},
        })

    client = _client(handler)
    guests = await client.list_guest_accounts("xoxp")

    assert len(guests) == 500
    assert pages_served == [0, 1, 2, 3, 4]
    assert guests[0].profile_updated_at == 1700000000


@pytest.mark.asyncio
async def test_list_guests_keeps_only_live_guest_accounts():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": True, "members": [
            {"id": "U1"},
            {"id": "G1", "is_restricted": True},
            {"id": "G2", "is_ultra_restricted": True},
            {"id": "G3", "is_restricted": True, "deleted": True},
            {"id": "B1", "is_restricted": True, "is_bot": True},
        ]})

    guests = await _client(handler).list_guest_accounts("xoxp")

    assert [g.id for g in guests] == ["G1", "G2"]
    assert guests[0].profile_updated_at == 0


@pytest.mark.asyncio
async def test_rate_limited_call_recovers_after_one_backoff():
    calls = []
    sleeps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(429, headers={"Retry-After": "7"})
        return httpx.Response(200, json={"ok": True, "members": []})

    guests = await _client(handler, sleeps).list_guest_accounts("xoxp")

    assert guests == []
    assert len(calls) == 2
    assert sleeps == [7.0]


@pytest.mark.asyncio
async def test_rate_limit_without_retry_after_uses_default_wait():
    calls = []
    sleeps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(429)
        return httpx.Response(200, json={"ok": True, "members": []})

    await _client(handler, sleeps).list_guest_accounts("xoxp")

    assert sleeps == [RATE_LIMIT_DEFAULT_WAIT_SECONDS]


@pytest.mark.asyncio
async def test_persistent_rate_limit_raises_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, headers={"Retry-After": "1"})

    sleeps: list[float] = []
    with pytest.raises(DirectoryUnavailableError):
        await _client(handler, sleeps, max_retries=3).list_guest_accounts("xoxp")
    assert len(sleeps) == 3


@pytest.mark.asyncio
async def test_network_error_is_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("boom", request=request)
        return httpx.Response(200, json={"ok": True, "members": []})

    sleeps: list[float] = []
    await _client(handler, sleeps).list_guest_accounts("xoxp")
    assert len(calls) == 2
    assert len(sleeps) == 1


@pytest.mark.asyncio
async def test_api_error_is_raised_with_code():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": False, "error": "invalid_auth"})

    with pytest.raises(DirectoryApiError) as exc_info:
        await _client(handler).list_guest_accounts("xoxp")
    assert exc_info.value.code == "invalid_auth"
    assert exc_info.value.method == "users.list"


@pytest.mark.asyncio
async def test_presence_reads_active_and_fails_soft():
    def handler(request: httpx.Request) -> httpx.Response:
        user = request.url.params.get("user")
        if user == "G1":
            return httpx.Response(200, json={"ok": True, "presence": "active"})
        return httpx.Response(200, json={"ok": False, "error": "user_not_found"})

    client = _client(handler)
    assert await client.get_presence("xoxp", "G1") == PRESENCE_ACTIVE
    assert await client.get_presence("xoxp", "G2") == PRESENCE_AWAY


@pytest.mark.asyncio
async def test_recent_message_stops_at_first_match():
    history_calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        method = _method(request)
        if method == "users.conversations":
            return httpx.Response(200, json={
                "ok": True,
                "channels": [{"id": "C1"}, {"id": "C2"}, {"id": "C3"}],
            })
        channel = request.url.params.get("channel")
        history_calls.append(channel)
        if channel == "C1":
            return httpx.Response(200, json={"ok": False, "error": "not_in_channel"})
        return httpx.Response(200, json={"ok": True, "messages": [
            {"user": "OTHER", "ts": "1700000500.000100"},
            {"user": "G1", "ts": "1700000400.000200"},
        ]})

    ts = await _client(handler).get_recent_message_timestamp("xoxp", "G1", 1700000000.0)

    assert ts == pytest.approx(1700000400.0002)
    assert history_calls == ["C1", "C2"]


@pytest.mark.asyncio
async def test_recent_message_ignores_old_messages():
    def handler(request: httpx.Request) -> httpx.Response:
        if _method(request) == "users.conversations":
            return httpx.Response(200, json={"ok": True, "channels": [{"id": "C1"}]})
        return httpx.Response(200, json={"ok": True, "messages": [
            {"user": "G1", "ts": "1600000000.000000"},
        ]})

    ts = await _client(handler).get_recent_message_timestamp("xoxp", "G1", 1700000000.0)
    assert ts is None


@pytest.mark.asyncio
async def test_send_direct_message_opens_channel_then_posts():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        method = _method(request)
        seen.append((method, request.method))
        if method == "conversations.open":
            return httpx.Response(200, json={"ok": True, "channel": {"id": "D42"}})
        return httpx.Response(200, json={"ok": True, "ts": "1.0"})

    await _client(handler).send_direct_message("xoxp", "UADMIN", [{"type": "divider"}], "hi")

    assert seen == [("conversations.open", "POST"), ("chat.postMessage", "POST")]


def _unavailable_html(request: httpx.Request) -> httpx.Response:
    return httpx.Response(503, text="<html>Service Unavailable</html>")


@pytest.mark.asyncio
async def test_server_error_is_retried_then_raises_unavailable():
    sleeps: list[float] = []
    with pytest.raises(DirectoryUnavailableError):
        await _client(_unavailable_html, sleeps, max_retries=3).list_guest_accounts("xoxp")
    assert sleeps == [NETWORK_RETRY_DELAY_SECONDS] * 3


@pytest.mark.asyncio
async def test_server_error_recovers_on_retry():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(502, text="")
        return httpx.Response(200, json={"ok": True, "members": []})

    sleeps: list[float] = []
    assert await _client(handler, sleeps).list_guest_accounts("xoxp") == []
    assert len(calls) == 2
    assert sleeps == [NETWORK_RETRY_DELAY_SECONDS]


@pytest.mark.asyncio
async def test_non_json_body_raises_api_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="not found")

    with pytest.raises(DirectoryApiError) as exc_info:
        await _client(handler).list_guest_accounts("xoxp")
    assert exc_info.value.code == "http_404"


@pytest.mark.asyncio
async def test_presence_reads_away_on_html_outage():
    assert await _client(_unavailable_html).get_presence("xoxp", "G1") == PRESENCE_AWAY


@pytest.mark.asyncio
async def test_recent_message_skips_channel_with_html_outage():
    def handler(request: httpx.Request) -> httpx.Response:
        if _method(request) == "users.conversations":
            return httpx.Response(200, json={
                "ok": True, "channels": [{"id": "C1"}, {"id": "C2"}],
            })
        if request.url.params.get("channel") == "C1":
            return _unavailable_html(request)
        return httpx.Response(200, json={"ok": True, "messages": [
            {"user": "G1", "ts": "1700000400.000000"},
        ]})

    ts = await _client(handler).get_recent_message_timestamp("xoxp", "G1", 1700000000.0)
    assert ts == pytest.approx(1700000400.0)


@pytest.mark.asyncio
async def test_recent_message_is_none_when_channel_listing_is_down():
    ts = await _client(_unavailable_html).get_recent_message_timestamp("xoxp", "G1", 1700000000.0)
    assert ts is None
