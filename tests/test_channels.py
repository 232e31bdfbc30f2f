import asyncio
import json

import httpx

from channel import LocalChannel, MessageType, WhatsAppChannel


def bridge(handler):
    client = httpx.AsyncClient(base_url="http://bridge", transport=httpx.MockTransport(handler))
    return WhatsAppChannel(client=client)


def test_poll_parses_events_and_drops_status_broadcast():
    def handler(request):
        assert request.url.path == "/events"
        assert request.url.params["timeout"] == "25"
        return httpx.Response(200, json={
            "messages": [
                {"key": {"remoteJid": "status@broadcast", "id": "S1", "participant": "a@s.whatsapp.net"},
                 "message": {"conversation": "status update"}},
                {"key": {"remoteJid": "1-2@g.us", "id": "G1", "participant": "a@s.whatsapp.net"},
                 "message": {"conversation": "!chatgpt hi"}},
                "garbage",
            ],
            "groups": {"1-2@g.us": {"id": "1-2@g.us", "subject": "Team", "announce": False}},
        })

    messages = asyncio.run(bridge(handler).poll())

    assert [m.id for m in messages] == ["G1"]
    assert messages[0].is_group
    assert messages[0].group.subject == "Team"


def test_poll_error_returns_empty():
    channel = bridge(lambda request: httpx.Response(502))
    assert asyncio.run(channel.poll()) == []


def test_send_edit_delete_payloads():
    seen = []

    def handler(request):
        seen.append((request.url.path, json.loads(request.content)))
        if request.url.path == "/messages/edit":
            return httpx.Response(500)
        return httpx.Response(200, json={"id": "WA1"})

    channel = bridge(handler)

    async def run():
        sent = await channel.send_text("⏳", "a@s.whatsapp.net")
        edited = await channel.edit_message("a@s.whatsapp.net", "WA1", "done")
        deleted = await channel.delete_message("a@s.whatsapp.net", "WA1")
        image = await channel.send_image("https://x/cat.png", "a@s.whatsapp.net", "cat")
        return sent, edited, deleted, image

    sent, edited, deleted, image = asyncio.run(run())

    assert sent == "WA1"
    assert edited is False
    assert deleted is True
    assert image == "WA1"
    assert seen[0] == ("/messages/text", {"jid": "a@s.whatsapp.net", "text": "⏳"})
    assert seen[1][1] == {"jid": "a@s.whatsapp.net", "id": "WA1", "text": "done"}
    assert seen[3][1]["caption"] == "cat"


def test_connect_reads_bot_id():
    channel = bridge(lambda request: httpx.Response(200, json={"id": "bot@s.whatsapp.net"}))
    asyncio.run(channel.connect())
    assert channel.bot_id == "bot@s.whatsapp.net"


def test_local_channel_simulates_baileys_messages():
    channel = LocalChannel()

    private = channel.simulate_message("!chatgpt hi")
    assert private.content == "!chatgpt hi"
    assert private.type == MessageType.TEXT
    assert not private.is_group

    group = channel.simulate_message("hello", sender="b@s.whatsapp.net", group_id="123")
    assert group.is_group
    assert group.chat_id == "123@g.us"
    assert group.sender == "b@s.whatsapp.net"


def test_local_channel_edit_and_delete(capsys):
    channel = LocalChannel()

    async def run():
        message_id = await channel.send_text("⏳", "x")
        assert await channel.edit_message("x", message_id, "answer")
        assert await channel.delete_message("x", message_id)
        assert not await channel.edit_message("x", message_id, "again")

    asyncio.run(run())
    assert "answer" in capsys.readouterr().out


def test_local_channel_keeps_only_recent_sent_ids():
    channel = LocalChannel(max_sent=2)

    async def run():
        ids = [await channel.send_text(f"msg {i}", "x") for i in range(3)]
        return ids, [await channel.edit_message("x", i, "edited") for i in ids]

    _, edited = asyncio.run(run())
    assert edited == [False, True, True]
