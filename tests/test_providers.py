import asyncio
import base64
from types import SimpleNamespace

import httpx
import pytest
from openai import APIConnectionError

from ai_providers import (
    ChatGPT,
    CustomModel,
    DALLE,
    Gemini,
    ModelRequest,
    Ollama,
    ReplyKind,
    StabilityAI,
)
from channel import MediaRef, Message, MessageType
from configuration import CustomModelSettings, ProviderSettings
from conftest import FakeImages, FakeOpenAI

USER = "4915550001@s.whatsapp.net"


def settings(name="ChatGPT", **kwargs):
    kwargs.setdefault("prefix", f"!{name.lower()}")
    kwargs.setdefault("api_key", "sk-test")
    return ProviderSettings(name=name, **kwargs)


def image_message(data: bytes, quoted: Message | None = None) -> Message:
    return Message(
        id="m1",
        chat_id=USER,
        sender=USER,
        content="what is this?",
        type=MessageType.IMAGE,
        media=MediaRef(mimetype="image/jpeg", data=data),
        quoted=quoted,
    )


def send(model, prompt, sender=USER, metadata=None):
    return asyncio.run(model.send_message(ModelRequest(sender=sender, prompt=prompt, metadata=metadata)))


def test_chatgpt_text_reply_with_icon_and_history():
    client = FakeOpenAI(content="\n\nHello!")
    model = ChatGPT(settings(icon="🤖"), client=client)

    reply = send(model, "hi")
    assert reply.kind == ReplyKind.TEXT
    assert reply.text == "🤖 Hello!"
    assert model.session_exists(USER)

    send(model, "again")
    second_call = client.completion_calls[1]["messages"]
    assert [m["role"] for m in second_call] == ["system", "user", "assistant", "user"]
    assert second_call[-1]["content"] == "again"


def test_chatgpt_error_becomes_single_error_reply():
    model = ChatGPT(settings(icon="🤖"), client=FakeOpenAI(error=RuntimeError("boom")))

    reply = send(model, "hi")
    assert reply.kind == ReplyKind.ERROR
    assert not reply.ok
    assert reply.text == ""
    assert "boom" in reply.error
    assert reply.error.startswith("🤖 ChatGPT error")
    assert model.sessions.get(USER).messages == []


def test_openai_connection_error_is_caught():
    error = APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
    model = ChatGPT(settings(), client=FakeOpenAI(error=error))

    reply = send(model, "hi")
    assert reply.kind == ReplyKind.ERROR
    assert "Connection error" in reply.error


def test_empty_prompt_is_an_error():
    model = ChatGPT(settings(), client=FakeOpenAI())
    reply = send(model, "")
    assert reply.kind == ReplyKind.ERROR
    assert model.session_exists(USER)


def test_quoted_image_takes_precedence():
    client = FakeOpenAI(content="a cat")
    model = ChatGPT(settings(model="gpt-4o"), client=client)
    quoted = image_message(b"quoted-image")
    metadata = image_message(b"direct-image", quoted=quoted)

    send(model, "what is this?", metadata=metadata)

    content = client.completion_calls[0]["messages"][-1]["content"]
    image_url = content[1]["image_url"]["url"]
    assert image_url == "data:image/jpeg;base64," + base64.b64encode(b"quoted-image").decode()


def test_direct_image_used_without_quote():
    client = FakeOpenAI(content="a dog")
    model = Gemini(settings("Gemini"), client=client)

    send(model, "what is this?", metadata=image_message(b"direct-image"))

    content = client.completion_calls[0]["messages"][-1]["content"]
    assert content[0] == {"type": "text", "text": "what is this?"}
    assert base64.b64encode(b"direct-image").decode() in content[1]["image_url"]["url"]


def test_text_only_model_ignores_image():
    client = FakeOpenAI(content="ok")
    model = ChatGPT(settings(model="gpt-3.5-turbo"), client=client)

    send(model, "what is this?", metadata=image_message(b"direct-image"))

    assert client.completion_calls[0]["messages"][-1]["content"] == "what is this?"


def test_sessions_isolated_between_users_and_providers():
    chatgpt = ChatGPT(settings(), client=FakeOpenAI(content="from chatgpt"))
    gemini = Gemini(settings("Gemini"), client=FakeOpenAI(content="from gemini"))

    send(chatgpt, "alice to chatgpt", sender="alice")
    send(gemini, "alice to gemini", sender="alice")
    send(chatgpt, "bob to chatgpt", sender="bob")

    def contents(model, user):
        return [m["content"] for m in model.sessions.get(user).messages]

    assert contents(chatgpt, "alice") == ["alice to chatgpt", "from chatgpt"]
    assert contents(gemini, "alice") == ["alice to gemini", "from gemini"]
    assert contents(chatgpt, "bob") == ["bob to chatgpt", "from chatgpt"]


def test_gemini_and_ollama_defaults():
    gemini = Gemini(settings("Gemini"), client=FakeOpenAI())
    assert gemini.model == "gemini-2.0-flash"
    assert gemini.support_vision

    ollama_settings = ProviderSettings(name="Ollama", prefix="!ollama")
    assert Ollama.value_check(ollama_settings)
    assert not ChatGPT.value_check(ollama_settings)

    ollama = Ollama(ollama_settings, client=FakeOpenAI())
    assert ollama.settings.api_key == "ollama"
    assert not ollama.support_vision


def test_dalle_image_reply():
    images = FakeImages(url="https://images.example/cat.png")
    model = DALLE(settings("DALLE", icon="🎨"), client=FakeOpenAI(images=images))

    reply = send(model, "a cat in space")
    assert reply.kind == ReplyKind.IMAGE
    assert reply.image_url == "https://images.example/cat.png"
    assert reply.caption == "🎨 a cat in space"
    assert images.calls[0]["prompt"] == "a cat in space"


def test_dalle_error_reply():
    images = FakeImages(error=RuntimeError("quota exceeded"))
    model = DALLE(settings("DALLE"), client=FakeOpenAI(images=images))

    reply = send(model, "a cat")
    assert reply.kind == ReplyKind.ERROR
    assert "quota exceeded" in reply.error


def test_stability_returns_data_url():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer sk-test"
        return httpx.Response(200, json={"image": "aGVsbG8=", "finish_reason": "SUCCESS"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    model = StabilityAI(settings("StabilityAI", icon="🖼️"), client=client)

    reply = send(model, "mountains")
    assert reply.kind == ReplyKind.IMAGE
    assert reply.image_url == "data:image/png;base64,aGVsbG8="
    assert reply.caption == "🖼️ mountains"


def test_stability_http_error_reply():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"errors": ["invalid key"]})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    model = StabilityAI(settings("StabilityAI"), client=client)

    reply = send(model, "mountains")
    assert reply.kind == ReplyKind.ERROR
    assert "401" in reply.error


def custom_settings(**kwargs):
    kwargs.setdefault("name", "Docs")
    kwargs.setdefault("prefix", "!docs")
    kwargs.setdefault("api_key", "sk-test")
    kwargs.setdefault("context", "You are helpful")
    return CustomModelSettings(**kwargs)


def test_custom_system_mode_passes_context_as_instruction():
    model = CustomModel(custom_settings())
    client = FakeOpenAI(content="sure")
    model.backend.client = client

    reply = send(model, "hello")
    messages = client.completion_calls[0]["messages"]
    assert messages[0] == {"role": "system", "content": "You are helpful"}
    assert messages[-1]["content"] == "hello"
    assert reply.kind == ReplyKind.TEXT
    assert model.session_exists(USER)


def test_custom_prompt_mode_prepends_context():
    model = CustomModel(custom_settings(include_mode="prompt"))
    client = FakeOpenAI(content="sure")
    model.backend.client = client

    send(model, "hello")
    messages = client.completion_calls[0]["messages"]
    assert messages[-1]["content"] == "You are helpful\n\nhello"
    assert all(m["content"] != "You are helpful" for m in messages if m["role"] == "system")


def test_custom_loads_file_context_once(tmp_path):
    (tmp_path / "faq.md").write_text("FAQ body", encoding="utf-8")
    model = CustomModel(custom_settings(base="Gemini", context="faq.md"), base_dir=str(tmp_path))

    assert model.context == "FAQ body"
    assert isinstance(model.backend, Gemini)
    assert model.backend.system_prompt == "FAQ body"


def test_custom_sessions_separate_from_plain_backend():
    plain = ChatGPT(settings(), client=FakeOpenAI())
    custom = CustomModel(custom_settings())
    custom.backend.client = FakeOpenAI()

    send(custom, "hello")
    assert custom.session_exists(USER)
    assert not plain.session_exists(USER)


def test_custom_rejects_unknown_base():
    with pytest.raises(ValueError):
        CustomModel(custom_settings(base="DALLE"))


def test_custom_prompt_mode_keeps_context_out_of_history():
    model = CustomModel(custom_settings(include_mode="prompt"))
    client = FakeOpenAI(content="sure")
    model.backend.client = client

    send(model, "first")
    send(model, "second")

    second_call = client.completion_calls[1]["messages"]
    sent_text = " ".join(m["content"] for m in second_call)
    assert sent_text.count("You are helpful") == 1
    assert second_call[-1]["content"] == "You are helpful\n\nsecond"
    assert [m["content"] for m in model.sessions.get(USER).messages] == ["first", "sure", "second", "sure"]


class SlowCompletions:
    """记录每次调用的开始与结束"""

    def __init__(self):
        self.events = []

    async def create(self, model, messages):
        text = messages[-1]["content"]
        self.events.append(f"{text}-start")
        await asyncio.sleep(0.01)
        self.events.append(f"{text}-end")
        message = SimpleNamespace(content=f"re: {text}")
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def run_concurrently(model, *requests):
    async def run():
        return await asyncio.gather(*(
            model.send_message(ModelRequest(sender=sender, prompt=prompt)) for sender, prompt in requests
        ))

    return asyncio.run(run())


def test_same_user_requests_are_queued():
    completions = SlowCompletions()
    model = ChatGPT(settings(), client=SimpleNamespace(chat=SimpleNamespace(completions=completions)))

    run_concurrently(model, ("alice", "a"), ("alice", "b"))

    assert completions.events == ["a-start", "a-end", "b-start", "b-end"]
    # 第二条请求能看到第一条的完整历史
    assert [m["content"] for m in model.sessions.get("alice").messages] == ["a", "re: a", "b", "re: b"]


def test_different_users_run_concurrently():
    completions = SlowCompletions()
    model = ChatGPT(settings(), client=SimpleNamespace(chat=SimpleNamespace(completions=completions)))

    run_concurrently(model, ("alice", "a"), ("bob", "b"))

    assert completions.events[:2] == ["a-start", "b-start"]
