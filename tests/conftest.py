from types import SimpleNamespace

import pytest

from channel import Channel
from configuration import Config


BASE_CONFIG = """
bot:
  prefix_enabled: true
  default_model: ChatGPT
  processing_text: "⏳ Processing..."
self_message:
  enabled: true
  skip_prefix: "»"
chatgpt:
  prefix: "!chatgpt"
  icon: "🤖"
gemini:
  prefix: "!gemini"
  icon: "✨"
dalle:
  prefix: "!dalle"
  icon: "🎨"
"""


@pytest.fixture
def make_config(tmp_path, monkeypatch):
    for name in ("OPENAI_API_KEY", "GEMINI_API_KEY", "STABILITY_API_KEY"):
        monkeypatch.delenv(name, raising=False)

    def _make(text: str = BASE_CONFIG) -> Config:
        path = tmp_path / "config.yaml"
        path.write_text(text, encoding="utf-8")
        return Config(str(path))

    return _make


class FakeChannel(Channel):
    """记录所有发送动作的 Channel"""

    def __init__(self, edit_ok: bool = True, send_ok: bool = True):
        self.calls: list[tuple] = []
        self.edit_ok = edit_ok
        self.send_ok = send_ok
        self._counter = 0

    @property
    def name(self) -> str:
        return "fake"

    @property
    def bot_id(self) -> str:
        return "bot@s.whatsapp.net"

    def _next_id(self) -> str:
        self._counter += 1
        return f"out_{self._counter}"

    async def send_text(self, content, receiver, quoted=None):
        self.calls.append(("send_text", receiver, content))
        return self._next_id() if self.send_ok else None

    async def send_image(self, url, receiver, caption=""):
        self.calls.append(("send_image", receiver, url, caption))
        return self._next_id()

    async def edit_message(self, receiver, message_id, content):
        self.calls.append(("edit", receiver, message_id, content))
        return self.edit_ok

    async def delete_message(self, receiver, message_id):
        self.calls.append(("delete", receiver, message_id))
        return True

    async def start(self, on_message):
        pass

    async def stop(self):
        pass


class FakeCompletions:
    def __init__(self, content="Hi there", error=None):
        self.content = content
        self.error = error
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason="stop")])


class FakeImages:
    def __init__(self, url="https://images.example/cat.png", revised_prompt=None, error=None):
        self.url = url
        self.revised_prompt = revised_prompt
        self.error = error
        self.calls: list[dict] = []

    async def generate(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        image = SimpleNamespace(url=self.url, revised_prompt=self.revised_prompt)
        return SimpleNamespace(data=[image])


class FakeOpenAI:
    """AsyncOpenAI 的最小替身"""

    def __init__(self, content="Hi there", error=None, images=None):
        self.chat = SimpleNamespace(completions=FakeCompletions(content, error))
        self.images = images or FakeImages()

    @property
    def completion_calls(self) -> list[dict]:
        return self.chat.completions.calls
