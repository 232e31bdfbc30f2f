from enum import Enum, unique


@unique
class ChatType(str, Enum):
    CHATGPT = "ChatGPT"
    GEMINI = "Gemini"
    OLLAMA = "Ollama"
    DALLE = "DALLE"
    STABILITY = "StabilityAI"


# WhatsApp 群聊 JID 后缀
GROUP_JID_SUFFIX = "@g.us"

# 私聊 JID 后缀
USER_JID_SUFFIX = "@s.whatsapp.net"

# 未知本账号 JID 时，自己发出的消息使用的 sender
SELF_SENDER = "self"
