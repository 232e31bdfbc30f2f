"""Static help text utility."""
from __future__ import annotations

from typing import Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from configuration import ProviderSettings


def build_help_text(
    registrations: Sequence["ProviderSettings"],
    prefix_enabled: bool,
    default_model: str | None,
    reset_command: str,
) -> str:
    """Return formatted help text."""
    lines = ["🤖 WhatsAI commands 🤖", ""]
    if prefix_enabled:
        lines.append("Start your message with a model prefix:")
        for r in registrations:
            icon = f"{r.icon} " if r.icon else ""
            lines.append(f"- {icon}{r.prefix} <prompt>  ({r.name})")
    else:
        lines.append(f"All messages go to {default_model}.")
    lines.append("")
    lines.append(f"- {reset_command}  clear your conversation history")
    return "\n".join(lines)
