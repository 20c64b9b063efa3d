"""
Directive Parsing

While a conversation context is open, the next inbound message is read as a
directive about the pending draft:

    send | /send | confirm | yes   → CONFIRM
    cancel | /cancel | no          → CANCEL
    regenerate | /regenerate       → REGENERATE
    edit <text> | /edit <text>     → EDIT with the new text

When the context is waiting for free text, anything that is not one of the
keywords becomes an EDIT carrying the whole message.
"""

from dataclasses import dataclass
from enum import Enum


class DirectiveKind(str, Enum):
    CONFIRM = "confirm"
    CANCEL = "cancel"
    EDIT = "edit"
    REGENERATE = "regenerate"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Directive:
    kind: DirectiveKind
    text: str | None = None


_KEYWORDS = {
    "send": DirectiveKind.CONFIRM,
    "confirm": DirectiveKind.CONFIRM,
    "yes": DirectiveKind.CONFIRM,
    "cancel": DirectiveKind.CANCEL,
    "no": DirectiveKind.CANCEL,
    "regenerate": DirectiveKind.REGENERATE,
}


def parse_directive(text: str, accepts_free_text: bool = False) -> Directive:
    stripped = text.strip()
    lowered = stripped.lower().lstrip("/")

    kind = _KEYWORDS.get(lowered)
    if kind is not None:
        return Directive(kind)

    head = lowered.split(" ", 1)[0]
    if head == "edit":
        # Keep the caller's casing for the replacement text
        new_text = stripped.lstrip("/")[len("edit"):].strip()
        if new_text:
            return Directive(DirectiveKind.EDIT, new_text)

    if accepts_free_text and stripped:
        return Directive(DirectiveKind.EDIT, stripped)
    return Directive(DirectiveKind.UNKNOWN, stripped)
