"""Bounded accumulation of text captured onto segments (SQL, datastore keys)."""

from __future__ import annotations

MAX_MESSAGE_LENGTH = 16384
MESSAGE_SEPARATOR = ";\n"
_ELLIPSIS = "..."


def append_message(old_message: str | None, new_message: str) -> str:
    """Append *new_message* after *old_message*, keeping chronological order."""
    if old_message is None:
        return new_message
    return old_message + MESSAGE_SEPARATOR + new_message


def truncate_message(message: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """Cap *message* at *max_length* UTF-8 bytes.

    Messages within the cap are returned unchanged.  Longer messages keep
    their first ``max_length - 3`` bytes followed by ``"..."``, so the result
    is exactly *max_length* bytes.  A multi-byte character split by the cut
    is dropped and the freed bytes become extra dots.
    """
    encoded = message.encode("utf-8")
    if len(encoded) <= max_length:
        return message
    head = encoded[: max_length - len(_ELLIPSIS)].decode("utf-8", errors="ignore")
    return head + "." * (max_length - len(head.encode("utf-8")))
