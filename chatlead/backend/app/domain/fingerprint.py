# app/domain/fingerprint.py
from __future__ import annotations

import hashlib


def normalize_conversation(text: str) -> str:
    lines = (text or "").replace("\r\n", "\n").replace("\r", "\n").split("\n")
    return "\n".join(line.rstrip() for line in lines).strip()


def conversation_fingerprint(text: str) -> str:
    """
    Uniqueness key for the Lead Store: sha256 of the normalized conversation text.
    Session ids play no part, so the same session id with new text is a new lead.
    """
    return hashlib.sha256(normalize_conversation(text).encode("utf-8")).hexdigest()
