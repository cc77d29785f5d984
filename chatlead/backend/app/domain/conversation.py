# app/domain/conversation.py
from __future__ import annotations

import json
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

from .parsing import to_str
from .types import ChatMessage, ChatMetadata, ChatSession, SessionKeyInfo, TimingInfo

KEY_PREFIX = "chat:"
KEY_DELIMITER = "::"

IST = timezone(timedelta(hours=5, minutes=30))

EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")

# metadata keys as written by the inbound chat webhook -> ChatMetadata fields
_METADATA_FIELDS = {
    "phone": "phone",
    "product": "product",
    "sessionId": "session_id",
    "businessInfo": "business_info",
    "username": "username",
    "email": "email",
    "processedToSheets": "processed_to_sheets",
    "processedAt": "processed_at",
}


def _metadata_from(raw: dict[str, Any]) -> ChatMetadata:
    kwargs: dict[str, Any] = {}
    for src, dst in _METADATA_FIELDS.items():
        v = raw.get(src)
        if v is None:
            continue
        if dst == "processed_to_sheets":
            kwargs[dst] = bool(v)
        elif dst == "processed_at":
            kwargs[dst] = str(v)
        else:
            kwargs[dst] = to_str(v)
    return ChatMetadata(**kwargs)


def _message_from(raw: dict[str, Any]) -> ChatMessage:
    role = to_str(raw.get("role")) or "user"
    content = raw.get("content") or raw.get("message") or ""
    ts = raw.get("ts")
    return ChatMessage(
        role=role,
        content=str(content),
        ts=None if ts in (None, "") else str(ts),
    )


def parse_chat_data(raw: str | None) -> ChatSession:
    """
    Decode a stored chat payload. Accepts:
      - {"messages": [...], "metadata": {...}}
      - {"messages": [...], "username": ..., "phone": ...}  (root-level fields win)
      - [...]  (legacy bare message list)

    null / invalid JSON / anything else decodes to an empty session.
    """
    if not raw or raw == "null":
        return ChatSession()

    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return ChatSession()

    if isinstance(parsed, dict) and isinstance(parsed.get("messages"), list):
        nested = parsed.get("metadata")
        merged: dict[str, Any] = dict(nested) if isinstance(nested, dict) else {}
        for k in _METADATA_FIELDS:
            if parsed.get(k):
                merged[k] = parsed[k]
        raw_messages = parsed["messages"]
    elif isinstance(parsed, list):
        merged = {}
        raw_messages = parsed
    else:
        return ChatSession()

    dict_messages = [m for m in raw_messages if isinstance(m, dict)]
    return ChatSession(
        messages=tuple(_message_from(m) for m in dict_messages),
        metadata=_metadata_from(merged),
        raw={"messages": raw_messages, "metadata": merged},
    )


def parse_key(key: str) -> SessionKeyInfo:
    """
    chat:<phone>::<product>::<session> -> phone, product, and the full un-prefixed key as session id.
    """
    without_prefix = key[len(KEY_PREFIX):] if key.startswith(KEY_PREFIX) else key
    parts = without_prefix.split(KEY_DELIMITER)
    return SessionKeyInfo(
        phone=parts[0].strip() if len(parts) > 0 else "",
        product=parts[1].strip() if len(parts) > 1 else "",
        session_id=without_prefix,
    )


def resolve_identity(session: ChatSession, key: str) -> SessionKeyInfo:
    key_info = parse_key(key)
    md = session.metadata
    return SessionKeyInfo(
        phone=md.phone or key_info.phone,
        product=md.product or key_info.product,
        session_id=md.session_id or key_info.session_id,
    )


def truncate_messages(messages: Sequence[ChatMessage], max_messages: int) -> tuple[ChatMessage, ...]:
    if max_messages <= 0:
        return ()
    return tuple(messages[-max_messages:])


def parse_timestamp(ts: Any) -> datetime:
    """
    ISO-8601 strings (naive = UTC) or epoch numbers (seconds or milliseconds).
    Raises ValueError on anything else.
    """
    if isinstance(ts, (int, float)) and not isinstance(ts, bool):
        secs = ts / 1000.0 if ts > 1e11 else float(ts)
        return datetime.fromtimestamp(secs, tz=timezone.utc)

    s = str(ts).strip()
    if re.fullmatch(r"\d+(\.\d+)?", s):
        return parse_timestamp(float(s))

    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _iso_utc(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_conversation_text(messages: Sequence[ChatMessage]) -> str:
    """
    "ROLE @ <iso>: content" blocks separated by a blank line.
    """
    blocks: list[str] = []
    for msg in messages:
        role = (msg.role or "user").upper()
        when = f" @ {_iso_utc(parse_timestamp(msg.ts))}" if msg.ts else ""
        clean = _EXCESS_NEWLINES_RE.sub("\n\n", msg.content.replace("\r\n", "\n")).strip()
        blocks.append(f"{role}{when}: {clean}")
    return "\n\n".join(blocks)


def extract_email(text: str) -> str:
    m = EMAIL_RE.search(text or "")
    return m.group(0) if m else ""


def extract_timing_info(messages: Sequence[ChatMessage], now: datetime | None = None) -> TimingInfo:
    """
    Timing facts straight from message timestamps (IST), independent of any analysis output.
    """
    user_messages = sum(1 for m in messages if m.role == "user")
    assistant_messages = sum(1 for m in messages if m.role == "assistant")

    stamps: list[datetime] = []
    for m in messages:
        if not m.ts:
            continue
        try:
            stamps.append(parse_timestamp(m.ts))
        except ValueError:
            continue

    if not stamps:
        today = (now or datetime.now(timezone.utc)).astimezone(IST)
        return TimingInfo(
            conversation_date=today.strftime("%Y-%m-%d"),
            start_time_ist="Unknown",
            end_time_ist="Unknown",
            duration_minutes=0,
            duration_seconds=0,
            total_messages=len(messages),
            user_messages=user_messages,
            assistant_messages=assistant_messages,
        )

    stamps.sort()
    first, last = stamps[0].astimezone(IST), stamps[-1].astimezone(IST)
    total_seconds = int((stamps[-1] - stamps[0]).total_seconds())

    return TimingInfo(
        conversation_date=first.strftime("%Y-%m-%d"),
        start_time_ist=first.strftime("%H:%M:%S"),
        end_time_ist=last.strftime("%H:%M:%S"),
        duration_minutes=total_seconds // 60,
        duration_seconds=total_seconds % 60,
        total_messages=len(messages),
        user_messages=user_messages,
        assistant_messages=assistant_messages,
    )
