# app/adapters/session_store.py
from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

import redis.asyncio as redis

from ..config import settings
from ..domain.conversation import parse_chat_data, parse_key
from ..domain.errors import ScanError
from ..domain.types import ChatSession, SessionKeyInfo

log = logging.getLogger(__name__)

RUN_LOCK_NAME = "lock:process-chats"
KEY_LOCK_PREFIX = "lock:chat:"


def build_redis_client(url: str | None = None) -> redis.Redis:
    return redis.from_url(url or settings.REDIS_URL, decode_responses=True)


class RedisSessionStore:
    """
    Chat sessions written by the inbound chat webhook.

    The client must be created with decode_responses=True (values come back as str).
    """

    def __init__(
        self,
        client: Any,
        *,
        pattern: str = "chat:*",
        scan_count: int = 500,
    ) -> None:
        self.client = client
        self.pattern = pattern
        self.scan_count = scan_count

    @classmethod
    def from_settings(cls) -> "RedisSessionStore":
        return cls(
            build_redis_client(),
            pattern=settings.CHAT_KEY_PATTERN,
            scan_count=settings.SCAN_COUNT,
        )

    async def scan_keys(self) -> list[str]:
        """
        Full SCAN iteration, de-duplicated in scan order (SCAN may repeat keys).
        """
        seen: set[str] = set()
        keys: list[str] = []
        try:
            async for key in self.client.scan_iter(match=self.pattern, count=self.scan_count):
                if key in seen:
                    continue
                seen.add(key)
                keys.append(key)
        except Exception as e:
            raise ScanError(f"Session scan failed: {e}") from e
        return keys

    async def get_ttl(self, key: str) -> int:
        return int(await self.client.ttl(key))

    async def get(self, key: str) -> str | None:
        return await self.client.get(key)

    async def load(self, key: str) -> ChatSession:
        return parse_chat_data(await self.get(key))

    def parse_chat_data(self, raw: str | None) -> ChatSession:
        return parse_chat_data(raw)

    def parse_key(self, key: str) -> SessionKeyInfo:
        return parse_key(key)

    async def mark_as_processed(self, key: str, session: ChatSession, ttl_s: int = 25) -> None:
        """
        Rewrite the payload with the processed flags and a short TTL so the
        chat bot sees the flag and the key expires soon after.
        """
        payload = dict(session.raw) if session.raw else {"messages": [], "metadata": {}}
        metadata = dict(payload.get("metadata") or {})
        metadata["processedToSheets"] = True
        metadata["processedAt"] = datetime.now(timezone.utc).isoformat()
        payload["metadata"] = metadata

        await self.client.set(key, json.dumps(payload, ensure_ascii=False), ex=ttl_s)

    # -----------------------------
    # Short-lived locks (SET NX EX)
    # -----------------------------
    async def acquire_lock(self, name: str, ttl_s: int) -> str | None:
        token = uuid.uuid4().hex
        ok = await self.client.set(name, token, nx=True, ex=ttl_s)
        return token if ok else None

    async def release_lock(self, name: str, token: str) -> None:
        # Only the holder deletes; an expired-and-reacquired lock is left alone.
        current = await self.client.get(name)
        if current == token:
            await self.client.delete(name)

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def close(self) -> None:
        close = getattr(self.client, "aclose", None) or getattr(self.client, "close", None)
        if close is not None:
            await close()


def key_lock_name(key: str) -> str:
    return f"{KEY_LOCK_PREFIX}{key}"
