# app/service_layer/use_cases/process_chats.py
from __future__ import annotations

import asyncio
import enum
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...adapters.repos.leads import LeadRepository
from ...adapters.session_store import RUN_LOCK_NAME, RedisSessionStore, key_lock_name
from ...config import settings
from ...domain.assembly import LeadContext, LeadDraft, assemble_lead
from ...domain.conversation import (
    build_conversation_text,
    extract_email,
    extract_timing_info,
    resolve_identity,
    truncate_messages,
)
from ...domain.errors import (
    DuplicateConversation,
    EmptyConversation,
    IneligibleTTL,
    KeyLocked,
    KeySkipped,
    PerKeyError,
    PersistenceFailure,
)
from ...domain.fingerprint import conversation_fingerprint
from ...domain.policies import is_ttl_eligible
from ...domain.scoring import enrich
from ...integrations.services.dispatch import FanOutDispatcher
from ...integrations.services.registry import ConfigProvider, RunConfig
from ..analyzer import Analyzer

log = logging.getLogger(__name__)

DEADLINE_REASON = "run deadline exceeded"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeyState(str, enum.Enum):
    selected = "selected"
    deduplicated = "deduplicated"
    analyzed = "analyzed"
    enriched = "enriched"
    persisted = "persisted"
    dispatched = "dispatched"
    skipped = "skipped"
    errored = "errored"


@dataclass
class RunResult:
    processed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[str]]:
        return {"processed": list(self.processed), "skipped": list(self.skipped), "errors": list(self.errors)}


@dataclass
class RunSummary:
    success: bool
    message: str
    results: RunResult = field(default_factory=RunResult)
    duration_ms: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "results": self.results.to_dict(),
            "duration_ms": self.duration_ms,
        }
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass
class PipelineDeps:
    store: RedisSessionStore
    session_maker: async_sessionmaker[AsyncSession]
    analyzer: Analyzer
    config_provider: ConfigProvider
    http_client: httpx.AsyncClient | None = None

    ttl_min: int = 0
    ttl_max: int = 6600
    max_messages: int = 50
    processed_ttl_s: int = 25
    concurrency: int = 4
    deadline_s: float = 240.0
    run_lock_ttl_s: int = 300
    key_lock_ttl_s: int = 180
    hot_threshold: int = 70

    dispatcher_factory: Optional[Callable[[RunConfig], FanOutDispatcher]] = None
    clock: Callable[[], datetime] = _utcnow

    @classmethod
    def from_settings(
        cls,
        *,
        store: RedisSessionStore,
        session_maker: async_sessionmaker[AsyncSession],
        analyzer: Analyzer,
        config_provider: ConfigProvider,
        http_client: httpx.AsyncClient | None = None,
    ) -> "PipelineDeps":
        return cls(
            store=store,
            session_maker=session_maker,
            analyzer=analyzer,
            config_provider=config_provider,
            http_client=http_client,
            ttl_min=settings.TTL_MIN,
            ttl_max=settings.TTL_MAX,
            max_messages=settings.MAX_MESSAGES,
            processed_ttl_s=settings.PROCESSED_TTL_S,
            concurrency=settings.RUN_CONCURRENCY,
            deadline_s=settings.RUN_DEADLINE_S,
            run_lock_ttl_s=settings.RUN_LOCK_TTL_S,
            key_lock_ttl_s=settings.KEY_LOCK_TTL_S,
            hot_threshold=settings.HOT_LEAD_THRESHOLD,
        )

    def build_dispatcher(self, config: RunConfig, client: httpx.AsyncClient) -> FanOutDispatcher:
        if self.dispatcher_factory is not None:
            return self.dispatcher_factory(config)
        return FanOutDispatcher.from_config(config, client=client, session_maker=self.session_maker)


@asynccontextmanager
async def _fanout_client(deps: PipelineDeps) -> AsyncIterator[httpx.AsyncClient]:
    if deps.http_client is not None:
        yield deps.http_client
        return
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_S) as client:
        yield client


async def select_sessions(
    store: RedisSessionStore,
    keys: list[str],
    result: RunResult,
    *,
    ttl_min: int,
    ttl_max: int,
) -> list[str]:
    """
    Idle sessions only. Ineligible keys are recorded as skipped with their TTL.
    """
    eligible: list[str] = []
    for key in keys:
        try:
            ttl = await store.get_ttl(key)
        except Exception as e:
            log.exception("TTL read failed for %s", key)
            result.errors.append(f"{key}: {e}")
            continue

        if is_ttl_eligible(ttl, ttl_min=ttl_min, ttl_max=ttl_max):
            eligible.append(key)
        else:
            result.skipped.append(str(IneligibleTTL(key, ttl)))
    return eligible


class _Run:
    """State shared by the key tasks of a single run."""

    def __init__(self, deps: PipelineDeps, dispatcher: FanOutDispatcher, result: RunResult) -> None:
        self.deps = deps
        self.dispatcher = dispatcher
        self.result = result
        self.semaphore = asyncio.Semaphore(max(1, deps.concurrency))
        self.fingerprint_locks: dict[str, asyncio.Lock] = {}
        self.states: dict[str, KeyState] = {}

    def _fingerprint_lock(self, fp: str) -> asyncio.Lock:
        lock = self.fingerprint_locks.get(fp)
        if lock is None:
            lock = self.fingerprint_locks[fp] = asyncio.Lock()
        return lock

    async def _persist_key(self, key: str) -> LeadDraft:
        deps = self.deps
        store = deps.store

        token = await store.acquire_lock(key_lock_name(key), deps.key_lock_ttl_s)
        if token is None:
            raise KeyLocked(key)

        try:
            chat = await store.load(key)
            identity = resolve_identity(chat, key)

            messages = truncate_messages(chat.messages, deps.max_messages)
            if not messages:
                raise EmptyConversation(key)

            text = build_conversation_text(messages)
            fp = conversation_fingerprint(text)

            async with self._fingerprint_lock(fp):
                async with deps.session_maker() as db:
                    repo = LeadRepository(db)
                    if await repo.is_duplicate(text):
                        raise DuplicateConversation(key)
                    self.states[key] = KeyState.deduplicated

                    now = deps.clock()
                    email = chat.metadata.email or extract_email(text)
                    timing = extract_timing_info(messages, now=now)

                    log.info("analyzing %s session=%s messages=%d", key, identity.session_id, len(messages))
                    raw = await deps.analyzer.analyze(identity.phone, identity.product, identity.session_id, text)
                    self.states[key] = KeyState.analyzed

                    enriched = enrich(raw, hot_threshold=deps.hot_threshold)
                    self.states[key] = KeyState.enriched

                    draft = assemble_lead(
                        LeadContext(
                            key=key,
                            identity=identity,
                            conversation=text,
                            fingerprint=fp,
                            email=email,
                            username=chat.metadata.username,
                            business_info=chat.metadata.business_info,
                        ),
                        enriched,
                        timing,
                        now=now.replace(tzinfo=None),
                    )

                    try:
                        await repo.insert(draft, key=key)
                    except DuplicateConversation:
                        raise
                    except Exception as e:
                        raise PersistenceFailure(f"Lead insert failed: {e}") from e
                    self.states[key] = KeyState.persisted

            try:
                await store.mark_as_processed(key, chat, ttl_s=deps.processed_ttl_s)
            except Exception as e:
                log.warning("lead %s stored but marking %s consumed failed: %s", draft.id, key, e)

            return draft
        finally:
            try:
                await store.release_lock(key_lock_name(key), token)
            except Exception as e:
                log.warning("could not release key lock for %s: %s", key, e)

    async def process_key(self, key: str) -> None:
        self.states[key] = KeyState.selected
        try:
            async with self.semaphore:
                draft = await self._persist_key(key)
                report = await self.dispatcher.dispatch(draft)
        except KeySkipped as e:
            self.states[key] = KeyState.skipped
            self.result.skipped.append(str(e))
            log.info("skipped %s", e)
            return
        except PerKeyError as e:
            self.states[key] = KeyState.errored
            self.result.errors.append(f"{key}: {e}")
            log.error("error processing %s: %s", key, e)
            return
        except Exception as e:
            self.states[key] = KeyState.errored
            self.result.errors.append(f"{key}: {e}")
            log.exception("unexpected error processing %s", key)
            return

        self.states[key] = KeyState.dispatched
        failure = report.failure()
        if failure is not None:
            log.warning("%s", failure)

        self.result.processed.append(key)
        log.info("processed %s -> lead %s (score=%s hot=%s)", key, draft.id, draft.lead_score, draft.is_hot_lead)


async def _run_keys(run: _Run, keys: list[str], deadline_s: float) -> None:
    tasks = {key: asyncio.create_task(run.process_key(key)) for key in keys}
    if not tasks:
        return

    _, pending = await asyncio.wait(tasks.values(), timeout=deadline_s if deadline_s > 0 else None)
    if not pending:
        return

    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)

    for key, task in tasks.items():
        if task not in pending:
            continue
        if run.states.get(key) is KeyState.persisted:
            # lead is stored and the session consumed; only its fan-out was cut short
            run.result.processed.append(key)
            log.warning("run deadline hit while fanning out %s; delivery abandoned", key)
        else:
            run.states[key] = KeyState.skipped
            run.result.skipped.append(f"{key} ({DEADLINE_REASON})")
    log.warning("run deadline of %.0fs exceeded; %d key(s) left unfinished", deadline_s, len(pending))


async def process_chats(deps: PipelineDeps) -> RunSummary:
    """
    One pipeline pass over every chat key currently in the session store.

    Per-key failures are collected into the result; only a failed scan aborts
    (ScanError propagates to the caller).
    """
    started = time.monotonic()

    def _elapsed_ms() -> int:
        return int((time.monotonic() - started) * 1000)

    run_token = await deps.store.acquire_lock(RUN_LOCK_NAME, deps.run_lock_ttl_s)
    if run_token is None:
        log.info("process-chats: another run holds %s", RUN_LOCK_NAME)
        return RunSummary(success=True, message="Another run is in progress", duration_ms=_elapsed_ms())

    result = RunResult()
    try:
        keys = await deps.store.scan_keys()
        log.info("process-chats: found %d chat keys", len(keys))
        if not keys:
            return RunSummary(success=True, message="No chats to process", results=result, duration_ms=_elapsed_ms())

        eligible = await select_sessions(
            deps.store, keys, result, ttl_min=deps.ttl_min, ttl_max=deps.ttl_max
        )

        config = await deps.config_provider.load()
        async with _fanout_client(deps) as client:
            run = _Run(deps, deps.build_dispatcher(config, client), result)
            await _run_keys(run, eligible, deps.deadline_s)
        log.debug("process-chats: key states %s", {k: s.value for k, s in run.states.items()})

    finally:
        try:
            await deps.store.release_lock(RUN_LOCK_NAME, run_token)
        except Exception as e:
            log.warning("could not release run lock: %s", e)

    summary = RunSummary(
        success=True,
        message=f"Processed {len(result.processed)} chats",
        results=result,
        duration_ms=_elapsed_ms(),
    )
    log.info(
        "process-chats: %d processed, %d skipped, %d errors (%dms)",
        len(result.processed),
        len(result.skipped),
        len(result.errors),
        summary.duration_ms,
    )
    return summary
