"""Composition root: builds the core components from settings."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

from resume_chat.agent.intent import (
    IntentSource,
    StructuredMessageIntentSource,
    ToolCallingIntentSource,
)
from resume_chat.agent.turn import ChatTurnProcessor
from resume_chat.config import (
    AssistantConfig,
    CacheConfig,
    CoreSettings,
    StorageConfig,
    VersionLogConfig,
)
from resume_chat.obs.tracing import TurnTraceStore
from resume_chat.scoring.cache import ScoreCache, Scorer
from resume_chat.storage import SqliteDatabase
from resume_chat.threads.assistant import (
    AssistantClient,
    InMemoryAssistantClient,
    OpenAIAssistantClient,
)
from resume_chat.threads.manager import ThreadLifecycleManager
from resume_chat.threads.store import SqliteThreadStore
from resume_chat.versions.log import VersionLog
from resume_chat.versions.store import SqliteVersionStore

logger = logging.getLogger(__name__)


def settings_from_env() -> CoreSettings:
    """Read settings from the environment; the only place env vars are consulted."""

    ttl = os.getenv("RESUME_CHAT_CACHE_TTL_SECONDS")
    max_entries = os.getenv("RESUME_CHAT_CACHE_MAX_ENTRIES")
    return CoreSettings(
        cache=CacheConfig(
            **({"ttl_seconds": float(ttl)} if ttl else {}),
            **({"max_entries": int(max_entries)} if max_entries else {}),
        ),
        assistant=AssistantConfig(
            api_key=os.getenv("OPENAI_API_KEY") or None,
            timeout_seconds=float(os.getenv("RESUME_CHAT_ASSISTANT_TIMEOUT_SECONDS", "20")),
            intent_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        ),
        versions=VersionLogConfig(
            max_attempts=int(os.getenv("RESUME_CHAT_VERSION_MAX_ATTEMPTS", "5"))
        ),
        storage=StorageConfig(
            sqlite_path=os.getenv("RESUME_CHAT_DB_PATH", "resume_chat.db")
        ),
    )


def _create_llm(config: AssistantConfig) -> Any:
    if not config.api_key:
        return None

    from langchain_openai import ChatOpenAI

    return ChatOpenAI(
        model=config.intent_model,
        api_key=config.api_key,
        timeout=config.timeout_seconds,
        temperature=0,
    )


def _create_assistant(config: AssistantConfig) -> AssistantClient:
    if not config.api_key:
        logger.warning("OPENAI_API_KEY is not set; using the in-memory assistant client")
        return InMemoryAssistantClient()
    return OpenAIAssistantClient(config)


@dataclass(slots=True)
class ResumeChatCore:
    """Explicitly constructed component graph shared by request handlers."""

    settings: CoreSettings
    thread_manager: ThreadLifecycleManager
    version_log: VersionLog
    score_cache: ScoreCache
    trace_store: TurnTraceStore
    turn_processor: ChatTurnProcessor

    def close(self) -> None:
        self.score_cache.close()

    def __enter__(self) -> "ResumeChatCore":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()


def build_core(
    scorer: Scorer,
    settings: CoreSettings | None = None,
    *,
    assistant: AssistantClient | None = None,
    intent_source: IntentSource | None = None,
) -> ResumeChatCore:
    """Wire every component and start the cache sweeper.

    Without an API key the assistant falls back to the in-memory client and
    intents are read from structured JSON messages, mirroring how the system
    degrades to deterministic behaviour offline.
    """

    settings = settings or settings_from_env()
    database = SqliteDatabase(
        settings.storage.sqlite_path,
        busy_timeout_seconds=settings.storage.busy_timeout_seconds,
    )
    thread_manager = ThreadLifecycleManager(
        SqliteThreadStore(database),
        assistant or _create_assistant(settings.assistant),
    )
    version_log = VersionLog(SqliteVersionStore(database), settings.versions)
    score_cache = ScoreCache(settings.cache)
    score_cache.start()

    if intent_source is None:
        llm = _create_llm(settings.assistant)
        intent_source = (
            ToolCallingIntentSource(llm) if llm is not None else StructuredMessageIntentSource()
        )

    trace_store = TurnTraceStore()
    turn_processor = ChatTurnProcessor(
        thread_manager=thread_manager,
        version_log=version_log,
        score_cache=score_cache,
        intent_source=intent_source,
        scorer=scorer,
        trace_store=trace_store,
        retry=settings.retry,
    )
    return ResumeChatCore(
        settings=settings,
        thread_manager=thread_manager,
        version_log=version_log,
        score_cache=score_cache,
        trace_store=trace_store,
        turn_processor=turn_processor,
    )
