import json
from pathlib import Path

import pytest

from resume_chat.agent.intent import StructuredMessageIntentSource
from resume_chat.config import AssistantConfig, CacheConfig, CoreSettings, StorageConfig
from resume_chat.runtime import build_core, settings_from_env
from resume_chat.threads.assistant import InMemoryAssistantClient


def _scorer(document: object, criteria: object) -> tuple[float, dict[str, float]]:
    return float(len(json.dumps(document))), {}


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("RESUME_CHAT_CACHE_TTL_SECONDS", "120")
    monkeypatch.setenv("RESUME_CHAT_CACHE_MAX_ENTRIES", "50")
    monkeypatch.setenv("RESUME_CHAT_VERSION_MAX_ATTEMPTS", "7")
    monkeypatch.setenv("RESUME_CHAT_DB_PATH", "/tmp/resume-chat-test.db")

    settings = settings_from_env()

    assert settings.assistant.api_key is None
    assert settings.cache.ttl_seconds == 120.0
    assert settings.cache.max_entries == 50
    assert settings.versions.max_attempts == 7
    assert settings.storage.sqlite_path == "/tmp/resume-chat-test.db"


def test_build_core_offline_runs_a_full_turn(tmp_path: Path) -> None:
    settings = CoreSettings(
        cache=CacheConfig(sweep_interval_seconds=60),
        assistant=AssistantConfig(api_key=None),
        storage=StorageConfig(sqlite_path=str(tmp_path / "core.db")),
    )

    with build_core(_scorer, settings) as core:
        assert isinstance(core.thread_manager.assistant, InMemoryAssistantClient)
        assert isinstance(
            core.turn_processor.intent_source, StructuredMessageIntentSource
        )

        result = core.turn_processor.process(
            document_id="doc-1",
            owner_id="user-1",
            message='{"kind": "replace", "path": "summary", "value": "Staff Engineer"}',
            document={"summary": "Engineer"},
            criteria={"keywords": ["staff"]},
        )

        assert result.document == {"summary": "Staff Engineer"}
        assert result.version is not None
        latest = core.version_log.get_latest("doc-1")
        assert latest is not None and latest.snapshot == {"summary": "Staff Engineer"}
        assert core.thread_manager.thread_history("doc-1", "user-1")[0].id == result.thread.id
        assert core.trace_store.summary()["total_turns"] == 1

    assert core.score_cache._sweeper is None
