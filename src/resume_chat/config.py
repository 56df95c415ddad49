"""Configuration models for the resume chat core."""

from __future__ import annotations

from pydantic import BaseModel, Field


class CacheConfig(BaseModel):
    """Configures the compatibility score cache."""

    max_entries: int = Field(default=1000, ge=1)
    ttl_seconds: float = Field(default=3600.0, gt=0.0)
    sweep_interval_seconds: float | None = Field(default=300.0, gt=0.0)


class AssistantConfig(BaseModel):
    """Configures the external assistant conversation API."""

    api_key: str | None = None
    timeout_seconds: float = Field(default=20.0, gt=0.0)
    intent_model: str = "gpt-4o-mini"


class VersionLogConfig(BaseModel):
    """Configures version number allocation under concurrent writers."""

    max_attempts: int = Field(default=5, ge=1)


class RetryConfig(BaseModel):
    """Caller-side backoff for retryable assistant API failures."""

    max_attempts: int = Field(default=3, ge=1)
    base_delay_seconds: float = Field(default=0.5, ge=0.0)
    max_delay_seconds: float = Field(default=8.0, ge=0.0)


class StorageConfig(BaseModel):
    """Configures the relational store backing threads and versions."""

    sqlite_path: str = "resume_chat.db"
    busy_timeout_seconds: float = Field(default=30.0, gt=0.0)


class CoreSettings(BaseModel):
    cache: CacheConfig = Field(default_factory=CacheConfig)
    assistant: AssistantConfig = Field(default_factory=AssistantConfig)
    versions: VersionLogConfig = Field(default_factory=VersionLogConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
