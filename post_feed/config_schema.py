from __future__ import annotations

import re
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


def _validate_non_empty(value: str) -> str:
    v = (value or "").strip()
    if not v:
        raise ValueError("must be a non-empty string")
    return v


PositiveInt = Annotated[int, Field(ge=1)]
NonNegativeFloat = Annotated[float, Field(ge=0.0)]


class SupabaseConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    url_env: str = "SUPABASE_URL"
    service_key_env: str = "SUPABASE_SERVICE_ROLE_KEY"
    post_table: str = "post"
    user_table: str = "user"
    bucket: str = "post-photos"

    @field_validator("url_env", "service_key_env")
    @classmethod
    def _env_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)

    @field_validator("post_table", "user_table", "bucket")
    @classmethod
    def _names_must_be_set(cls, v: str) -> str:
        return _validate_non_empty(v)


class ImporterConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    batch_size: PositiveInt = 1000
    dead_letter_dir: str = "failed_batches"
    skipped_preview_limit: PositiveInt = 10

    @field_validator("dead_letter_dir")
    @classmethod
    def _dir_must_be_set(cls, v: str) -> str:
        return _validate_non_empty(v)


class RetrySettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_attempts: PositiveInt = 3
    base_delay_seconds: NonNegativeFloat = 1.0


class FeedConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    page_size: PositiveInt = 15


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    supabase: SupabaseConfig = Field(default_factory=SupabaseConfig)
    importer: ImporterConfig = Field(default_factory=ImporterConfig)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    feed: FeedConfig = Field(default_factory=FeedConfig)
