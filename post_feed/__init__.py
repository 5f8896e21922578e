from __future__ import annotations

from .config import load_config, resolve_runtime_secrets
from .config_schema import AppConfig
from .errors import BackendError, ConfigError, InputFileError
from .feed import PAGE_SIZE, FeedPage, FeedPager, fetch_first_page, fetch_next_page
from .importer import ImportResult, import_file, run_import
from .post import FeedCursor, Post, RawPost, ValidatedPost
from .validate import validate_post

__all__ = [
    "AppConfig",
    "BackendError",
    "ConfigError",
    "FeedCursor",
    "FeedPage",
    "FeedPager",
    "ImportResult",
    "InputFileError",
    "PAGE_SIZE",
    "Post",
    "RawPost",
    "ValidatedPost",
    "fetch_first_page",
    "fetch_next_page",
    "import_file",
    "load_config",
    "resolve_runtime_secrets",
    "run_import",
    "validate_post",
]
