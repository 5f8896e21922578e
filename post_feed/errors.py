from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration or required environment variables are missing or invalid."""


class InputFileError(RuntimeError):
    """Raised when the import input file is missing or cannot be read."""


class BackendError(RuntimeError):
    """
    Raised when a backend query, insert, or storage call fails.

    code carries the backend's error code when one is known (e.g. "23505" for a
    unique violation, "PGRST116" for a single-row query that matched nothing).
    """

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class StorageError(RuntimeError):
    """Raised when opening or migrating the local SQLite store fails."""
