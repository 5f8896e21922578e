from __future__ import annotations

import json
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TextIO


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _truncate(text: str, *, limit: int) -> str:
    s = str(text or "")
    if limit <= 0:
        return ""
    if len(s) <= limit:
        return s
    return s[: max(0, limit - 1)] + "…"


def _echo_line(level: str, event: str, data: dict[str, Any]) -> str:
    parts = [event]
    for key in sorted(data):
        value = data[key]
        if isinstance(value, (dict, list)):
            continue
        parts.append(f"{key}={value}")
    line = " ".join(parts)
    return line if level == "INFO" else f"{level}: {line}"


class RunLogger:
    """
    JSONL logger for import runs and feed sessions.

    Each log line is a single JSON object, making it easy to parse for audits.
    When `echo` is given, a short `event key=value` line is also written there;
    either sink may be omitted.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        overwrite: bool = True,
        echo: TextIO | None = None,
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._overwrite = bool(overwrite)
        self._session_id = uuid.uuid4().hex
        self._echo = echo
        self._fp: TextIO | None = None
        self._opened = False

    @classmethod
    def open(
        cls,
        path: str | Path | None,
        *,
        overwrite: bool = True,
        echo: TextIO | None = None,
    ) -> "RunLogger":
        logger = cls(path, overwrite=overwrite, echo=echo)
        logger._ensure_open()
        return logger

    @property
    def path(self) -> Path | None:
        return self._path

    def close(self) -> None:
        if self._fp is not None:
            try:
                self._fp.flush()
            finally:
                self._fp.close()
            self._fp = None

    def __enter__(self) -> "RunLogger":
        self._ensure_open()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def info(self, event: str, **data: Any) -> None:
        self.log("INFO", event, **data)

    def warning(self, event: str, **data: Any) -> None:
        self.log("WARN", event, **data)

    def error(self, event: str, **data: Any) -> None:
        self.log("ERROR", event, **data)

    def exception(self, event: str, *, exc: BaseException, **data: Any) -> None:
        err = {
            "type": type(exc).__name__,
            "message": _truncate(str(exc), limit=2000),
            "traceback": _truncate(
                "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                limit=12000,
            ),
        }
        self.log("ERROR", event, error=err, **data)

    def log(self, level: str, event: str, **data: Any) -> None:
        lvl = (level or "").strip().upper() or "INFO"
        ev = (event or "").strip() or "event"

        record: dict[str, Any] = {
            "ts": _utc_now_iso(),
            "level": lvl,
            "event": ev,
            "session_id": self._session_id,
        }

        if data:
            record["data"] = data

        self._write(record)

        if self._echo is not None:
            self._echo.write(_echo_line(lvl, ev, data) + "\n")
            self._echo.flush()

    def _ensure_open(self) -> None:
        if self._fp is not None or self._path is None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        mode = "w" if self._overwrite and not self._opened else "a"

        self._fp = self._path.open(mode, encoding="utf-8", newline="\n")
        self._opened = True

    def _write(self, record: dict[str, Any]) -> None:
        if self._path is None:
            return

        self._ensure_open()
        if self._fp is None:
            return

        payload = json.dumps(
            record,
            ensure_ascii=False,
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        self._fp.write(payload + "\n")
        self._fp.flush()
