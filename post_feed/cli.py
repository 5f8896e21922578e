from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Sequence

from .backend import PostBackend, open_supabase_backend
from .config import (
    RuntimeSecrets,
    load_config,
    load_environment,
    resolve_runtime_secrets,
    retry_config,
)
from .config_schema import AppConfig
from .dead_letter import read_failed_batch
from .errors import ConfigError, InputFileError, StorageError
from .feed import iter_feed
from .import_report import build_import_report, format_import_report
from .importer import DEFAULT_BATCH_SIZE, import_file, resubmit_failed_batch
from .run_log import RunLogger
from .sqlite_backend import SQLiteBackend


def _add_backend_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=None,
        help="Optional YAML config file (defaults are used when omitted).",
    )
    parser.add_argument(
        "--sqlite",
        default=None,
        metavar="DB",
        help="Use a local SQLite database instead of Supabase.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="post_feed")

    subparsers = parser.add_subparsers(dest="command", required=True)

    imp = subparsers.add_parser(
        "import",
        help="Import posts from a JSON or NDJSON file in batches.",
    )
    imp.add_argument(
        "--file",
        default="./seed.json",
        help="Input file (JSON array, {posts|data|items: [...]}, or NDJSON).",
    )
    imp.add_argument(
        "--batchSize",
        "--batch-size",
        dest="batch_size",
        default=None,
        help="Rows per insert batch (invalid values fall back to 1000).",
    )
    imp.add_argument(
        "--out",
        default=".",
        help="Directory for import.log and the failed_batches directory.",
    )
    _add_backend_args(imp)
    imp.set_defaults(_handler=_cmd_import)

    retry = subparsers.add_parser(
        "retry-failed",
        help="Re-submit dead-letter files written by a previous import.",
    )
    retry.add_argument("paths", nargs="+", help="Dead-letter JSON files.")
    _add_backend_args(retry)
    retry.set_defaults(_handler=_cmd_retry_failed)

    feed = subparsers.add_parser(
        "feed",
        help="Print feed pages as JSON lines, newest first.",
    )
    feed.add_argument("--pages", type=int, default=1, help="Maximum number of pages.")
    _add_backend_args(feed)
    feed.set_defaults(_handler=_cmd_feed)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def parse_batch_size(value: str | None, *, default: int = DEFAULT_BATCH_SIZE) -> int:
    if value is None:
        return default
    try:
        size = int(str(value).strip())
    except ValueError:
        return DEFAULT_BATCH_SIZE
    return size if size >= 1 else DEFAULT_BATCH_SIZE


class _BackendHandle:
    """Resolves credentials up front; opens the backend only when a command needs it."""

    def __init__(self, args: argparse.Namespace, cfg: AppConfig) -> None:
        self._cfg = cfg
        self._sqlite_path = getattr(args, "sqlite", None)
        self._secrets: RuntimeSecrets | None = None
        self._sqlite: SQLiteBackend | None = None

        if not self._sqlite_path:
            self._secrets = resolve_runtime_secrets(cfg, environ=load_environment())

    @property
    def label(self) -> str:
        return f"sqlite:{self._sqlite_path}" if self._sqlite_path else "supabase"

    async def open(self) -> PostBackend:
        if self._sqlite_path:
            self._sqlite = SQLiteBackend.open(self._sqlite_path, bucket=self._cfg.supabase.bucket)
            return self._sqlite
        if self._secrets is None:
            raise ConfigError("Backend credentials were not resolved")
        return await open_supabase_backend(self._secrets, self._cfg.supabase)

    def close(self) -> None:
        if self._sqlite is not None:
            self._sqlite.close()
            self._sqlite = None


def _cmd_import(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    handle = _BackendHandle(args, cfg)

    file_path = Path(args.file)
    if not file_path.is_absolute():
        file_path = Path.cwd() / file_path
    if not file_path.is_file():
        raise InputFileError(f"File not found: {file_path}")

    batch_size = parse_batch_size(args.batch_size, default=int(cfg.importer.batch_size))

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    dead_letter_dir = out_dir / cfg.importer.dead_letter_dir
    log_path = out_dir / "import.log"

    with RunLogger.open(log_path, overwrite=True, echo=sys.stdout) as log:
        log.info(
            "import_command_started",
            file=str(file_path),
            batch_size=batch_size,
            backend=handle.label,
        )

        async def _run() -> int:
            backend = await handle.open()
            try:
                result = await import_file(
                    file_path,
                    backend=backend,
                    dead_letter_dir=dead_letter_dir,
                    batch_size=batch_size,
                    retry=retry_config(cfg),
                    logger=log,
                )
            finally:
                handle.close()

            report = build_import_report(
                result, preview_limit=int(cfg.importer.skipped_preview_limit)
            )
            log.info("import_report", report=report)

            print(f"loaded={result.loaded}")
            print(f"inserted={result.inserted}")
            print(f"skipped={result.skipped}")
            print(f"failed_batches={result.batches_failed}")
            print(f"dead_letter_dir={dead_letter_dir}")
            print(f"import_log={log_path}")
            print(format_import_report(report))

            # Dead-lettered batches are a partial success, not a failed run.
            return 0

        try:
            return asyncio.run(_run())
        except Exception as e:
            log.exception("import_command_failed", exc=e)
            raise


def _cmd_retry_failed(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    handle = _BackendHandle(args, cfg)
    batches = [(Path(p), read_failed_batch(p)) for p in args.paths]

    log = RunLogger(None, echo=sys.stdout)

    async def _run() -> int:
        backend = await handle.open()
        failures = 0
        try:
            for path, rows in batches:
                try:
                    n = await resubmit_failed_batch(
                        rows, backend=backend, retry=retry_config(cfg), logger=log
                    )
                except Exception as e:
                    failures += 1
                    log.error("resubmit_failed", path=str(path), error_message=str(e))
                    continue
                path.unlink()
                log.info("resubmit_completed", path=str(path), inserted=n)
        finally:
            handle.close()
        return 0 if failures == 0 else 1

    return asyncio.run(_run())


def _cmd_feed(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    handle = _BackendHandle(args, cfg)
    max_pages = max(1, int(args.pages))

    async def _run() -> int:
        backend = await handle.open()
        try:
            async for page in iter_feed(
                backend, page_size=int(cfg.feed.page_size), max_pages=max_pages
            ):
                if not page.ok:
                    _eprint(f"Feed fetch failed: {page.error}")
                    return 1
                for post in page.rows:
                    print(json.dumps(asdict(post), ensure_ascii=False, sort_keys=True))
        finally:
            handle.close()
        return 0

    return asyncio.run(_run())


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except (ConfigError, InputFileError, StorageError) as e:
        _eprint(str(e))
        return 1
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Import failed: {e}" if args.command == "import" else f"Unexpected error: {e}")
        return 1
