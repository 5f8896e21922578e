from __future__ import annotations

import asyncio
import contextlib
import io
import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from typing import Sequence
from unittest import mock

from post_feed.cli import main, parse_batch_size
from post_feed.post import ValidatedPost
from post_feed.sqlite_backend import SQLiteBackend

_REPO_ROOT = Path(__file__).resolve().parents[1]
_T0 = "2026-01-01T00:00:00+00:00"


def _seed_db(path: Path, *usernames: str) -> None:
    with SQLiteBackend.open(path) as store:
        for name in usernames:
            asyncio.run(store.insert_user(user_id=f"id-{name}", username=name, created_at=_T0))


def _post_count(path: Path) -> int:
    with SQLiteBackend.open(path) as store:
        return store.post_count()


def _subprocess_env(**extra: str) -> dict[str, str]:
    env = {
        k: v
        for k, v in os.environ.items()
        if k not in ("SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY")
    }
    existing_pp = env.get("PYTHONPATH", "")
    env["PYTHONPATH"] = (
        f"{_REPO_ROOT}{os.pathsep}{existing_pp}" if existing_pp else str(_REPO_ROOT)
    )
    env.update(extra)
    return env


def _run_main(argv: Sequence[str]) -> tuple[int, str, str]:
    out, err = io.StringIO(), io.StringIO()
    with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
        code = main(argv)
    return code, out.getvalue(), err.getvalue()


class TestParseBatchSize(unittest.TestCase):
    def test_invalid_values_fall_back(self) -> None:
        self.assertEqual(parse_batch_size(None, default=250), 250)
        self.assertEqual(parse_batch_size("50"), 50)
        self.assertEqual(parse_batch_size("abc"), 1000)
        self.assertEqual(parse_batch_size("0"), 1000)
        self.assertEqual(parse_batch_size("-5"), 1000)


class TestImportCommand(unittest.TestCase):
    def test_import_against_sqlite(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            db = root / "feed.sqlite"
            _seed_db(db, "alice")

            seed = root / "seed.json"
            seed.write_text(
                json.dumps(
                    [
                        {"title": "First", "author": "alice"},
                        {"title": "Second", "author": "bob"},
                        {"title": "Third", "author": "alice"},
                    ]
                ),
                encoding="utf-8",
            )
            out_dir = root / "out"

            proc = subprocess.run(
                [
                    sys.executable,
                    "-m",
                    "post_feed",
                    "import",
                    "--file",
                    str(seed),
                    "--batchSize",
                    "2",
                    "--sqlite",
                    str(db),
                    "--out",
                    str(out_dir),
                ],
                cwd=root,
                env=_subprocess_env(),
                capture_output=True,
                text=True,
            )

            self.assertEqual(proc.returncode, 0, msg=proc.stderr)
            self.assertIn("inserted=2", proc.stdout)
            self.assertIn("skipped=1", proc.stdout)
            self.assertIn("Import complete. Inserted: 2, Skipped: 1.", proc.stdout)
            self.assertTrue((out_dir / "import.log").exists())
            self.assertFalse((out_dir / "failed_batches").exists())
            self.assertEqual(_post_count(db), 2)

    def test_missing_credentials_exit_1_before_any_work(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            seed = root / "seed.json"
            seed.write_text("[]", encoding="utf-8")

            proc = subprocess.run(
                [sys.executable, "-m", "post_feed", "import", "--file", str(seed), "--out", str(root / "out")],
                cwd=root,
                env=_subprocess_env(),
                capture_output=True,
                text=True,
            )

            self.assertEqual(proc.returncode, 1)
            self.assertIn("Missing required environment variables", proc.stderr)
            self.assertIn("SUPABASE_URL", proc.stderr)
            self.assertFalse((root / "out").exists())

    def test_missing_input_file_exit_1(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            code, _, err = _run_main(
                [
                    "import",
                    "--file",
                    str(root / "nope.json"),
                    "--sqlite",
                    str(root / "feed.sqlite"),
                    "--out",
                    str(root / "out"),
                ]
            )
            self.assertEqual(code, 1)
            self.assertIn("File not found", err)

    def test_failed_batch_is_partial_success(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            db = root / "feed.sqlite"
            _seed_db(db, "alice")

            seed = root / "seed.ndjson"
            seed.write_text(
                "\n".join(
                    json.dumps({"title": f"post {i:02d}", "author": "alice"}) for i in range(15)
                ),
                encoding="utf-8",
            )
            cfg = root / "config.yaml"
            cfg.write_text("retry:\n  base_delay_seconds: 0\n", encoding="utf-8")

            original = SQLiteBackend.insert_posts

            async def _flaky(self: SQLiteBackend, posts: Sequence[ValidatedPost]) -> None:
                if any(p.title == "post 07" for p in posts):
                    raise ConnectionError("connection reset by peer")
                await original(self, posts)

            with mock.patch.object(SQLiteBackend, "insert_posts", _flaky):
                code, out, _ = _run_main(
                    [
                        "import",
                        "--file",
                        str(seed),
                        "--batch-size",
                        "5",
                        "--config",
                        str(cfg),
                        "--sqlite",
                        str(db),
                        "--out",
                        str(root / "out"),
                    ]
                )

            self.assertEqual(code, 0)
            self.assertIn("inserted=10", out)
            self.assertIn("failed_batches=1", out)
            self.assertEqual(_post_count(db), 10)

            files = list((root / "out" / "failed_batches").glob("*.json"))
            self.assertEqual(len(files), 1)
            self.assertEqual(len(json.loads(files[0].read_text(encoding="utf-8"))), 5)

            # The dead-lettered batch can be re-submitted once the backend recovers.
            code, out, _ = _run_main(
                ["retry-failed", str(files[0]), "--config", str(cfg), "--sqlite", str(db)]
            )
            self.assertEqual(code, 0)
            self.assertIn("resubmit_completed", out)
            self.assertFalse(files[0].exists())
            self.assertEqual(_post_count(db), 15)


class TestRetryFailedCommand(unittest.TestCase):
    def test_malformed_dead_letter_file_is_kept(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            db = root / "feed.sqlite"
            _seed_db(db, "alice")

            dead = root / "2026-10-19T08-15-02.json"
            dead.write_text(
                json.dumps(
                    [
                        {"title": "kept", "author_id": "id-alice", "description": None, "image_url": None},
                        {"title": "edited", "author_id": 7, "description": None, "image_url": None},
                    ]
                ),
                encoding="utf-8",
            )

            code, _, err = _run_main(["retry-failed", str(dead), "--sqlite", str(db)])

            self.assertEqual(code, 1)
            self.assertIn("index 1", err)
            self.assertTrue(dead.exists())
            self.assertEqual(_post_count(db), 0)


class TestFeedCommand(unittest.TestCase):
    def test_prints_posts_newest_first(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            db = Path(td) / "feed.sqlite"
            _seed_db(db, "alice")
            stamps = iter(["2026-01-01T00:00:01+00:00", "2026-01-01T00:00:02+00:00"])
            with SQLiteBackend.open(db, now_fn=lambda: next(stamps)) as store:
                asyncio.run(store.insert_posts([ValidatedPost(title="old", author_id="id-alice")]))
                asyncio.run(store.insert_posts([ValidatedPost(title="new", author_id="id-alice")]))

            code, out, _ = _run_main(["feed", "--sqlite", str(db), "--pages", "2"])

            self.assertEqual(code, 0)
            rows = [json.loads(line) for line in out.splitlines() if line.strip()]
            self.assertEqual([r["title"] for r in rows], ["new", "old"])
            self.assertEqual(rows[0]["author_username"], "alice")


if __name__ == "__main__":
    unittest.main()
