import hashlib
import json
import os
import sqlite3
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from autocode.infra.ids import new_record_id

DB_PATH = Path(os.getenv("AUTOCODE_DB_PATH", str(Path("data") / "autocode.sqlite3")))


def use_database(path: Path) -> None:
    """Point every storage call at `path` (CLI/config wiring and tests)."""
    global DB_PATH
    DB_PATH = Path(path)


def _connect() -> sqlite3.Connection:
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def _value(v: Any) -> Any:
    # Enums are stored by value
    return getattr(v, "value", v)


def init_db() -> None:
    """
    Reason:
    - Ensure schema exists before the first message or step is written.
    Benefit:
    - Zero-manual setup; works on any machine.
    """
    with _connect() as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS messages (
                message_id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL,
                content TEXT NOT NULL,
                role TEXT NOT NULL,
                type TEXT NOT NULL,
                created_ts REAL NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS fragments (
                fragment_id TEXT PRIMARY KEY,
                message_id TEXT NOT NULL UNIQUE,
                sandbox_url TEXT NOT NULL,
                title TEXT NOT NULL,
                files_json TEXT NOT NULL,
                created_ts REAL NOT NULL,
                FOREIGN KEY(message_id) REFERENCES messages(message_id)
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS runs (
                run_id TEXT PRIMARY KEY,
                created_ts REAL NOT NULL,
                project_id TEXT NOT NULL,
                value TEXT NOT NULL,
                ok INTEGER NOT NULL,
                iterations INTEGER NOT NULL,
                summary TEXT,
                title TEXT,
                sandbox_url TEXT,
                files_json TEXT NOT NULL,
                total_tokens INTEGER,
                total_cost REAL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS step_cache (
                cache_key TEXT PRIMARY KEY,
                run_id TEXT NOT NULL,
                step_name TEXT NOT NULL,
                result_json TEXT NOT NULL,
                created_ts REAL NOT NULL
            )
            """
        )
        conn.commit()


# ----------------------------
# Messages + fragments
# ----------------------------

def create_message(
    *,
    project_id: str,
    content: str,
    role: Any,
    type: Any,
    fragment: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Persist one conversation message, optionally with its fragment.

    `fragment` is {sandbox_url, title, files}. Both rows are written in one
    transaction so a RESULT message never exists without its fragment.
    """
    init_db()
    message_id = new_record_id()
    now = time.time()
    with _connect() as conn:
        conn.execute(
            """
            INSERT INTO messages (message_id, project_id, content, role, type, created_ts)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (message_id, project_id, content, _value(role), _value(type), now),
        )
        if fragment is not None:
            conn.execute(
                """
                INSERT INTO fragments
                (fragment_id, message_id, sandbox_url, title, files_json, created_ts)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    new_record_id(),
                    message_id,
                    fragment["sandbox_url"],
                    fragment["title"],
                    json.dumps(fragment.get("files") or {}, ensure_ascii=False),
                    now,
                ),
            )
        conn.commit()

    record: Dict[str, Any] = {
        "message_id": message_id,
        "project_id": project_id,
        "content": content,
        "role": _value(role),
        "type": _value(type),
        "created_ts": now,
        "fragment": None,
    }
    if fragment is not None:
        record["fragment"] = {
            "sandbox_url": fragment["sandbox_url"],
            "title": fragment["title"],
            "files": dict(fragment.get("files") or {}),
        }
    return record


def list_recent_messages(project_id: str, limit: int = 5) -> List[Dict[str, Any]]:
    """Last `limit` messages of a project, newest first."""
    init_db()
    with _connect() as conn:
        rows = conn.execute(
            """
            SELECT message_id, project_id, content, role, type, created_ts
            FROM messages
            WHERE project_id = ?
            ORDER BY created_ts DESC, rowid DESC
            LIMIT ?
            """,
            (project_id, limit),
        ).fetchall()
    return [dict(r) for r in rows]


def load_fragment(message_id: str) -> Optional[Dict[str, Any]]:
    init_db()
    with _connect() as conn:
        row = conn.execute(
            "SELECT sandbox_url, title, files_json FROM fragments WHERE message_id = ?",
            (message_id,),
        ).fetchone()
    if not row:
        return None
    return {
        "sandbox_url": row["sandbox_url"],
        "title": row["title"],
        "files": json.loads(row["files_json"]),
    }


# ----------------------------
# Runs (audit trail)
# ----------------------------

def start_run(*, run_id: str, project_id: str, value: str) -> None:
    """
    Record a run before any work happens, so a run that crashes part-way
    can still be found and replayed by id. Existing rows are left alone.
    """
    init_db()
    with _connect() as conn:
        conn.execute(
            """
            INSERT OR IGNORE INTO runs
            (run_id, created_ts, project_id, value, ok, iterations, files_json)
            VALUES (?, ?, ?, ?, 0, 0, '{}')
            """,
            (run_id, time.time(), project_id, value),
        )
        conn.commit()


def save_run(
    *,
    run_id: str,
    project_id: str,
    value: str,
    ok: bool,
    iterations: int,
    summary: Optional[str],
    title: Optional[str],
    sandbox_url: Optional[str],
    files: Dict[str, str],
    total_tokens: Optional[int] = None,
    total_cost: Optional[float] = None,
) -> None:
    """
    Reason:
    - Persist full run record for audit/replay/debug.
    Benefit:
    - Token and cost totals add up across attempts of the same run_id; a
      replay served from the step cache does not zero them.
    """
    init_db()
    with _connect() as conn:
        conn.execute(
            """
            INSERT INTO runs
            (run_id, created_ts, project_id, value, ok, iterations, summary, title,
             sandbox_url, files_json, total_tokens, total_cost)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(run_id) DO UPDATE SET
                ok = excluded.ok,
                iterations = excluded.iterations,
                summary = excluded.summary,
                title = excluded.title,
                sandbox_url = excluded.sandbox_url,
                files_json = excluded.files_json,
                total_tokens = COALESCE(runs.total_tokens, 0) + COALESCE(excluded.total_tokens, 0),
                total_cost = COALESCE(runs.total_cost, 0) + COALESCE(excluded.total_cost, 0)
            """,
            (
                run_id,
                time.time(),
                project_id,
                value,
                1 if ok else 0,
                iterations,
                summary,
                title,
                sandbox_url,
                json.dumps(files, ensure_ascii=False),
                total_tokens,
                total_cost,
            ),
        )
        conn.commit()


def list_runs(limit: int = 20) -> List[Dict[str, Any]]:
    init_db()
    with _connect() as conn:
        rows = conn.execute(
            """
            SELECT run_id, created_ts, project_id, value, ok, iterations, title,
                   sandbox_url, total_tokens, total_cost
            FROM runs
            ORDER BY created_ts DESC
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
    return [dict(r) for r in rows]


def load_run(run_id: str) -> Optional[Dict[str, Any]]:
    init_db()
    with _connect() as conn:
        row = conn.execute("SELECT * FROM runs WHERE run_id = ?", (run_id,)).fetchone()
    return dict(row) if row else None


# ----------------------------
# Step memoization
# ----------------------------

def make_step_key(run_id: str, step_name: str, occurrence: int) -> str:
    """
    Reason:
    - A replayed run must find the result of "the 3rd terminal call" again.
    Benefit:
    - Same run + name + position -> same cache key.
    """
    payload = f"{run_id}:{step_name}:{occurrence}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def get_cached_step(cache_key: str) -> Optional[Dict[str, Any]]:
    """Returns {"result": ...} on a hit so a memoized None is still a hit."""
    init_db()
    with _connect() as conn:
        row = conn.execute(
            "SELECT result_json FROM step_cache WHERE cache_key = ?",
            (cache_key,),
        ).fetchone()
    if not row:
        return None
    return {"result": json.loads(row["result_json"])}


def set_cached_step(cache_key: str, *, run_id: str, step_name: str, result: Any) -> None:
    init_db()
    with _connect() as conn:
        conn.execute(
            """
            INSERT OR REPLACE INTO step_cache
            (cache_key, run_id, step_name, result_json, created_ts)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                cache_key,
                run_id,
                step_name,
                json.dumps(result, ensure_ascii=False),
                time.time(),
            ),
        )
        conn.commit()


def count_cached_steps(run_id: str) -> int:
    init_db()
    with _connect() as conn:
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM step_cache WHERE run_id = ?", (run_id,)
        ).fetchone()
    return int(row["n"])
