from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os


@dataclass(frozen=True)
class AppConfig:
    # State
    db_path: Path

    # Sandbox
    sandbox_template: str
    sandbox_timeout_ms: int
    sandbox_port: int

    # Loop
    history_limit: int
    max_iterations: int
    completion_marker: str

    # Models
    agent_model: str
    agent_temperature: float
    summary_model: str


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r})")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number (got {raw!r})")


def load_config() -> AppConfig:
    root = Path(os.getenv("AUTOCODE_ROOT", str(Path.cwd())))

    db_path = Path(os.getenv("AUTOCODE_DB_PATH", str(root / "data" / "autocode.sqlite3")))

    sandbox_template = os.getenv("AUTOCODE_SANDBOX_TEMPLATE", "").strip() or "autocode-nextjs"
    sandbox_timeout_ms = _env_int("AUTOCODE_SANDBOX_TIMEOUT_MS", 60_000 * 10)
    sandbox_port = _env_int("AUTOCODE_SANDBOX_PORT", 3000)

    history_limit = _env_int("AUTOCODE_HISTORY_LIMIT", 5)
    max_iterations = _env_int("AUTOCODE_MAX_ITERATIONS", 15)
    if max_iterations < 1:
        raise RuntimeError("AUTOCODE_MAX_ITERATIONS must be >= 1")
    completion_marker = os.getenv("AUTOCODE_COMPLETION_MARKER", "").strip() or "<task_summary>"

    agent_model = os.getenv("AUTOCODE_AGENT_MODEL", "").strip() or "gpt-4.1"
    agent_temperature = _env_float("AUTOCODE_AGENT_TEMPERATURE", 0.1)
    summary_model = os.getenv("AUTOCODE_SUMMARY_MODEL", "").strip() or "gpt-4o"

    return AppConfig(
        db_path=db_path,

        sandbox_template=sandbox_template,
        sandbox_timeout_ms=sandbox_timeout_ms,
        sandbox_port=sandbox_port,

        history_limit=history_limit,
        max_iterations=max_iterations,
        completion_marker=completion_marker,

        agent_model=agent_model,
        agent_temperature=agent_temperature,
        summary_model=summary_model,
    )
