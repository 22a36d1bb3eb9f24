import json
import time
from pathlib import Path
from typing import Any, Dict


def _to_jsonable(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump()
    if isinstance(value, Path):
        return value.as_posix()
    return str(value)


def log_event(event: str, **fields: Any) -> None:
    """
    Reason:
    - print() becomes chaos at scale; structured logs stay usable.
    Benefit:
    - Filter one run by run_id, or one loop phase by event name.
    """
    payload: Dict[str, Any] = {
        "ts": time.time(),
        "event": event,
        **fields,
    }
    print(json.dumps(payload, ensure_ascii=False, default=_to_jsonable))


def preview(text: str | None, limit: int = 200) -> str:
    """Trim long model/tool text before it lands in a log line."""
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit] + "..."
