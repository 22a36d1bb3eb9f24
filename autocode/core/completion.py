from typing import Any, Dict, List, Optional, Protocol

from autocode.core.agent_state import AgentState
from autocode.infra.logging import log_event, preview

TASK_SUMMARY_MARKER = "<task_summary>"


class CompletionDetector(Protocol):
    """Classifies one assistant text as "done" (returns the summary) or not."""

    def detect(self, text: str) -> Optional[str]:
        ...


class SentinelCompletionDetector:
    """
    Done when the text contains a fixed marker.

    The whole text is the summary, markup included; downstream consumers
    receive exactly what the agent wrote.
    """

    def __init__(self, marker: str = TASK_SUMMARY_MARKER) -> None:
        if not marker:
            raise ValueError("Completion marker must be non-empty")
        self.marker = marker

    def detect(self, text: str) -> Optional[str]:
        if text and self.marker in text:
            return text
        return None


def last_assistant_text(output: List[Dict[str, Any]]) -> Optional[str]:
    """Most recent non-empty assistant text in a turn's output, if any."""
    for message in reversed(output):
        if message.get("role") != "assistant":
            continue
        content = message.get("content")
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part)
                for part in content
            )
        if content:
            return content
    return None


def apply_completion(
    detector: CompletionDetector,
    output: List[Dict[str, Any]],
    state: AgentState,
    *,
    run_id: Optional[str] = None,
) -> bool:
    """
    Runs the detector over the turn's last assistant text and records the
    summary. Returns True when this turn completed the task.
    """
    text = last_assistant_text(output)
    if text is None:
        return False

    summary = detector.detect(text)
    if summary is None:
        return False

    if not state.record_summary(summary):
        log_event("summary_already_set", run_id=run_id)
        return False

    log_event("completion_detected", run_id=run_id, summary=preview(summary))
    return True
