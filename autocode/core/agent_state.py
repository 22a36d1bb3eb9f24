from typing import Dict

from pydantic import BaseModel, Field


class AgentState(BaseModel):
    """
    Mutable record shared by every turn and tool call of one run.

    Reason:
    - The router, the file tool and the persistence step all need the same view.
    Benefit:
    - Passed by reference; nothing global, nothing replaced mid-run.

    `files` only grows or overwrites. `summary` goes empty -> non-empty once.
    """

    files: Dict[str, str] = Field(default_factory=dict)
    summary: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.summary)

    def merge_files(self, updated: Dict[str, str]) -> None:
        """Commit a fully merged mapping in one assignment."""
        merged = dict(self.files)
        merged.update(updated)
        self.files = merged

    def record_summary(self, summary: str) -> bool:
        """Set the summary unless one is already recorded. Returns True if set."""
        if not summary or self.summary:
            return False
        self.summary = summary
        return True
