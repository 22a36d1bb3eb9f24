from __future__ import annotations

from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from autocode.infra.ids import new_run_id


class MessageRole(str, Enum):
    USER = "USER"
    ASSISTANT = "ASSISTANT"


class MessageType(str, Enum):
    RESULT = "RESULT"
    ERROR = "ERROR"


class Message(BaseModel):
    """One conversation turn as the model sees it."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str

    def to_chat(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


class CodeAgentEvent(BaseModel):
    """
    Trigger for one run.

    Reason:
    - Callers send {projectId, value}; run_id is ours.
    Benefit:
    - Re-sending an event with the same run_id replays memoized steps.
    """

    model_config = ConfigDict(populate_by_name=True)

    project_id: str = Field(alias="projectId", min_length=1)
    value: str = Field(min_length=1)
    run_id: str = Field(default_factory=new_run_id)


class FileEntry(BaseModel):
    path: str = Field(min_length=1)
    content: str


class Fragment(BaseModel):
    sandbox_url: str
    title: str
    files: Dict[str, str] = Field(default_factory=dict)


class RunOutput(BaseModel):
    """What the trigger caller gets back."""

    url: str
    title: str
    files: Dict[str, str] = Field(default_factory=dict)
    summary: str = ""


class ChatToolCall(BaseModel):
    id: str
    name: str
    arguments: str = "{}"


class ChatReply(BaseModel):
    """
    Model output for one inference, reduced to plain data.

    Reason:
    - Turns are memoized as steps, so the reply must survive a JSON round trip.
    """

    content: Optional[str] = None
    tool_calls: List[ChatToolCall] = Field(default_factory=list)
