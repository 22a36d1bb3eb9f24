from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from autocode.config import AppConfig
from autocode.core.schemas import ChatReply, ChatToolCall
from autocode.infra import storage
from autocode.llm.client import LLMClient
from autocode.sandbox.base import CommandOutput, OutputCallback, SandboxClient


@pytest.fixture(autouse=True)
def _isolated_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    db_path = tmp_path / "autocode-test.sqlite3"
    monkeypatch.setattr(storage, "DB_PATH", db_path)
    return db_path


class FakeSandbox(SandboxClient):
    """In-memory sandbox. `commands` maps a command to stdout, or to an exception."""

    def __init__(self) -> None:
        self.files: Dict[str, str] = {}
        self.commands: Dict[str, Union[str, Exception]] = {}
        self.partial_output: Dict[str, tuple[str, str]] = {}
        self.created: List[str] = []
        self.timeouts: Dict[str, int] = {}
        self.executed: List[str] = []
        self.fail_writes_for: set[str] = set()

    def create(self, template: str) -> str:
        sandbox_id = f"sbx-{len(self.created) + 1}"
        self.created.append(sandbox_id)
        return sandbox_id

    def set_timeout(self, sandbox_id: str, timeout_ms: int) -> None:
        self.timeouts[sandbox_id] = timeout_ms

    def run_command(
        self,
        sandbox_id: str,
        command: str,
        *,
        on_stdout: Optional[OutputCallback] = None,
        on_stderr: Optional[OutputCallback] = None,
    ) -> CommandOutput:
        self.executed.append(command)
        out, err = self.partial_output.get(command, ("", ""))
        if on_stdout and out:
            on_stdout(out)
        if on_stderr and err:
            on_stderr(err)
        outcome = self.commands.get(command, "")
        if isinstance(outcome, Exception):
            raise outcome
        return CommandOutput(stdout=outcome, exit_code=0)

    def write_file(self, sandbox_id: str, path: str, content: str) -> None:
        if path in self.fail_writes_for:
            raise OSError(f"permission denied: {path}")
        self.files[path] = content

    def read_file(self, sandbox_id: str, path: str) -> str:
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    def get_host(self, sandbox_id: str, port: int) -> str:
        return f"{port}-{sandbox_id}.sandbox.test"


class ScriptedClient(LLMClient):
    """
    Replays scripted replies for tool-enabled calls (the coding agent) and
    answers tool-less calls (title/response agents) with fixed text.
    When the script runs out the agent keeps "working" without finishing.
    """

    def __init__(
        self,
        script: Optional[List[ChatReply]] = None,
        *,
        title: str = "Todo App",
        response: str = "I built a todo app for you.",
    ) -> None:
        self.script = list(script or [])
        self.title = title
        self.response = response
        self.calls: List[Dict[str, Any]] = []

    def chat(self, messages, *, tools=None, model=None, temperature=None) -> ChatReply:
        self.calls.append({"messages": list(messages), "tools": tools, "model": model})
        if not tools:
            system = messages[0]["content"]
            return ChatReply(content=self.title if "title" in system else self.response)
        if self.script:
            return self.script.pop(0)
        return ChatReply(content="Still working on it.")

    @property
    def agent_calls(self) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["tools"]]


def tool_call(name: str, arguments: str, call_id: str = "call_1") -> ChatToolCall:
    return ChatToolCall(id=call_id, name=name, arguments=arguments)


def make_config(tmp_path: Path, **overrides: Any) -> AppConfig:
    values: Dict[str, Any] = dict(
        db_path=tmp_path / "autocode-test.sqlite3",
        sandbox_template="test-template",
        sandbox_timeout_ms=600_000,
        sandbox_port=3000,
        history_limit=5,
        max_iterations=15,
        completion_marker="<task_summary>",
        agent_model="gpt-4.1",
        agent_temperature=0.1,
        summary_model="gpt-4o",
    )
    values.update(overrides)
    return AppConfig(**values)


@pytest.fixture
def sandbox() -> FakeSandbox:
    return FakeSandbox()


@pytest.fixture
def config_factory(tmp_path: Path) -> Callable[..., AppConfig]:
    return lambda **overrides: make_config(tmp_path, **overrides)
