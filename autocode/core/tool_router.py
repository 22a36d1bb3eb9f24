import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ValidationError

from autocode.core.agent_state import AgentState
from autocode.core.schemas import ChatToolCall
from autocode.core.tool_schemas import ToolResult
from autocode.infra.logging import log_event
from autocode.infra.steps import StepRunner
from autocode.sandbox.base import SandboxClient


@dataclass
class ToolContext:
    """Everything a tool handler may touch during one run."""

    state: AgentState
    sandbox: SandboxClient
    sandbox_id: str
    steps: StepRunner
    run_id: Optional[str] = None


ToolHandler = Callable[[Any, ToolContext], Any]


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    parameters: Type[BaseModel]
    handler: ToolHandler

    def to_openai(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters.model_json_schema(),
            },
        }


def _render_output(out: Any) -> str:
    if out is None:
        return ""
    if isinstance(out, str):
        return out
    return json.dumps(out, ensure_ascii=False)


class ToolRegistry:
    """
    Reason:
    - Maintain an allowlist of tools the model may call.
    Benefit:
    - Unknown names and malformed arguments become readable errors, not crashes.
    """

    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def names(self) -> List[str]:
        return list(self._tools)

    def schemas(self) -> List[Dict[str, Any]]:
        return [t.to_openai() for t in self._tools.values()]

    def run(self, call: ChatToolCall, ctx: ToolContext) -> ToolResult:
        """
        Validate the model's JSON arguments and run the handler.

        Handlers may return a ToolResult (their own failure reporting) or any
        JSON-able value, which is rendered into `output`.
        """
        tool_name = call.name
        tool = self._tools.get(tool_name)
        if tool is None:
            return ToolResult(
                tool_name=tool_name, ok=False, output=f"Unknown tool: {tool_name}", error="Unknown tool"
            )

        try:
            raw_args = json.loads(call.arguments or "{}")
            args = tool.parameters.model_validate(raw_args)
        except (json.JSONDecodeError, ValidationError) as e:
            message = f"Bad tool args: {e}"
            return ToolResult(tool_name=tool_name, ok=False, output=message, error=message)

        log_event("tool_call_start", run_id=ctx.run_id, tool_name=tool_name, call_id=call.id)
        try:
            out = tool.handler(args, ctx)
        except Exception as e:
            message = f"Tool error: {type(e).__name__}: {e}"
            log_event("tool_call_end", run_id=ctx.run_id, tool_name=tool_name, ok=False, error=message)
            return ToolResult(tool_name=tool_name, ok=False, output=message, error=message)

        result = out if isinstance(out, ToolResult) else ToolResult(
            tool_name=tool_name, ok=True, output=_render_output(out)
        )
        log_event(
            "tool_call_end",
            run_id=ctx.run_id,
            tool_name=tool_name,
            ok=result.ok,
            error=result.error,
        )
        return result
