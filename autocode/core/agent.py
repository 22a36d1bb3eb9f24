from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from autocode.core.schemas import ChatReply
from autocode.core.tool_router import ToolContext, ToolRegistry
from autocode.core.tool_schemas import ToolResult
from autocode.infra.logging import log_event, preview
from autocode.infra.steps import StepRunner
from autocode.llm.client import LLMClient

if TYPE_CHECKING:
    from autocode.core.network import AgentNetwork


class AgentResult(BaseModel):
    """
    Everything one agent turn produced.

    `output` holds chat-format messages in order: the assistant message, then
    one `tool` message per executed call.
    """

    agent_name: str
    output: List[Dict[str, Any]] = Field(default_factory=list)
    tool_calls: List[ToolResult] = Field(default_factory=list)


ResponseHook = Callable[[AgentResult, Optional["AgentNetwork"]], AgentResult]


def _assistant_message(reply: ChatReply) -> Dict[str, Any]:
    message: Dict[str, Any] = {"role": "assistant", "content": reply.content or ""}
    if reply.tool_calls:
        message["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.arguments},
            }
            for call in reply.tool_calls
        ]
    return message


class Agent:
    """
    A named model persona: system prompt, model settings, optional tools.

    One `run` is one inference plus sequential execution of the tool calls
    it asked for. Looping is the network's job, not the agent's.
    """

    def __init__(
        self,
        *,
        name: str,
        description: str,
        system: str,
        client: LLMClient,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        tools: Optional[ToolRegistry] = None,
        on_response: Optional[ResponseHook] = None,
    ) -> None:
        self.name = name
        self.description = description
        self.system = system
        self.client = client
        self.model = model
        self.temperature = temperature
        self.tools = tools
        self.on_response = on_response

    def _messages(self, input: str, network: Optional["AgentNetwork"]) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = [{"role": "system", "content": self.system}]
        if network is not None:
            messages.extend(network.transcript())
        else:
            messages.append({"role": "user", "content": input})
        return messages

    def _infer(self, messages: List[Dict[str, Any]], steps: Optional[StepRunner]) -> ChatReply:
        def _call() -> Dict[str, Any]:
            reply = self.client.chat(
                messages,
                tools=self.tools.schemas() if self.tools else None,
                model=self.model,
                temperature=self.temperature,
            )
            return reply.model_dump()

        raw = steps.run(self.name, _call) if steps is not None else _call()
        return ChatReply.model_validate(raw)

    def run(
        self,
        input: str = "",
        *,
        network: Optional["AgentNetwork"] = None,
        ctx: Optional[ToolContext] = None,
        steps: Optional[StepRunner] = None,
    ) -> AgentResult:
        if steps is None and ctx is not None:
            steps = ctx.steps

        reply = self._infer(self._messages(input, network), steps)
        result = AgentResult(agent_name=self.name, output=[_assistant_message(reply)])

        for call in reply.tool_calls:
            if self.tools is None or ctx is None:
                raise ValueError(f"Agent {self.name} received tool call {call.name} without tools")
            tool_result = self.tools.run(call, ctx)
            result.tool_calls.append(tool_result)
            result.output.append(
                {"role": "tool", "tool_call_id": call.id, "content": tool_result.output}
            )

        log_event(
            "agent_turn",
            run_id=ctx.run_id if ctx else None,
            agent=self.name,
            text=preview(reply.content),
            tool_calls=[c.name for c in reply.tool_calls],
        )
        return result

    def respond(self, result: AgentResult, network: Optional["AgentNetwork"] = None) -> AgentResult:
        """Apply the response lifecycle hook, if any."""
        if self.on_response is None:
            return result
        return self.on_response(result, network)


def output_text(result: AgentResult, fallback: str) -> str:
    """First output message as text, or `fallback` when it is not text."""
    if not result.output:
        return fallback
    first = result.output[0]
    if first.get("role") != "assistant":
        return fallback
    content = first.get("content")
    if isinstance(content, list):
        content = "".join(
            part.get("text", "") if isinstance(part, dict) else str(part) for part in content
        )
    if not isinstance(content, str) or not content:
        return fallback
    return content
