from __future__ import annotations

import pytest
from pydantic import BaseModel

from autocode.core.agent_state import AgentState
from autocode.core.tool_router import Tool, ToolContext, ToolRegistry
from autocode.infra.steps import InlineStepRunner

from conftest import FakeSandbox, tool_call


class EchoArgs(BaseModel):
    text: str


def _ctx() -> ToolContext:
    return ToolContext(
        state=AgentState(), sandbox=FakeSandbox(), sandbox_id="sbx-1", steps=InlineStepRunner("r1")
    )


def _registry(handler) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(Tool(name="echo", description="Echo text.", parameters=EchoArgs, handler=handler))
    return registry


def test_duplicate_registration_is_rejected() -> None:
    registry = _registry(lambda args, ctx: args.text)
    with pytest.raises(ValueError, match="already registered"):
        registry.register(Tool(name="echo", description="x", parameters=EchoArgs, handler=lambda a, c: None))


def test_schemas_follow_openai_function_format() -> None:
    schema = _registry(lambda args, ctx: args.text).schemas()[0]
    assert schema["type"] == "function"
    assert schema["function"]["name"] == "echo"
    assert "text" in schema["function"]["parameters"]["properties"]


def test_successful_call_renders_output() -> None:
    result = _registry(lambda args, ctx: {"echo": args.text}).run(tool_call("echo", '{"text": "hi"}'), _ctx())
    assert result.ok
    assert result.output == '{"echo": "hi"}'


def test_unknown_tool_becomes_error_string() -> None:
    result = _registry(lambda args, ctx: args.text).run(tool_call("rm_rf", "{}"), _ctx())
    assert not result.ok
    assert result.output == "Unknown tool: rm_rf"


def test_malformed_arguments_become_error_string() -> None:
    registry = _registry(lambda args, ctx: args.text)
    bad_json = registry.run(tool_call("echo", "{not json"), _ctx())
    wrong_shape = registry.run(tool_call("echo", '{"txt": 1}'), _ctx())
    assert not bad_json.ok and bad_json.output.startswith("Bad tool args:")
    assert not wrong_shape.ok and wrong_shape.output.startswith("Bad tool args:")


def test_handler_exception_never_escapes() -> None:
    def boom(args, ctx):
        raise RuntimeError("sandbox gone")

    result = _registry(boom).run(tool_call("echo", '{"text": "x"}'), _ctx())
    assert not result.ok
    assert result.output == "Tool error: RuntimeError: sandbox gone"
