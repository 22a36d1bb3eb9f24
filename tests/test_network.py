from __future__ import annotations

import json

import pytest
from pydantic import BaseModel

from autocode.core.agent import Agent
from autocode.core.agent_state import AgentState
from autocode.core.completion import SentinelCompletionDetector
from autocode.core.network import AgentNetwork, LoopPhase, SummaryRouter, completion_hook
from autocode.core.schemas import ChatReply, Message
from autocode.core.tool_router import Tool, ToolContext, ToolRegistry
from autocode.infra.steps import InlineStepRunner
from autocode.tools.sandbox_tools import build_sandbox_tools

from conftest import FakeSandbox, ScriptedClient, tool_call

SUMMARY = "<task_summary>Built a todo app</task_summary>"


def _network(client: ScriptedClient, *, max_iter: int = 15, tools: ToolRegistry | None = None, history=()):
    state = AgentState()
    agent = Agent(
        name="codeAgent",
        description="An expert coding agent.",
        system="You write code.",
        client=client,
        tools=tools or build_sandbox_tools(),
        on_response=completion_hook(SentinelCompletionDetector()),
    )
    network = AgentNetwork(
        name="test-network",
        agents=[agent],
        router=SummaryRouter(agent),
        state=state,
        history=history,
        max_iter=max_iter,
        run_id="run-1",
    )
    ctx = ToolContext(
        state=state, sandbox=FakeSandbox(), sandbox_id="sbx-1", steps=InlineStepRunner("run-1"), run_id="run-1"
    )
    return network, ctx


def test_non_terminating_agent_stops_exactly_at_cap() -> None:
    client = ScriptedClient()
    network, ctx = _network(client, max_iter=15)

    run = network.run("Build a todo app", ctx=ctx)

    assert run.phase is LoopPhase.DONE
    assert run.iterations == 15
    assert len(client.agent_calls) == 15
    assert run.state.summary == ""


def test_loop_ends_on_the_turn_that_emits_the_marker() -> None:
    files = json.dumps({"files": [{"path": "app.js", "content": "todo()"}]})
    client = ScriptedClient(
        [
            ChatReply(tool_calls=[tool_call("createOrUpdateFiles", files)]),
            ChatReply(content=SUMMARY),
            ChatReply(content="should never be requested"),
        ]
    )
    network, ctx = _network(client)

    run = network.run("Build a todo app", ctx=ctx)

    assert run.iterations == 2
    assert run.state.summary == SUMMARY
    assert run.state.files == {"app.js": "todo()"}
    assert len(client.agent_calls) == 2


def test_router_selects_no_one_when_summary_already_set() -> None:
    client = ScriptedClient()
    network, ctx = _network(client)
    network.state.record_summary(SUMMARY)

    run = network.run("anything", ctx=ctx)

    assert run.iterations == 0
    assert client.agent_calls == []


class MarkArgs(BaseModel):
    note: str


def test_summary_set_mid_turn_lets_the_turn_finish() -> None:
    seen: list[str] = []

    def finish(args: MarkArgs, ctx: ToolContext) -> str:
        ctx.state.record_summary(SUMMARY)
        seen.append(args.note)
        return "ok"

    tools = ToolRegistry()
    tools.register(Tool(name="mark", description="Record a note.", parameters=MarkArgs, handler=finish))
    client = ScriptedClient(
        [
            ChatReply(
                tool_calls=[
                    tool_call("mark", '{"note": "first"}', "c1"),
                    tool_call("mark", '{"note": "second"}', "c2"),
                ]
            )
        ]
    )
    network, ctx = _network(client, tools=tools)

    run = network.run("go", ctx=ctx)

    assert seen == ["first", "second"]
    assert run.iterations == 1
    assert run.state.summary == SUMMARY


def test_transcript_orders_history_input_then_turns() -> None:
    history = [Message(role="user", content="old ask"), Message(role="assistant", content="old answer")]
    client = ScriptedClient([ChatReply(content="thinking"), ChatReply(content=SUMMARY)])
    network, ctx = _network(client, history=history)

    network.run("new ask", ctx=ctx)

    second_turn = client.agent_calls[1]["messages"]
    assert [m["role"] for m in second_turn] == ["system", "user", "assistant", "user", "assistant"]
    assert second_turn[3]["content"] == "new ask"
    assert second_turn[4]["content"] == "thinking"


def test_tool_results_are_fed_back_to_the_next_turn() -> None:
    client = ScriptedClient(
        [
            ChatReply(tool_calls=[tool_call("readFiles", '{"files": ["missing.js"]}', "c9")]),
            ChatReply(content=SUMMARY),
        ]
    )
    network, ctx = _network(client)

    network.run("inspect", ctx=ctx)

    tool_message = client.agent_calls[1]["messages"][-1]
    assert tool_message["role"] == "tool"
    assert tool_message["tool_call_id"] == "c9"
    assert tool_message["content"].startswith("Error: ")


def test_context_must_share_state() -> None:
    network, ctx = _network(ScriptedClient())
    ctx.state = AgentState()
    with pytest.raises(ValueError):
        network.run("x", ctx=ctx)


def test_cap_must_be_positive() -> None:
    with pytest.raises(ValueError):
        _network(ScriptedClient(), max_iter=0)


def test_empty_assistant_reply_is_sent_back_as_empty_text() -> None:
    client = ScriptedClient([ChatReply(content=None)])
    network, ctx = _network(client, max_iter=2)

    run = network.run("Build a todo app", ctx=ctx)

    assert run.iterations == 2
    assert len(client.agent_calls) == 2
    assert client.agent_calls[1]["messages"][-1] == {"role": "assistant", "content": ""}


def test_input_already_stored_as_last_history_message_is_not_repeated() -> None:
    history = [Message(role="assistant", content="old answer"), Message(role="user", content="new ask")]
    client = ScriptedClient([ChatReply(content=SUMMARY)])
    network, ctx = _network(client, history=history)

    network.run("new ask", ctx=ctx)

    first_turn = client.agent_calls[0]["messages"]
    assert [m["content"] for m in first_turn[1:]] == ["old answer", "new ask"]
