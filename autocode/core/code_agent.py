from typing import Any, Dict, List, Optional

from autocode.config import AppConfig, load_config
from autocode.core.agent import Agent
from autocode.core.agent_state import AgentState
from autocode.core.completion import SentinelCompletionDetector
from autocode.core.network import AgentNetwork, SummaryRouter, completion_hook
from autocode.core.prompt_loader import load_prompt
from autocode.core.schemas import (
    CodeAgentEvent,
    Fragment,
    Message,
    MessageRole,
    MessageType,
    RunOutput,
)
from autocode.core.summarizers import (
    build_response_agent,
    build_title_agent,
    generate_fragment_title,
    generate_response,
)
from autocode.core.tool_router import ToolContext
from autocode.infra.logging import log_event
from autocode.infra.steps import StepRunner
from autocode.infra.storage import create_message, list_recent_messages, save_run, start_run
from autocode.llm.client import LLMClient
from autocode.sandbox.base import SandboxClient
from autocode.tools.sandbox_tools import build_sandbox_tools

ERROR_MESSAGE = "Something went wrong. Please try again."


def _closing_tag(marker: str) -> str:
    if marker.startswith("<") and not marker.startswith("</"):
        return "</" + marker[1:]
    return marker


def to_message(row: Dict[str, Any]) -> Message:
    role = "assistant" if row.get("role") == MessageRole.ASSISTANT.value else "user"
    return Message(role=role, content=row.get("content") or "")


def load_history(project_id: str, limit: int) -> List[Message]:
    """Last `limit` turns of a project, oldest first."""
    rows = list_recent_messages(project_id, limit=limit)
    return [to_message(r) for r in reversed(rows)]


def build_code_agent(client: LLMClient, config: AppConfig) -> Agent:
    system = load_prompt(
        "code_agent",
        version="v1",
        port=config.sandbox_port,
        marker=config.completion_marker,
        closing_marker=_closing_tag(config.completion_marker),
    )
    return Agent(
        name="codeAgent",
        description="An expert coding agent.",
        system=system,
        client=client,
        model=config.agent_model,
        temperature=config.agent_temperature,
        tools=build_sandbox_tools(),
        on_response=completion_hook(SentinelCompletionDetector(config.completion_marker)),
    )


def is_success(state: AgentState) -> bool:
    return bool(state.summary) and bool(state.files)


def run_code_agent(
    event: CodeAgentEvent,
    *,
    client: LLMClient,
    sandbox: SandboxClient,
    config: Optional[AppConfig] = None,
    steps: Optional[StepRunner] = None,
) -> RunOutput:
    """
    Reason:
    - One place that sequences a whole run: sandbox, history, loop,
      summaries, verdict, persistence.
    Benefit:
    - Every side effect goes through a named step, so re-driving the same
      run_id after a crash resumes instead of starting over.

    Provisioning, history, model and persistence failures propagate.
    Tool failures never do; the agent sees them as text.
    """
    config = config or load_config()
    steps = steps or StepRunner(event.run_id)
    run_id = event.run_id

    log_event(
        "code_agent_run_start",
        run_id=run_id,
        project_id=event.project_id,
        max_iterations=config.max_iterations,
    )
    start_run(run_id=run_id, project_id=event.project_id, value=event.value)

    def _provision() -> str:
        sandbox_id = sandbox.create(config.sandbox_template)
        sandbox.set_timeout(sandbox_id, config.sandbox_timeout_ms)
        return sandbox_id

    sandbox_id = steps.run("get-sandbox-id", _provision)

    history_rows = steps.run(
        "get-previous-messages",
        lambda: [m.model_dump() for m in load_history(event.project_id, config.history_limit)],
    )
    history = [Message.model_validate(r) for r in history_rows]

    state = AgentState()
    code_agent = build_code_agent(client, config)
    network = AgentNetwork(
        name="coding-agent-network",
        agents=[code_agent],
        router=SummaryRouter(code_agent),
        state=state,
        history=history,
        max_iter=config.max_iterations,
        run_id=run_id,
    )
    ctx = ToolContext(state=state, sandbox=sandbox, sandbox_id=sandbox_id, steps=steps, run_id=run_id)
    outcome = network.run(event.value, ctx=ctx)

    title = generate_fragment_title(
        build_title_agent(client, model=config.summary_model), state.summary, steps=steps
    )
    response = generate_response(
        build_response_agent(client, model=config.summary_model), state.summary, steps=steps
    )

    ok = is_success(state)

    sandbox_url = steps.run(
        "get-sandbox-url",
        lambda: f"http://{sandbox.get_host(sandbox_id, config.sandbox_port)}",
    )

    def _save() -> Dict[str, Any]:
        if not ok:
            return create_message(
                project_id=event.project_id,
                content=ERROR_MESSAGE,
                role=MessageRole.ASSISTANT,
                type=MessageType.ERROR,
            )
        fragment = Fragment(sandbox_url=sandbox_url, title=title, files=state.files)
        return create_message(
            project_id=event.project_id,
            content=response,
            role=MessageRole.ASSISTANT,
            type=MessageType.RESULT,
            fragment=fragment.model_dump(),
        )

    record = steps.run("save-result", _save)

    save_run(
        run_id=run_id,
        project_id=event.project_id,
        value=event.value,
        ok=ok,
        iterations=outcome.iterations,
        summary=state.summary or None,
        title=title,
        sandbox_url=sandbox_url,
        files=state.files,
        total_tokens=getattr(client, "total_tokens", None),
        total_cost=getattr(client, "total_cost", None),
    )

    log_event(
        "code_agent_run_end",
        run_id=run_id,
        ok=ok,
        iterations=outcome.iterations,
        files=len(state.files),
        message_id=record["message_id"],
        message_type=record["type"],
    )

    return RunOutput(url=sandbox_url, title=title, files=state.files, summary=state.summary)
