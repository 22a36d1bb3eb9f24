from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence

from autocode.core.agent import Agent, AgentResult
from autocode.core.agent_state import AgentState
from autocode.core.completion import CompletionDetector, apply_completion
from autocode.core.schemas import Message
from autocode.core.tool_router import ToolContext
from autocode.infra.logging import log_event

DEFAULT_MAX_ITERATIONS = 15


class LoopPhase(str, Enum):
    TURN_PENDING = "TURN_PENDING"
    AGENT_EXECUTING = "AGENT_EXECUTING"
    COMPLETION_CHECK = "COMPLETION_CHECK"
    DONE = "DONE"


class Router(Protocol):
    """Picks the next agent, or None to end the run."""

    def select(self, network: "AgentNetwork") -> Optional[Agent]:
        ...


class SummaryRouter:
    """Keep handing turns to one agent until a summary is recorded."""

    def __init__(self, agent: Agent) -> None:
        self.agent = agent

    def select(self, network: "AgentNetwork") -> Optional[Agent]:
        if network.state.summary:
            return None
        return self.agent


def completion_hook(detector: CompletionDetector):
    """
    Response hook that records the summary when the turn's last assistant
    text carries the completion marker.
    """

    def _on_response(result: AgentResult, network: Optional["AgentNetwork"]) -> AgentResult:
        if network is not None:
            apply_completion(detector, result.output, network.state, run_id=network.run_id)
        return result

    return _on_response


@dataclass
class NetworkRun:
    state: AgentState
    iterations: int
    phase: LoopPhase
    results: List[AgentResult] = field(default_factory=list)


class AgentNetwork:
    """
    Runs agents turn by turn over one shared AgentState.

    Phases per turn: TURN_PENDING -> AGENT_EXECUTING -> COMPLETION_CHECK,
    then back to TURN_PENDING or DONE. The router is asked at every turn
    boundary, so a summary recorded during a turn only ends the run after
    that turn's tool calls have all finished. `max_iter` bounds the number
    of turns; hitting it is a normal DONE, not an error.
    """

    def __init__(
        self,
        *,
        name: str,
        agents: Sequence[Agent],
        router: Router,
        state: Optional[AgentState] = None,
        history: Sequence[Message] = (),
        max_iter: int = DEFAULT_MAX_ITERATIONS,
        run_id: Optional[str] = None,
    ) -> None:
        if max_iter < 1:
            raise ValueError("max_iter must be >= 1")
        self.name = name
        self.agents = list(agents)
        self.router = router
        self.state = state if state is not None else AgentState()
        self.history = tuple(history)
        self.max_iter = max_iter
        self.run_id = run_id

        self.phase = LoopPhase.TURN_PENDING
        self.iteration = 0
        self.input = ""
        self.results: List[AgentResult] = []

    def transcript(self) -> List[Dict[str, Any]]:
        """History, then this run's user input, then every turn's output.

        The input is not repeated when history already ends with it (the
        trigger stored the user message before starting the run).
        """
        messages: List[Dict[str, Any]] = [m.to_chat() for m in self.history]
        last = self.history[-1] if self.history else None
        already_stored = last is not None and last.role == "user" and last.content == self.input
        if self.input and not already_stored:
            messages.append({"role": "user", "content": self.input})
        for result in self.results:
            messages.extend(result.output)
        return messages

    def _enter(self, phase: LoopPhase, **fields: Any) -> None:
        self.phase = phase
        log_event(
            "network_phase",
            run_id=self.run_id,
            network=self.name,
            phase=phase.value,
            iteration=self.iteration,
            **fields,
        )

    def run(self, input: str, *, ctx: Optional[ToolContext] = None) -> NetworkRun:
        if ctx is not None and ctx.state is not self.state:
            raise ValueError("Tool context must share the network's AgentState")

        self.input = input
        self._enter(LoopPhase.TURN_PENDING)

        while self.phase is not LoopPhase.DONE:
            agent = self.router.select(self)
            if agent is None:
                self._enter(LoopPhase.DONE, reason="router_stop")
                break

            self._enter(LoopPhase.AGENT_EXECUTING, agent=agent.name)
            result = agent.run(input, network=self, ctx=ctx)

            self._enter(LoopPhase.COMPLETION_CHECK, agent=agent.name)
            result = agent.respond(result, self)
            self.results.append(result)
            self.iteration += 1

            log_event(
                "network_iteration_end",
                run_id=self.run_id,
                iteration=self.iteration,
                files=len(self.state.files),
                has_summary=bool(self.state.summary),
            )

            if self.iteration >= self.max_iter:
                self._enter(LoopPhase.DONE, reason="max_iter")
            else:
                self._enter(LoopPhase.TURN_PENDING)

        log_event(
            "network_done",
            run_id=self.run_id,
            iterations=self.iteration,
            has_summary=bool(self.state.summary),
            files=len(self.state.files),
        )
        return NetworkRun(
            state=self.state,
            iterations=self.iteration,
            phase=self.phase,
            results=list(self.results),
        )
