from typing import Optional

from autocode.core.agent import Agent, output_text
from autocode.core.prompt_loader import load_prompt
from autocode.infra.steps import StepRunner
from autocode.llm.client import LLMClient

DEFAULT_TITLE = "Fragment"
DEFAULT_RESPONSE = "Here you go!"


def build_title_agent(client: LLMClient, *, model: Optional[str] = None) -> Agent:
    return Agent(
        name="fragment-title-generator",
        description="A fragment title generator.",
        system=load_prompt("fragment_title", version="v1"),
        client=client,
        model=model,
    )


def build_response_agent(client: LLMClient, *, model: Optional[str] = None) -> Agent:
    return Agent(
        name="response-generator",
        description="A response generator.",
        system=load_prompt("response", version="v1"),
        client=client,
        model=model,
    )


def generate_fragment_title(agent: Agent, summary: str, *, steps: Optional[StepRunner] = None) -> str:
    """
    Reason:
    - The fragment card needs a short label.
    Benefit:
    - Falls back to "Fragment" instead of failing the run.
    """
    if not summary:
        return DEFAULT_TITLE
    return output_text(agent.run(summary, steps=steps), DEFAULT_TITLE).strip() or DEFAULT_TITLE


def generate_response(agent: Agent, summary: str, *, steps: Optional[StepRunner] = None) -> str:
    """User-facing reply for a finished run; "Here you go!" when nothing usable comes back."""
    if not summary:
        return DEFAULT_RESPONSE
    return output_text(agent.run(summary, steps=steps), DEFAULT_RESPONSE).strip() or DEFAULT_RESPONSE
