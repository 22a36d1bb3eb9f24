import os
import time
from typing import Any, Dict, List, Optional

from openai import OpenAI

from autocode.core.schemas import ChatReply, ChatToolCall
from autocode.infra.logging import log_event


class LLMClient:
    """One chat inference: messages (+ optional tool schemas) in, ChatReply out."""

    total_tokens: int = 0
    total_cost: float = 0.0

    def chat(
        self,
        messages: List[Dict[str, Any]],
        *,
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> ChatReply:
        raise NotImplementedError


class OpenAIClient(LLMClient):
    def __init__(self, *, model: str = "gpt-4.1", temperature: float = 0.1):
        if not os.getenv("OPENAI_API_KEY"):
            raise RuntimeError("OPENAI_API_KEY is not set")

        self.max_attempts = 3
        self.base_backoff_seconds = 1.0

        # Defaults; agents override per call
        self.model = model
        self.temperature = temperature

        self.client = OpenAI(api_key=os.getenv("OPENAI_API_KEY"))

        # Cost tracking
        self.total_tokens = 0
        self.total_cost = 0.0
        self.cost_per_1k_tokens = 0.002  # blended estimate, update as pricing changes

    def chat(
        self,
        messages: List[Dict[str, Any]],
        *,
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> ChatReply:
        """
        Retry strategy:
        - Transient API/network failures back off exponentially and retry.
        - After max_attempts the last error is chained into a RuntimeError.
        """
        model = model or self.model
        temperature = self.temperature if temperature is None else temperature
        last_error: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                log_event(
                    "llm_attempt",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    model=model,
                    temperature=temperature,
                    tools=len(tools or []),
                )
                response = self._call_openai(messages, tools=tools, model=model, temperature=temperature)
                self._track_usage(response)
                return self._to_reply(response)

            except Exception as e:
                # Covers transient OpenAI/network issues
                last_error = e
                log_event(
                    "llm_transient_error",
                    error_type=type(e).__name__,
                    error=str(e)[:300],
                )
                if attempt < self.max_attempts:
                    self._backoff(attempt)

        raise RuntimeError(
            f"LLM failed after {self.max_attempts} attempts"
        ) from last_error

    def _call_openai(
        self,
        messages: List[Dict[str, Any]],
        *,
        tools: Optional[List[Dict[str, Any]]],
        model: str,
        temperature: float,
    ) -> Any:
        start = time.time()

        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        if tools:
            kwargs["tools"] = tools
            # one tool call at a time keeps tool execution strictly sequential
            kwargs["parallel_tool_calls"] = False

        response = self.client.chat.completions.create(**kwargs)

        log_event("llm_latency", seconds=time.time() - start, model=model)
        return response

    def _track_usage(self, response: Any) -> None:
        usage = getattr(response, "usage", None)
        tokens_used = getattr(usage, "total_tokens", 0) or 0
        cost = (tokens_used / 1000) * self.cost_per_1k_tokens

        self.total_tokens += tokens_used
        self.total_cost += cost

        log_event(
            "llm_usage",
            tokens=tokens_used,
            cost=cost,
            total_tokens=self.total_tokens,
            total_cost=self.total_cost,
        )

    @staticmethod
    def _to_reply(response: Any) -> ChatReply:
        message = response.choices[0].message
        calls = [
            ChatToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=tc.function.arguments or "{}",
            )
            for tc in (message.tool_calls or [])
        ]
        return ChatReply(content=message.content, tool_calls=calls)

    def _backoff(self, attempt: int) -> None:
        """
        Exponential backoff to reduce pressure on the API and avoid rate limits.
        """
        delay = self.base_backoff_seconds * (2 ** (attempt - 1))
        log_event(
            "llm_backoff",
            delay=delay,
        )
        time.sleep(delay)
