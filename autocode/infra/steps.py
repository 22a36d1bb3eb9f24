from collections import defaultdict
from typing import Any, Callable, Dict, TypeVar

from autocode.infra.logging import log_event
from autocode.infra.storage import get_cached_step, make_step_key, set_cached_step

T = TypeVar("T")


class StepRunner:
    """
    Runs named units of work once per run and memoizes their results.

    Reason:
    - A crashed run is retried by re-driving it with the same run_id.
    Benefit:
    - Completed steps (sandbox creation, tool calls, model turns) return their
      recorded result instead of executing again.

    Steps with the same name are told apart by occurrence order, so the
    second "terminal" step of a run always maps to the same cache row.
    Results must be JSON-serializable.
    """

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        self._seen: Dict[str, int] = defaultdict(int)

    def run(self, name: str, fn: Callable[[], T]) -> T:
        self._seen[name] += 1
        occurrence = self._seen[name]
        cache_key = make_step_key(self.run_id, name, occurrence)

        # 1) Cache lookup (best-effort)
        try:
            cached = get_cached_step(cache_key)
        except Exception as e:
            cached = None
            log_event(
                "step_cache_error",
                run_id=self.run_id,
                step=name,
                error=f"{type(e).__name__}: {e}",
            )

        if cached is not None:
            log_event("step_cache_hit", run_id=self.run_id, step=name, occurrence=occurrence)
            return cached["result"]

        log_event("step_cache_miss", run_id=self.run_id, step=name, occurrence=occurrence)

        # 2) Execute; errors propagate to the caller
        result = fn()

        # 3) Cache write (best-effort)
        try:
            set_cached_step(cache_key, run_id=self.run_id, step_name=name, result=result)
        except Exception as e:
            log_event(
                "step_cache_write_error",
                run_id=self.run_id,
                step=name,
                error=f"{type(e).__name__}: {e}",
            )

        return result


class InlineStepRunner(StepRunner):
    """Executes every step directly; for one-off scripts that never replay."""

    def run(self, name: str, fn: Callable[[], Any]) -> Any:
        self._seen[name] += 1
        return fn()
