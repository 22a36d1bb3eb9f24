from __future__ import annotations

import pytest

from autocode.infra.steps import InlineStepRunner, StepRunner
from autocode.infra.storage import count_cached_steps


def test_steps_execute_once_per_run_and_occurrence() -> None:
    calls: list[str] = []

    def work(tag: str):
        def _fn() -> dict:
            calls.append(tag)
            return {"tag": tag}

        return _fn

    first = StepRunner("run-a")
    assert first.run("terminal", work("one")) == {"tag": "one"}
    assert first.run("terminal", work("two")) == {"tag": "two"}

    replay = StepRunner("run-a")
    assert replay.run("terminal", work("ignored")) == {"tag": "one"}
    assert replay.run("terminal", work("ignored")) == {"tag": "two"}
    assert replay.run("terminal", work("three")) == {"tag": "three"}

    assert calls == ["one", "two", "three"]
    assert count_cached_steps("run-a") == 3


def test_runs_do_not_share_steps() -> None:
    StepRunner("run-a").run("get-sandbox-id", lambda: "sbx-a")
    assert StepRunner("run-b").run("get-sandbox-id", lambda: "sbx-b") == "sbx-b"


def test_memoized_none_is_a_hit() -> None:
    calls: list[int] = []

    def _fn() -> None:
        calls.append(1)

    StepRunner("run-n").run("noop", _fn)
    StepRunner("run-n").run("noop", _fn)
    assert calls == [1]


def test_failed_step_is_not_memoized() -> None:
    def _boom() -> str:
        raise RuntimeError("transient")

    with pytest.raises(RuntimeError):
        StepRunner("run-f").run("save-result", _boom)
    assert StepRunner("run-f").run("save-result", lambda: "saved") == "saved"


def test_inline_runner_never_touches_the_cache() -> None:
    runner = InlineStepRunner("run-i")
    assert runner.run("terminal", lambda: "x") == "x"
    assert count_cached_steps("run-i") == 0
