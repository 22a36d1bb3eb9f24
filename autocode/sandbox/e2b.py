import os
import time
from typing import Any, Optional

from e2b_code_interpreter import Sandbox

from autocode.infra.logging import log_event
from autocode.sandbox.base import CommandOutput, OutputCallback, SandboxClient


class E2BSandboxClient(SandboxClient):
    """
    SandboxClient backed by E2B cloud sandboxes.

    Reason:
    - Generated apps need a real shell, filesystem and a public port.
    Benefit:
    - Each run gets its own VM; nothing leaks between projects.
    """

    def __init__(self) -> None:
        if not os.getenv("E2B_API_KEY"):
            raise RuntimeError("E2B_API_KEY is not set")

    def _connect(self, sandbox_id: str) -> Any:
        return Sandbox.connect(sandbox_id)

    def create(self, template: str) -> str:
        start = time.time()
        sandbox = Sandbox.create(template=template)
        log_event(
            "sandbox_created",
            sandbox_id=sandbox.sandbox_id,
            template=template,
            seconds=time.time() - start,
        )
        return sandbox.sandbox_id

    def set_timeout(self, sandbox_id: str, timeout_ms: int) -> None:
        # SDK takes seconds
        self._connect(sandbox_id).set_timeout(max(1, timeout_ms // 1000))

    def run_command(
        self,
        sandbox_id: str,
        command: str,
        *,
        on_stdout: Optional[OutputCallback] = None,
        on_stderr: Optional[OutputCallback] = None,
    ) -> CommandOutput:
        sandbox = self._connect(sandbox_id)
        result = sandbox.commands.run(command, on_stdout=on_stdout, on_stderr=on_stderr)
        return CommandOutput(
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            exit_code=result.exit_code,
        )

    def write_file(self, sandbox_id: str, path: str, content: str) -> None:
        self._connect(sandbox_id).files.write(path, content)

    def read_file(self, sandbox_id: str, path: str) -> str:
        return self._connect(sandbox_id).files.read(path)

    def get_host(self, sandbox_id: str, port: int) -> str:
        return self._connect(sandbox_id).get_host(port)
