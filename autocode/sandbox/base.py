from typing import Callable, Optional

from pydantic import BaseModel

OutputCallback = Callable[[str], None]


class CommandOutput(BaseModel):
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None


class SandboxClient:
    """
    Capability set of an ephemeral execution environment.

    Every call is keyed by the sandbox id returned from `create`, so a
    memoized id from a replayed run reconnects to the same environment.
    Failures raise; callers decide whether they are fatal.
    """

    def create(self, template: str) -> str:
        raise NotImplementedError

    def set_timeout(self, sandbox_id: str, timeout_ms: int) -> None:
        raise NotImplementedError

    def run_command(
        self,
        sandbox_id: str,
        command: str,
        *,
        on_stdout: Optional[OutputCallback] = None,
        on_stderr: Optional[OutputCallback] = None,
    ) -> CommandOutput:
        raise NotImplementedError

    def write_file(self, sandbox_id: str, path: str, content: str) -> None:
        raise NotImplementedError

    def read_file(self, sandbox_id: str, path: str) -> str:
        raise NotImplementedError

    def get_host(self, sandbox_id: str, port: int) -> str:
        raise NotImplementedError
