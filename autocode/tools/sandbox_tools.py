import json
from typing import Dict, List, Union

from autocode.core.tool_router import Tool, ToolContext, ToolRegistry
from autocode.core.tool_schemas import (
    CreateOrUpdateFilesArgs,
    ReadFilesArgs,
    TerminalArgs,
    ToolResult,
)
from autocode.infra.logging import log_event, preview


def run_command(ctx: ToolContext, command: str) -> str:
    """
    Run a shell command in the sandbox and return its stdout.

    On failure the returned text carries the error plus whatever both streams
    captured up to that point, so the agent still sees partial output.
    """

    def _step() -> str:
        buffers = {"stdout": "", "stderr": ""}

        def on_stdout(data: str) -> None:
            buffers["stdout"] += data

        def on_stderr(data: str) -> None:
            buffers["stderr"] += data

        try:
            result = ctx.sandbox.run_command(
                ctx.sandbox_id, command, on_stdout=on_stdout, on_stderr=on_stderr
            )
            return result.stdout
        except Exception as e:
            message = (
                f"Command failed: {e}\n"
                f"stdout: {buffers['stdout']}\n"
                f"stderr: {buffers['stderr']}"
            )
            log_event(
                "tool_command_failed",
                run_id=ctx.run_id,
                command=preview(command),
                error=f"{type(e).__name__}: {e}",
            )
            return message

    return ctx.steps.run("terminal", _step)


def write_files(ctx: ToolContext, entries: List[Dict[str, str]]) -> Union[Dict[str, str], str]:
    """
    Write entries to the sandbox and merge them into state.files.

    The merged mapping is built on a copy and committed only after every
    write succeeded; a failure leaves state.files untouched and returns an
    error string. Later entries for the same path win.
    """

    def _step() -> Union[Dict[str, str], str]:
        try:
            updated = dict(ctx.state.files)
            for entry in entries:
                ctx.sandbox.write_file(ctx.sandbox_id, entry["path"], entry["content"])
                updated[entry["path"]] = entry["content"]
            return updated
        except Exception as e:
            return f"Error: {e}"

    new_files = ctx.steps.run("createOrUpdateFiles", _step)

    if isinstance(new_files, dict):
        ctx.state.merge_files(new_files)
    return new_files


def read_files(ctx: ToolContext, paths: List[str]) -> str:
    """Current sandbox contents (not state.files) as a JSON list of {path, content}."""

    def _step() -> str:
        try:
            contents = []
            for path in paths:
                content = ctx.sandbox.read_file(ctx.sandbox_id, path)
                contents.append({"path": path, "content": content})
            return json.dumps(contents, ensure_ascii=False)
        except Exception as e:
            return f"Error: {e}"

    return ctx.steps.run("readFiles", _step)


# ----------------------------
# Registry wiring
# ----------------------------

def _terminal(args: TerminalArgs, ctx: ToolContext):
    out = run_command(ctx, args.command)
    if out.startswith("Command failed: "):
        return ToolResult(tool_name="terminal", ok=False, output=out, error=out.splitlines()[0])
    return out


def _create_or_update_files(args: CreateOrUpdateFilesArgs, ctx: ToolContext):
    out = write_files(ctx, [f.model_dump() for f in args.files])
    if isinstance(out, str):
        return ToolResult(tool_name="createOrUpdateFiles", ok=False, output=out, error=out)
    return out


def _read_files(args: ReadFilesArgs, ctx: ToolContext):
    out = read_files(ctx, args.files)
    if out.startswith("Error: "):
        return ToolResult(tool_name="readFiles", ok=False, output=out, error=out)
    return out


def build_sandbox_tools() -> ToolRegistry:
    """
    Reason:
    - The coding agent gets exactly these three capabilities.
    Benefit:
    - Anything else the model asks for is rejected by the registry.
    """
    registry = ToolRegistry()
    registry.register(
        Tool(
            name="terminal",
            description="Use the terminal to run commands in the sandbox.",
            parameters=TerminalArgs,
            handler=_terminal,
        )
    )
    registry.register(
        Tool(
            name="createOrUpdateFiles",
            description="Create or update files in the sandbox.",
            parameters=CreateOrUpdateFilesArgs,
            handler=_create_or_update_files,
        )
    )
    registry.register(
        Tool(
            name="readFiles",
            description="Read files from the sandbox.",
            parameters=ReadFilesArgs,
            handler=_read_files,
        )
    )
    return registry
