from typing import Optional
from pydantic import BaseModel, Field


class ToolResult(BaseModel):
    """
    Reason:
    - Every tool call ends in one of these, success or not.
    Benefit:
    - The loop never sees an exception from a tool; the model reads `output`.
    """
    tool_name: str
    ok: bool
    output: str = ""
    error: Optional[str] = None


class TerminalArgs(BaseModel):
    command: str = Field(min_length=1, description="Shell command to run in the sandbox")


class FileWrite(BaseModel):
    path: str = Field(min_length=1, description="File path relative to the sandbox working directory")
    content: str = Field(description="Full new content of the file")


class CreateOrUpdateFilesArgs(BaseModel):
    files: list[FileWrite] = Field(description="Files to create or overwrite")


class ReadFilesArgs(BaseModel):
    files: list[str] = Field(description="Paths of files to read")
