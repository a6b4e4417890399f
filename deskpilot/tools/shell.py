"""Shell tool for executing commands."""

import asyncio
import os
from pathlib import Path
from typing import Any

from deskpilot.logging import get_logger
from deskpilot.tools.files import resolve_path
from deskpilot.tools.registry import Tool, ToolResult

log = get_logger(__name__)

MAX_SHELL_OUTPUT = 10_000


def find_blocked_pattern(command: str, blocked_patterns: list[str]) -> str | None:
    """Return the first blocked pattern found in ``command``.

    Whitespace runs are collapsed before matching. Patterns without spaces
    (e.g. the fork bomb) are also matched with all whitespace removed.
    """
    flat = " ".join(str(command or "").split())
    squeezed = flat.replace(" ", "")
    for raw_pattern in blocked_patterns or []:
        pattern = " ".join(str(raw_pattern or "").split())
        if not pattern:
            continue
        if pattern in flat or (" " not in pattern and pattern in squeezed):
            return pattern
    return None


class ExecCommandTool(Tool):
    """Execute shell commands via ``/bin/sh -c``."""

    name = "exec_command"
    required = ("command",)

    def __init__(self, timeout: int = 30, blocked: list[str] | None = None, home: Path | None = None):
        self.timeout = max(1, int(timeout))
        # Registry timeout sits above the command timeout so the process is killed first.
        self.timeout_seconds = float(self.timeout + 5)
        self.blocked = list(blocked or [])
        self.home = home

    async def execute(self, command: str = "", cwd: str | None = None, **kwargs: Any) -> ToolResult:
        """Execute a shell command.

        Args:
            command: Shell command to execute
            cwd: Working directory, defaults to the user's home

        Returns:
            ToolResult with exit code and output
        """
        command = str(command or "")
        if not command.strip():
            return ToolResult(success=False, output="No command provided.")

        matched = find_blocked_pattern(command, self.blocked)
        if matched is not None:
            log.warning("Blocked unsafe command", command=command, pattern=matched)
            return ToolResult(success=False, output=f"Command blocked: Command matches blocked pattern: {matched}")

        workdir = resolve_path(cwd or "~", self.home)
        env = os.environ.copy()
        env["PATH"] = os.environ.get("PATH", "/usr/local/bin:/usr/bin:/bin")

        try:
            log.info("Executing shell command", command=command, timeout=self.timeout)
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(workdir),
                env=env,
            )
            try:
                stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                return ToolResult(success=False, output=f"Command timed out after {self.timeout}s")
            except asyncio.CancelledError:
                process.kill()
                await process.wait()
                raise
        except OSError as e:
            log.error("Shell command failed", command=command, error=str(e))
            return ToolResult(success=False, output=f"Error: {e}")

        stdout_text = stdout.decode("utf-8", errors="replace")
        stderr_text = stderr.decode("utf-8", errors="replace")

        if process.returncode == 0:
            output = stdout_text
            if stderr_text.strip():
                output += f"\n[stderr] {stderr_text.strip()}"
        else:
            output = f"Exit code: {process.returncode}\n"
            if stdout_text:
                output += f"stdout:\n{stdout_text}\n"
            output += f"stderr:\n{stderr_text}" if stderr_text else "Command failed"

        if len(output) > MAX_SHELL_OUTPUT:
            output = output[:MAX_SHELL_OUTPUT] + f"\n... [truncated, {len(output)} total chars]"

        return ToolResult(success=process.returncode == 0, output=output or "[no output]")
