"""Terminal rendering of agent events."""

import asyncio
import threading

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm

from deskpilot.events import AgentEvent

TOOL_OUTPUT_PREVIEW = 400


class TerminalUI:
    """Render agent events on a rich console and ask for confirmations."""

    def __init__(self, console: Console | None = None, verbose: bool = False):
        self.console = console or Console()
        self.verbose = verbose
        self._pending: dict[str, str] = {}

    def print_welcome(self, provider: str, model: str, access_level: str) -> None:
        self.console.print(
            Panel.fit(
                f"[bold]Deskpilot[/bold]\nProvider: {provider}  Model: {model or 'auto'}  Access: {access_level}",
                border_style="cyan",
            )
        )

    def print_error(self, error: str) -> None:
        self.console.print(f"[bold red]Error:[/bold red] {error}")

    def handle_event(self, event: AgentEvent) -> None:
        """Event sink for ``Agent.run`` and the orchestrator."""
        if event.type == "status":
            self.console.print(f"[dim]{event.status}[/dim]")
        elif event.type == "thinking":
            self.console.print(f"[italic]{event.text}[/italic]")
        elif event.type == "tool_call" and event.tool_call is not None:
            call = event.tool_call
            marker = "[yellow]![/yellow] " if call.dangerous else ""
            args = f" {call.args}" if self.verbose else ""
            self.console.print(f"{marker}[cyan][TOOL][/cyan] {call.name}{args}")
        elif event.type == "confirm_needed" and event.confirmation is not None:
            self._pending[event.confirmation.tool_call_id] = event.confirmation.message
        elif event.type == "tool_result" and event.tool_result is not None:
            result = event.tool_result
            status = "[green]ok[/green]" if result.success else "[red]failed[/red]"
            output = result.output
            if not self.verbose and len(output) > TOOL_OUTPUT_PREVIEW:
                output = output[:TOOL_OUTPUT_PREVIEW] + "..."
            self.console.print(f"[cyan][TOOL RESULT][/cyan] {result.name} {status} ({result.duration_ms} ms)")
            if output:
                self.console.print(output, markup=False, highlight=False)
        elif event.type == "text_chunk":
            self.console.print(event.text or "", markup=False)
        elif event.type == "error":
            self.print_error(event.error or "Unknown error")

    async def confirm(self, tool_call_id: str) -> bool:
        """Ask the user to approve the pending call ``tool_call_id``."""
        message = self._pending.pop(tool_call_id, f"Allow tool call {tool_call_id}?")
        self.console.print(Panel(message, title="Confirmation required", border_style="yellow"))
        loop = asyncio.get_running_loop()
        answer: asyncio.Future[bool] = loop.create_future()

        def settle(approved: bool | None, error: Exception | None) -> None:
            if answer.done():
                return
            if error is not None:
                answer.set_exception(error)
            else:
                answer.set_result(bool(approved))

        def ask() -> None:
            try:
                approved = Confirm.ask("Allow?", console=self.console, default=False)
            except Exception as e:
                approved, error = None, e
            else:
                error = None
            try:
                loop.call_soon_threadsafe(settle, approved, error)
            except RuntimeError:
                # Loop already closed after an abort; nobody is waiting.
                pass

        # Not joined at shutdown, so a prompt abandoned on abort cannot stall exit.
        threading.Thread(target=ask, name="deskpilot-confirm", daemon=True).start()
        return await answer
