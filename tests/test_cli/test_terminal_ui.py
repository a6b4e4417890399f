import asyncio
import io
import threading
import time

import pytest
import structlog
from rich.console import Console
from typer.testing import CliRunner

import deskpilot.config as config_module
from deskpilot import __version__
from deskpilot.cli import TOOL_OUTPUT_PREVIEW, TerminalUI
from deskpilot.events import AgentEvent, ConfirmationInfo, ToolCallInfo, ToolResultInfo
from deskpilot.logging import get_logger
from deskpilot.main import app


def _ui(verbose: bool = False) -> tuple[TerminalUI, io.StringIO]:
    buffer = io.StringIO()
    console = Console(file=buffer, force_terminal=False, width=120, color_system=None)
    return TerminalUI(console=console, verbose=verbose), buffer


def _event(event_type: str, **payload) -> AgentEvent:
    return AgentEvent(request_id="r", type=event_type, **payload)


def test_tool_events_are_rendered():
    ui, out = _ui()

    ui.handle_event(_event("status", status="Thinking..."))
    ui.handle_event(
        _event("tool_call", tool_call=ToolCallInfo(id="c1", name="exec_command", args={"command": "ls"}, dangerous=True))
    )
    ui.handle_event(
        _event(
            "tool_result",
            tool_result=ToolResultInfo(id="c1", name="exec_command", success=True, output="a\nb", duration_ms=12),
        )
    )
    ui.handle_event(_event("text_chunk", text="All done."))

    text = out.getvalue()
    assert "Thinking..." in text
    assert "! [TOOL] exec_command" in text
    assert "[TOOL RESULT] exec_command ok (12 ms)" in text
    assert "All done." in text


def test_long_tool_output_is_previewed_unless_verbose():
    long_output = "y" * (TOOL_OUTPUT_PREVIEW + 100)
    event = _event(
        "tool_result",
        tool_result=ToolResultInfo(id="c1", name="read_file", success=True, output=long_output),
    )

    quiet, quiet_out = _ui()
    loud, loud_out = _ui(verbose=True)
    quiet.handle_event(event)
    loud.handle_event(event)

    assert "y" * (TOOL_OUTPUT_PREVIEW + 1) not in quiet_out.getvalue().replace("\n", "")
    assert long_output in loud_out.getvalue().replace("\n", "")


def test_error_event_is_printed():
    ui, out = _ui()

    ui.handle_event(_event("error", error="Invalid API key."))

    assert "Error: Invalid API key." in out.getvalue()


@pytest.mark.asyncio
async def test_confirm_shows_pending_message(monkeypatch):
    ui, out = _ui()
    asked: list[str] = []

    def fake_ask(prompt, console=None, default=False):
        asked.append(prompt)
        return True

    monkeypatch.setattr("deskpilot.cli.Confirm.ask", fake_ask)
    ui.handle_event(
        _event(
            "confirm_needed",
            confirmation=ConfirmationInfo(tool_call_id="c9", tool_name="delete_path", message="Delete path: ~/tmp"),
        )
    )

    approved = await ui.confirm("c9")

    assert approved is True
    assert asked == ["Allow?"]
    assert "Delete path: ~/tmp" in out.getvalue()


def test_version_command():
    result = CliRunner().invoke(app, ["version"])

    assert result.exit_code == 0
    assert f"Deskpilot v{__version__}" in result.output


def test_run_rejects_invalid_access_level(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")

    try:
        result = CliRunner().invoke(app, ["run", "hello", "--access-level", "godmode"])
    finally:
        structlog.reset_defaults()

    assert result.exit_code == 2


def test_logging_still_works_after_cli_run(monkeypatch, tmp_path, capsys):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")

    try:
        CliRunner().invoke(app, ["run", "hello", "--access-level", "godmode"])
        get_logger("deskpilot.cli_test").info("still logging")
    finally:
        structlog.reset_defaults()

    assert "still logging" in capsys.readouterr().err


def test_abandoned_confirmation_does_not_delay_shutdown(monkeypatch):
    release = threading.Event()

    def blocking_ask(prompt, console=None, default=False):
        release.wait(5)
        return True

    monkeypatch.setattr("deskpilot.cli.Confirm.ask", blocking_ask)
    ui, _ = _ui()

    async def abandon() -> None:
        pending = asyncio.ensure_future(ui.confirm("c1"))
        await asyncio.sleep(0.05)
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending

    started = time.monotonic()
    try:
        asyncio.run(abandon())
        elapsed = time.monotonic() - started
    finally:
        release.set()

    assert elapsed < 1.0


@pytest.mark.asyncio
async def test_confirm_propagates_prompt_errors(monkeypatch):
    ui, _ = _ui()

    def closed_stdin(prompt, console=None, default=False):
        raise EOFError()

    monkeypatch.setattr("deskpilot.cli.Confirm.ask", closed_stdin)

    with pytest.raises(EOFError):
        await ui.confirm("c2")
