"""Main entry point for Deskpilot."""

import asyncio
import os
import signal
import sys
from pathlib import Path

import typer

from deskpilot.agent import run_agent_loop
from deskpilot.cli import TerminalUI
from deskpilot.config import AgentConfig, AIConfig, Config, set_config
from deskpilot.events import AgentLoopResult
from deskpilot.logging import configure_logging, log
from deskpilot.memory import InMemoryStore
from deskpilot.orchestrator import run_agent_orchestrated
from deskpilot.task_store import TaskStore
from deskpilot.tools.executor import LocalToolExecutor

app = typer.Typer(help="Deskpilot - an autonomous desktop agent")


def _load_config(config: str) -> Config:
    if not config:
        return Config.load()
    try:
        return Config.from_yaml(Path(config))
    except Exception as e:
        log.error("Failed to load config", path=config, error=str(e))
        return Config.load()


async def run_prompt(cfg: Config, prompt: str, ui: TerminalUI, pinned_model: bool) -> AgentLoopResult:
    """Run one prompt, cancelling on Ctrl-C."""
    abort_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, abort_event.set)
    except (NotImplementedError, RuntimeError):
        pass

    memory = InMemoryStore()
    executor = LocalToolExecutor.with_default_tools(shell=cfg.shell, memory=memory, abort_event=abort_event)
    try:
        if pinned_model:
            return await run_agent_loop(
                prompt,
                cfg.ai,
                cfg.agent,
                ui.handle_event,
                confirm=ui.confirm,
                abort_event=abort_event,
                executor=executor,
                memory=memory,
            )
        return await run_agent_orchestrated(
            prompt,
            cfg.ai,
            cfg.agent,
            ui.handle_event,
            confirm=ui.confirm,
            abort_event=abort_event,
            executor=executor,
            memory=memory,
            task_store=TaskStore(cfg.tasks.path) if cfg.tasks.enabled else None,
        )
    finally:
        await executor.close()
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


@app.command()
def run(
    prompt: str = typer.Argument(..., help="What the agent should do"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    provider: str = typer.Option("", "-p", "--provider", help="Override provider"),
    model: str = typer.Option("", "-m", "--model", help="Pin a model key, e.g. anthropic-claude-sonnet"),
    access_level: str = typer.Option("", "-a", "--access-level", help="safe, power or ultimate"),
    max_steps: int = typer.Option(0, "--max-steps", help="Override the step limit"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Run the agent on a single prompt."""
    if verbose:
        os.environ["DESKPILOT_LOGGING__LEVEL"] = "DEBUG"

    cfg = _load_config(config)
    if verbose:
        cfg.logging.level = "DEBUG"
    configure_logging(cfg)

    ai_updates: dict[str, object] = {}
    if provider:
        ai_updates["provider"] = provider
    if model:
        ai_updates["default_model"] = model
    agent_updates: dict[str, object] = {}
    if access_level:
        agent_updates["access_level"] = access_level
    if max_steps > 0:
        agent_updates["max_steps"] = max_steps
    if model:
        agent_updates["auto_select_best_model"] = False
    try:
        cfg.ai = AIConfig.model_validate({**cfg.ai.model_dump(), **ai_updates})
        cfg.agent = AgentConfig.model_validate({**cfg.agent.model_dump(), **agent_updates})
    except ValueError as e:
        typer.echo(f"Invalid option: {e}", err=True)
        raise typer.Exit(code=2)
    set_config(cfg)

    ui = TerminalUI(verbose=verbose)
    ui.print_welcome(cfg.ai.provider, cfg.ai.default_model, cfg.agent.access_level)
    try:
        result = asyncio.run(run_prompt(cfg, prompt, ui, pinned_model=bool(model)))
    except KeyboardInterrupt:
        log.info("Shutting down...")
        sys.exit(130)
    except Exception as e:
        log.error("Fatal error", error=str(e))
        sys.exit(1)

    if result.status == "cancelled":
        ui.print_error("Cancelled")
        raise typer.Exit(code=130)
    if result.status == "error":
        raise typer.Exit(code=1)


@app.command()
def version() -> None:
    """Show version information."""
    from deskpilot import __version__

    typer.echo(f"Deskpilot v{__version__}")


if __name__ == "__main__":
    app()
