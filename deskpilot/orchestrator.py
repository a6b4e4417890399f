"""Run the agent against each configured provider until one succeeds."""

import asyncio
import uuid
from typing import Callable

from deskpilot.agent import Agent, ConfirmCallback
from deskpilot.config import AgentConfig, AIConfig
from deskpilot.events import AgentEvent, AgentLoopResult, EventSink
from deskpilot.llm.base import LLMProvider
from deskpilot.llm.routing import PROVIDER_FALLBACK_ORDER, has_provider_credentials, provider_label
from deskpilot.llm.types import Message
from deskpilot.logging import get_logger
from deskpilot.memory import MemoryStore, PreferenceClassifier
from deskpilot.task_store import TaskStore
from deskpilot.tools.executor import ToolExecutor

log = get_logger(__name__)

NO_PROVIDER_MESSAGE = "No usable AI provider is configured. Add at least one API key to your configuration."
DEFAULT_LAST_ERROR = "Unknown agent failure"

ProviderFactory = Callable[[AIConfig], LLMProvider]


def provider_plan(config: AIConfig) -> list[str]:
    """Configured provider first, then the fallback order; credentialed and unique."""
    plan: list[str] = []
    for provider in (config.provider, *PROVIDER_FALLBACK_ORDER):
        if provider in plan or not has_provider_credentials(provider, config):
            continue
        plan.append(provider)
    return plan


async def run_agent_orchestrated(
    prompt: str,
    ai_config: AIConfig,
    agent_config: AgentConfig,
    on_event: EventSink,
    confirm: ConfirmCallback | None = None,
    abort_event: asyncio.Event | None = None,
    history: list[Message] | None = None,
    executor: ToolExecutor | None = None,
    memory: MemoryStore | None = None,
    classifier: PreferenceClassifier | None = None,
    task_store: TaskStore | None = None,
    provider_factory: ProviderFactory | None = None,
    request_id: str | None = None,
) -> AgentLoopResult:
    """Try each credentialed provider in turn.

    Only the last attempt may emit the loop's terminal error event; earlier
    failures are reported as a "Switching provider" status instead.

    Args:
        provider_factory: Builds the provider for a pinned config; the default
            routes from the config itself

    Returns:
        Result of the final attempt (``error`` when every provider failed)
    """
    request_id = request_id or uuid.uuid4().hex
    abort_event = abort_event or asyncio.Event()

    def emit(event_type: str, **payload) -> None:
        on_event(AgentEvent(request_id=request_id, type=event_type, **payload))

    providers = provider_plan(ai_config)
    if not providers:
        emit("error", error=NO_PROVIDER_MESSAGE)
        return AgentLoopResult(status="error", steps=0, error=NO_PROVIDER_MESSAGE)

    if task_store is not None:
        task_store.start_task(request_id, prompt)

    def finish(result: AgentLoopResult) -> AgentLoopResult:
        if task_store is not None:
            task_store.finish_task(request_id, result.status)
        return result

    last_error = DEFAULT_LAST_ERROR
    total = len(providers)
    steps = 0
    for index, provider in enumerate(providers):
        if abort_event.is_set():
            return finish(AgentLoopResult(status="cancelled", steps=steps))

        attempt = index + 1
        is_last = attempt == total
        if task_store is not None:
            task_store.start_attempt(request_id, attempt, provider)
        emit("status", status=f"Attempt {attempt}/{total} with {provider_label(provider)}...", step_number=0)
        log.info("Provider attempt", request_id=request_id, attempt=attempt, provider=provider)

        pinned = ai_config.model_copy(update={"provider": provider, "default_model": ""})
        agent = Agent(
            pinned,
            agent_config,
            executor=executor,
            memory=memory,
            provider=provider_factory(pinned) if provider_factory is not None else None,
            classifier=classifier,
        )
        try:
            result = await agent.run(
                prompt,
                on_event,
                confirm=confirm,
                abort_event=abort_event,
                history=history,
                request_id=request_id,
                emit_terminal_error=is_last,
            )
        finally:
            await agent.provider.close()

        steps = result.steps
        if task_store is not None:
            task_store.finish_attempt(request_id, attempt, result.status, result.error)

        if result.status in ("done", "cancelled"):
            return finish(result)

        last_error = result.error or last_error
        if not is_last:
            emit(
                "status",
                status=f"Switching provider after failure: {last_error[:120]}...",
                step_number=0,
            )

    message = f"I tried all configured providers but couldn't complete this yet. {last_error}"
    emit("error", error=message)
    return finish(AgentLoopResult(status="error", steps=steps, error=message))
