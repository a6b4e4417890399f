"""The agent loop: reason, call tools, observe results, repeat until done."""

import asyncio
import time
import uuid
from typing import Any, Awaitable, Callable

import httpx

from deskpilot.agent_prompt import (
    build_graceful_steer_message,
    build_system_prompt,
    looks_technical,
)
from deskpilot.config import AgentConfig, AIConfig
from deskpilot.events import (
    AgentEvent,
    AgentLoopResult,
    ConfirmationInfo,
    EventSink,
    ToolCallInfo,
    ToolResultInfo,
)
from deskpilot.llm import RoutedProvider
from deskpilot.llm.base import LLMProvider
from deskpilot.llm.errors import RetryPolicy
from deskpilot.llm.types import LLMResponse, Message, ToolCall
from deskpilot.logging import get_logger
from deskpilot.memory import (
    MemoryStore,
    PreferenceClassifier,
    build_memory_context,
    learn_user_preference,
)
from deskpilot.tools.catalog import (
    ToolDefinition,
    get_tool_definition,
    requires_confirmation,
    resolve_enabled_tools,
)
from deskpilot.tools.executor import ToolExecutor
from deskpilot.tools.registry import ToolResult

log = get_logger(__name__)

ConfirmCallback = Callable[[str], Awaitable[bool]]

MAX_CONSECUTIVE_FAILURES = 2
TRUNCATION_SUFFIX = "\n...(truncated)"
DENIED_TOOL_MESSAGE = "User denied this action. Try a different approach or ask the user for guidance."
RECOVERING_STATUS = "Recovering from a transient model error..."


class _RunCancelled(Exception):
    """The abort event fired while the loop was suspended."""


def _discard_result(task: asyncio.Future) -> None:
    if not task.cancelled():
        task.exception()


async def _await_or_abort(
    awaitable: Awaitable[Any],
    abort_event: asyncio.Event,
    cancel_on_abort: bool = True,
) -> Any:
    """Await ``awaitable`` unless ``abort_event`` fires first.

    On abort the awaitable is cancelled, or, with ``cancel_on_abort=False``,
    left to finish in the background with its result discarded.

    Raises:
        _RunCancelled if the abort event won the race
    """
    task = asyncio.ensure_future(awaitable)
    abort_task = asyncio.create_task(abort_event.wait())
    try:
        done, _ = await asyncio.wait({task, abort_task}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if not abort_task.done():
            abort_task.cancel()

    if task in done:
        return task.result()

    if cancel_on_abort:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            pass
    else:
        task.add_done_callback(_discard_result)
    raise _RunCancelled()


async def _deny(_tool_call_id: str) -> bool:
    return False


class Agent:
    """Drives one conversation to a final answer through tool calls.

    Configuration is passed in explicitly; nothing is read from global
    state. The provider defaults to one routed from ``ai_config``.
    """

    def __init__(
        self,
        ai_config: AIConfig,
        agent_config: AgentConfig | None = None,
        executor: ToolExecutor | None = None,
        memory: MemoryStore | None = None,
        provider: LLMProvider | None = None,
        classifier: PreferenceClassifier | None = None,
        persona: str | None = None,
        client: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        self.ai_config = ai_config
        self.agent_config = agent_config or AgentConfig()
        self.executor = executor
        self.memory = memory
        self.classifier = classifier
        self.persona = persona
        self.provider = provider or RoutedProvider(
            ai_config,
            auto_select_best_model=self.agent_config.auto_select_best_model,
            client=client,
            retry_policy=retry_policy,
        )

    @property
    def enabled_tools(self) -> list[ToolDefinition]:
        return resolve_enabled_tools(
            self.agent_config.enabled_tool_categories,
            self.agent_config.access_level,
        )

    async def build_system_prompt(self, prompt: str) -> str:
        memory_context = await build_memory_context(
            self.memory, prompt, self.agent_config.memory_context_limit
        )
        return build_system_prompt(self.agent_config, memory_context, persona=self.persona)

    def _truncate(self, output: str) -> str:
        limit = self.agent_config.tool_output_limit
        if len(output) <= limit:
            return output
        return output[:limit] + TRUNCATION_SUFFIX

    async def _execute_tool(self, tc: ToolCall, enabled_names: set[str]) -> ToolResult:
        if get_tool_definition(tc.name) is None:
            return ToolResult(success=False, output=f"Unknown tool: {tc.name}")
        if tc.name not in enabled_names:
            return ToolResult(
                success=False,
                output=f"Tool '{tc.name}' is not enabled at the current access level or settings.",
            )
        if self.executor is None:
            return ToolResult(success=False, output=f"Tool '{tc.name}' is not available on this host.")
        try:
            return await self.executor.execute(tc.name, tc.arguments)
        except Exception as e:
            log.error("Tool execution failed", tool=tc.name, error=str(e))
            return ToolResult(success=False, output=f"Error: {e or 'Tool execution failed'}")

    async def run(
        self,
        prompt: str,
        on_event: EventSink,
        confirm: ConfirmCallback | None = None,
        abort_event: asyncio.Event | None = None,
        history: list[Message] | None = None,
        request_id: str | None = None,
        emit_terminal_error: bool = True,
    ) -> AgentLoopResult:
        """Run the loop until a final answer, an error, cancellation or the step limit.

        Args:
            prompt: User instruction
            on_event: Receives every ``AgentEvent`` in order
            confirm: Approves a dangerous call given its tool call id; denies when omitted
            abort_event: Cancellation signal
            history: Prior conversation, not modified
            request_id: Correlation id stamped on every event
            emit_terminal_error: Emit the final ``error`` event (orchestrators disable it
                for all but the last provider attempt)

        Returns:
            AgentLoopResult, exactly once per call
        """
        request_id = request_id or uuid.uuid4().hex
        abort_event = abort_event or asyncio.Event()
        confirm = confirm or _deny
        cfg = self.agent_config
        access_level = cfg.access_level

        def emit(event_type: str, **payload: Any) -> None:
            on_event(AgentEvent(request_id=request_id, type=event_type, **payload))

        def fail(steps: int, message: str) -> AgentLoopResult:
            if emit_terminal_error:
                emit("error", error=message)
            log.warning("Agent run failed", request_id=request_id, steps=steps, error=message)
            return AgentLoopResult(status="error", steps=steps, error=message)

        tools = self.enabled_tools
        enabled_names = {tool.name for tool in tools}
        system_prompt = await self.build_system_prompt(prompt)
        messages: list[Message] = [*(history or []), Message(role="user", content=prompt)]

        max_steps = cfg.max_steps or 30
        step = 0
        consecutive_failures = 0
        retrying = False
        failed_tool_attempts: list[tuple[str, str]] = []

        log.info("Agent run started", request_id=request_id, tools=len(tools), max_steps=max_steps)

        while True:
            if abort_event.is_set():
                return AgentLoopResult(status="cancelled", steps=step)
            if not retrying:
                if step >= max_steps:
                    break
                step += 1
            retrying = False

            emit(
                "status",
                status="Thinking..." if step == 1 else f"Step {step}...",
                step_number=step,
            )

            try:
                response: LLMResponse = await _await_or_abort(
                    self.provider.complete(system_prompt, messages, tools, abort_event=abort_event),
                    abort_event,
                )
                consecutive_failures = 0
            except _RunCancelled:
                return AgentLoopResult(status="cancelled", steps=step)
            except Exception as e:
                if abort_event.is_set():
                    return AgentLoopResult(status="cancelled", steps=step)
                log.warning("Completion failed", request_id=request_id, step=step, error=str(e))
                if cfg.auto_recover and consecutive_failures < MAX_CONSECUTIVE_FAILURES:
                    consecutive_failures += 1
                    emit("status", status=RECOVERING_STATUS, step_number=step)
                    try:
                        await _await_or_abort(asyncio.sleep(cfg.recover_delay_seconds), abort_event)
                    except _RunCancelled:
                        return AgentLoopResult(status="cancelled", steps=step)
                    retrying = True
                    continue
                raw = str(e) or "LLM request failed"
                message = (
                    build_graceful_steer_message(step, failed_tool_attempts, access_level)
                    if looks_technical(raw)
                    else raw
                )
                return fail(step, message)

            if abort_event.is_set():
                return AgentLoopResult(status="cancelled", steps=step)

            if not response.tool_calls:
                if response.content:
                    emit("text_chunk", text=response.content)
                messages.append(Message(role="assistant", content=response.content or ""))
                if cfg.adaptive_learning:
                    await learn_user_preference(self.memory, prompt, self.classifier)
                emit("done")
                log.info("Agent run finished", request_id=request_id, steps=step)
                return AgentLoopResult(status="done", steps=step)

            messages.append(
                Message(
                    role="assistant",
                    content=response.content or "",
                    tool_calls=list(response.tool_calls),
                )
            )
            if response.content:
                emit("thinking", text=response.content)

            # One call at a time, in the order the model proposed them.
            for tc in response.tool_calls:
                if abort_event.is_set():
                    return AgentLoopResult(status="cancelled", steps=step)

                definition = get_tool_definition(tc.name)
                # Calls that will be refused anyway are never put to the user.
                dangerous = tc.name in enabled_names and requires_confirmation(
                    definition, access_level, cfg.auto_approve_categories
                )
                confirmation_message = definition.confirmation_message(tc.arguments) if dangerous else None

                emit(
                    "tool_call",
                    tool_call=ToolCallInfo(
                        id=tc.id,
                        name=tc.name,
                        args=tc.arguments,
                        dangerous=dangerous,
                        confirmation_message=confirmation_message,
                    ),
                )

                if dangerous:
                    emit(
                        "confirm_needed",
                        confirmation=ConfirmationInfo(
                            tool_call_id=tc.id,
                            tool_name=tc.name,
                            message=confirmation_message or f"Allow {tc.name}?",
                            args=tc.arguments,
                        ),
                    )
                    try:
                        approved = await _await_or_abort(confirm(tc.id), abort_event)
                    except _RunCancelled:
                        return AgentLoopResult(status="cancelled", steps=step)
                    if abort_event.is_set():
                        return AgentLoopResult(status="cancelled", steps=step)
                    if not approved:
                        log.info("Tool call denied", tool=tc.name, call_id=tc.id)
                        messages.append(
                            Message(
                                role="tool",
                                content=DENIED_TOOL_MESSAGE,
                                tool_call_id=tc.id,
                                name=tc.name,
                            )
                        )
                        emit(
                            "tool_result",
                            tool_result=ToolResultInfo(
                                id=tc.id,
                                name=tc.name,
                                success=False,
                                output="Denied by user",
                                duration_ms=0,
                            ),
                        )
                        continue

                log.info("Executing tool", tool=tc.name, call_id=tc.id)
                started = time.monotonic()
                try:
                    result = await _await_or_abort(
                        self._execute_tool(tc, enabled_names),
                        abort_event,
                        cancel_on_abort=False,
                    )
                except _RunCancelled:
                    return AgentLoopResult(status="cancelled", steps=step)
                duration_ms = int((time.monotonic() - started) * 1000)

                if abort_event.is_set():
                    return AgentLoopResult(status="cancelled", steps=step)

                output = self._truncate(result.output)
                messages.append(Message(role="tool", content=output, tool_call_id=tc.id, name=tc.name))
                if not result.success:
                    failed_tool_attempts.append((tc.name, output))

                emit(
                    "tool_result",
                    tool_result=ToolResultInfo(
                        id=tc.id,
                        name=tc.name,
                        success=result.success,
                        output=output,
                        duration_ms=duration_ms,
                    ),
                )

        return fail(max_steps, build_graceful_steer_message(max_steps, failed_tool_attempts, access_level))


async def run_agent_loop(
    prompt: str,
    ai_config: AIConfig,
    agent_config: AgentConfig,
    on_event: EventSink,
    confirm: ConfirmCallback | None = None,
    abort_event: asyncio.Event | None = None,
    history: list[Message] | None = None,
    executor: ToolExecutor | None = None,
    memory: MemoryStore | None = None,
    provider: LLMProvider | None = None,
    classifier: PreferenceClassifier | None = None,
    request_id: str | None = None,
    emit_terminal_error: bool = True,
) -> AgentLoopResult:
    """Run one agent loop with a freshly configured ``Agent``."""
    agent = Agent(
        ai_config,
        agent_config,
        executor=executor,
        memory=memory,
        provider=provider,
        classifier=classifier,
    )
    try:
        return await agent.run(
            prompt,
            on_event,
            confirm=confirm,
            abort_event=abort_event,
            history=history,
            request_id=request_id,
            emit_terminal_error=emit_terminal_error,
        )
    finally:
        if provider is None:
            await agent.provider.close()
