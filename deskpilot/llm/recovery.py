"""Recover tool calls from generations the provider rejected as malformed.

Some models (Llama-family models behind Groq-style endpoints in particular)
emit tool calls as text, e.g. ``<function=read_dir>{"path": "~"}</function>``.
The API rejects the turn with ``tool_use_failed`` but echoes the raw text in
``error.failed_generation``; parsing it here keeps the agent moving.
"""

import json
import re
import uuid
from typing import Any

from deskpilot.llm.errors import ApiFailure
from deskpilot.llm.types import LLMResponse, ToolCall
from deskpilot.logging import get_logger
from deskpilot.tools.catalog import get_tool_definition

log = get_logger(__name__)

_FUNCTION_CALL_RE = re.compile(r"<function=(\w+)>\s*(\{[^<]*\})")


def parse_arguments(raw: Any) -> dict[str, Any]:
    """Parse tool arguments; anything that is not a JSON object becomes ``{}``."""
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def parse_failed_generation(text: str) -> list[ToolCall]:
    """Extract ``<function=name>{...}`` calls from raw generation text."""
    calls: list[ToolCall] = []
    for match in _FUNCTION_CALL_RE.finditer(text or ""):
        name = match.group(1)
        raw_args = match.group(2).strip()
        arguments = parse_arguments(raw_args)

        # Degenerate output such as {"/some/path"}: map the bare value onto
        # the tool's primary parameter.
        if not arguments and len(raw_args) > 2:
            inner = raw_args[1:-1].strip()
            definition = get_tool_definition(name)
            primary = definition.primary_parameter if definition else None
            if primary and inner:
                arguments = {primary: re.sub(r"^[\"']|[\"']$", "", inner)}

        if name and arguments:
            calls.append(
                ToolCall(
                    id=f"recovered_{uuid.uuid4().hex[:12]}",
                    name=name,
                    arguments=arguments,
                )
            )
    return calls


def recover_tool_calls(failure: ApiFailure) -> LLMResponse | None:
    """Turn a ``tool_use_failed`` failure into a one-call response, if possible."""
    error = failure.body.get("error")
    if not isinstance(error, dict):
        return None
    if str(error.get("code") or "") != "tool_use_failed":
        return None
    failed_generation = str(error.get("failed_generation") or "")
    if not failed_generation:
        return None

    recovered = parse_failed_generation(failed_generation)
    if not recovered:
        return None

    log.info(
        "Recovered tool call from malformed generation",
        tool=recovered[0].name,
        discarded=len(recovered) - 1,
    )
    # Only the first call: later ones were generated from a broken context.
    return LLMResponse(content="", tool_calls=[recovered[0]])
