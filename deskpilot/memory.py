"""Long-term memory boundary and preference learning."""

import asyncio
import re
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from deskpilot.logging import get_logger

log = get_logger(__name__)

PREFERENCE_SOURCE = "agent-preference"

_PREFERENCE_RE = re.compile(
    r"(^|\b)(i prefer|i like|i want|always|never|my style|for me|please keep|i usually)\b",
    re.IGNORECASE,
)


@dataclass
class MemoryAddResult:
    """Outcome of storing one memory entry."""

    success: bool
    error: str | None = None


@runtime_checkable
class MemoryStore(Protocol):
    """Long-term memory collaborator."""

    async def search(self, query: str, limit: int = 6) -> list[str]:
        ...

    async def add(self, text: str, source: str = "agent") -> MemoryAddResult:
        ...


class InMemoryStore:
    """Process-local memory with keyword-overlap ranking.

    Good enough for the CLI and tests; real deployments plug in a
    persistent store implementing ``MemoryStore``.
    """

    def __init__(self, entries: list[tuple[str, str]] | None = None):
        self.entries: list[tuple[str, str]] = list(entries or [])

    @staticmethod
    def _tokens(text: str) -> set[str]:
        return {token for token in re.findall(r"[a-z0-9]+", text.lower()) if len(token) > 2}

    async def search(self, query: str, limit: int = 6) -> list[str]:
        wanted = self._tokens(query)
        if not wanted:
            return []
        scored: list[tuple[int, int, str]] = []
        for index, (text, _source) in enumerate(self.entries):
            overlap = len(wanted & self._tokens(text))
            if overlap:
                scored.append((overlap, index, text))
        # Highest overlap first, newest first on ties.
        scored.sort(key=lambda item: (-item[0], -item[1]))
        return [text for _, _, text in scored[: max(0, limit)]]

    async def add(self, text: str, source: str = "agent") -> MemoryAddResult:
        cleaned = str(text or "").strip()
        if not cleaned:
            return MemoryAddResult(success=False, error="Nothing to remember")
        self.entries.append((cleaned, source))
        return MemoryAddResult(success=True)


async def build_memory_context(memory: MemoryStore | None, prompt: str, limit: int = 6) -> str:
    """Render relevant memories as a prompt block; empty on any failure."""
    if memory is None:
        return ""
    try:
        results = await memory.search(prompt, limit)
    except Exception as e:
        log.warning("Memory search failed; continuing without context", error=str(e))
        return ""
    lines = [str(item).strip() for item in results or [] if str(item or "").strip()]
    if not lines:
        return ""
    body = "\n".join(f"- {line}" for line in lines)
    return f"Relevant memories about the user:\n{body}"


class PreferenceClassifier(Protocol):
    """Decides whether a prompt states a durable user preference."""

    async def is_preference(self, prompt: str) -> bool:
        ...


class RegexPreferenceClassifier:
    """Keyword heuristic ("I prefer", "always", "never", ...)."""

    async def is_preference(self, prompt: str) -> bool:
        return bool(_PREFERENCE_RE.search(prompt or ""))


async def learn_user_preference(
    memory: MemoryStore | None,
    prompt: str,
    classifier: PreferenceClassifier | None = None,
) -> bool:
    """Store ``prompt`` as a preference when the classifier says so.

    Never raises; returns whether something was stored.
    """
    if memory is None:
        return False
    text = str(prompt or "").strip()
    if not text:
        return False
    classifier = classifier or RegexPreferenceClassifier()
    try:
        if not await classifier.is_preference(text):
            return False
        result = await memory.add(f"User preference: {text}", PREFERENCE_SOURCE)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        log.warning("Preference learning failed", error=str(e))
        return False
    if not result.success:
        log.debug("Preference not stored", error=result.error)
        return False
    log.info("Stored user preference")
    return True
