"""Persistent history of agent tasks and their provider attempts."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Literal

from pydantic import BaseModel, Field, ValidationError

from deskpilot.logging import get_logger

log = get_logger(__name__)

MAX_TASKS = 200

TaskStatus = Literal["running", "done", "error", "cancelled"]
AttemptStatus = Literal["done", "error", "cancelled"]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TaskAttempt(BaseModel):
    attempt: int
    provider: str
    started_at: str = Field(default_factory=_now)
    finished_at: str | None = None
    # Pessimistic until the attempt reports back.
    status: AttemptStatus = "error"
    error: str | None = None


class TaskRecord(BaseModel):
    request_id: str
    prompt: str
    started_at: str = Field(default_factory=_now)
    finished_at: str | None = None
    status: TaskStatus = "running"
    attempts: list[TaskAttempt] = Field(default_factory=list)


class TaskStore:
    """JSON file keeping the most recent tasks.

    Every operation re-reads the file so concurrent writers see each
    other's updates. Read and write failures are logged, never raised.
    """

    def __init__(self, path: Path | str, max_tasks: int = MAX_TASKS):
        self.path = Path(path).expanduser()
        self.max_tasks = max_tasks

    def _read(self) -> list[TaskRecord]:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            log.warning("Could not read task history", path=str(self.path), error=str(e))
            return []
        if not isinstance(payload, dict) or not isinstance(payload.get("tasks"), list):
            return []
        tasks: list[TaskRecord] = []
        for item in payload["tasks"]:
            try:
                tasks.append(TaskRecord.model_validate(item))
            except ValidationError:
                continue
        return tasks

    def _write(self, tasks: list[TaskRecord]) -> None:
        payload = {"tasks": [task.model_dump() for task in tasks[-self.max_tasks:]]}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as e:
            log.warning("Could not write task history", path=str(self.path), error=str(e))

    def _update(self, request_id: str, updater: Callable[[TaskRecord], None]) -> None:
        tasks = self._read()
        for task in tasks:
            if task.request_id == request_id:
                updater(task)
                self._write(tasks)
                return

    def start_task(self, request_id: str, prompt: str) -> None:
        tasks = self._read()
        tasks.append(TaskRecord(request_id=request_id, prompt=prompt))
        self._write(tasks)

    def start_attempt(self, request_id: str, attempt: int, provider: str) -> None:
        self._update(
            request_id,
            lambda task: task.attempts.append(TaskAttempt(attempt=attempt, provider=provider)),
        )

    def finish_attempt(
        self,
        request_id: str,
        attempt: int,
        status: AttemptStatus,
        error: str | None = None,
    ) -> None:
        def apply(task: TaskRecord) -> None:
            for entry in reversed(task.attempts):
                if entry.attempt == attempt:
                    entry.status = status
                    entry.error = error
                    entry.finished_at = _now()
                    return

        self._update(request_id, apply)

    def finish_task(self, request_id: str, status: AttemptStatus) -> None:
        def apply(task: TaskRecord) -> None:
            task.status = status
            task.finished_at = _now()

        self._update(request_id, apply)

    def list_tasks(self) -> list[TaskRecord]:
        """Tasks oldest first."""
        return self._read()

    def get_task(self, request_id: str) -> TaskRecord | None:
        for task in self._read():
            if task.request_id == request_id:
                return task
        return None
