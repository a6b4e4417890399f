import json

from deskpilot.task_store import TaskStore


def test_missing_file_reads_as_empty(tmp_path):
    store = TaskStore(tmp_path / "nested" / "tasks.json")

    assert store.list_tasks() == []
    assert store.get_task("nope") is None


def test_task_lifecycle(tmp_path):
    store = TaskStore(tmp_path / "tasks.json")

    store.start_task("r1", "clean downloads")
    store.start_attempt("r1", 1, "openai")
    running = store.get_task("r1")
    store.finish_attempt("r1", 1, "done")
    store.finish_task("r1", "done")
    finished = store.get_task("r1")

    assert running.status == "running"
    assert running.attempts[0].status == "error"
    assert finished.status == "done"
    assert finished.attempts[0].status == "done"
    assert finished.attempts[0].finished_at is not None
    payload = json.loads((tmp_path / "tasks.json").read_text())
    assert payload["tasks"][0]["request_id"] == "r1"


def test_keeps_only_most_recent_tasks(tmp_path):
    store = TaskStore(tmp_path / "tasks.json", max_tasks=3)

    for i in range(5):
        store.start_task(f"r{i}", f"task {i}")

    assert [task.request_id for task in store.list_tasks()] == ["r2", "r3", "r4"]


def test_unknown_request_ids_are_ignored(tmp_path):
    store = TaskStore(tmp_path / "tasks.json")
    store.start_task("r1", "x")

    store.finish_task("other", "error")

    assert store.get_task("r1").status == "running"


def test_corrupt_file_and_bad_records_are_tolerated(tmp_path):
    path = tmp_path / "tasks.json"
    path.write_text("{not json")
    store = TaskStore(path)

    assert store.list_tasks() == []

    path.write_text(json.dumps({"tasks": [{"prompt": "no id"}, {"request_id": "ok", "prompt": "fine"}]}))
    assert [task.request_id for task in store.list_tasks()] == ["ok"]
