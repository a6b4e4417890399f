"""Filesystem tools."""

import asyncio
import functools
import json
import os
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from deskpilot.logging import get_logger
from deskpilot.tools.registry import Tool, ToolResult

log = get_logger(__name__)

MAX_OUTPUT = 8000
MAX_SEARCH_FILE_BYTES = 512 * 1024


def truncate(text: str, limit: int = MAX_OUTPUT) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n...(truncated)"


def resolve_path(raw: str, home: Path | None = None) -> Path:
    """Expand ``~`` and anchor relative paths at the user's home."""
    home = home or Path.home()
    value = str(raw or "").strip()
    if value == "~" or value.startswith("~/"):
        return Path(os.path.normpath(str(home) + value[1:]))
    candidate = Path(value)
    if candidate.is_absolute():
        return Path(os.path.normpath(value))
    return Path(os.path.normpath(home / candidate))


def format_bytes(size: float) -> str:
    if size < 0:
        return "0 B"
    if size < 1024:
        return f"{int(size)} B"
    value = float(size)
    units = ["KB", "MB", "GB", "TB"]
    idx = -1
    while value >= 1024 and idx < len(units) - 1:
        value /= 1024
        idx += 1
    return f"{value:.1f} {units[idx]}" if value >= 10 else f"{value:.2f} {units[idx]}"


def _positive_int(value: Any, fallback: int, maximum: int) -> int:
    try:
        number = int(float(value))
    except (TypeError, ValueError):
        return fallback
    if number <= 0:
        return fallback
    return min(number, maximum)


def _is_hidden(name: str) -> bool:
    return name.startswith(".")


class FileTool(Tool):
    """Filesystem tool anchored at a home directory."""

    timeout_seconds = 60.0

    def __init__(self, home: Path | None = None):
        self.home = home or Path.home()

    def run(self, **kwargs: Any) -> ToolResult:
        raise NotImplementedError

    async def execute(self, **kwargs: Any) -> ToolResult:
        # Off the event loop, so registry timeouts and aborts still fire.
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(self.run, **kwargs))

    def resolve(self, raw: Any) -> Path | None:
        value = str(raw or "").strip()
        if not value:
            return None
        return resolve_path(value, self.home)

    def display(self, path: Path) -> str:
        """Render ``path`` relative to home as ``~/...``."""
        if path == self.home:
            return "~"
        try:
            return f"~/{path.relative_to(self.home)}"
        except ValueError:
            return str(path)

    @staticmethod
    def _remove(path: Path) -> None:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()


class ReadFileTool(FileTool):
    name = "read_file"
    required = ("path",)

    def run(self, path: str = "", **kwargs: Any) -> ToolResult:
        file_path = self.resolve(path)
        if file_path is None:
            return ToolResult(success=False, output="No path provided.")
        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            log.error("Read failed", path=str(file_path), error=str(e))
            return ToolResult(success=False, output=f"Error: {e}")
        return ToolResult(success=True, output=truncate(content))


class WriteFileTool(FileTool):
    name = "write_file"
    required = ("path", "content")

    def run(self, path: str = "", content: Any = "", **kwargs: Any) -> ToolResult:
        file_path = self.resolve(path)
        if file_path is None:
            return ToolResult(success=False, output="No path provided.")
        text = "" if content is None else str(content)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(text, encoding="utf-8")
        except OSError as e:
            log.error("Write failed", path=str(file_path), error=str(e))
            return ToolResult(success=False, output=f"Error: {e}")
        return ToolResult(success=True, output=f"Written {len(text)} bytes to {file_path}")


class CreateDirectoryTool(FileTool):
    name = "create_directory"
    required = ("path",)

    def run(self, path: str = "", recursive: bool = True, **kwargs: Any) -> ToolResult:
        dir_path = self.resolve(path)
        if dir_path is None:
            return ToolResult(success=False, output="No path provided.")
        try:
            dir_path.mkdir(parents=recursive is not False, exist_ok=True)
        except OSError as e:
            return ToolResult(success=False, output=f"Error: {e}")
        return ToolResult(success=True, output=f"Directory ready: {self.display(dir_path)}")


class _TransferTool(FileTool):
    """Shared source/destination handling for copy and move."""

    required = ("source", "destination")
    verb = ""

    def _transfer(self, source: Path, destination: Path) -> None:
        raise NotImplementedError

    def run(
        self,
        source: str = "",
        destination: str = "",
        overwrite: bool = False,
        **kwargs: Any,
    ) -> ToolResult:
        source_path = self.resolve(source)
        destination_path = self.resolve(destination)
        if source_path is None:
            return ToolResult(success=False, output="No source provided.")
        if destination_path is None:
            return ToolResult(success=False, output="No destination provided.")
        try:
            if not source_path.exists():
                return ToolResult(success=False, output=f"Error: Source does not exist: {source_path}")
            if destination_path.exists():
                if not overwrite:
                    return ToolResult(success=False, output=f"Error: Destination exists: {destination_path}")
                self._remove(destination_path)
            destination_path.parent.mkdir(parents=True, exist_ok=True)
            self._transfer(source_path, destination_path)
        except OSError as e:
            return ToolResult(success=False, output=f"Error: {e}")
        return ToolResult(
            success=True,
            output=f"{self.verb}:\n{self.display(source_path)}\n→ {self.display(destination_path)}",
        )


class CopyPathTool(_TransferTool):
    name = "copy_path"
    verb = "Copied"

    def _transfer(self, source: Path, destination: Path) -> None:
        if source.is_dir():
            shutil.copytree(source, destination)
        else:
            shutil.copy2(source, destination)


class MovePathTool(_TransferTool):
    name = "move_path"
    verb = "Moved"

    def _transfer(self, source: Path, destination: Path) -> None:
        shutil.move(str(source), str(destination))


class RenamePathTool(FileTool):
    name = "rename_path"
    required = ("path", "newName")

    def run(self, path: str = "", newName: str = "", overwrite: bool = False, **kwargs: Any) -> ToolResult:
        source_path = self.resolve(path)
        new_name = str(newName or "").strip()
        if source_path is None:
            return ToolResult(success=False, output="No path provided.")
        if not new_name:
            return ToolResult(success=False, output="No newName provided.")
        if os.sep in new_name:
            return ToolResult(success=False, output="newName must be a single file/folder name.")
        try:
            if not source_path.exists():
                return ToolResult(success=False, output=f"Error: Path does not exist: {source_path}")
            destination_path = source_path.parent / new_name
            if destination_path.exists():
                if not overwrite:
                    return ToolResult(success=False, output=f"Error: Target exists: {destination_path}")
                self._remove(destination_path)
            source_path.rename(destination_path)
        except OSError as e:
            return ToolResult(success=False, output=f"Error: {e}")
        return ToolResult(
            success=True,
            output=f"Renamed:\n{self.display(source_path)}\n→ {self.display(destination_path)}",
        )


class DeletePathTool(FileTool):
    name = "delete_path"
    required = ("path",)

    def _critical_paths(self) -> set[Path]:
        return {Path("/"), Path("/Users"), Path("/System"), Path("/Applications"), self.home.resolve()}

    def run(self, path: str = "", recursive: bool = True, **kwargs: Any) -> ToolResult:
        target = self.resolve(path)
        if target is None:
            return ToolResult(success=False, output="No path provided.")
        if target.resolve() in self._critical_paths():
            return ToolResult(success=False, output=f"Refusing to delete critical path: {target.resolve()}")
        try:
            if not target.exists():
                return ToolResult(success=False, output=f"Error: Path does not exist: {target}")
            if target.is_dir() and not target.is_symlink():
                if recursive is False:
                    return ToolResult(
                        success=False,
                        output="Target is a directory. Set recursive=true to delete it.",
                    )
                shutil.rmtree(target)
            else:
                target.unlink()
        except OSError as e:
            return ToolResult(success=False, output=f"Error: {e}")
        return ToolResult(success=True, output=f"Deleted: {self.display(target)}")


class ReadDirTool(FileTool):
    name = "read_dir"
    required = ("path",)

    def run(self, path: str = "", **kwargs: Any) -> ToolResult:
        dir_path = self.resolve(path)
        if dir_path is None:
            return ToolResult(success=False, output="No path provided.")
        try:
            entries = sorted(dir_path.iterdir(), key=lambda p: p.name)
        except OSError as e:
            return ToolResult(success=False, output=f"Error: {e}")
        if not entries:
            return ToolResult(success=True, output="(empty directory)")
        lines = [f"{entry.name}/" if entry.is_dir() else entry.name for entry in entries]
        return ToolResult(success=True, output=truncate("\n".join(lines)))


class PathInfoTool(FileTool):
    name = "path_info"
    required = ("path",)

    def run(self, path: str = "", **kwargs: Any) -> ToolResult:
        target = self.resolve(path)
        if target is None:
            return ToolResult(success=False, output="No path provided.")
        try:
            stat = target.stat()
        except OSError as e:
            return ToolResult(success=False, output=f"Error: {e}")

        kind = "directory" if target.is_dir() else "file" if target.is_file() else "other"
        info: dict[str, Any] = {
            "path": str(target),
            "pathDisplay": self.display(target),
            "exists": True,
            "type": kind,
            "sizeBytes": stat.st_size,
            "sizeHuman": format_bytes(stat.st_size),
            "modifiedAt": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
            "readable": os.access(target, os.R_OK),
            "writable": os.access(target, os.W_OK),
        }
        if kind == "directory":
            try:
                info["entryCount"] = len(list(target.iterdir()))
            except OSError:
                info["entryCount"] = None
        return ToolResult(success=True, output=truncate(json.dumps(info, indent=2)))


def _walk(base: Path, max_depth: int, include_hidden: bool, depth: int = 0):
    """Yield ``(path, is_dir, depth)`` depth-first, skipping unreadable dirs."""
    if depth > max_depth:
        return
    try:
        entries = sorted(base.iterdir(), key=lambda p: p.name)
    except OSError:
        return
    for entry in entries:
        if not include_hidden and _is_hidden(entry.name):
            continue
        is_dir = entry.is_dir() and not entry.is_symlink()
        yield entry, is_dir, depth
        if is_dir:
            yield from _walk(entry, max_depth, include_hidden, depth + 1)


class FindPathsTool(FileTool):
    name = "find_paths"
    required = ("path", "query")

    def run(
        self,
        path: str = "",
        query: str = "",
        type: str = "all",
        maxDepth: Any = None,
        maxResults: Any = None,
        includeHidden: bool = False,
        **kwargs: Any,
    ) -> ToolResult:
        base = self.resolve(path)
        needle = str(query or "").strip().lower()
        if base is None:
            return ToolResult(success=False, output="No path provided.")
        if not needle:
            return ToolResult(success=False, output="No query provided.")
        if not base.is_dir():
            return ToolResult(success=False, output=f"Error: Not a directory: {base}")

        kind = str(type or "all").lower()
        if kind not in ("file", "directory"):
            kind = "all"
        max_depth = _positive_int(maxDepth, 5, 20)
        max_results = _positive_int(maxResults, 50, 200)

        matches: list[Path] = []
        for entry, is_dir, _depth in _walk(base, max_depth, bool(includeHidden)):
            if len(matches) >= max_results:
                break
            if needle not in entry.name.lower():
                continue
            if kind == "directory" and not is_dir:
                continue
            if kind == "file" and not entry.is_file():
                continue
            matches.append(entry)

        if not matches:
            return ToolResult(success=True, output="No matching paths found.")
        lines = [f"Found {len(matches)} path(s):"]
        lines.extend(f"{i}. {self.display(p)}" for i, p in enumerate(matches, start=1))
        return ToolResult(success=True, output=truncate("\n".join(lines)))


class SearchFileContentTool(FileTool):
    name = "search_file_content"
    required = ("path", "query")

    def run(
        self,
        path: str = "",
        query: str = "",
        caseSensitive: bool = False,
        maxDepth: Any = None,
        maxResults: Any = None,
        includeHidden: bool = False,
        **kwargs: Any,
    ) -> ToolResult:
        base = self.resolve(path)
        query = str(query or "")
        if base is None:
            return ToolResult(success=False, output="No path provided.")
        if not query:
            return ToolResult(success=False, output="No query provided.")
        if not base.is_dir():
            return ToolResult(success=False, output=f"Error: Not a directory: {base}")

        max_depth = _positive_int(maxDepth, 6, 20)
        max_results = _positive_int(maxResults, 80, 500)
        needle = query if caseSensitive else query.lower()

        lines: list[str] = []
        for entry, is_dir, _depth in _walk(base, max_depth, bool(includeHidden)):
            if len(lines) >= max_results:
                break
            if is_dir or not entry.is_file():
                continue
            try:
                if entry.stat().st_size > MAX_SEARCH_FILE_BYTES:
                    continue
                content = entry.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue
            for number, line in enumerate(content.splitlines(), start=1):
                if len(lines) >= max_results:
                    break
                haystack = line if caseSensitive else line.lower()
                if needle in haystack:
                    lines.append(f"{self.display(entry)}:{number}: {line.strip()}")

        if not lines:
            return ToolResult(success=True, output="No text matches found.")
        return ToolResult(success=True, output=truncate(f"Found {len(lines)} match(es):\n" + "\n".join(lines)))


class ReplaceInFileTool(FileTool):
    name = "replace_in_file"
    required = ("path", "find", "replace")

    def run(
        self,
        path: str = "",
        find: str = "",
        replace: str = "",
        all: bool = True,
        caseSensitive: bool = True,
        dryRun: bool = False,
        **kwargs: Any,
    ) -> ToolResult:
        file_path = self.resolve(path)
        find_text = "" if find is None else str(find)
        replace_text = "" if replace is None else str(replace)
        if file_path is None:
            return ToolResult(success=False, output="No path provided.")
        if not find_text:
            return ToolResult(success=False, output="No find text provided.")

        try:
            if not file_path.is_file():
                return ToolResult(success=False, output=f"Error: Not a file: {file_path}")
            source = file_path.read_text(encoding="utf-8")
            flags = 0 if caseSensitive is not False else re.IGNORECASE
            pattern = re.compile(re.escape(find_text), flags)
            count = len(pattern.findall(source))
            if count == 0:
                return ToolResult(success=True, output="No matches found. No changes made.")
            if all is False:
                count = 1
            if dryRun:
                return ToolResult(
                    success=True,
                    output=f"Dry run: {count} replacement(s) planned in {self.display(file_path)}.",
                )
            updated = pattern.sub(lambda _m: replace_text, source, count=0 if all is not False else 1)
            file_path.write_text(updated, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return ToolResult(success=False, output=f"Error: {e}")
        return ToolResult(
            success=True,
            output=f"Updated {self.display(file_path)} with {count} replacement(s).",
        )


class TopLargestEntriesTool(FileTool):
    name = "top_largest_entries"
    required = ("path",)
    max_nodes = 50_000

    def _recursive_size(self, root: Path, state: dict[str, Any]) -> int:
        total = 0
        stack = [root]
        while stack:
            if state["visited"] >= self.max_nodes:
                state["truncated"] = True
                break
            current = stack.pop()
            state["visited"] += 1
            try:
                if current.is_symlink():
                    continue
                if current.is_file():
                    total += current.stat().st_size
                elif current.is_dir():
                    stack.extend(current.iterdir())
            except OSError:
                continue
        return total

    def run(
        self,
        path: str = "",
        limit: Any = None,
        includeHidden: bool = False,
        recursiveDirSize: bool = True,
        **kwargs: Any,
    ) -> ToolResult:
        base = self.resolve(path)
        if base is None:
            return ToolResult(success=False, output="No path provided.")
        top_n = _positive_int(limit, 15, 100)
        try:
            if not base.is_dir():
                return ToolResult(success=False, output=f"Error: Not a directory: {base}")
            entries = list(base.iterdir())
        except OSError as e:
            return ToolResult(success=False, output=f"Error: {e}")

        state: dict[str, Any] = {"visited": 0, "truncated": False}
        sized: list[tuple[int, str, bool]] = []
        for entry in entries:
            if not includeHidden and _is_hidden(entry.name):
                continue
            try:
                if entry.is_dir() and not entry.is_symlink():
                    if recursiveDirSize is not False:
                        size = self._recursive_size(entry, state)
                    else:
                        size = sum(child.stat().st_size for child in entry.iterdir() if child.is_file())
                    sized.append((size, entry.name, True))
                elif entry.is_file():
                    sized.append((entry.stat().st_size, entry.name, False))
            except OSError:
                continue

        sized.sort(key=lambda item: item[0], reverse=True)
        top = sized[:top_n]
        if not top:
            return ToolResult(success=True, output="(no entries found)")
        lines = [f"Largest entries in {self.display(base)}:"]
        for idx, (size, name, is_dir) in enumerate(top, start=1):
            lines.append(f"{idx}. {format_bytes(size)}  {name}{'/' if is_dir else ''}")
        if state["truncated"]:
            lines.append("Note: directory sizing was truncated for performance limits.")
        return ToolResult(success=True, output=truncate("\n".join(lines)))


def filesystem_tools(home: Path | None = None) -> list[FileTool]:
    """All filesystem tools bound to ``home``."""
    return [
        ReadFileTool(home),
        WriteFileTool(home),
        CreateDirectoryTool(home),
        CopyPathTool(home),
        MovePathTool(home),
        RenamePathTool(home),
        DeletePathTool(home),
        ReadDirTool(home),
        PathInfoTool(home),
        FindPathsTool(home),
        SearchFileContentTool(home),
        ReplaceInFileTool(home),
        TopLargestEntriesTool(home),
    ]
