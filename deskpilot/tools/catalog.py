"""Provider-agnostic catalog of every tool the agent can call."""

from dataclasses import dataclass, field
from typing import Any, Callable, Literal

ParameterType = Literal["string", "number", "boolean", "object", "array"]

ToolCategory = Literal[
    "shell",
    "filesystem",
    "clipboard",
    "applescript",
    "http",
    "app_control",
    "memory",
]

# Categories hidden entirely at the "safe" access level.
SAFE_LEVEL_BLOCKED_CATEGORIES = frozenset({"shell", "applescript"})


@dataclass(frozen=True)
class ToolParameter:
    """A single typed parameter of a tool."""

    name: str
    type: ParameterType
    description: str
    required: bool = False
    enum: tuple[str, ...] | None = None
    items: dict[str, str] | None = None


@dataclass(frozen=True)
class ToolDefinition:
    """Definition of a tool offered to the model."""

    name: str
    description: str
    category: ToolCategory
    parameters: tuple[ToolParameter, ...] = field(default_factory=tuple)
    dangerous: bool = False
    confirmation: Callable[[dict[str, Any]], str] | None = None

    @property
    def primary_parameter(self) -> str | None:
        """Name of the first required parameter, if any."""
        for param in self.parameters:
            if param.required:
                return param.name
        return None

    def confirmation_message(self, arguments: dict[str, Any]) -> str:
        """Human-readable prompt shown before a dangerous call runs."""
        if self.confirmation is not None:
            try:
                return self.confirmation(arguments)
            except Exception:
                pass
        return f"Allow {self.name}?"


def _clip(value: Any, limit: int = 300) -> str:
    return str(value or "")[:limit]


TOOL_DEFINITIONS: tuple[ToolDefinition, ...] = (
    # Shell
    ToolDefinition(
        name="exec_command",
        description=(
            "Execute a shell command and return stdout, stderr, and exit code. "
            "Use this for running CLI tools, scripts, or system commands."
        ),
        category="shell",
        parameters=(
            ToolParameter("command", "string", "The shell command to run (executed via /bin/sh -c)", required=True),
            ToolParameter("cwd", "string", "Working directory (defaults to user home)"),
        ),
        dangerous=True,
        confirmation=lambda args: f"Run shell command:\n`{_clip(args.get('command'))}`",
    ),
    # AppleScript
    ToolDefinition(
        name="run_applescript",
        description=(
            "Execute AppleScript code on macOS. Useful for automating apps, controlling "
            "system UI, sending keystrokes, and interacting with macOS-native features."
        ),
        category="applescript",
        parameters=(
            ToolParameter("script", "string", "The AppleScript source code to execute", required=True),
        ),
        dangerous=True,
        confirmation=lambda args: f"Run AppleScript:\n`{_clip(args.get('script'))}`",
    ),
    # Filesystem
    ToolDefinition(
        name="read_file",
        description="Read the contents of a file at the given absolute path.",
        category="filesystem",
        parameters=(
            ToolParameter("path", "string", "Absolute file path to read", required=True),
        ),
    ),
    ToolDefinition(
        name="write_file",
        description="Write text content to a file at the given absolute path, creating it if it does not exist.",
        category="filesystem",
        parameters=(
            ToolParameter("path", "string", "Absolute file path to write to", required=True),
            ToolParameter("content", "string", "The text content to write", required=True),
        ),
        dangerous=True,
        confirmation=lambda args: f"Write to file: {args.get('path')}",
    ),
    ToolDefinition(
        name="create_directory",
        description="Create a directory path. Can create parent directories recursively.",
        category="filesystem",
        parameters=(
            ToolParameter("path", "string", "Directory path to create", required=True),
            ToolParameter("recursive", "boolean", "Create parent directories automatically (default true)"),
        ),
    ),
    ToolDefinition(
        name="copy_path",
        description="Copy a file or directory from source to destination.",
        category="filesystem",
        parameters=(
            ToolParameter("source", "string", "Source file or directory path", required=True),
            ToolParameter("destination", "string", "Destination path", required=True),
            ToolParameter("overwrite", "boolean", "Overwrite destination if it exists"),
        ),
        dangerous=True,
        confirmation=lambda args: f"Copy path:\n{_clip(args.get('source'))}\n→ {_clip(args.get('destination'))}",
    ),
    ToolDefinition(
        name="move_path",
        description="Move or rename a file/directory from source to destination.",
        category="filesystem",
        parameters=(
            ToolParameter("source", "string", "Source file or directory path", required=True),
            ToolParameter("destination", "string", "Destination path", required=True),
            ToolParameter("overwrite", "boolean", "Overwrite destination if it exists"),
        ),
        dangerous=True,
        confirmation=lambda args: f"Move path:\n{_clip(args.get('source'))}\n→ {_clip(args.get('destination'))}",
    ),
    ToolDefinition(
        name="rename_path",
        description="Rename a file/directory within the same parent directory.",
        category="filesystem",
        parameters=(
            ToolParameter("path", "string", "Existing file or directory path", required=True),
            ToolParameter("newName", "string", "New file or directory name (not a full path)", required=True),
            ToolParameter("overwrite", "boolean", "Overwrite the target name if it exists"),
        ),
        dangerous=True,
        confirmation=lambda args: f"Rename path:\n{_clip(args.get('path'))}\n→ {_clip(args.get('newName'))}",
    ),
    ToolDefinition(
        name="delete_path",
        description="Delete a file or directory path. Use recursive for directories.",
        category="filesystem",
        parameters=(
            ToolParameter("path", "string", "Path to delete", required=True),
            ToolParameter("recursive", "boolean", "Delete directories recursively (default true)"),
        ),
        dangerous=True,
        confirmation=lambda args: f"Delete path: {_clip(args.get('path'))}",
    ),
    ToolDefinition(
        name="read_dir",
        description="List the files and subdirectories in a directory. Returns one entry per line.",
        category="filesystem",
        parameters=(
            ToolParameter("path", "string", "Absolute directory path to list", required=True),
        ),
    ),
    ToolDefinition(
        name="search_file_content",
        description="Search text content in files under a directory and return matching lines with file paths.",
        category="filesystem",
        parameters=(
            ToolParameter("path", "string", "Base directory to search in", required=True),
            ToolParameter("query", "string", "Text to search for", required=True),
            ToolParameter("caseSensitive", "boolean", "Case-sensitive search (default false)"),
            ToolParameter("maxDepth", "number", "Maximum recursion depth (default 6)"),
            ToolParameter("maxResults", "number", "Maximum number of matches to return (default 80, max 500)"),
            ToolParameter("includeHidden", "boolean", "Whether to include dotfiles/dotfolders"),
        ),
    ),
    ToolDefinition(
        name="replace_in_file",
        description="Replace text in a file and write changes back. Supports single or global replacement.",
        category="filesystem",
        parameters=(
            ToolParameter("path", "string", "File path to modify", required=True),
            ToolParameter("find", "string", "Text to find", required=True),
            ToolParameter("replace", "string", "Replacement text", required=True),
            ToolParameter("all", "boolean", "Replace all matches (default true)"),
            ToolParameter("caseSensitive", "boolean", "Case-sensitive matching (default true)"),
            ToolParameter("dryRun", "boolean", "Return planned changes without writing"),
        ),
        dangerous=True,
        confirmation=lambda args: f"Replace text in file: {_clip(args.get('path'))}",
    ),
    ToolDefinition(
        name="path_info",
        description="Get metadata about a file or directory (type, size, timestamps, and basic permissions).",
        category="filesystem",
        parameters=(
            ToolParameter("path", "string", "Path to inspect", required=True),
        ),
    ),
    ToolDefinition(
        name="find_paths",
        description="Search for files/folders by name under a base directory. Supports filtering by type and depth.",
        category="filesystem",
        parameters=(
            ToolParameter("path", "string", "Base directory to search in", required=True),
            ToolParameter("query", "string", "Case-insensitive name substring to match", required=True),
            ToolParameter("type", "string", "Filter by entry type", enum=("all", "file", "directory")),
            ToolParameter("maxDepth", "number", "Maximum recursion depth (default 5)"),
            ToolParameter("maxResults", "number", "Maximum matches to return (default 50, max 200)"),
            ToolParameter("includeHidden", "boolean", "Whether to include dotfiles/dotfolders"),
        ),
    ),
    ToolDefinition(
        name="top_largest_entries",
        description=(
            "Return the largest files/folders directly inside a directory, including "
            "human-readable sizes. Great for disk usage questions."
        ),
        category="filesystem",
        parameters=(
            ToolParameter("path", "string", "Directory to analyze", required=True),
            ToolParameter("limit", "number", "Number of entries to return (default 15, max 100)"),
            ToolParameter("includeHidden", "boolean", "Whether to include dotfiles/dotfolders"),
            ToolParameter(
                "recursiveDirSize",
                "boolean",
                "If true (default), directory size includes all nested files. "
                "If false, only direct file sizes are counted.",
            ),
        ),
    ),
    # Clipboard
    ToolDefinition(
        name="clipboard_read",
        description="Read the current text content from the system clipboard.",
        category="clipboard",
    ),
    ToolDefinition(
        name="clipboard_write",
        description="Write text to the system clipboard.",
        category="clipboard",
        parameters=(
            ToolParameter("text", "string", "Text content to copy to clipboard", required=True),
        ),
    ),
    # HTTP
    ToolDefinition(
        name="http_request",
        description=(
            "Make an HTTP/HTTPS request and return the response. "
            "Useful for fetching data from APIs or web pages."
        ),
        category="http",
        parameters=(
            ToolParameter("url", "string", "The full URL to request", required=True),
            ToolParameter("method", "string", "HTTP method", enum=("GET", "POST", "PUT", "DELETE", "PATCH")),
            ToolParameter("headers", "object", "Request headers as key-value pairs"),
            ToolParameter("body", "string", "Request body (for POST/PUT/PATCH)"),
        ),
    ),
    # App control
    ToolDefinition(
        name="get_frontmost_application",
        description="Get the name, path, and bundle ID of the currently active (frontmost) application.",
        category="app_control",
    ),
    ToolDefinition(
        name="get_applications",
        description="List all installed applications on this Mac.",
        category="app_control",
    ),
    # Memory
    ToolDefinition(
        name="memory_search",
        description=(
            "Search the user's long-term memory for relevant information. "
            "Returns matching memories ranked by relevance."
        ),
        category="memory",
        parameters=(
            ToolParameter("query", "string", "Search query to find relevant memories", required=True),
        ),
    ),
    ToolDefinition(
        name="memory_add",
        description="Save a piece of information to the user's long-term memory for future reference.",
        category="memory",
        parameters=(
            ToolParameter("text", "string", "The information to remember", required=True),
        ),
    ),
)

_TOOLS_BY_NAME: dict[str, ToolDefinition] = {tool.name: tool for tool in TOOL_DEFINITIONS}


def get_tool_definition(name: str) -> ToolDefinition | None:
    """Return the catalog entry for a tool name, or None."""
    return _TOOLS_BY_NAME.get(str(name or "").strip())


def resolve_enabled_tools(
    enabled_categories: list[str] | set[str] | tuple[str, ...],
    access_level: str,
    catalog: tuple[ToolDefinition, ...] = TOOL_DEFINITIONS,
) -> list[ToolDefinition]:
    """Filter the catalog by enabled categories and access level."""
    categories = set(enabled_categories)
    enabled: list[ToolDefinition] = []
    for tool in catalog:
        if tool.category not in categories:
            continue
        if access_level == "safe" and (
            tool.dangerous or tool.category in SAFE_LEVEL_BLOCKED_CATEGORIES
        ):
            continue
        enabled.append(tool)
    return enabled


def requires_confirmation(
    tool: ToolDefinition | None,
    access_level: str,
    auto_approve_categories: list[str] | set[str] | tuple[str, ...],
) -> bool:
    """Whether a call to ``tool`` must be confirmed by the user first."""
    if tool is None or access_level == "ultimate":
        return False
    return tool.dangerous and tool.category not in set(auto_approve_categories)
