"""System prompt assembly and user-facing failure summaries."""

import getpass
import platform
import re
from pathlib import Path

from deskpilot.config import AgentConfig

SKILL_GUIDANCE = {
    "organize": "Prefer deterministic file organization with explicit destination folders and clear before/after summaries.",
    "cleanup": "Identify stale/temp/cache artifacts first, propose safe cleanup, then execute with caution and report reclaimed space.",
    "coding": "For code tasks, prefer minimal diffs, preserve style, and validate changes before finalizing.",
    "research": "For research tasks, compare options and return concise recommendations with rationale.",
    "automation": "For repetitive tasks, create reusable steps and predictable outputs.",
}

ACCESS_LEVEL_GUIDANCE = {
    "ultimate": "You may use all enabled tools with minimal interruption. Still avoid destructive actions unless needed.",
    "safe": "Avoid destructive operations and shell/app scripting actions.",
    "power": "Use dangerous operations only when necessary and with user confirmation.",
}

BLOCKER_PREVIEW_CHARS = 220


def _host_os() -> str:
    name = platform.system()
    return {"Darwin": "macOS"}.get(name, name or "unknown")


def _username() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "user"


def build_default_persona(home: Path | None = None, username: str | None = None, host_os: str | None = None) -> str:
    home_dir = str(home or Path.home())
    user = username or _username()
    os_name = host_os or _host_os()
    return f"""You are Deskpilot, an AI assistant that works directly on the user's computer.
You help users accomplish tasks using the available tools.

RULES:
1. Be efficient: complete tasks in as few tool calls as possible.
2. Prefer dedicated filesystem tools for file tasks:
   - top_largest_entries for "what is taking space" questions
   - path_info for metadata/size checks on a path
   - find_paths for locating files/folders by name
   - copy_path, move_path, rename_path, delete_path, create_directory for organizing/cleanup
   - search_file_content and replace_in_file for text refactors
   - read_dir for basic listing
   Use exec_command only when those tools cannot do the task.
3. When a task is complete, include the actual data/results in your final answer. Show the data, not a description of it.
4. If a tool call fails or is denied, adapt or ask for guidance.
5. Be concise.

Context about this user's system:
- Home directory: {home_dir}
- Username: {user}
- OS: {os_name}
- "my desktop", "my downloads" etc. mean {home_dir}/Desktop, {home_dir}/Downloads, etc.
- Use ~ or absolute paths in tool calls. Never ask the user for their username or home directory path."""


def build_access_prompt(access_level: str) -> str:
    guidance = ACCESS_LEVEL_GUIDANCE.get(access_level, ACCESS_LEVEL_GUIDANCE["power"])
    return f"Access level: {access_level}. {guidance}"


def build_skill_prompt(config: AgentConfig) -> str:
    lines = [f"Personality preset: {config.personality_preset or 'balanced'}."]
    if config.soul_prompt.strip():
        lines.append(f"Soul: {config.soul_prompt.strip()}")
    if config.enabled_skills:
        lines.append("Enabled skills:")
        for skill in config.enabled_skills:
            guidance = SKILL_GUIDANCE.get(skill)
            lines.append(f"- {skill}: {guidance}" if guidance else f"- {skill}")
    custom = [str(skill).strip() for skill in config.custom_skills if str(skill or "").strip()]
    if custom:
        lines.append("Custom skills:")
        lines.extend(f"- {skill}" for skill in custom)
    return "\n".join(lines)


def build_system_prompt(
    config: AgentConfig,
    memory_context: str = "",
    persona: str | None = None,
) -> str:
    """Persona, access level, skills and memory context, blank-line separated."""
    base = persona if persona is not None else build_default_persona()
    if config.personality_prompt.strip():
        base = f"{config.personality_prompt.strip()}\n\n{base}"
    parts = [
        base,
        build_access_prompt(config.access_level),
        build_skill_prompt(config),
        memory_context,
    ]
    return "\n\n".join(part for part in parts if part)


def build_graceful_steer_message(
    attempts: int,
    failed_tool_attempts: list[tuple[str, str]],
    access_level: str,
) -> str:
    """Non-technical summary of a run that could not finish.

    Args:
        attempts: Steps taken
        failed_tool_attempts: ``(tool name, output)`` per failed call, in order
        access_level: Current access level
    """
    unique_tools = list(dict.fromkeys(name for name, _ in failed_tool_attempts))
    lines = [f"I made {attempts} attempt(s) but couldn't fully complete that task yet."]
    if unique_tools:
        lines.append(f"I tried these actions: {', '.join(unique_tools)}.")
    if failed_tool_attempts and failed_tool_attempts[-1][1]:
        short = re.sub(r"\s+", " ", failed_tool_attempts[-1][1][:BLOCKER_PREVIEW_CHARS]).strip()
        lines.append(f"Latest blocker: {short}")
    if access_level != "ultimate":
        lines.append(
            "To improve success rate, switch Agent Access Level to Ultimate "
            "or enable missing tool categories in settings."
        )
    else:
        lines.append("Please provide one concrete constraint or preferred path, and I can retry with that direction.")
    return " ".join(lines)


def looks_technical(message: str) -> bool:
    """Raw provider payloads and HTTP status lines are never shown to the user."""
    return message.startswith("{") or message.startswith("HTTP")
