"""Pieces shared by the host adapters."""

import json
import logging
from pathlib import Path
from typing import Any, Optional

from mindvault.classifier import classify_observation_type
from mindvault.compression import compress_tool_output
from mindvault.file_capture import FileChanges
from mindvault.models import Metadata, ObservationType
from mindvault.store import Mind

logger = logging.getLogger(__name__)

OBSERVED_TOOLS = frozenset({"Read", "Edit", "Write", "Bash", "Grep", "Glob"})

COMMANDS_HELP = [
    "**Commands:**",
    "- `/mind:search <query>` - Search memories",
    "- `/mind:ask <question>` - Ask your memory",
    "- `/mind:recent` - View timeline",
    "- `/mind:stats` - View statistics",
]


def output_to_text(output: Any) -> str:
    """Tool output as text: strings as-is, structured values as JSON."""
    if isinstance(output, str):
        return output
    if output is None:
        return ""
    try:
        return json.dumps(output, default=str)
    except (TypeError, ValueError):
        return str(output)


def to_metadata(value: Any) -> Metadata:
    """Coerce host-supplied metadata to JSON-safe values. Non-mappings become empty."""
    if not isinstance(value, dict):
        return {}
    return json.loads(json.dumps(value, default=str))


def describe_tool_call(tool: str, tool_input: Any) -> str:
    """Short summary line for a tool invocation."""
    args = tool_input if isinstance(tool_input, dict) else {}
    if tool in ("Read", "Edit", "Write") and args.get("file_path"):
        return f"{tool} {Path(str(args['file_path'])).name}"
    if tool == "Bash" and args.get("command"):
        return f"Ran: {str(args['command']).splitlines()[0][:80]}"
    if tool in ("Grep", "Glob") and args.get("pattern"):
        return f"{tool} \"{str(args['pattern'])[:60]}\""
    return f"{tool} completed"


def build_session_context(memory_path: Path, project_dir: Path, tag: str, title: str) -> str:
    """Banner injected at session start. Only stats the memory file; never opens it."""
    project_name = Path(project_dir).name
    try:
        display_path = Path(memory_path).relative_to(Path(project_dir).resolve()).as_posix()
    except ValueError:
        display_path = str(memory_path)

    if memory_path.exists():
        try:
            size_kb = round(memory_path.stat().st_size / 1024)
        except OSError:
            size_kb = None
        if size_kb is not None:
            return "\n".join(
                [
                    f"<{tag}>",
                    f"# 🧠 {title} Active",
                    "",
                    f"📁 Project: **{project_name}**",
                    f"💾 Memory: `{display_path}` ({size_kb} KB)",
                    "",
                    *COMMANDS_HELP,
                    "",
                    "_Memories are captured automatically from your tool use._",
                    f"</{tag}>",
                ]
            )

    return "\n".join(
        [
            f"<{tag}>",
            f"# 🧠 {title} Ready",
            "",
            f"📁 Project: **{project_name}**",
            f"💾 Memory will be created at: `{display_path}`",
            "",
            "_Your observations will be automatically captured._",
            f"</{tag}>",
        ]
    )


async def capture_observation(
    mind: Mind,
    tool: str,
    tool_input: Any,
    output: Any,
    summary: Optional[str] = None,
    metadata: Optional[Metadata] = None,
) -> str:
    """Classify, compress and remember one tool invocation."""
    text = output_to_text(output)
    content = text
    extra: Metadata = dict(metadata or {})

    if mind.config.auto_compress:
        result = compress_tool_output(tool, tool_input, text)
        content = result.compressed
        if result.was_compressed:
            extra["originalSize"] = result.original_size

    return await mind.remember(
        type=classify_observation_type(tool, text),
        summary=summary or f"{tool} completed",
        content=content,
        tool=tool,
        metadata=extra,
    )


async def record_file_changes(mind: Mind, changes: FileChanges) -> Optional[str]:
    """Remember the files edited this session. Returns None when nothing changed."""
    if not changes.files:
        return None

    file_list = "\n".join(f"- {path}" for path in changes.files)
    parts = [f"## Files Modified This Session\n\n{file_list}"]
    if changes.git_diff_content:
        parts.append(f"\n## Git Changes Summary\n```\n{changes.git_diff_content}\n```")

    return await mind.remember(
        type=ObservationType.REFACTOR,
        summary=f"Session edits: {len(changes.files)} file(s) modified",
        content="\n".join(parts),
        tool="FileChanges",
        metadata={"files": changes.files, "fileCount": len(changes.files)},
    )
