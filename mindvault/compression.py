"""Deterministic, lossy compression of tool output.

Outputs longer than ``COMPRESSION_THRESHOLD`` characters are reduced by a
tool-specific summarizer and then capped at ``TARGET_COMPRESSED_SIZE``. The
summarizers keep the signals that explain why an observation matters (errors,
structure, what changed) rather than verbatim content. Nothing in this module
raises on odd input: unknown tools fall back to the generic summarizer and
malformed tool input falls back to defaults.
"""

import json
import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Pattern

TARGET_COMPRESSED_SIZE = 2000
COMPRESSION_THRESHOLD = 3000
TRUNCATION_MARKER = "\n... (compressed)"


@dataclass
class CompressionResult:
    compressed: str
    was_compressed: bool
    original_size: int


def compress_tool_output(tool_name: str, tool_input: Any, output: str) -> CompressionResult:
    """Compress tool output for storage.

    Args:
        tool_name: Name of the tool that produced the output (e.g. "Bash")
        tool_input: The tool's input arguments, usually a dict
        output: Raw tool output

    Returns:
        CompressionResult. Output at or below the threshold is returned unchanged.
    """
    original_size = len(output)
    if original_size <= COMPRESSION_THRESHOLD:
        return CompressionResult(compressed=output, was_compressed=False, original_size=original_size)

    summarizer = _SUMMARIZERS.get(tool_name)
    if summarizer is None:
        compressed = compress_generic(output)
    else:
        compressed = summarizer(tool_input, output)

    return CompressionResult(
        compressed=truncate_to_target(compressed),
        was_compressed=True,
        original_size=original_size,
    )


def truncate_to_target(text: str, target: int = TARGET_COMPRESSED_SIZE) -> str:
    """Cap text at ``target`` characters, marking the cut."""
    if len(text) <= target:
        return text
    return text[: target - 20] + TRUNCATION_MARKER


def _input_str(tool_input: Any, key: str, default: str) -> str:
    if not isinstance(tool_input, dict):
        return default
    value = tool_input.get(key)
    if not value:
        return default
    return str(value)


def _base_name(path: str) -> str:
    return path.rstrip("/").split("/")[-1]


def _more(items: List[str], shown: int) -> str:
    return f" (+{len(items) - shown} more)" if len(items) > shown else ""


def compress_file_read(tool_input: Any, output: str) -> str:
    file_name = _base_name(_input_str(tool_input, "file_path", "unknown")) or "file"
    lines = output.split("\n")

    imports = extract_imports(output)
    exports = extract_exports(output)
    functions = extract_function_signatures(output)
    classes = extract_class_names(output)
    notes = extract_error_patterns(output)

    parts = [f"📄 File: {file_name} ({len(lines)} lines)"]

    if imports:
        parts.append(f"\n📦 Imports: {', '.join(imports[:10])}{_more(imports, 10)}")
    if exports:
        parts.append(f"\n📤 Exports: {', '.join(exports[:10])}{_more(exports, 10)}")
    if functions:
        parts.append(f"\n⚡ Functions: {', '.join(functions[:10])}{_more(functions, 10)}")
    if classes:
        parts.append(f"\n🏗️ Classes: {', '.join(classes)}")
    if notes:
        parts.append(f"\n⚠️ Errors/TODOs: {'; '.join(notes[:5])}")

    context = ["\n--- First 10 lines ---", *lines[:10], "\n--- Last 5 lines ---", *lines[-5:]]
    parts.append("\n".join(context))
    return "".join(parts)


def compress_bash_output(tool_input: Any, output: str) -> str:
    command = _input_str(tool_input, "command", "command")
    short_cmd = command.split("\n")[0][:100]
    lines = output.split("\n")

    error_lines = [line for line in lines if _has_any(line.lower(), ("error", "failed", "exception", "warning"))]
    success_lines = [line for line in lines if _has_any(line.lower(), ("success", "passed", "completed", "done"))]

    parts = [f"🖥️ Command: {short_cmd}"]

    if error_lines:
        parts.append(f"\n❌ Errors ({len(error_lines)}):")
        parts.append("\n".join(error_lines[:10]))

    if success_lines:
        parts.append("\n✅ Success indicators:")
        parts.append("\n".join(success_lines[:5]))

    parts.append(f"\n📊 Output: {len(lines)} lines total")

    if len(lines) > 20:
        parts.append("\n--- First 10 lines ---")
        parts.append("\n".join(lines[:10]))
        parts.append("\n--- Last 5 lines ---")
        parts.append("\n".join(lines[-5:]))
    else:
        parts.append("\n--- Full output ---")
        parts.append("\n".join(lines))

    return "".join(parts)


def compress_grep_output(tool_input: Any, output: str) -> str:
    pattern = _input_str(tool_input, "pattern", "pattern")
    lines = [line for line in output.split("\n") if line]

    files: Dict[str, None] = {}
    for line in lines:
        match = re.match(r"^([^:]+):", line)
        if match:
            files.setdefault(match.group(1), None)
    file_names = list(files)

    parts = [
        f'🔍 Grep: "{pattern[:50]}"',
        f"📁 Found in {len(file_names)} files, {len(lines)} matches",
    ]

    if file_names:
        parts.append(f"\n📂 Files: {', '.join(file_names[:15])}{_more(file_names, 15)}")

    parts.append("\n--- Top matches ---")
    parts.append("\n".join(lines[:10]))

    if len(lines) > 10:
        parts.append(f"\n... and {len(lines) - 10} more matches")

    return "".join(parts)


def _parse_glob_output(output: str) -> List[str]:
    """File list from glob output: JSON ``{"filenames": [...]}`` or one path per line."""
    try:
        parsed = json.loads(output)
        filenames = parsed.get("filenames") or []
        return [str(f) for f in filenames]
    except (json.JSONDecodeError, AttributeError, TypeError):
        return [line for line in output.split("\n") if line]


def compress_glob_output(tool_input: Any, output: str) -> str:
    pattern = _input_str(tool_input, "pattern", "pattern")
    files = _parse_glob_output(output)

    by_dir: Dict[str, List[str]] = defaultdict(list)
    for path in files:
        directory = "/".join(path.split("/")[:-1]) or "/"
        by_dir[directory].append(path.split("/")[-1] or path)

    parts = [
        f'📂 Glob: "{pattern[:50]}"',
        f"📁 Found {len(files)} files in {len(by_dir)} directories",
    ]

    top_dirs = sorted(by_dir.items(), key=lambda item: len(item[1]), reverse=True)[:5]
    parts.append("\n--- Top directories ---")
    for directory, dir_files in top_dirs:
        short_dir = "/".join(directory.split("/")[-3:])
        parts.append(f"{short_dir}/ ({len(dir_files)} files)")

    parts.append("\n--- Sample files ---")
    parts.append(", ".join(path.split("/")[-1] for path in files[:15]))

    return "".join(parts)


def compress_edit_output(tool_input: Any, output: str) -> str:
    file_name = _base_name(_input_str(tool_input, "file_path", "unknown")) or "file"
    return "\n".join(
        [
            f"✏️ Edited: {file_name}",
            "📝 Changes applied successfully",
            output[:500],
        ]
    )


def compress_generic(output: str) -> str:
    lines = output.split("\n")
    if len(lines) <= 30:
        return output
    return "\n".join(
        [
            f"📊 Output: {len(lines)} lines",
            "--- First 15 lines ---",
            *lines[:15],
            "--- Last 10 lines ---",
            *lines[-10:],
        ]
    )


def _has_any(text: str, markers) -> bool:
    return any(marker in text for marker in markers)


# Detection patterns cover several languages since captured output can embed
# source from anything the tool touched.
IMPORT_PATTERNS: List[Pattern[str]] = [
    re.compile(r"""import\s+(?:\{\s*([^}]+?)\s*\}|(\w+))\s+from\s+['"]([^'"]+)['"]"""),
    re.compile(r"""from\s+['"]([^'"]+)['"]\s+import"""),
    re.compile(r"""require\s*\(['"]([^'"]+)['"]\)"""),
    re.compile(r"^\s*from\s+([\w.]+)\s+import\s", re.MULTILINE),
    re.compile(r"^\s*import\s+([\w.]+)\s*$", re.MULTILINE),
    re.compile(r"\buse\s+(\w+(?:::\w+)*)"),
]

EXPORT_PATTERNS: List[Pattern[str]] = [
    re.compile(r"export\s+(?:default\s+)?(?:async\s+)?(?:function|class|const|let|var)\s+(\w+)"),
    re.compile(r"export\s*\{\s*([^}]+)\s*\}"),
    re.compile(r"pub\s+(?:fn|struct|enum|trait|mod)\s+(\w+)"),
]

FUNCTION_PATTERNS: List[Pattern[str]] = [
    re.compile(r"(?:async\s+)?function\s+(\w+)"),
    re.compile(r"(\w+)\s*:\s*(?:async\s+)?\([^)]*\)\s*=>"),
    re.compile(r"(?:const|let)\s+(\w+)\s*=\s*(?:async\s+)?\([^)]*\)\s*=>"),
    re.compile(r"\bfn\s+(\w+)"),
    re.compile(r"\bdef\s+(\w+)"),
    re.compile(r"\bfunc\s+(?:\([^)]*\)\s*)?(\w+)"),
]

CLASS_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\bclass\s+(\w+)"),
    re.compile(r"\bstruct\s+(\w+)"),
    re.compile(r"\binterface\s+(\w+)"),
    re.compile(r"\btype\s+(\w+)\s*="),
]

NOTE_MARKERS = ("TODO", "FIXME", "HACK", "XXX", "BUG")


def _unique(items: List[str]) -> List[str]:
    return list(dict.fromkeys(item for item in items if item))


def extract_imports(code: str) -> List[str]:
    found = []
    for pattern in IMPORT_PATTERNS:
        for match in pattern.finditer(code):
            groups = match.groups()
            # Prefer the module path, then the imported names
            module = groups[2] if len(groups) > 2 and groups[2] else None
            found.append(module or next((g for g in groups if g), match.group(0)))
    return _unique([item.strip() for item in found])


def extract_exports(code: str) -> List[str]:
    found = []
    for pattern in EXPORT_PATTERNS:
        for match in pattern.finditer(code):
            found.extend(name.strip() for name in (match.group(1) or "").split(","))
    return _unique(found)


def extract_function_signatures(code: str) -> List[str]:
    return _unique([match.group(1) for pattern in FUNCTION_PATTERNS for match in pattern.finditer(code)])


def extract_class_names(code: str) -> List[str]:
    return _unique([match.group(1) for pattern in CLASS_PATTERNS for match in pattern.finditer(code)])


def extract_error_patterns(code: str) -> List[str]:
    """TODO/FIXME-style comment lines, trimmed to 100 characters each."""
    notes = [line.strip()[:100] for line in code.split("\n") if _has_any(line, NOTE_MARKERS)]
    return notes[:10]


_SUMMARIZERS: Dict[str, Callable[[Any, str], str]] = {
    "Read": compress_file_read,
    "Bash": compress_bash_output,
    "Grep": compress_grep_output,
    "Glob": compress_glob_output,
    "Edit": compress_edit_output,
    "Write": compress_edit_output,
}
