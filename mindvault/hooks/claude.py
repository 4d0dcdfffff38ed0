"""Editor hook protocol: one JSON object on stdin, one on stdout.

Hooks run as short-lived processes. Whatever happens, the hook answers
``{"continue": true}`` so the editor is never blocked by the memory store.
"""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import IO, Any, Dict, Optional

from pydantic import BaseModel, ConfigDict

from mindvault.config import PROJECT_DIR_ENV, load_config, resolve_memory_path
from mindvault.file_capture import capture_file_changes
from mindvault.handle import MindHandle
from mindvault.hooks.common import (
    OBSERVED_TOOLS,
    build_session_context,
    capture_observation,
    describe_tool_call,
    record_file_changes,
    to_metadata,
)

logger = logging.getLogger(__name__)

CONTEXT_TAG = "mindvault-context"
CONTEXT_TITLE = "Mind"

HookOutput = Dict[str, Any]


class HookInput(BaseModel):
    """Payload sent by the editor. Unknown fields are kept."""

    model_config = ConfigDict(extra="allow")

    session_id: Optional[str] = None
    cwd: Optional[str] = None
    hook_event_name: Optional[str] = None
    tool_name: Optional[str] = None
    tool_input: Any = None
    tool_response: Any = None

    def project_dir(self) -> Path:
        return Path(self.cwd or os.environ.get(PROJECT_DIR_ENV) or os.getcwd())


def _continue() -> HookOutput:
    return {"continue": True}


async def handle_session_start(hook_input: HookInput) -> HookOutput:
    """Inject a banner describing the memory file. Does not load the engine."""
    project_dir = hook_input.project_dir()
    memory_path = resolve_memory_path(load_config(project_dir), project_dir)
    logger.debug("Session starting: %s", hook_input.session_id)

    return {
        "continue": True,
        "hookSpecificOutput": {
            "hookEventName": "SessionStart",
            "additionalContext": build_session_context(memory_path, project_dir, CONTEXT_TAG, CONTEXT_TITLE),
        },
    }


async def handle_post_tool_use(hook_input: HookInput, handle: MindHandle) -> HookOutput:
    tool = hook_input.tool_name
    if tool not in OBSERVED_TOOLS:
        return _continue()

    mind = await handle.get()
    await capture_observation(
        mind,
        tool,
        hook_input.tool_input,
        hook_input.tool_response,
        summary=describe_tool_call(tool, hook_input.tool_input),
        metadata={"hostSessionId": hook_input.session_id, **_input_metadata(hook_input)},
    )
    return _continue()


def _input_metadata(hook_input: HookInput) -> Dict[str, Any]:
    args = to_metadata(hook_input.tool_input)
    return {"filePath": args["file_path"]} if "file_path" in args else {}


async def handle_stop(hook_input: HookInput, handle: MindHandle) -> HookOutput:
    """Record the files changed in this session and a session summary."""
    project_dir = hook_input.project_dir()
    changes = await asyncio.to_thread(capture_file_changes, project_dir)
    if not changes.files:
        return _continue()

    mind = await handle.get()
    await record_file_changes(mind, changes)
    await mind.save_session_summary(
        files_modified=changes.files,
        summary=f"Session {hook_input.session_id or mind.get_session_id()} modified {len(changes.files)} file(s)",
    )
    return _continue()


HOOK_EVENTS = ("session-start", "post-tool-use", "stop")


async def dispatch(event: str, hook_input: HookInput, handle: Optional[MindHandle] = None) -> HookOutput:
    if event == "session-start":
        return await handle_session_start(hook_input)

    if handle is None:
        handle = MindHandle(project_dir=hook_input.project_dir())
    if event == "post-tool-use":
        return await handle_post_tool_use(hook_input, handle)
    if event == "stop":
        return await handle_stop(hook_input, handle)

    raise ValueError(f"Unknown hook event: {event}")


def run_hook(
    event: str,
    stdin: Optional[IO[str]] = None,
    stdout: Optional[IO[str]] = None,
    handle: Optional[MindHandle] = None,
) -> HookOutput:
    """Read the hook payload, handle ``event`` and write the response.

    Errors never escape: they are logged at debug level and the hook answers
    ``{"continue": true}``.
    """
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout

    try:
        raw = stdin.read()
        hook_input = HookInput.model_validate_json(raw) if raw.strip() else HookInput()
        output = asyncio.run(dispatch(event, hook_input, handle))
    except Exception as e:
        logger.debug("Hook %s failed: %s", event, e)
        output = _continue()

    stdout.write(json.dumps(output))
    stdout.write("\n")
    stdout.flush()
    return output
