"""Event-driven plugin adapter.

Hosts that deliver tool results and session lifecycle events as callbacks get
an ``EventPlugin``. Callbacks never raise; failures are logged and the
observation is dropped.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from mindvault.config import get_project_dir, load_config, resolve_memory_path
from mindvault.file_capture import capture_file_changes
from mindvault.handle import MindHandle
from mindvault.hooks.common import (
    OBSERVED_TOOLS,
    build_session_context,
    capture_observation,
    record_file_changes,
    to_metadata,
)

logger = logging.getLogger(__name__)

CONTEXT_TAG = "mindvault-plugin-context"
CONTEXT_TITLE = "Mind Plugin"


class EventPlugin:
    """Plugin object bound to one project directory.

    Args:
        project_dir: Project root (defaults to the environment's project dir)
        handle: Shared store handle; one is created for the project if omitted
    """

    def __init__(self, project_dir: Optional[Path] = None, handle: Optional[MindHandle] = None):
        self.project_dir = Path(project_dir or get_project_dir())
        self.memory_path = resolve_memory_path(load_config(self.project_dir), self.project_dir)
        self.handle = handle or MindHandle(project_dir=self.project_dir)

    @classmethod
    def from_context(cls, ctx: Dict[str, Any], handle: Optional[MindHandle] = None) -> "EventPlugin":
        """Build from a host context: ``directory``, then ``project.worktree``, then the cwd."""
        project = ctx.get("project") or {}
        directory = ctx.get("directory") or (project.get("worktree") if isinstance(project, dict) else None)
        return cls(Path(directory) if directory else None, handle=handle)

    async def tool_execute_after(
        self,
        tool: str,
        session_id: Optional[str],
        output: Any,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        if tool not in OBSERVED_TOOLS:
            return

        try:
            mind = await self.handle.get()
            await capture_observation(
                mind,
                tool,
                metadata,
                output,
                summary=f"Plugin {tool} completed",
                metadata={"hostSessionId": session_id, **to_metadata(metadata)},
            )
        except Exception as e:
            logger.error("Error capturing observation: %s", e)

    async def handle_event(self, event: Dict[str, Any]) -> Optional[str]:
        """Handle a lifecycle event. Returns context text for ``session.created``."""
        event_type = event.get("type")

        if event_type == "session.created":
            return build_session_context(self.memory_path, self.project_dir, CONTEXT_TAG, CONTEXT_TITLE)

        if event_type == "session.idle":
            try:
                changes = await asyncio.to_thread(capture_file_changes, self.project_dir)
                if changes.files:
                    mind = await self.handle.get()
                    await record_file_changes(mind, changes)
            except Exception as e:
                logger.error("Error in session.idle: %s", e)

        return None
