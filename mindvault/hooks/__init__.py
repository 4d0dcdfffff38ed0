"""Host adapters that feed tool activity into the memory store."""

from mindvault.hooks.claude import HOOK_EVENTS, HookInput, dispatch, run_hook
from mindvault.hooks.common import OBSERVED_TOOLS, build_session_context, capture_observation
from mindvault.hooks.events import EventPlugin

__all__ = [
    "HOOK_EVENTS",
    "OBSERVED_TOOLS",
    "EventPlugin",
    "HookInput",
    "build_session_context",
    "capture_observation",
    "dispatch",
    "run_hook",
]
