"""Map tool output to an observation type."""

from .models import ObservationType

PROBLEM_MARKERS = ("error", "failed", "exception")
SUCCESS_MARKERS = ("success", "passed", "completed")
WARNING_MARKERS = ("warning", "deprecated")

DISCOVERY_TOOLS = {"Read", "Glob", "Grep"}


def _mentions(text: str, markers) -> bool:
    return any(marker in text for marker in markers)


def classify_observation_type(tool_name: str, output: str) -> ObservationType:
    """Classify an observation from its tool and output.

    Content signals are checked first (problem, then success, then warning);
    the tool's default type only applies when the output carries none of them.
    """
    lowered = output.lower()

    if _mentions(lowered, PROBLEM_MARKERS):
        return ObservationType.PROBLEM
    if _mentions(lowered, SUCCESS_MARKERS):
        return ObservationType.SUCCESS
    if _mentions(lowered, WARNING_MARKERS):
        return ObservationType.WARNING

    if tool_name in DISCOVERY_TOOLS:
        return ObservationType.DISCOVERY
    if tool_name == "Edit":
        if "fix" in lowered or "bug" in lowered:
            return ObservationType.BUGFIX
        return ObservationType.REFACTOR
    if tool_name == "Write":
        return ObservationType.FEATURE
    return ObservationType.DISCOVERY
