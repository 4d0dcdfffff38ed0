"""Tests for observation type classification."""

import pytest

from mindvault.classifier import classify_observation_type
from mindvault.models import ObservationType


@pytest.mark.parametrize(
    "output",
    ["Error: cannot find module", "2 tests FAILED", "Traceback: Exception raised"],
)
def test_problem_markers_win(output):
    assert classify_observation_type("Read", output) == ObservationType.PROBLEM


def test_problem_beats_success():
    assert classify_observation_type("Bash", "Build completed with 1 error") == ObservationType.PROBLEM


def test_success_beats_warning():
    assert classify_observation_type("Bash", "All tests passed (1 warning)") == ObservationType.SUCCESS


def test_warning_marker():
    assert classify_observation_type("Bash", "DeprecationWarning: use new api") == ObservationType.WARNING
    assert classify_observation_type("Read", "this api is deprecated") == ObservationType.WARNING


@pytest.mark.parametrize("tool", ["Read", "Glob", "Grep"])
def test_discovery_tools(tool):
    assert classify_observation_type(tool, "src/main.py") == ObservationType.DISCOVERY


def test_edit_mentioning_fix_is_bugfix():
    assert classify_observation_type("Edit", "Applied fix for null pointer") == ObservationType.BUGFIX
    assert classify_observation_type("Edit", "Bug in parser patched") == ObservationType.BUGFIX


def test_plain_edit_is_refactor():
    assert classify_observation_type("Edit", "The file has been updated") == ObservationType.REFACTOR


def test_write_is_feature():
    assert classify_observation_type("Write", "File created at src/new.py") == ObservationType.FEATURE


def test_unknown_tool_defaults_to_discovery():
    assert classify_observation_type("Bash", "hello") == ObservationType.DISCOVERY
    assert classify_observation_type("WebFetch", "") == ObservationType.DISCOVERY
