"""Best-effort capture of files changed during a session.

Combines git's view of modified and staged files with a scan for recently
modified source files. Every step has a short timeout and failures only
shrink the result; nothing here raises.
"""

import logging
import os
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 3
DIFF_STAT_MAX_LINES = 30
RECENT_MINUTES = 30
RECENT_MAX_DEPTH = 4
RECENT_MAX_FILES = 30
RECENT_EXTENSIONS = {".ts", ".tsx", ".js", ".jsx", ".md", ".json", ".py", ".rs"}
SKIP_DIRS = {"node_modules", ".git", "dist", "build"}


@dataclass
class FileChanges:
    files: List[str] = field(default_factory=list)
    git_diff_content: str = ""


def _git(args: List[str], cwd: Path) -> Optional[str]:
    """Run a git command, returning stripped stdout or None on any failure."""
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT,
        )
    except subprocess.TimeoutExpired:
        logger.debug("git %s timed out after %ds", " ".join(args), GIT_TIMEOUT)
        return None
    except OSError as e:
        logger.debug("git %s failed: %s", " ".join(args), e)
        return None

    if result.returncode != 0:
        return None
    return result.stdout.strip()


def _lines(text: Optional[str]) -> List[str]:
    return [line for line in (text or "").split("\n") if line]


def git_changed_files(work_dir: Path) -> List[str]:
    """Modified files relative to HEAD (or the index when there is no HEAD) plus staged files."""
    modified = _git(["diff", "--name-only", "HEAD"], work_dir)
    if modified is None:
        modified = _git(["diff", "--name-only"], work_dir)
    staged = _git(["diff", "--cached", "--name-only"], work_dir)
    return list(dict.fromkeys(_lines(modified) + _lines(staged)))


def git_diff_stat(work_dir: Path) -> str:
    stat = _git(["diff", "HEAD", "--stat"], work_dir)
    return "\n".join((stat or "").split("\n")[:DIFF_STAT_MAX_LINES]).strip()


def recently_modified_files(work_dir: Path, minutes: int = RECENT_MINUTES) -> List[str]:
    """Source files under ``work_dir`` modified in the last ``minutes``, depth-limited."""
    cutoff = time.time() - minutes * 60
    root = Path(work_dir)
    found: List[str] = []

    try:
        for dirpath, dirnames, filenames in os.walk(root):
            rel_dir = Path(dirpath).relative_to(root)
            depth = len(rel_dir.parts)
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
            if depth >= RECENT_MAX_DEPTH - 1:
                dirnames[:] = []

            for name in sorted(filenames):
                if Path(name).suffix not in RECENT_EXTENSIONS:
                    continue
                try:
                    if os.stat(os.path.join(dirpath, name)).st_mtime < cutoff:
                        continue
                except OSError:
                    continue
                found.append((rel_dir / name).as_posix())
                if len(found) >= RECENT_MAX_FILES:
                    return found
    except OSError as e:
        logger.debug("Recent file scan failed in %s: %s", work_dir, e)
    return found


def capture_file_changes(work_dir: Path) -> FileChanges:
    """Collect changed files and a git diff summary for ``work_dir``."""
    work_dir = Path(work_dir)
    files = git_changed_files(work_dir)
    diff_content = git_diff_stat(work_dir) if files else ""

    for path in recently_modified_files(work_dir):
        if path not in files:
            files.append(path)

    return FileChanges(files=files, git_diff_content=diff_content)
