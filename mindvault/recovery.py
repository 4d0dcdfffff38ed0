"""Corruption detection and backup rotation for memory files."""

import logging
import os
import re
import time
from pathlib import Path
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

MAX_FILE_SIZE_BYTES = 100 * 1024 * 1024
BACKUP_KEEP_COUNT = 3

# Lower-cased fragments of engine error messages that mean the file itself is
# unreadable. Anything else raised while opening is treated as fatal.
CORRUPTION_SIGNATURES: Tuple[str, ...] = (
    "deserializ",
    "unexpectedvariant",
    "unexpected variant",
    "invalid",
    "not a valid",
    "corrupt",
    "validation failed",
    "unable to recover",
    "table of contents",
)


def is_corruption_error(error: BaseException) -> bool:
    """Whether an open error indicates a corrupted memory file."""
    message = str(error).lower()
    return any(signature in message for signature in CORRUPTION_SIGNATURES)


def backup_path_for(memory_path: Path) -> Path:
    """``<path>.backup-<epoch-ms>``, bumped past any existing backup with the same stamp."""
    stamp = int(time.time() * 1000)
    while True:
        candidate = memory_path.with_name(f"{memory_path.name}.backup-{stamp}")
        if not candidate.exists():
            return candidate
        stamp += 1


def backup_memory_file(memory_path: Path, delete_on_failure: bool = False) -> Optional[Path]:
    """Move a bad memory file out of the way.

    Args:
        memory_path: File to back up
        delete_on_failure: Delete the file if it can't be renamed

    Returns:
        The backup path, or None if the rename failed
    """
    backup_path = backup_path_for(memory_path)
    try:
        os.replace(memory_path, backup_path)
        logger.warning("Backed up memory file to %s", backup_path)
        return backup_path
    except OSError as e:
        logger.warning("Failed to back up %s: %s", memory_path, e)

    if delete_on_failure:
        try:
            memory_path.unlink()
        except OSError as e:
            logger.warning("Failed to delete %s: %s", memory_path, e)
    return None


def list_backups(memory_path: Path) -> List[Tuple[int, Path]]:
    """Backups of ``memory_path`` as (epoch-ms, path), newest first."""
    pattern = re.compile(rf"^{re.escape(memory_path.name)}\.backup-(\d+)$")
    directory = memory_path.parent
    if not directory.is_dir():
        return []

    backups = []
    for entry in directory.iterdir():
        match = pattern.match(entry.name)
        if match:
            backups.append((int(match.group(1)), entry))
    backups.sort(key=lambda item: item[0], reverse=True)
    return backups


def prune_backups(memory_path: Path, keep: int = BACKUP_KEEP_COUNT) -> List[Path]:
    """Delete all but the newest ``keep`` backups. Individual failures are skipped.

    Returns:
        Paths that were deleted
    """
    try:
        backups = list_backups(memory_path)
    except OSError as e:
        logger.debug("Could not list backups for %s: %s", memory_path, e)
        return []

    pruned = []
    for _, path in backups[keep:]:
        try:
            path.unlink()
        except OSError as e:
            logger.debug("Could not prune %s: %s", path, e)
            continue
        logger.info("Pruned old backup: %s", path.name)
        pruned.append(path)
    return pruned
