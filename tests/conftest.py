"""Test configuration and fixtures."""

import json
import shutil
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, Generator, List

import pytest

from mindvault.engine.base import DEFAULT_PROFILE, EngineStats, Frame, MemoryEngine
from mindvault.exceptions import EngineError


class JsonFileEngine(MemoryEngine):
    """File-backed engine for tests: the memory file is a JSON list of frames.

    Every call reads and rewrites the file, so separate instances (and
    processes) see each other's writes the way a real engine would.
    """

    def _load(self) -> List[Dict[str, Any]]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise EngineError(f"Deserialization error: {e}") from e
        if not isinstance(data, list):
            raise EngineError("memory file validation failed: expected a frame list")
        return data

    def _save(self, frames: List[Dict[str, Any]]) -> None:
        self.path.write_text(json.dumps(frames), encoding="utf-8")

    @classmethod
    def create(cls, path: Path, profile: str = DEFAULT_PROFILE) -> "JsonFileEngine":
        engine = cls(path, profile)
        engine._save([])
        return engine

    @classmethod
    def use(cls, profile: str, path: Path) -> "JsonFileEngine":
        engine = cls(path, profile)
        engine._load()
        return engine

    def put(self, title, label, text, metadata=None, tags=None) -> str:
        frames = self._load()
        frame_id = str(len(frames) + 1)
        frames.append(
            {
                "frame_id": frame_id,
                "title": title,
                "label": label,
                "text": text,
                "metadata": metadata or {},
                "tags": tags or [],
                "timestamp": time.time(),
            }
        )
        self._save(frames)
        return frame_id

    def find(self, query: str, k: int = 10, mode: str = "lex") -> List[Frame]:
        needle = query.lower()
        matches = [
            Frame(**frame, score=1.0, snippet=(frame["text"] or "")[:50])
            for frame in reversed(self._load())
            if needle in f"{frame['title']} {frame['text']}".lower()
        ]
        return matches[:k]

    def ask(self, question: str, k: int = 5, mode: str = "lex") -> str:
        frames = self.find(question, k=k)
        return "\n".join(frame.title or "" for frame in frames)

    def timeline(self, limit: int = 20, reverse: bool = False) -> List[Frame]:
        frames = [Frame(**frame, preview=(frame["text"] or "")[:120]) for frame in self._load()]
        if reverse:
            frames.reverse()
        return frames[:limit]

    def stats(self) -> EngineStats:
        return EngineStats(frame_count=len(self._load()), size_bytes=self.path.stat().st_size)


class BrokenEngine(JsonFileEngine):
    """Engine whose open fails with a non-corruption error."""

    @classmethod
    def use(cls, profile: str, path: Path) -> "BrokenEngine":
        raise EngineError("Permission denied while opening memory file")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def engine_cls():
    return JsonFileEngine


@pytest.fixture
def broken_engine_cls():
    return BrokenEngine


@pytest.fixture
def memory_path(temp_dir: Path) -> Path:
    return temp_dir / ".claude" / "mind.mv2"


@pytest.fixture(autouse=True)
def isolate_project_dir(tmp_path, monkeypatch):
    """Point the project root at a scratch directory and reset the shared store handle."""
    from mindvault.handle import reset_mind

    monkeypatch.setenv("CLAUDE_PROJECT_DIR", str(tmp_path))
    reset_mind()
    yield
    reset_mind()

