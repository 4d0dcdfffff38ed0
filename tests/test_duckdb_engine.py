"""Tests for the DuckDB storage engine."""

import os
import subprocess
import sys
import textwrap
from pathlib import Path

import pytest

pytest.importorskip("duckdb")

from mindvault.engine.duckdb_engine import DuckDBEngine  # noqa: E402
from mindvault.exceptions import EngineError  # noqa: E402
from mindvault.models import ObservationType  # noqa: E402
from mindvault.recovery import is_corruption_error, list_backups  # noqa: E402
from mindvault.store import Mind  # noqa: E402

REPO_ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture
def engine(temp_dir):
    return DuckDBEngine.create(temp_dir / "mind.mv2")


class TestDuckDBEngine:
    def test_create_then_use(self, engine):
        engine.put("[discovery] first", "discovery", "body", metadata={"k": "v"}, tags=["discovery"])

        reopened = DuckDBEngine.use("basic", engine.path)
        [frame] = reopened.timeline()

        assert frame.title == "[discovery] first"
        assert frame.metadata == {"k": "v"}
        assert frame.tags == ["discovery"]
        assert frame.timestamp > 0

    def test_use_missing_file(self, temp_dir):
        with pytest.raises(EngineError, match="not found"):
            DuckDBEngine.use("basic", temp_dir / "absent.mv2")

    def test_use_empty_file_is_corruption(self, temp_dir):
        path = temp_dir / "empty.mv2"
        path.write_bytes(b"")

        with pytest.raises(EngineError) as exc_info:
            DuckDBEngine.use("basic", path)
        assert is_corruption_error(exc_info.value)

    def test_use_garbage_file_is_corruption(self, temp_dir):
        path = temp_dir / "garbage.mv2"
        path.write_bytes(b"this is not a database" * 500)

        with pytest.raises(EngineError) as exc_info:
            DuckDBEngine.use("basic", path)
        assert is_corruption_error(exc_info.value)

    def test_find_ranks_by_term_count(self, engine):
        engine.put("[discovery] one", "discovery", "cache miss")
        engine.put("[discovery] two", "discovery", "cache cache cache")
        engine.put("[discovery] three", "discovery", "unrelated")

        frames = engine.find("cache")

        assert [f.title for f in frames] == ["[discovery] two", "[discovery] one"]
        assert frames[0].score == 3.0
        assert "cache" in frames[0].snippet

    def test_find_ties_newest_first(self, engine):
        engine.put("old", "discovery", "token")
        engine.put("new", "discovery", "token")

        assert [f.title for f in engine.find("token")] == ["new", "old"]

    def test_find_empty_query(self, engine):
        engine.put("x", "discovery", "y")
        assert engine.find("  ") == []
        assert engine.find("y", k=0) == []

    def test_ask(self, engine):
        assert engine.ask("nothing") == ""

        engine.put("[decision] Use uv", "decision", "faster installs")
        answer = engine.ask("installs")

        assert answer.startswith("Based on 1 related memories:")
        assert "[decision] Use uv" in answer

    def test_timeline_order_and_stats(self, engine):
        for i in range(3):
            engine.put(f"t{i}", "discovery", "x")

        assert [f.title for f in engine.timeline()] == ["t0", "t1", "t2"]
        assert [f.title for f in engine.timeline(limit=2, reverse=True)] == ["t2", "t1"]

        stats = engine.stats()
        assert stats.frame_count == 3
        assert stats.size_bytes == engine.path.stat().st_size


class TestStoreOnDuckDB:
    @pytest.mark.asyncio
    async def test_garbage_file_recovered(self, temp_dir):
        memory_path = temp_dir / ".claude" / "mind.mv2"
        memory_path.parent.mkdir(parents=True)
        memory_path.write_bytes(b"\x00garbage\xff" * 1000)

        mind = await Mind.open(project_dir=temp_dir)
        await mind.remember(ObservationType.SUCCESS, "Recovered", "fresh store")

        assert len(list_backups(memory_path.resolve())) == 1
        assert (await mind.stats()).total_observations == 1

    @pytest.mark.asyncio
    async def test_oversized_file_replaced_when_rename_fails(self, temp_dir, monkeypatch):
        memory_path = temp_dir / ".claude" / "mind.mv2"
        memory_path.parent.mkdir(parents=True)
        with open(memory_path, "wb") as f:
            f.truncate(101 * 1024 * 1024)

        def refuse_rename(src, dst):
            raise PermissionError("rename not permitted")

        monkeypatch.setattr("mindvault.recovery.os.replace", refuse_rename)

        mind = await Mind.open(project_dir=temp_dir)
        await mind.remember(ObservationType.DISCOVERY, "Fresh", "store")

        assert list_backups(memory_path.resolve()) == []
        assert (await mind.stats()).total_observations == 1

    def test_concurrent_processes(self, temp_dir):
        script = textwrap.dedent(
            """
            import asyncio
            import sys

            from mindvault.models import ObservationType
            from mindvault.store import Mind

            async def main():
                mind = await Mind.open(project_dir=sys.argv[1])
                for i in range(5):
                    await mind.remember(ObservationType.DISCOVERY, f"worker {sys.argv[2]} item {i}", "x")

            asyncio.run(main())
            """
        )
        env = {**os.environ, "PYTHONPATH": os.pathsep.join(filter(None, [str(REPO_ROOT), os.environ.get("PYTHONPATH")]))}

        workers = [
            subprocess.Popen([sys.executable, "-c", script, str(temp_dir), str(n)], env=env, stderr=subprocess.PIPE)
            for n in range(3)
        ]
        for worker in workers:
            _, stderr = worker.communicate(timeout=120)
            assert worker.returncode == 0, stderr.decode()

        engine = DuckDBEngine.use("basic", temp_dir / ".claude" / "mind.mv2")
        titles = {frame.title for frame in engine.timeline(limit=100)}

        assert len(titles) == 15
        assert "[discovery] worker 2 item 4" in titles
