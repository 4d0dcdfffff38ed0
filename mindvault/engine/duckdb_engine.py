"""DuckDB-backed storage engine.

Each memory file is a single DuckDB database. A connection is opened for every
call and closed right after, so no process keeps the file open between locked
sections and other processes can take their turn.
"""

import json
import logging
import re
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import duckdb

from mindvault.engine.base import DEFAULT_PROFILE, EngineStats, Frame, MemoryEngine
from mindvault.exceptions import EngineError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1"
PREVIEW_CHARS = 120
SNIPPET_CHARS = 200

SCHEMA_SQL = """
    CREATE SEQUENCE IF NOT EXISTS frames_id_seq START 1;
    CREATE TABLE IF NOT EXISTS frames (
        frame_id BIGINT PRIMARY KEY,
        created_at DOUBLE NOT NULL,
        title VARCHAR,
        label VARCHAR,
        text VARCHAR,
        tags VARCHAR[],
        metadata VARCHAR
    );
    CREATE TABLE IF NOT EXISTS mind_info (
        key VARCHAR PRIMARY KEY,
        value VARCHAR
    );
"""

FRAME_COLUMNS = "frame_id, created_at, title, label, text, tags, metadata"

_TERM_RE = re.compile(r"\w+")


def _terms(query: str) -> List[str]:
    return list(dict.fromkeys(term.lower() for term in _TERM_RE.findall(query)))


def _snippet(text: str, terms: List[str]) -> str:
    """Window of text around the first matched term."""
    lowered = text.lower()
    positions = [pos for pos in (lowered.find(term) for term in terms) if pos >= 0]
    if not positions:
        return text[:SNIPPET_CHARS]
    start = max(0, min(positions) - SNIPPET_CHARS // 4)
    return text[start : start + SNIPPET_CHARS]


def _row_to_frame(row) -> Frame:
    frame_id, created_at, title, label, text, tags, metadata = row
    try:
        parsed = json.loads(metadata) if metadata else {}
    except ValueError:
        parsed = {}
    return Frame(
        frame_id=str(frame_id),
        timestamp=created_at,
        title=title,
        label=label,
        text=text,
        preview=(text or "")[:PREVIEW_CHARS],
        tags=list(tags or []),
        metadata=parsed if isinstance(parsed, dict) else {},
    )


class DuckDBEngine(MemoryEngine):
    """Frames stored in a DuckDB table with substring-based lexical search."""

    @contextmanager
    def _connect(self) -> Iterator["duckdb.DuckDBPyConnection"]:
        try:
            conn = duckdb.connect(str(self.path))
        except duckdb.Error as e:
            raise EngineError(str(e)) from e
        try:
            yield conn
        except duckdb.Error as e:
            raise EngineError(str(e)) from e
        finally:
            conn.close()

    @classmethod
    def create(cls, path: Path, profile: str = DEFAULT_PROFILE) -> "DuckDBEngine":
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        # A write-ahead log left by a replaced database would be replayed into the new one
        wal_path = path.with_name(f"{path.name}.wal")
        if wal_path.exists():
            wal_path.unlink()

        engine = cls(path, profile)
        with engine._connect() as conn:
            conn.execute(SCHEMA_SQL)
            conn.execute(
                "INSERT OR REPLACE INTO mind_info VALUES ('profile', ?), ('schema_version', ?)",
                [profile, SCHEMA_VERSION],
            )
        logger.debug("Created memory file %s (profile=%s)", path, profile)
        return engine

    @classmethod
    def use(cls, profile: str, path: Path) -> "DuckDBEngine":
        path = Path(path)
        if not path.exists():
            raise EngineError(f"Memory file not found: {path}")
        if path.stat().st_size == 0:
            raise EngineError(f"Invalid memory file: {path} is empty")

        engine = cls(path, profile)
        with engine._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM information_schema.tables WHERE table_name IN ('frames', 'mind_info')"
            ).fetchone()
            if not row or row[0] < 2:
                raise EngineError(f"Memory file validation failed: {path} is missing the frames table")
        return engine

    def put(
        self,
        title: str,
        label: str,
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
        tags: Optional[List[str]] = None,
    ) -> str:
        with self._connect() as conn:
            row = conn.execute(
                "INSERT INTO frames (frame_id, created_at, title, label, text, tags, metadata) "
                "VALUES (nextval('frames_id_seq'), ?, ?, ?, ?, ?, ?) RETURNING frame_id",
                [time.time(), title, label, text, list(tags or []), json.dumps(metadata or {}, default=str)],
            ).fetchone()
        return str(row[0])

    def find(self, query: str, k: int = 10, mode: str = "lex") -> List[Frame]:
        """Rank frames by occurrences of the query's terms in title and text.

        Only lexical matching is implemented; ``mode`` is accepted for interface
        compatibility.
        """
        terms = _terms(query)
        if not terms or k <= 0:
            return []

        haystack = "lower(coalesce(title, '') || ' ' || coalesce(text, ''))"
        where_sql = " OR ".join([f"contains({haystack}, ?)"] * len(terms))

        with self._connect() as conn:
            rows = conn.execute(f"SELECT {FRAME_COLUMNS} FROM frames WHERE {where_sql}", terms).fetchall()

        scored = []
        for row in rows:
            frame = _row_to_frame(row)
            content = f"{frame.title or ''} {frame.text or ''}".lower()
            score = float(sum(content.count(term) for term in terms))
            scored.append((score, int(frame.frame_id), frame))

        # Most relevant first, newest first on ties
        scored.sort(key=lambda item: (item[0], item[1]), reverse=True)

        results = []
        for score, _, frame in scored[:k]:
            frame.score = score
            frame.snippet = _snippet(frame.text or "", terms)
            results.append(frame)
        return results

    def ask(self, question: str, k: int = 5, mode: str = "lex") -> str:
        frames = self.find(question, k=k, mode=mode)
        if not frames:
            return ""

        lines = [f"Based on {len(frames)} related memories:"]
        for frame in frames:
            lines.append(f"- {frame.title or frame.label or frame.frame_id}: {frame.snippet}")
        return "\n".join(lines)

    def timeline(self, limit: int = 20, reverse: bool = False) -> List[Frame]:
        order = "DESC" if reverse else "ASC"
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {FRAME_COLUMNS} FROM frames ORDER BY frame_id {order} LIMIT ?",
                [max(limit, 0)],
            ).fetchall()
        return [_row_to_frame(row) for row in rows]

    def stats(self) -> EngineStats:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM frames").fetchone()
        size_bytes = self.path.stat().st_size if self.path.exists() else 0
        return EngineStats(frame_count=row[0] if row else 0, size_bytes=size_bytes)
