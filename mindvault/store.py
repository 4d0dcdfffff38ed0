"""The memory store: lifecycle of the memory file and lock-guarded operations."""

import asyncio
import json
import logging
import re
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, List, Optional, Type, TypeVar, Union

from mindvault.config import MindConfig, load_config, resolve_memory_path
from mindvault.engine import DEFAULT_PROFILE, Frame, MemoryEngine, get_default_engine
from mindvault.exceptions import CorruptStoreError, OversizedStoreError
from mindvault.locking import lock_path_for, with_lock
from mindvault.models import (
    Metadata,
    MindContext,
    MindStats,
    Observation,
    ObservationType,
    SearchResult,
    SessionSummary,
    estimate_tokens,
    generate_id,
    now_ms,
)
from mindvault.recovery import (
    BACKUP_KEEP_COUNT,
    MAX_FILE_SIZE_BYTES,
    backup_memory_file,
    is_corruption_error,
    prune_backups,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

NO_ANSWER = "No relevant memories found."
ASK_MATCHES = 5
SNIPPET_FALLBACK_CHARS = 200
SUMMARY_FALLBACK_CHARS = 100

# Timestamps below this (2100-01-01 in seconds) are in seconds, not milliseconds
SECONDS_TIMESTAMP_CEILING = 4102444800

_TITLE_PREFIX_RE = re.compile(r"^\[.*?\]\s*")


def _normalize_timestamp(value: Any) -> int:
    try:
        ts = float(value or 0)
    except (TypeError, ValueError):
        return 0
    if 0 < ts < SECONDS_TIMESTAMP_CEILING:
        ts *= 1000
    return int(ts)


def _frame_summary(frame: Frame, fallback_to_preview: bool = False) -> str:
    if frame.title:
        return _TITLE_PREFIX_RE.sub("", frame.title, count=1)
    if fallback_to_preview and frame.preview:
        return frame.preview[:SUMMARY_FALLBACK_CHARS]
    return ""


def _frame_to_observation(frame: Frame, for_timeline: bool = False) -> Observation:
    """Rebuild an observation from the metadata written by ``remember``."""
    metadata = frame.metadata or {}
    if for_timeline:
        timestamp = _normalize_timestamp(metadata.get("timestamp") or frame.timestamp)
        label = frame.label or metadata.get("type")
    else:
        timestamp = _normalize_timestamp(metadata.get("timestamp"))
        label = frame.label

    tool = metadata.get("tool")
    content = frame.text or (frame.preview if for_timeline else None) or ""
    return Observation(
        id=str(metadata.get("observationId") or frame.frame_id),
        timestamp=timestamp,
        type=ObservationType.parse(label),
        tool=str(tool) if tool else None,
        summary=_frame_summary(frame, fallback_to_preview=for_timeline),
        content=content,
        metadata=metadata,
    )


def _open_engine(engine_cls: Type[MemoryEngine], memory_path: Path) -> MemoryEngine:
    """Open or create the memory file. Must run under the file lock.

    Raises:
        CorruptStoreError: The file exists but is oversized or unreadable
        EngineError: Any other engine failure
    """
    if not memory_path.exists():
        return engine_cls.create(memory_path, DEFAULT_PROFILE)

    size = memory_path.stat().st_size
    if size > MAX_FILE_SIZE_BYTES:
        raise OversizedStoreError(memory_path, size, MAX_FILE_SIZE_BYTES)

    try:
        return engine_cls.use(DEFAULT_PROFILE, memory_path)
    except Exception as e:
        if is_corruption_error(e):
            raise CorruptStoreError(memory_path, str(e), cause=e) from e
        raise


def _open_or_recover(engine_cls: Type[MemoryEngine], memory_path: Path) -> MemoryEngine:
    try:
        return _open_engine(engine_cls, memory_path)
    except CorruptStoreError as e:
        # Oversized files included: a file that can't be moved aside is deleted
        logger.warning("%s, creating fresh memory", e)
        backup_memory_file(memory_path, delete_on_failure=True)
    return engine_cls.create(memory_path, DEFAULT_PROFILE)


class Mind:
    """Lock-guarded access to one memory file.

    Use ``Mind.open()`` rather than the constructor: it creates, validates and
    if necessary recovers the file before handing out an instance.
    """

    def __init__(self, engine: MemoryEngine, config: MindConfig, memory_path: Path):
        self.engine = engine
        self.config = config
        self.memory_path = memory_path
        self.session_id = generate_id()
        self.started_at = now_ms()
        self.observation_count = 0
        self._initialized = False

    @classmethod
    async def open(
        cls,
        config: Optional[MindConfig] = None,
        *,
        project_dir: Optional[Union[str, Path]] = None,
        engine_cls: Optional[Type[MemoryEngine]] = None,
        **overrides: Any,
    ) -> "Mind":
        """Open or create the memory file and return a ready store.

        Args:
            config: Base configuration. Loaded from the project if None
            project_dir: Root that relative memory paths resolve against
            engine_cls: Storage engine class (DuckDB by default)
            **overrides: Config values applied on top (e.g. memory_path="...")

        Raises:
            EngineError: If the file can't be opened for a reason other than corruption
            LockTimeoutError: If the file lock can't be acquired
        """
        if config is None:
            config = load_config(project_dir, **overrides)
        elif overrides:
            config = config.merged(**overrides)
        if engine_cls is None:
            engine_cls = get_default_engine()

        if config.debug:
            logging.getLogger("mindvault").setLevel(logging.DEBUG)

        memory_path = resolve_memory_path(config, project_dir)
        memory_path.parent.mkdir(parents=True, exist_ok=True)

        engine = await with_lock(
            lock_path_for(memory_path),
            lambda: asyncio.to_thread(_open_or_recover, engine_cls, memory_path),
        )
        prune_backups(memory_path, BACKUP_KEEP_COUNT)

        mind = cls(engine, config, memory_path)
        mind._initialized = True
        logger.debug("Opened %s (session %s)", memory_path, mind.session_id)
        return mind

    async def _locked(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a blocking engine call in a worker thread while holding the file lock."""
        return await with_lock(self.lock_path, lambda: asyncio.to_thread(fn, *args, **kwargs))

    @property
    def lock_path(self) -> Path:
        return lock_path_for(self.memory_path)

    async def remember(
        self,
        type: ObservationType,
        summary: str,
        content: str,
        tool: Optional[str] = None,
        metadata: Optional[Metadata] = None,
    ) -> str:
        """Persist an observation.

        Args:
            type: Observation type
            summary: Short title
            content: Body text (compress it first if it comes from a tool)
            tool: Originating tool name
            metadata: Extra metadata; ``sessionId`` is always set to this store's session

        Returns:
            Engine-assigned frame id
        """
        observation = Observation(
            id=generate_id(),
            timestamp=now_ms(),
            type=ObservationType(type),
            tool=tool,
            summary=summary,
            content=content,
            metadata={**(metadata or {}), "sessionId": self.session_id},
        )

        frame_id = await self._locked(
            self.engine.put,
            title=observation.headline,
            label=observation.type.value,
            text=observation.content,
            metadata={
                "observationId": observation.id,
                "timestamp": observation.timestamp,
                "tool": observation.tool,
                **observation.metadata,
            },
            tags=[tag for tag in (observation.type.value, observation.tool) if tag],
        )
        self.observation_count += 1
        logger.debug("Remembered: %s", observation.summary)
        return frame_id

    def _search_unlocked(self, query: str, limit: int) -> List[SearchResult]:
        frames = self.engine.find(query, k=limit, mode="lex")
        return [
            SearchResult(
                observation=_frame_to_observation(frame),
                score=frame.score or 0.0,
                snippet=frame.snippet or (frame.text or "")[:SNIPPET_FALLBACK_CHARS],
            )
            for frame in frames
        ]

    async def search(self, query: str, limit: int = 10) -> List[SearchResult]:
        """Lexical search, most relevant first."""
        return await self._locked(self._search_unlocked, query, limit)

    async def ask(self, question: str) -> str:
        answer = await self._locked(self.engine.ask, question, k=ASK_MATCHES, mode="lex")
        return answer or NO_ANSWER

    def _context_unlocked(self, query: Optional[str]) -> MindContext:
        frames = self.engine.timeline(limit=self.config.max_context_observations, reverse=True)
        recent = [_frame_to_observation(frame, for_timeline=True) for frame in frames]

        relevant: List[Observation] = []
        if query:
            relevant = [result.observation for result in self._search_unlocked(query, 10)]

        # Whole observations only: stop at the first one that would overflow the budget
        token_count = 0
        included: List[Observation] = []
        for observation in recent:
            tokens = estimate_tokens(observation.headline)
            if token_count + tokens > self.config.max_context_tokens:
                break
            token_count += tokens
            included.append(observation)

        return MindContext(
            recent_observations=included,
            relevant_memories=relevant,
            session_summaries=[],
            token_count=token_count,
        )

    async def get_context(self, query: Optional[str] = None) -> MindContext:
        """Recent observations within the token budget, plus search hits for ``query``."""
        return await self._locked(self._context_unlocked, query)

    async def save_session_summary(
        self,
        key_decisions: Optional[List[str]] = None,
        files_modified: Optional[List[str]] = None,
        summary: str = "",
    ) -> str:
        """Persist a summary of this session. Stored as JSON, never compressed."""
        session_summary = SessionSummary(
            id=self.session_id,
            start_time=self.started_at,
            end_time=now_ms(),
            observation_count=self.observation_count,
            key_decisions=key_decisions or [],
            files_modified=files_modified or [],
            summary=summary,
        )
        data = session_summary.model_dump()

        return await self._locked(
            self.engine.put,
            title=f"Session Summary: {datetime.now().strftime('%Y-%m-%d')}",
            label=ObservationType.SESSION.value,
            text=json.dumps(data, indent=2),
            metadata={**data, "sessionId": self.session_id},
            tags=["session", "summary"],
        )

    def _stats_unlocked(self) -> MindStats:
        engine_stats = self.engine.stats()
        oldest = self.engine.timeline(limit=1, reverse=False)
        newest = self.engine.timeline(limit=1, reverse=True)

        # Session and type aggregates need every frame
        frames = self.engine.timeline(limit=engine_stats.frame_count, reverse=False) if engine_stats.frame_count else []
        sessions = {frame.metadata.get("sessionId") for frame in frames if frame.metadata.get("sessionId")}
        type_counts = Counter(frame.label or "observation" for frame in frames)

        def first_timestamp(found: List[Frame]) -> int:
            if not found:
                return 0
            return _normalize_timestamp(found[0].metadata.get("timestamp") or found[0].timestamp)

        return MindStats(
            total_observations=engine_stats.frame_count,
            total_sessions=len(sessions),
            oldest_memory=first_timestamp(oldest),
            newest_memory=first_timestamp(newest),
            file_size=engine_stats.size_bytes,
            top_types=dict(type_counts.most_common()),
        )

    async def stats(self) -> MindStats:
        return await self._locked(self._stats_unlocked)

    def get_session_id(self) -> str:
        return self.session_id

    def get_memory_path(self) -> Path:
        return self.memory_path

    def is_initialized(self) -> bool:
        return self._initialized
