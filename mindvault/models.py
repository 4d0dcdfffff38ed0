"""Pydantic models for observations, session summaries and store results."""

import math
import secrets
import time
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, JsonValue

# Metadata values are restricted to JSON-representable data
Metadata = Dict[str, JsonValue]


class ObservationType(str, Enum):
    """Semantic category of an observation."""

    DISCOVERY = "discovery"
    DECISION = "decision"
    PROBLEM = "problem"
    SOLUTION = "solution"
    PATTERN = "pattern"
    WARNING = "warning"
    SUCCESS = "success"
    REFACTOR = "refactor"
    BUGFIX = "bugfix"
    FEATURE = "feature"
    SESSION = "session"
    OBSERVATION = "observation"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ObservationType":
        """Map a stored label back to a type, falling back to OBSERVATION."""
        try:
            return cls(value)
        except ValueError:
            return cls.OBSERVATION


def generate_id() -> str:
    """Generate a random 16-character hex identifier."""
    return secrets.token_hex(8)


def now_ms() -> int:
    return int(time.time() * 1000)


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters, rounded up."""
    return math.ceil(len(text) / 4)


class Observation(BaseModel):
    """One recorded unit of memory."""

    id: str = Field(..., description="Locally generated identifier (or engine frame id)")
    timestamp: int = Field(default=0, description="Milliseconds since epoch")
    type: ObservationType = Field(..., description="Semantic category")
    tool: Optional[str] = Field(default=None, description="Originating tool name")
    summary: str = Field(default="", description="Short human-readable title")
    content: str = Field(default="", description="Persisted (possibly compressed) body")
    metadata: Metadata = Field(default_factory=dict)

    @property
    def headline(self) -> str:
        """``[type] summary`` line used for titles and token accounting."""
        return f"[{self.type.value}] {self.summary}"


class SessionSummary(BaseModel):
    """Summary of one process lifetime, stored as JSON text."""

    id: str
    start_time: int
    end_time: int
    observation_count: int = 0
    key_decisions: List[str] = Field(default_factory=list)
    files_modified: List[str] = Field(default_factory=list)
    summary: str = ""


class SearchResult(BaseModel):
    observation: Observation
    score: float = 0.0
    snippet: str = ""


class MindContext(BaseModel):
    """Bundle of recent and relevant observations for a new session."""

    recent_observations: List[Observation] = Field(default_factory=list)
    relevant_memories: List[Observation] = Field(default_factory=list)
    session_summaries: List[SessionSummary] = Field(default_factory=list)
    token_count: int = 0


class MindStats(BaseModel):
    total_observations: int = 0
    total_sessions: int = 0
    oldest_memory: int = 0
    newest_memory: int = 0
    file_size: int = 0
    top_types: Dict[str, int] = Field(default_factory=dict)
