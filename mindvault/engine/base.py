"""Storage engine interface.

The store never touches the memory file's format directly. It goes through a
``MemoryEngine``: a key/value log of frames with lexical search, a
question-answering mode and a timeline. Engines report failures as
``EngineError`` with the native message preserved, which is what corruption
detection matches against.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

DEFAULT_PROFILE = "basic"


class Frame(BaseModel):
    """One stored record as returned by an engine."""

    frame_id: str
    title: Optional[str] = None
    label: Optional[str] = None
    text: Optional[str] = None
    preview: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)
    score: Optional[float] = None
    snippet: Optional[str] = None
    timestamp: Optional[float] = Field(default=None, description="Engine write time, seconds since epoch")


class EngineStats(BaseModel):
    frame_count: int = 0
    size_bytes: int = 0


class MemoryEngine(ABC):
    """A handle on one memory file."""

    def __init__(self, path: Path, profile: str = DEFAULT_PROFILE):
        self.path = Path(path)
        self.profile = profile

    @classmethod
    @abstractmethod
    def create(cls, path: Path, profile: str = DEFAULT_PROFILE) -> "MemoryEngine":
        """Create a new, empty memory file at ``path``."""

    @classmethod
    @abstractmethod
    def use(cls, profile: str, path: Path) -> "MemoryEngine":
        """Open and validate an existing memory file.

        Raises:
            EngineError: If the file cannot be opened
        """

    @abstractmethod
    def put(
        self,
        title: str,
        label: str,
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
        tags: Optional[List[str]] = None,
    ) -> str:
        """Append a frame. Returns the engine-assigned frame id."""

    @abstractmethod
    def find(self, query: str, k: int = 10, mode: str = "lex") -> List[Frame]:
        """Frames matching ``query``, most relevant first."""

    @abstractmethod
    def ask(self, question: str, k: int = 5, mode: str = "lex") -> str:
        """Answer text composed from the best matches, or an empty string."""

    @abstractmethod
    def timeline(self, limit: int = 20, reverse: bool = False) -> List[Frame]:
        """Frames in write order (newest first when ``reverse``)."""

    @abstractmethod
    def stats(self) -> EngineStats:
        pass
