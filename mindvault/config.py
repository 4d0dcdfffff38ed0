"""mindvault configuration management."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_MEMORY_PATH = ".claude/mind.mv2"
CONFIG_FILENAME = "mind.json"
PROJECT_DIR_ENV = "CLAUDE_PROJECT_DIR"


class MindConfig(BaseModel):
    """Memory store configuration.

    Field names use snake_case; the camelCase spellings used by host plugins
    (``memoryPath``, ``maxContextTokens``...) are accepted as aliases.
    """

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    memory_path: str = Field(default=DEFAULT_MEMORY_PATH, alias="memoryPath")
    max_context_observations: int = Field(default=20, ge=0, alias="maxContextObservations")
    max_context_tokens: int = Field(default=2000, ge=0, alias="maxContextTokens")
    auto_compress: bool = Field(default=True, alias="autoCompress")
    min_confidence: float = Field(default=0.6, ge=0.0, le=1.0, alias="minConfidence")
    debug: bool = False

    @field_validator("memory_path", mode="before")
    @classmethod
    def coerce_path(cls, v):
        if isinstance(v, Path):
            return str(v)
        return v

    def merged(self, **overrides: Any) -> "MindConfig":
        """Return a copy with overrides applied (aliases accepted)."""
        aliases = {field.alias: name for name, field in MindConfig.model_fields.items() if field.alias}
        data = self.model_dump()
        data.update({aliases.get(k, k): v for k, v in overrides.items() if v is not None})
        return MindConfig.model_validate(data)


def get_project_dir() -> Path:
    """Project root supplied by the host, falling back to the cwd."""
    return Path(os.environ.get(PROJECT_DIR_ENV) or os.getcwd())


def get_config_path(project_dir: Union[str, Path]) -> Path:
    return Path(project_dir) / ".claude" / CONFIG_FILENAME


def load_config(
    project_dir: Optional[Union[str, Path]] = None,
    path: Optional[Path] = None,
    **overrides: Any,
) -> MindConfig:
    """Load configuration from ``<project>/.claude/mind.json`` and apply overrides.

    Args:
        project_dir: Project root. Defaults to ``get_project_dir()``
        path: Explicit config file path (takes precedence over project_dir)
        **overrides: Values that win over the file

    Returns:
        MindConfig. Defaults are used when the file is missing or malformed.
    """
    if path is None:
        path = get_config_path(Path(project_dir) if project_dir else get_project_dir())

    config = MindConfig()
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                config = MindConfig.model_validate(json.load(f))
        except (json.JSONDecodeError, ValidationError, OSError) as e:
            logger.warning("Ignoring malformed config at %s: %s", path, e)

    return config.merged(**overrides) if overrides else config


def resolve_memory_path(config: MindConfig, project_dir: Optional[Union[str, Path]] = None) -> Path:
    """Absolute memory file path. Relative paths resolve against the project root."""
    base = project_dir or get_project_dir()
    return (Path(base) / config.memory_path).resolve()
