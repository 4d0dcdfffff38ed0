"""Storage engines for memory files."""

from mindvault.engine.base import DEFAULT_PROFILE, EngineStats, Frame, MemoryEngine

__all__ = ["DEFAULT_PROFILE", "EngineStats", "Frame", "MemoryEngine", "get_default_engine"]


def get_default_engine() -> type:
    """The DuckDB engine class, imported on first use."""
    try:
        from mindvault.engine.duckdb_engine import DuckDBEngine
    except ImportError as e:
        raise ImportError("duckdb is required for the default memory engine. Install with: pip install duckdb") from e
    return DuckDBEngine
