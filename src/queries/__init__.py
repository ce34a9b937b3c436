"""Record query package."""

from src.queries.executor import QueryExecutor

__all__ = ["QueryExecutor"]
