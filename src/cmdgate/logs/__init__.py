"""Command log storage, truncation and retrieval."""

from cmdgate.logs.line_range import LineRangeProcessor
from cmdgate.logs.retrieval import OutputRetriever, RetrievedOutput
from cmdgate.logs.search import SearchProcessor, SearchResult
from cmdgate.logs.storage import CommandLogEntry, LogFilter, LogStorage, StorageStats
from cmdgate.logs.truncation import TruncatedOutput, truncate_output

__all__ = [
    "CommandLogEntry",
    "LineRangeProcessor",
    "LogFilter",
    "LogStorage",
    "OutputRetriever",
    "RetrievedOutput",
    "SearchProcessor",
    "SearchResult",
    "StorageStats",
    "TruncatedOutput",
    "truncate_output",
]
