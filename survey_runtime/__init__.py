"""
Survey Draw Runtime — Session & Persistence Layer

Wraps the Survey Draw Kernel with history persistence:
JSON file (primary) or PostgreSQL, mirrored into a sqlite3 cache.
"""

from .config import RuntimeConfig
from .file_history import FileHistoryBackend, HistoryFormatError
from .history_repository import HistoryRepository
from .history_store import HistoryStore, HistoryStoreError, MemoryHistoryBackend
from .session import DrawPhase, DrawSession, SessionStateError
from .observability import SessionMetrics, collect_metrics

__all__ = [
    "RuntimeConfig",
    "FileHistoryBackend",
    "HistoryFormatError",
    "HistoryRepository",
    "HistoryStore",
    "HistoryStoreError",
    "MemoryHistoryBackend",
    "DrawPhase",
    "DrawSession",
    "SessionStateError",
    "SessionMetrics",
    "collect_metrics",
]
