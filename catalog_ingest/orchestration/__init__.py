"""
Upload orchestration: queue-or-inline routing, staging and result storage.
"""

from .orchestrator import UploadOrchestrator, UploadOutcome, UploadState
from .results_store import ResultsStore
from .staging import StagingArea

__all__ = [
    "UploadOrchestrator",
    "UploadOutcome",
    "UploadState",
    "ResultsStore",
    "StagingArea",
]
