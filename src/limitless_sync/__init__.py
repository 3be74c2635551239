"""Public API for limitless_sync package."""

__version__ = "0.8.0"

from .agent import CredentialCheck, SyncAgent
from .aggregator import DayAggregator
from .api import ApiClient
from .config import Settings, load_settings, save_settings
from .hashes import ChangeHashTracker
from .llm import LlmClient
from .scheduler import SyncMode, SyncResult, SyncScheduler
from .summarize import SummarizationPipeline
from .writer import DocumentWriter

__all__ = [
    "ApiClient",
    "ChangeHashTracker",
    "CredentialCheck",
    "DayAggregator",
    "DocumentWriter",
    "LlmClient",
    "Settings",
    "SummarizationPipeline",
    "SyncAgent",
    "SyncMode",
    "SyncResult",
    "SyncScheduler",
    "load_settings",
    "save_settings",
]
