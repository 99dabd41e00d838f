# Infrastructure Layer
"""
Infrastructure implementations for external systems.

This layer contains concrete implementations of the repository interfaces
defined in the domain layer.
"""

from .blob_store import InMemoryBlobStore, JsonFileBlobStore
from .document_store import DocumentStore, TicketSolutionStore
from .feedback import FeedbackRepository
from .response_cache import ResponseCache

__all__ = [
    "InMemoryBlobStore",
    "JsonFileBlobStore",
    "DocumentStore",
    "TicketSolutionStore",
    "FeedbackRepository",
    "ResponseCache",
]
