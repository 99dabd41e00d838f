"""
Helpdesk-specific exceptions.

Re-exports from the main exceptions module for convenience,
plus any retrieval-specific additions.
"""

from ..exceptions import (
    BlobStoreError,
    ConfigurationError,
    ConfigurationMissingError,
    HelpdeskAgentError,
    MalformedResponseError,
    ProviderError,
    ProviderFailureError,
    ProviderTimeoutError,
    StoreError,
    ValidationFailureError,
)

__all__ = [
    "HelpdeskAgentError",
    "ConfigurationError",
    "ConfigurationMissingError",
    "ProviderError",
    "ProviderTimeoutError",
    "ProviderFailureError",
    "MalformedResponseError",
    "ValidationFailureError",
    "StoreError",
    "BlobStoreError",
    "DocumentNotFoundError",
    "StoreNotInitializedError",
]


class DocumentNotFoundError(StoreError):
    """Requested document or solution was not found."""

    def __init__(self, doc_id: str):
        self.doc_id = doc_id
        super().__init__(f"Document not found: {doc_id}")


class StoreNotInitializedError(StoreError):
    """A store was read before ensure_initialized() completed."""

    def __init__(self, store_name: str):
        self.store_name = store_name
        super().__init__(f"Store '{store_name}' is not initialized")
