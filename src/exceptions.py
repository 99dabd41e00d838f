"""
Domain-specific exceptions for the Helpdesk Knowledge Agent.

Provides fine-grained exception types so that call sites can decide
which failures degrade to empty results and which must be rejected.
"""

from typing import Optional


class HelpdeskAgentError(Exception):
    """Base exception for all Helpdesk Knowledge Agent errors."""

    pass


# ============================================================================
# Configuration Exceptions
# ============================================================================


class ConfigurationError(HelpdeskAgentError):
    """Configuration-related error."""

    pass


class ConfigurationMissingError(ConfigurationError):
    """A required setting or credential is not configured."""

    def __init__(self, key_name: str):
        self.key_name = key_name
        super().__init__(f"Missing required configuration: {key_name}")


# ============================================================================
# Provider Exceptions
# ============================================================================


class ProviderError(HelpdeskAgentError):
    """Error occurred while talking to an external provider."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class ProviderTimeoutError(ProviderError):
    """External provider did not answer in time."""

    pass


class ProviderFailureError(ProviderError):
    """External provider answered with an error."""

    pass


class MalformedResponseError(HelpdeskAgentError):
    """Provider answered, but the payload could not be interpreted."""

    def __init__(self, message: str, raw: Optional[str] = None):
        self.raw = raw
        super().__init__(message)


# ============================================================================
# Validation Exceptions
# ============================================================================


class ValidationFailureError(HelpdeskAgentError):
    """Input rejected before any external call was made."""

    def __init__(self, value: str, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid value '{value}': {reason}")


# ============================================================================
# Storage Exceptions
# ============================================================================


class StoreError(HelpdeskAgentError):
    """Error occurred in a knowledge store."""

    pass


class BlobStoreError(StoreError):
    """A named blob could not be read or written."""

    def __init__(self, blob_name: str, reason: str):
        self.blob_name = blob_name
        super().__init__(f"Blob '{blob_name}': {reason}")
