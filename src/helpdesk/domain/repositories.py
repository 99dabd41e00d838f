"""
Repository Interfaces for the Helpdesk Knowledge Agent.

These are abstract base classes defining the contracts that infrastructure
implementations must fulfill. The application layer depends only on these
interfaces, so tests can substitute deterministic stubs for every provider.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, List, Optional, Sequence

from .value_objects import (
    ChatMessage,
    DocumentationPage,
    GenerationOptions,
    IntentCategory,
    TicketDetails,
)


class IEmbeddingProvider(ABC):
    """
    Abstract interface for text embeddings.

    Vectors have a fixed dimension per deployment; no cross-call
    determinism is assumed.
    """

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """
        Get embedding vector for text.

        Args:
            text: Text to embed.

        Returns:
            Embedding vector.
        """
        pass


class IGenerationProvider(ABC):
    """
    Abstract interface for chat-style text generation.

    Used both for final answers and for the one-word intent fallback.
    """

    @abstractmethod
    async def generate(
        self,
        messages: Sequence[ChatMessage],
        options: Optional[GenerationOptions] = None,
    ) -> str:
        """
        Generate a completion for an ordered list of messages.

        Args:
            messages: Conversation, system message first.
            options: Token budget and temperature.

        Returns:
            Generated text.
        """
        pass

    async def stream(
        self,
        messages: Sequence[ChatMessage],
        options: Optional[GenerationOptions] = None,
    ) -> AsyncIterator[str]:
        """Stream the completion as text chunks (default: one chunk)."""
        yield await self.generate(messages, options)


class IIntentFallback(ABC):
    """Last-resort classifier consulted when no deterministic rule fires."""

    @abstractmethod
    async def classify(self, text: str) -> IntentCategory:
        """Return a category; implementations map anything unparseable to GENERAL."""
        pass


class ITicketClient(ABC):
    """
    Abstract interface for the ticket system.

    Calls are synchronous; callers run them in an executor.
    """

    @abstractmethod
    def get_ticket(self, ticket_id: str) -> Optional[TicketDetails]:
        """
        Fetch a single ticket.

        Args:
            ticket_id: Validated ticket key (e.g. "MT-12345").

        Returns:
            TicketDetails, or None when the ticket does not exist.
        """
        pass

    @abstractmethod
    def search(self, query_language: str, max_results: int = 50) -> List[TicketDetails]:
        """
        Search tickets with the ticket system's query language.

        Args:
            query_language: Query expression.
            max_results: Page size.

        Returns:
            One page of tickets.
        """
        pass


class IDocumentationClient(ABC):
    """Abstract interface for the documentation system (synchronous)."""

    @abstractmethod
    def search(self, query: str, top_results: int = 5) -> List[DocumentationPage]:
        """
        Search documentation pages.

        Args:
            query: Free-text query.
            top_results: Maximum number of pages.

        Returns:
            Ranked list of pages.
        """
        pass


class IBlobStore(ABC):
    """
    Named-blob JSON persistence.

    A missing blob loads as an empty collection; save overwrites atomically.
    """

    @abstractmethod
    def load(self, name: str, default: Any = None) -> Any:
        """Load a blob, returning `default` (empty list if None) when it does not exist."""
        pass

    @abstractmethod
    def save(self, name: str, data: Any) -> None:
        """Overwrite the named blob."""
        pass

    @abstractmethod
    def exists(self, name: str) -> bool:
        pass


class ICodeDirectory(ABC):
    """Lookup dictionary of known structured codes (transactions, roles, positions)."""

    @abstractmethod
    async def ensure_initialized(self) -> None:
        pass

    @abstractmethod
    def has_transaction(self, code: str) -> bool:
        pass

    @abstractmethod
    def has_role(self, code: str) -> bool:
        pass

    @abstractmethod
    def has_position(self, code: str) -> bool:
        pass
