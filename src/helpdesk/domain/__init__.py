# Domain Layer
"""
Core domain entities and repository interfaces.
This layer has no external dependencies.
"""

from .entities import (
    CachedResponse,
    FailurePattern,
    FeedbackRecord,
    KeywordSuggestion,
    SourceDocument,
    SourceKind,
    TicketSolution,
)
from .value_objects import (
    AgentResponse,
    ChatMessage,
    DocumentationPage,
    GenerationOptions,
    IntentCategory,
    ScoredDocument,
    SearchWeights,
    TicketDetails,
)
from .repositories import (
    IBlobStore,
    ICodeDirectory,
    IDocumentationClient,
    IEmbeddingProvider,
    IGenerationProvider,
    IIntentFallback,
    ITicketClient,
)

__all__ = [
    "CachedResponse",
    "FailurePattern",
    "FeedbackRecord",
    "KeywordSuggestion",
    "SourceDocument",
    "SourceKind",
    "TicketSolution",
    "AgentResponse",
    "ChatMessage",
    "DocumentationPage",
    "GenerationOptions",
    "IntentCategory",
    "ScoredDocument",
    "SearchWeights",
    "TicketDetails",
    "IBlobStore",
    "ICodeDirectory",
    "IDocumentationClient",
    "IEmbeddingProvider",
    "IGenerationProvider",
    "IIntentFallback",
    "ITicketClient",
]
