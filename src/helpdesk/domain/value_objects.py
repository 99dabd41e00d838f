"""
Value Objects for the Helpdesk Knowledge Agent.

Value Objects represent a concept by its attributes: messages exchanged
with providers, per-intent search weights, scored retrieval hits and the
final agent response.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .entities import SourceDocument, SourceKind, TicketSolution

Retrievable = Union[SourceDocument, TicketSolution]


class IntentCategory(str, Enum):
    """Closed set of query intents used to bias retrieval."""

    TICKET_LOOKUP = "TICKET_LOOKUP"
    NETWORK = "NETWORK"
    SAP = "SAP"
    TICKET_REQUEST = "TICKET_REQUEST"
    HOW_TO = "HOW_TO"
    LOOKUP = "LOOKUP"
    TROUBLESHOOTING = "TROUBLESHOOTING"
    GENERAL = "GENERAL"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "IntentCategory":
        """Map a free-form label (e.g. an LLM reply) to a category, GENERAL if unknown."""
        if not label:
            return cls.GENERAL
        token = label.strip().strip(".:;,!\"'`").upper().replace("-", "_").replace(" ", "_")
        try:
            return cls(token)
        except ValueError:
            return cls.GENERAL


@dataclass(frozen=True)
class ChatMessage:
    """One conversation turn."""

    role: str  # "system", "user" or "assistant"
    text: str

    def to_provider(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.text}


@dataclass(frozen=True)
class GenerationOptions:
    """Options passed to the generation provider."""

    max_tokens: int = 4096
    temperature: float = 0.3


@dataclass(frozen=True)
class SearchWeights:
    """
    Per-source emphasis for one intent.

    Multipliers re-scale already ranked results; the top-N budgets bound how
    many items of a source reach the context.
    """

    ticket_forms: float = 1.0
    documentation: float = 1.0
    articles: float = 1.0
    reference: float = 1.0
    solutions: float = 1.0
    ticket_form_top_n: int = 5
    documentation_top_n: int = 5

    def weight_for(self, kind: SourceKind) -> float:
        return {
            SourceKind.TICKET_FORM: self.ticket_forms,
            SourceKind.DOCUMENTATION: self.documentation,
            SourceKind.ARTICLE: self.articles,
            SourceKind.REFERENCE: self.reference,
            SourceKind.SOLUTION: self.solutions,
        }[kind]


@dataclass(frozen=True)
class DocumentationPage:
    """A page returned by the documentation system."""

    title: str
    url: Optional[str] = None
    body_excerpt: str = ""
    space_key: str = ""

    @property
    def id(self) -> str:
        return self.url or self.title


@dataclass(frozen=True)
class TicketDetails:
    """Structured ticket fetched from the ticket system."""

    ticket_id: str
    summary: str
    status: str = ""
    description: str = ""
    priority: str = ""
    assignee: Optional[str] = None
    reporter: Optional[str] = None
    created: Optional[str] = None
    updated: Optional[str] = None
    url: Optional[str] = None
    comments: List[str] = field(default_factory=list)

    def render(self) -> str:
        lines = [f"TICKET {self.ticket_id}: {self.summary}"]
        if self.status:
            lines.append(f"  Status: {self.status}")
        if self.priority:
            lines.append(f"  Priority: {self.priority}")
        if self.assignee:
            lines.append(f"  Assignee: {self.assignee}")
        if self.created:
            lines.append(f"  Created: {self.created}")
        if self.updated:
            lines.append(f"  Updated: {self.updated}")
        if self.description:
            lines.append(f"  Description: {self.description}")
        for comment in self.comments[-3:]:
            lines.append(f"  Comment: {comment}")
        if self.url:
            lines.append(f"  Link: {self.url}")
        return "\n".join(lines)


@dataclass
class ScoredDocument:
    """
    A retrieval hit with its diagnostics.

    `score` is the value used for ordering (fused relevance, possibly
    weighted); the component scores are kept for debugging and weighting.
    """

    item: Retrievable
    score: float
    rank: int = 0
    lexical_score: float = 0.0
    semantic_score: float = 0.0
    fused_score: float = 0.0
    lexical_rank: Optional[int] = None
    semantic_rank: Optional[int] = None

    @property
    def doc_id(self) -> str:
        return self.item.id

    def scaled(self, factor: float) -> "ScoredDocument":
        return replace(self, score=self.score * factor)


@dataclass
class AgentResponse:
    """Answer returned to the caller of the pipeline."""

    answer: str
    success: bool = True
    from_cache: bool = False
    low_confidence: bool = False
    intent: IntentCategory = IntentCategory.GENERAL
    best_score: float = 0.0
    sources: List[str] = field(default_factory=list)
    context_document_ids: List[str] = field(default_factory=list)
    ticket_ids: List[str] = field(default_factory=list)
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
