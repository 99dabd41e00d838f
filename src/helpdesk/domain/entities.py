"""
Domain Entities for the Helpdesk Knowledge Agent.

Entities are the core business objects: knowledge documents, harvested
ticket solutions, cached answers and the records of the feedback loop.
Every persisted entity round-trips through plain dicts so that stores can
keep them in named JSON blobs.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

GENERAL_FAILURE_SIGNATURE = "general-failure"
SIGNATURE_DELIMITER = "|"
MAX_SAMPLE_QUERIES = 5


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class SourceKind(str, Enum):
    """Knowledge source a document was retrieved from."""

    TICKET_FORM = "ticket_form"
    DOCUMENTATION = "documentation"
    REFERENCE = "reference"
    ARTICLE = "article"
    SOLUTION = "solution"


@dataclass
class SourceDocument:
    """
    A searchable knowledge item: reference entry, ticket form or article.

    Keywords are kept as one ordered, comma-joined string because that is
    how they are edited and persisted; use keyword_list()/add_keyword()
    to work with them.
    """

    id: str
    name: str
    description: str = ""
    keywords: str = ""
    category: str = ""
    source_file: str = ""
    link: Optional[str] = None
    content: str = ""
    embedding: List[float] = field(default_factory=list)
    additional_data: Dict[str, str] = field(default_factory=dict)
    search_score: float = 0.0  # transient, never persisted

    def keyword_list(self) -> List[str]:
        """Keywords in declaration order, stripped, empty entries removed."""
        return [k.strip() for k in self.keywords.split(",") if k.strip()]

    def has_keyword(self, keyword: str) -> bool:
        needle = keyword.strip().lower()
        return any(k.lower() == needle for k in self.keyword_list())

    def add_keyword(self, keyword: str) -> bool:
        """
        Append a keyword unless it is already present (case-insensitive).

        Returns:
            True if the keyword was appended.
        """
        keyword = keyword.strip()
        if not keyword or self.has_keyword(keyword):
            return False
        self.keywords = ", ".join(self.keyword_list() + [keyword])
        return True

    def is_ticket_form(self, marker: str = "/servicedesk") -> bool:
        """A document is a ticket form when its link points at the request portal."""
        return bool(self.link) and marker.lower() in self.link.lower()

    @property
    def usage_count(self) -> int:
        return 0

    def lexical_fields(self) -> Tuple[str, str, str]:
        """(primary, keywords, body) texts used by the lexical scorer."""
        extra = " ".join(str(v) for v in self.additional_data.values())
        body = " ".join(
            part for part in (self.description, self.content, extra) if part
        )
        return f"{self.name} {self.category}".strip(), self.keywords, body

    def semantic_text(self) -> str:
        """Text used to compute the document embedding."""
        return " ".join(
            part for part in (self.name, self.description, self.keywords) if part
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "keywords": self.keywords,
            "category": self.category,
            "source_file": self.source_file,
            "link": self.link,
            "content": self.content,
            "embedding": list(self.embedding),
            "additional_data": dict(self.additional_data),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceDocument":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            description=data.get("description", "") or "",
            keywords=data.get("keywords", "") or "",
            category=data.get("category", "") or "",
            source_file=data.get("source_file", "") or "",
            link=data.get("link") or None,
            content=data.get("content", "") or "",
            embedding=[float(v) for v in data.get("embedding") or []],
            additional_data={
                str(k): str(v) for k, v in (data.get("additional_data") or {}).items()
            },
        )


@dataclass
class TicketSolution:
    """A solution harvested from a resolved ticket."""

    ticket_id: str
    title: str
    problem: str = ""
    root_cause: str = ""
    solution: str = ""
    steps: List[str] = field(default_factory=list)
    system: str = ""
    category: str = ""
    keywords: List[str] = field(default_factory=list)
    embedding: List[float] = field(default_factory=list)
    validation_count: int = 0
    is_promoted: bool = False
    harvested_date: datetime = field(default_factory=utcnow)
    ticket_url: Optional[str] = None
    priority: str = ""
    resolved_date: Optional[datetime] = None
    search_score: float = 0.0  # transient, never persisted

    @property
    def id(self) -> str:
        return self.ticket_id

    @property
    def name(self) -> str:
        return self.title

    @property
    def link(self) -> Optional[str]:
        return self.ticket_url

    @property
    def usage_count(self) -> int:
        return self.validation_count

    def validate(self) -> int:
        """Record one more confirmation that the solution worked."""
        self.validation_count += 1
        return self.validation_count

    def has_keyword(self, keyword: str) -> bool:
        needle = keyword.strip().lower()
        return any(k.lower() == needle for k in self.keywords)

    def add_keyword(self, keyword: str) -> bool:
        keyword = keyword.strip()
        if not keyword or self.has_keyword(keyword):
            return False
        self.keywords.append(keyword)
        return True

    def searchable_text(self) -> str:
        parts = [
            self.title,
            self.problem,
            self.root_cause,
            self.solution,
            " ".join(self.steps),
            self.system,
            self.category,
            " ".join(self.keywords),
        ]
        return " ".join(p for p in parts if p)

    def lexical_fields(self) -> Tuple[str, str, str]:
        return (
            f"{self.system} {self.category}".strip(),
            ", ".join(self.keywords),
            self.searchable_text(),
        )

    def semantic_text(self) -> str:
        return self.searchable_text()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ticket_id": self.ticket_id,
            "title": self.title,
            "problem": self.problem,
            "root_cause": self.root_cause,
            "solution": self.solution,
            "steps": list(self.steps),
            "system": self.system,
            "category": self.category,
            "keywords": list(self.keywords),
            "embedding": list(self.embedding),
            "validation_count": self.validation_count,
            "is_promoted": self.is_promoted,
            "harvested_date": _format_datetime(self.harvested_date),
            "ticket_url": self.ticket_url,
            "priority": self.priority,
            "resolved_date": _format_datetime(self.resolved_date),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TicketSolution":
        return cls(
            ticket_id=str(data["ticket_id"]).upper(),
            title=data.get("title", ""),
            problem=data.get("problem", "") or "",
            root_cause=data.get("root_cause", "") or "",
            solution=data.get("solution", "") or "",
            steps=list(data.get("steps") or []),
            system=data.get("system", "") or "",
            category=data.get("category", "") or "",
            keywords=list(data.get("keywords") or []),
            embedding=[float(v) for v in data.get("embedding") or []],
            validation_count=max(0, int(data.get("validation_count", 0))),
            is_promoted=bool(data.get("is_promoted", False)),
            harvested_date=_parse_datetime(data.get("harvested_date")) or utcnow(),
            ticket_url=data.get("ticket_url"),
            priority=data.get("priority", "") or "",
            resolved_date=_parse_datetime(data.get("resolved_date")),
        )


@dataclass
class CachedResponse:
    """A (query, answer) pair kept for reuse, either as cache entry or exemplar."""

    query: str
    answer: str
    sources: List[str] = field(default_factory=list)
    query_embedding: List[float] = field(default_factory=list)
    cached_at: datetime = field(default_factory=utcnow)
    use_count: int = 0
    last_used_at: Optional[datetime] = None
    agent_type: str = "General"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def touch(self) -> None:
        """Register a hit."""
        self.use_count += 1
        self.last_used_at = utcnow()

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        return ((now or utcnow()) - self.cached_at).total_seconds()

    def eviction_key(self) -> Tuple[int, datetime]:
        """Sort key: least used first, then oldest."""
        return self.use_count, self.last_used_at or self.cached_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "query": self.query,
            "answer": self.answer,
            "sources": list(self.sources),
            "query_embedding": list(self.query_embedding),
            "cached_at": _format_datetime(self.cached_at),
            "use_count": self.use_count,
            "last_used_at": _format_datetime(self.last_used_at),
            "agent_type": self.agent_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedResponse":
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            query=data.get("query", ""),
            answer=data.get("answer", ""),
            sources=list(data.get("sources") or []),
            query_embedding=[float(v) for v in data.get("query_embedding") or []],
            cached_at=_parse_datetime(data.get("cached_at")) or utcnow(),
            use_count=int(data.get("use_count", 0)),
            last_used_at=_parse_datetime(data.get("last_used_at")),
            agent_type=data.get("agent_type", "General"),
        )


@dataclass
class FeedbackRecord:
    """A single helpful/unhelpful signal on an answer."""

    query: str
    answer: str
    is_helpful: bool
    comment: Optional[str] = None
    user_correction: Optional[str] = None
    sources_used: List[str] = field(default_factory=list)
    agent_type: str = "General"
    best_search_score: float = 0.0
    was_low_confidence: bool = False
    extracted_keywords: List[str] = field(default_factory=list)
    suggested_keywords: List[str] = field(default_factory=list)
    context_document_ids: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utcnow)
    user_id: Optional[str] = None
    is_reviewed: bool = False
    is_applied: bool = False
    is_dismissed: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "query": self.query,
            "answer": self.answer,
            "is_helpful": self.is_helpful,
            "comment": self.comment,
            "user_correction": self.user_correction,
            "sources_used": list(self.sources_used),
            "agent_type": self.agent_type,
            "best_search_score": self.best_search_score,
            "was_low_confidence": self.was_low_confidence,
            "extracted_keywords": list(self.extracted_keywords),
            "suggested_keywords": list(self.suggested_keywords),
            "context_document_ids": list(self.context_document_ids),
            "timestamp": _format_datetime(self.timestamp),
            "user_id": self.user_id,
            "is_reviewed": self.is_reviewed,
            "is_applied": self.is_applied,
            "is_dismissed": self.is_dismissed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedbackRecord":
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            query=data.get("query", ""),
            answer=data.get("answer", ""),
            is_helpful=bool(data.get("is_helpful", False)),
            comment=data.get("comment"),
            user_correction=data.get("user_correction"),
            sources_used=list(data.get("sources_used") or []),
            agent_type=data.get("agent_type", "General"),
            best_search_score=float(data.get("best_search_score", 0.0)),
            was_low_confidence=bool(data.get("was_low_confidence", False)),
            extracted_keywords=list(data.get("extracted_keywords") or []),
            suggested_keywords=list(data.get("suggested_keywords") or []),
            context_document_ids=list(data.get("context_document_ids") or []),
            timestamp=_parse_datetime(data.get("timestamp")) or utcnow(),
            user_id=data.get("user_id"),
            is_reviewed=bool(data.get("is_reviewed", False)),
            is_applied=bool(data.get("is_applied", False)),
            is_dismissed=bool(data.get("is_dismissed", False)),
        )


@dataclass
class FailurePattern:
    """Recurring unhelpful queries grouped by their top keywords."""

    signature: str
    sample_queries: List[str] = field(default_factory=list)
    failure_count: int = 0
    first_occurrence: datetime = field(default_factory=utcnow)
    last_occurrence: datetime = field(default_factory=utcnow)
    is_alerted: bool = False
    suggested_action: Optional[str] = None

    @staticmethod
    def signature_for(keywords: List[str]) -> str:
        """Sorted top-3 keywords joined, or the general-failure signature."""
        top = sorted({k.lower() for k in keywords[:3] if k})
        if not top:
            return GENERAL_FAILURE_SIGNATURE
        return SIGNATURE_DELIMITER.join(top)

    @property
    def keywords(self) -> List[str]:
        if self.signature == GENERAL_FAILURE_SIGNATURE:
            return []
        return self.signature.split(SIGNATURE_DELIMITER)

    def record(self, query: str, when: Optional[datetime] = None) -> int:
        """Count one more failure and remember the query as a sample."""
        self.failure_count += 1
        self.last_occurrence = when or utcnow()
        if query and query not in self.sample_queries:
            self.sample_queries.append(query)
            del self.sample_queries[:-MAX_SAMPLE_QUERIES]
        return self.failure_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signature": self.signature,
            "sample_queries": list(self.sample_queries),
            "failure_count": self.failure_count,
            "first_occurrence": _format_datetime(self.first_occurrence),
            "last_occurrence": _format_datetime(self.last_occurrence),
            "is_alerted": self.is_alerted,
            "suggested_action": self.suggested_action,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FailurePattern":
        return cls(
            signature=data["signature"],
            sample_queries=list(data.get("sample_queries") or []),
            failure_count=int(data.get("failure_count", 0)),
            first_occurrence=_parse_datetime(data.get("first_occurrence")) or utcnow(),
            last_occurrence=_parse_datetime(data.get("last_occurrence")) or utcnow(),
            is_alerted=bool(data.get("is_alerted", False)),
            suggested_action=data.get("suggested_action"),
        )


@dataclass
class KeywordSuggestion:
    """Cumulative frequency of a keyword across unhelpful feedback."""

    keyword: str
    frequency: int = 0
    related_queries: List[str] = field(default_factory=list)
    suggested_for_document: Optional[str] = None
    was_auto_applied: bool = False
    applied_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyword": self.keyword,
            "frequency": self.frequency,
            "related_queries": list(self.related_queries),
            "suggested_for_document": self.suggested_for_document,
            "was_auto_applied": self.was_auto_applied,
            "applied_at": _format_datetime(self.applied_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeywordSuggestion":
        return cls(
            keyword=data["keyword"],
            frequency=int(data.get("frequency", 0)),
            related_queries=list(data.get("related_queries") or []),
            suggested_for_document=data.get("suggested_for_document"),
            was_auto_applied=bool(data.get("was_auto_applied", False)),
            applied_at=_parse_datetime(data.get("applied_at")),
        )
