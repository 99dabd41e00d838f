"""
Intent Classifier for the Helpdesk Knowledge Agent.

Classifies a support query into one category with a deterministic rule
cascade, consulting a generation-backed fallback only when no rule fires.

Cascade (first hit wins):
1. Ticket reference in the query (bounded-time regex) -> TICKET_LOOKUP
2. Short or ambiguous follow-up + conversation history -> topic of the
   recent turns (NETWORK, then SAP)
3. Ordered domain keyword sets -> NETWORK, SAP, TICKET_REQUEST, HOW_TO,
   LOOKUP, TROUBLESHOOTING
4. Structured codes (transactions, roles, positions) -> SAP
5. IIntentFallback -> SAP, NETWORK or GENERAL
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

from ..domain.repositories import ICodeDirectory, IIntentFallback
from ..domain.value_objects import ChatMessage, IntentCategory
from ..infrastructure.text_analysis import contains_term, normalize_for_search, word_count
from ..infrastructure.ticket_patterns import TicketPatternMatcher

logger = logging.getLogger(__name__)

DEFAULT_RULES_PATH = Path(__file__).resolve().parent.parent / "resources" / "intent_rules.json"

TOKEN_STRIP = ",?!.:;\"'()¿¡"


@dataclass
class IntentClassificationResult:
    """Result of intent classification."""

    category: IntentCategory
    confidence: float
    matched_keywords: List[str] = field(default_factory=list)
    rule: str = "default"


@dataclass
class IntentRules:
    """Rule tables for the deterministic part of the cascade."""

    keyword_rules: List[Tuple[IntentCategory, List[str]]]
    ambiguous_phrases: List[str]
    history_indicators: List[Tuple[IntentCategory, List[str]]]
    transaction_patterns: List[Pattern]
    role_patterns: List[Pattern]
    position_patterns: List[Pattern]
    ambiguous_max_words: int = 4
    history_window: int = 6
    known_code_min_length: int = 2
    known_code_max_length: int = 8

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IntentRules":
        def table(entries) -> List[Tuple[IntentCategory, List[str]]]:
            return [
                (
                    IntentCategory(entry["category"]),
                    [normalize_for_search(k) for k in entry.get("keywords", [])],
                )
                for entry in entries or []
            ]

        codes = data.get("code_patterns", {})
        return cls(
            keyword_rules=table(data.get("keyword_rules")),
            ambiguous_phrases=[normalize_for_search(p) for p in data.get("ambiguous_phrases", [])],
            history_indicators=table(data.get("history_indicators")),
            transaction_patterns=[re.compile(p) for p in codes.get("transaction", [])],
            role_patterns=[re.compile(p) for p in codes.get("role", [])],
            position_patterns=[re.compile(p) for p in codes.get("position", [])],
            ambiguous_max_words=int(data.get("ambiguous_max_words", 4)),
            history_window=int(data.get("history_window", 6)),
            known_code_min_length=int(codes.get("known_code_min_length", 2)),
            known_code_max_length=int(codes.get("known_code_max_length", 8)),
        )

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "IntentRules":
        rules_path = Path(path) if path else DEFAULT_RULES_PATH
        with open(rules_path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))


class IntentClassifier:
    """
    Rule-cascade intent classifier.

    Args:
        rules: Rule tables; loaded from resources/intent_rules.json if None.
        ticket_matcher: Ticket-ID detector.
        code_directory: Known structured codes; role, position and bare-code
            rules are skipped without it.
        fallback: Last-resort classifier; GENERAL is returned without it.
    """

    def __init__(
        self,
        rules: Optional[IntentRules] = None,
        ticket_matcher: Optional[TicketPatternMatcher] = None,
        code_directory: Optional[ICodeDirectory] = None,
        fallback: Optional[IIntentFallback] = None,
    ):
        self.rules = rules or IntentRules.load()
        self.ticket_matcher = ticket_matcher or TicketPatternMatcher()
        self.code_directory = code_directory
        self.fallback = fallback

    # ---- individual rules ----------------------------------------------

    def is_ambiguous(self, query: str) -> bool:
        """Short follow-ups, or queries made of a "need more context" phrase."""
        normalized = normalize_for_search(query).strip()
        if word_count(normalized) <= self.rules.ambiguous_max_words:
            return True
        return any(
            re.search(rf"(?<!\w){re.escape(p)}(?!\w)", normalized)
            for p in self.rules.ambiguous_phrases
        )

    def topic_from_history(
        self, history: Sequence[ChatMessage]
    ) -> Optional[IntentClassificationResult]:
        recent = [m for m in history if m.role in ("user", "assistant")]
        recent = recent[-self.rules.history_window:]
        combined = normalize_for_search(" ".join(m.text for m in recent))
        if not combined:
            return None
        for category, indicators in self.rules.history_indicators:
            hits = [k for k in indicators if k in combined]
            if hits:
                logger.debug(f"Context from history: {category.value} (found: {', '.join(hits)})")
                return IntentClassificationResult(category, 0.8, hits, "history")
        return None

    def match_keywords(self, query: str) -> Optional[IntentClassificationResult]:
        normalized = normalize_for_search(query)
        for category, keywords in self.rules.keyword_rules:
            hits = [k for k in keywords if contains_term(normalized, k)]
            if hits:
                logger.debug(f"{category.value} selected: keyword match {hits}")
                return IntentClassificationResult(category, 0.9, hits, "keyword")
        return None

    async def match_codes(self, query: str) -> Optional[IntentClassificationResult]:
        tokens = [t.strip(TOKEN_STRIP) for t in query.split()]
        tokens = [t for t in tokens if t]

        for token in tokens:
            if any(p.match(token) for p in self.rules.transaction_patterns):
                logger.debug(f"SAP selected: transaction pattern match for '{token}'")
                return IntentClassificationResult(IntentCategory.SAP, 0.85, [token], "transaction_code")

        if self.code_directory is None:
            return None
        await self.code_directory.ensure_initialized()

        for token in tokens:
            if any(p.match(token) for p in self.rules.role_patterns) and self.code_directory.has_role(token):
                logger.debug(f"SAP selected: known role code '{token}'")
                return IntentClassificationResult(IntentCategory.SAP, 0.95, [token], "role_code")
            if any(p.match(token) for p in self.rules.position_patterns) and self.code_directory.has_position(
                token
            ):
                logger.debug(f"SAP selected: known position code '{token}'")
                return IntentClassificationResult(IntentCategory.SAP, 0.95, [token], "position_code")

        for token in tokens:
            if not self.rules.known_code_min_length <= len(token) <= self.rules.known_code_max_length:
                continue
            if (
                self.code_directory.has_transaction(token)
                or self.code_directory.has_role(token)
                or self.code_directory.has_position(token)
            ):
                logger.debug(f"SAP selected: known code '{token}'")
                return IntentClassificationResult(IntentCategory.SAP, 0.9, [token], "known_code")
        return None

    # ---- cascade ----------------------------------------------------------

    async def classify(
        self,
        query: str,
        history: Optional[Sequence[ChatMessage]] = None,
    ) -> IntentClassificationResult:
        """
        Classify the intent of a user query.

        Args:
            query: User query string.
            history: Prior conversation turns, oldest first.

        Returns:
            IntentClassificationResult with category, confidence, matched
            keywords and the rule that fired.
        """
        if not query or not query.strip():
            return IntentClassificationResult(IntentCategory.GENERAL, 0.0)

        ticket_ids = self.ticket_matcher.extract_ticket_ids(query)
        if ticket_ids:
            logger.debug(f"TICKET_LOOKUP selected: ticket reference {ticket_ids}")
            return IntentClassificationResult(IntentCategory.TICKET_LOOKUP, 1.0, ticket_ids, "ticket")

        if history and self.is_ambiguous(query):
            result = self.topic_from_history(history)
            if result is not None:
                return result

        result = self.match_keywords(query)
        if result is not None:
            return result

        result = await self.match_codes(query)
        if result is not None:
            return result

        if self.fallback is not None:
            category = await self.fallback.classify(query)
            return IntentClassificationResult(category, 0.6, [], "fallback")

        return IntentClassificationResult(IntentCategory.GENERAL, 0.3)

    async def classify_batch(self, queries: List[str]) -> List[IntentClassificationResult]:
        """
        Classify multiple single-turn queries.

        Args:
            queries: List of query strings.

        Returns:
            List of IntentClassificationResult objects.
        """
        return [await self.classify(query) for query in queries]

    def get_category_keywords(self, category: IntentCategory) -> List[str]:
        """Keywords of the keyword-set rule for a category."""
        for rule_category, keywords in self.rules.keyword_rules:
            if rule_category == category:
                return list(keywords)
        return []
