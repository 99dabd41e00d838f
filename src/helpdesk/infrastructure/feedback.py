"""
Feedback persistence for the auto-learning loop.

Stores feedback records, failure patterns, keyword suggestions and
successful-response exemplars. Records and exemplars live in the feedback
blob; patterns and suggestions live in the learning blob.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..domain.entities import (
    CachedResponse,
    FailurePattern,
    FeedbackRecord,
    KeywordSuggestion,
    utcnow,
)
from ..domain.repositories import IBlobStore
from ..exceptions import DocumentNotFoundError
from .document_store import AsyncInitializer
from .vector_math import cosine_similarity

logger = logging.getLogger(__name__)


class FeedbackRepository:
    """
    In-memory feedback state persisted to two JSON blobs.

    Args:
        blob_store: Persistence backend.
        feedback_blob: Blob with {"feedback": [...], "exemplars": [...]}.
        learning_blob: Blob with {"patterns": [...], "suggestions": [...]}.
        max_exemplars: Exemplar capacity; least-used then oldest are evicted.
    """

    def __init__(
        self,
        blob_store: IBlobStore,
        feedback_blob: str = "chat-feedback.json",
        learning_blob: str = "auto-learning.json",
        max_exemplars: int = 200,
    ):
        self.blob_store = blob_store
        self.feedback_blob = feedback_blob
        self.learning_blob = learning_blob
        self.max_exemplars = max_exemplars
        self._records: Dict[str, FeedbackRecord] = {}
        self._patterns: Dict[str, FailurePattern] = {}
        self._suggestions: Dict[str, KeywordSuggestion] = {}
        self._exemplars: List[CachedResponse] = []
        self._init = AsyncInitializer("feedback", self._load)
        self._write_lock = asyncio.Lock()

    # ---- lifecycle ---------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._init.is_initialized

    async def ensure_initialized(self) -> None:
        await self._init.ensure_initialized()

    def _load_sync(self) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        feedback = self.blob_store.load(self.feedback_blob, {})
        learning = self.blob_store.load(self.learning_blob, {})
        # Older blobs stored a bare list of feedback records.
        if isinstance(feedback, list):
            feedback = {"feedback": feedback}
        if not isinstance(learning, dict):
            learning = {}
        return feedback, learning

    async def _load(self) -> None:
        loop = asyncio.get_running_loop()
        feedback, learning = await loop.run_in_executor(None, self._load_sync)

        self._records = {}
        for data in feedback.get("feedback", []):
            try:
                record = FeedbackRecord.from_dict(data)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed feedback record: {e}")
                continue
            self._records[record.id] = record

        self._exemplars = []
        for data in feedback.get("exemplars", []):
            try:
                self._exemplars.append(CachedResponse.from_dict(data))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed exemplar: {e}")

        self._patterns = {}
        for data in learning.get("patterns", []):
            try:
                pattern = FailurePattern.from_dict(data)
            except KeyError as e:
                logger.warning(f"Skipping malformed failure pattern: {e}")
                continue
            self._patterns[pattern.signature] = pattern

        self._suggestions = {}
        for data in learning.get("suggestions", []):
            try:
                suggestion = KeywordSuggestion.from_dict(data)
            except KeyError as e:
                logger.warning(f"Skipping malformed keyword suggestion: {e}")
                continue
            self._suggestions[suggestion.keyword] = suggestion

        logger.info(
            f"Feedback loaded: {len(self._records)} records, {len(self._patterns)} patterns, "
            f"{len(self._suggestions)} suggestions, {len(self._exemplars)} exemplars"
        )

    async def save(self) -> None:
        async with self._write_lock:
            feedback = {
                "feedback": [r.to_dict() for r in list(self._records.values())],
                "exemplars": [e.to_dict() for e in list(self._exemplars)],
            }
            learning = {
                "patterns": [p.to_dict() for p in list(self._patterns.values())],
                "suggestions": [s.to_dict() for s in list(self._suggestions.values())],
            }
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.blob_store.save, self.feedback_blob, feedback)
            await loop.run_in_executor(None, self.blob_store.save, self.learning_blob, learning)

    # ---- feedback records --------------------------------------------------

    async def add_record(self, record: FeedbackRecord) -> FeedbackRecord:
        await self.ensure_initialized()
        self._records[record.id] = record
        return record

    def records(self, helpful: Optional[bool] = None) -> List[FeedbackRecord]:
        records = list(self._records.values())
        if helpful is not None:
            records = [r for r in records if r.is_helpful == helpful]
        return sorted(records, key=lambda r: r.timestamp, reverse=True)

    def get_record(self, feedback_id: str) -> FeedbackRecord:
        record = self._records.get(feedback_id)
        if record is None:
            raise DocumentNotFoundError(feedback_id)
        return record

    async def update_record(self, feedback_id: str, **flags: bool) -> FeedbackRecord:
        """Set review flags (is_reviewed, is_applied, is_dismissed) and persist."""
        await self.ensure_initialized()
        record = self.get_record(feedback_id)
        for name, value in flags.items():
            setattr(record, name, value)
        await self.save()
        return record

    async def remove_older_than(
        self, days: int, reviewed_only: bool = True, now: Optional[datetime] = None
    ) -> int:
        """Delete feedback records older than `days`; returns how many."""
        await self.ensure_initialized()
        cutoff = (now or utcnow()) - timedelta(days=days)
        stale = [
            rid
            for rid, r in self._records.items()
            if r.timestamp < cutoff and (r.is_reviewed or not reviewed_only)
        ]
        for rid in stale:
            del self._records[rid]
        if stale:
            await self.save()
            logger.info(f"Removed {len(stale)} feedback records older than {days} days")
        return len(stale)

    # ---- failure patterns --------------------------------------------------

    def pattern(self, signature: str) -> Optional[FailurePattern]:
        return self._patterns.get(signature)

    def get_or_create_pattern(self, signature: str, when: Optional[datetime] = None) -> FailurePattern:
        pattern = self._patterns.get(signature)
        if pattern is None:
            when = when or utcnow()
            pattern = FailurePattern(signature=signature, first_occurrence=when, last_occurrence=when)
            self._patterns[signature] = pattern
        return pattern

    def patterns(self) -> List[FailurePattern]:
        return sorted(self._patterns.values(), key=lambda p: p.failure_count, reverse=True)

    # ---- keyword suggestions -----------------------------------------------

    def suggestion(self, keyword: str) -> Optional[KeywordSuggestion]:
        return self._suggestions.get(keyword.lower())

    def get_or_create_suggestion(self, keyword: str) -> KeywordSuggestion:
        key = keyword.lower()
        suggestion = self._suggestions.get(key)
        if suggestion is None:
            suggestion = KeywordSuggestion(keyword=key)
            self._suggestions[key] = suggestion
        return suggestion

    def suggestions(self) -> List[KeywordSuggestion]:
        return sorted(self._suggestions.values(), key=lambda s: s.frequency, reverse=True)

    # ---- exemplars ---------------------------------------------------------

    def exemplars(self) -> List[CachedResponse]:
        return list(self._exemplars)

    def nearest_exemplar(self, vector: Sequence[float]) -> Tuple[Optional[CachedResponse], float]:
        best, best_sim = None, 0.0
        for exemplar in self._exemplars:
            sim = cosine_similarity(vector, exemplar.query_embedding)
            if sim > best_sim:
                best, best_sim = exemplar, sim
        return best, best_sim

    def add_exemplar(self, exemplar: CachedResponse) -> int:
        """Append an exemplar and evict down to capacity; returns evicted count."""
        self._exemplars.append(exemplar)
        overflow = len(self._exemplars) - self.max_exemplars
        if overflow <= 0:
            return 0
        victims = {e.id for e in sorted(self._exemplars, key=lambda e: e.eviction_key())[:overflow]}
        self._exemplars = [e for e in self._exemplars if e.id not in victims]
        return overflow
