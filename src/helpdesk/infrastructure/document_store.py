"""
In-memory knowledge stores backed by named JSON blobs.

Each store is an explicit object owned by whoever wires the pipeline. The
first access loads the blob once behind an asyncio lock; afterwards reads
work on snapshots without locking, and writers persist the whole
collection back to its blob.
"""

import asyncio
import logging
from collections import Counter
from datetime import datetime
from typing import Callable, Dict, Generic, List, Optional, Type, TypeVar, Union

from tqdm import tqdm

from ..domain.entities import SourceDocument, TicketSolution, utcnow
from ..domain.repositories import IBlobStore, IEmbeddingProvider
from ..exceptions import DocumentNotFoundError, ProviderError, StoreNotInitializedError

logger = logging.getLogger(__name__)

T = TypeVar("T", SourceDocument, TicketSolution)


class AsyncInitializer:
    """
    Idempotent, concurrency-safe one-time initialization.

    Concurrent callers of ensure_initialized() wait on the same lock; only
    the first one runs the loader.
    """

    def __init__(self, name: str, loader: Callable[[], "asyncio.Future"]):
        self.name = name
        self._loader = loader
        self._lock = asyncio.Lock()
        self._initialized = False
        self.load_count = 0

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def ensure_initialized(self) -> None:
        if self._initialized:
            return
        async with self._lock:
            if self._initialized:
                return
            await self._loader()
            self.load_count += 1
            self._initialized = True

    def reset(self) -> None:
        """Force the next ensure_initialized() to reload."""
        self._initialized = False


class KnowledgeStore(Generic[T]):
    """
    Keyed collection of documents persisted as one JSON blob.

    Args:
        blob_store: Persistence backend.
        blob_name: Name of the blob holding the collection.
        entity_cls: SourceDocument or TicketSolution.
        name: Human-readable store name for logs.
    """

    def __init__(
        self,
        blob_store: IBlobStore,
        blob_name: str,
        entity_cls: Type[T],
        name: Optional[str] = None,
    ):
        self.blob_store = blob_store
        self.blob_name = blob_name
        self.entity_cls = entity_cls
        self.name = name or blob_name
        self._items: Dict[str, T] = {}
        self._init = AsyncInitializer(self.name, self._load)
        self._write_lock = asyncio.Lock()

    # ---- lifecycle ---------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._init.is_initialized

    @property
    def load_count(self) -> int:
        return self._init.load_count

    async def ensure_initialized(self) -> None:
        await self._init.ensure_initialized()

    async def reload(self) -> int:
        """Drop the in-memory state and load the blob again."""
        self._init.reset()
        await self.ensure_initialized()
        return len(self._items)

    async def _load(self) -> None:
        loop = asyncio.get_running_loop()
        raw = await loop.run_in_executor(None, self.blob_store.load, self.blob_name, [])
        items: Dict[str, T] = {}
        for data in raw or []:
            try:
                item = self.entity_cls.from_dict(data)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"[{self.name}] Skipping malformed entry: {e}")
                continue
            items[item.id] = item
        self._items = items
        logger.info(f"[{self.name}] Loaded {len(items)} entries from '{self.blob_name}'")

    async def save(self) -> None:
        """Persist the whole collection."""
        async with self._write_lock:
            payload = [item.to_dict() for item in list(self._items.values())]
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.blob_store.save, self.blob_name, payload)
        logger.debug(f"[{self.name}] Saved {len(payload)} entries")

    # ---- reads (lock-free snapshots) --------------------------------------

    def _require_initialized(self) -> None:
        if not self.is_initialized:
            raise StoreNotInitializedError(self.name)

    def all(self) -> List[T]:
        self._require_initialized()
        return list(self._items.values())

    def get(self, item_id: str) -> Optional[T]:
        self._require_initialized()
        return self._items.get(item_id)

    def count(self) -> int:
        return len(self._items)

    # ---- writes ------------------------------------------------------------

    async def upsert(self, item: T, persist: bool = True) -> T:
        await self.ensure_initialized()
        self._items[item.id] = item
        if persist:
            await self.save()
        return item

    async def add_many(self, items: List[T], persist: bool = True) -> int:
        await self.ensure_initialized()
        for item in items:
            self._items[item.id] = item
        if persist:
            await self.save()
        return len(items)

    async def delete(self, item_id: str, persist: bool = True) -> bool:
        await self.ensure_initialized()
        removed = self._items.pop(item_id, None) is not None
        if removed and persist:
            await self.save()
        return removed

    async def add_keyword(self, item_id: str, keyword: str, persist: bool = True) -> bool:
        """
        Append a keyword to one item, at most once.

        Returns:
            True if the keyword was new for that item.

        Raises:
            DocumentNotFoundError: Unknown item id.
        """
        await self.ensure_initialized()
        item = self._items.get(item_id)
        if item is None:
            raise DocumentNotFoundError(item_id)
        added = item.add_keyword(keyword)
        if added:
            logger.info(f"[{self.name}] Added keyword '{keyword}' to '{item_id}'")
            if persist:
                await self.save()
        return added

    async def backfill_embeddings(
        self,
        embedder: IEmbeddingProvider,
        show_progress: bool = True,
    ) -> int:
        """
        Compute embeddings for items that have none, then persist.

        Returns:
            Number of items that received a vector.
        """
        await self.ensure_initialized()
        missing = [item for item in self._items.values() if not item.embedding]
        if not missing:
            return 0

        updated = 0
        for item in tqdm(missing, desc=f"Embedding {self.name}", disable=not show_progress):
            try:
                item.embedding = list(await embedder.embed(item.semantic_text()))
                updated += 1
            except ProviderError as e:
                logger.warning(f"[{self.name}] Embedding failed for '{item.id}': {e}")
        if updated:
            await self.save()
        logger.info(f"[{self.name}] Backfilled {updated}/{len(missing)} embeddings")
        return updated


class DocumentStore(KnowledgeStore[SourceDocument]):
    """Store of reference entries, ticket forms or articles."""

    def __init__(self, blob_store: IBlobStore, blob_name: str, name: Optional[str] = None):
        super().__init__(blob_store, blob_name, SourceDocument, name)

    def ticket_forms(self, marker: str = "/servicedesk") -> List[SourceDocument]:
        return [d for d in self.all() if d.is_ticket_form(marker)]


class TicketSolutionStore(KnowledgeStore[TicketSolution]):
    """Store of solutions harvested from resolved tickets."""

    def __init__(
        self,
        blob_store: IBlobStore,
        blob_name: str = "jira-solutions.json",
        name: str = "solutions",
    ):
        super().__init__(blob_store, blob_name, TicketSolution, name)

    def _lookup(self, ticket_id: str) -> TicketSolution:
        solution = self._items.get(ticket_id.upper())
        if solution is None:
            raise DocumentNotFoundError(ticket_id)
        return solution

    async def add_solution(self, solution: TicketSolution) -> TicketSolution:
        solution.ticket_id = solution.ticket_id.upper()
        return await self.upsert(solution)

    async def validate(self, ticket_id: str) -> int:
        """Increment the validation count of a solution and persist it."""
        await self.ensure_initialized()
        count = self._lookup(ticket_id).validate()
        await self.save()
        return count

    async def promotion_candidates(self, min_validations: int = 5) -> List[TicketSolution]:
        await self.ensure_initialized()
        candidates = [
            s
            for s in self._items.values()
            if s.validation_count >= min_validations and not s.is_promoted
        ]
        return sorted(candidates, key=lambda s: s.validation_count, reverse=True)

    async def mark_promoted(self, ticket_id: str) -> None:
        await self.ensure_initialized()
        self._lookup(ticket_id).is_promoted = True
        await self.save()

    async def stats(self) -> Dict[str, Union[int, Dict[str, int], Optional[datetime]]]:
        await self.ensure_initialized()
        solutions = list(self._items.values())
        return {
            "total": len(solutions),
            "validated": sum(1 for s in solutions if s.validation_count > 0),
            "promoted": sum(1 for s in solutions if s.is_promoted),
            "with_embedding": sum(1 for s in solutions if s.embedding),
            "by_system": dict(Counter(s.system or "General" for s in solutions)),
            "last_harvested": max((s.harvested_date for s in solutions), default=None),
            "generated_at": utcnow(),
        }
