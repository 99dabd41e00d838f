"""
Unit tests for feedback persistence.
"""

import logging
from datetime import timedelta

import pytest

from src.helpdesk.domain.entities import CachedResponse, FeedbackRecord, utcnow
from src.helpdesk.exceptions import DocumentNotFoundError
from src.helpdesk.infrastructure.blob_store import InMemoryBlobStore
from src.helpdesk.infrastructure.feedback import FeedbackRepository


def create_record(query="vpn caida", helpful=False, age_days=0, reviewed=False):
    return FeedbackRecord(
        query=query,
        answer="...",
        is_helpful=helpful,
        timestamp=utcnow() - timedelta(days=age_days),
        is_reviewed=reviewed,
    )


class TestFeedbackRepository:
    @pytest.mark.asyncio
    async def test_save_and_reload(self):
        blobs = InMemoryBlobStore()
        repo = FeedbackRepository(blobs)
        record = await repo.add_record(create_record())
        repo.get_or_create_pattern("caida|vpn").record("vpn caida")
        repo.get_or_create_suggestion("VPN").frequency = 2
        repo.add_exemplar(CachedResponse(query="q", answer="a", query_embedding=[1.0, 0.0]))
        await repo.save()

        reloaded = FeedbackRepository(blobs)
        await reloaded.ensure_initialized()

        assert reloaded.get_record(record.id).query == "vpn caida"
        assert reloaded.pattern("caida|vpn").failure_count == 1
        assert reloaded.suggestion("vpn").frequency == 2
        assert len(reloaded.exemplars()) == 1

    @pytest.mark.asyncio
    async def test_legacy_list_blob(self):
        blobs = InMemoryBlobStore({"chat-feedback.json": [create_record().to_dict()]})
        repo = FeedbackRepository(blobs)
        await repo.ensure_initialized()
        assert len(repo.records()) == 1

    @pytest.mark.asyncio
    async def test_malformed_patterns_are_skipped(self):
        blobs = InMemoryBlobStore(
            {"auto-learning.json": {"patterns": [{"failure_count": 3}], "suggestions": [{"keyword": "vpn"}]}}
        )
        repo = FeedbackRepository(blobs)
        await repo.ensure_initialized()
        assert repo.patterns() == []
        assert [s.keyword for s in repo.suggestions()] == ["vpn"]

    @pytest.mark.asyncio
    async def test_malformed_records_and_exemplars_are_skipped(self, caplog):
        blobs = InMemoryBlobStore(
            {
                "chat-feedback.json": {
                    "feedback": [
                        {"id": "good", "query": "vpn caida", "is_helpful": False},
                        {"id": "bad-score", "best_search_score": "high"},
                        {"id": "bad-date", "timestamp": "yesterday"},
                        "not a record",
                    ],
                    "exemplars": [
                        {"id": "ok", "query": "reset password", "answer": "Portal"},
                        {"id": "bad-vector", "query_embedding": ["x"]},
                    ],
                }
            }
        )
        repo = FeedbackRepository(blobs)

        with caplog.at_level(logging.WARNING):
            await repo.ensure_initialized()

        assert [r.id for r in repo.records()] == ["good"]
        assert [e.id for e in repo.exemplars()] == ["ok"]
        assert "Skipping malformed feedback record" in caplog.text
        assert "Skipping malformed exemplar" in caplog.text

    @pytest.mark.asyncio
    async def test_records_filter_and_order(self):
        repo = FeedbackRepository(InMemoryBlobStore())
        await repo.add_record(create_record("old", helpful=True, age_days=2))
        await repo.add_record(create_record("new", helpful=True))
        await repo.add_record(create_record("bad", helpful=False))

        assert [r.query for r in repo.records(helpful=True)] == ["new", "old"]
        assert [r.query for r in repo.records(helpful=False)] == ["bad"]

    @pytest.mark.asyncio
    async def test_update_unknown_record(self):
        repo = FeedbackRepository(InMemoryBlobStore())
        with pytest.raises(DocumentNotFoundError):
            await repo.update_record("missing", is_reviewed=True)

    @pytest.mark.asyncio
    async def test_remove_older_than_keeps_unreviewed(self):
        repo = FeedbackRepository(InMemoryBlobStore())
        await repo.add_record(create_record("old reviewed", age_days=100, reviewed=True))
        await repo.add_record(create_record("old pending", age_days=100))
        await repo.add_record(create_record("recent", reviewed=True))

        assert await repo.remove_older_than(90) == 1
        assert sorted(r.query for r in repo.records()) == ["old pending", "recent"]
        assert await repo.remove_older_than(90, reviewed_only=False) == 1

    @pytest.mark.asyncio
    async def test_exemplar_capacity_evicts_least_used(self):
        repo = FeedbackRepository(InMemoryBlobStore(), max_exemplars=2)
        await repo.ensure_initialized()
        used = CachedResponse(query="used", answer="a")
        used.touch()
        repo.add_exemplar(used)
        repo.add_exemplar(CachedResponse(query="old", answer="b", cached_at=utcnow() - timedelta(days=1)))

        assert repo.add_exemplar(CachedResponse(query="new", answer="c")) == 1
        assert sorted(e.query for e in repo.exemplars()) == ["new", "used"]

    @pytest.mark.asyncio
    async def test_nearest_exemplar(self):
        repo = FeedbackRepository(InMemoryBlobStore())
        await repo.ensure_initialized()
        repo.add_exemplar(CachedResponse(query="x", answer="x", query_embedding=[1.0, 0.0]))
        repo.add_exemplar(CachedResponse(query="y", answer="y", query_embedding=[0.0, 1.0]))

        best, sim = repo.nearest_exemplar([0.9, 0.1])

        assert best.query == "x"
        assert sim > 0.9
