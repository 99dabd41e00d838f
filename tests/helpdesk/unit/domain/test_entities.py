"""
Unit tests for domain entities and value objects.
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.helpdesk.domain.entities import (
    GENERAL_FAILURE_SIGNATURE,
    CachedResponse,
    FailurePattern,
    FeedbackRecord,
    KeywordSuggestion,
    SourceDocument,
    SourceKind,
    TicketSolution,
)
from src.helpdesk.domain.value_objects import (
    IntentCategory,
    ScoredDocument,
    SearchWeights,
    TicketDetails,
)


class TestSourceDocument:
    def test_keyword_list_strips_and_skips_empty(self):
        doc = SourceDocument(id="1", name="VPN", keywords=" vpn , zscaler,, remoto ")
        assert doc.keyword_list() == ["vpn", "zscaler", "remoto"]

    def test_add_keyword_is_idempotent_and_case_insensitive(self):
        doc = SourceDocument(id="1", name="VPN", keywords="vpn, zscaler")

        assert doc.add_keyword("casa") is True
        assert doc.add_keyword("CASA") is False
        assert doc.add_keyword("  ") is False
        assert doc.keywords == "vpn, zscaler, casa"

    def test_is_ticket_form_uses_marker(self):
        form = SourceDocument(id="1", name="Form", link="https://x.example.com/servicedesk/customer/portal/1")
        page = SourceDocument(id="2", name="Page", link="https://x.example.com/wiki/page")
        missing = SourceDocument(id="3", name="Nothing")

        assert form.is_ticket_form() is True
        assert page.is_ticket_form() is False
        assert missing.is_ticket_form() is False
        assert page.is_ticket_form("/wiki") is True

    def test_round_trip_does_not_persist_search_score(self):
        doc = SourceDocument(
            id="1",
            name="Centro IAL",
            description="Planta de Alcalá",
            keywords="ial",
            additional_data={"Country": "ES"},
            embedding=[0.1, 0.2],
        )
        doc.search_score = 0.9

        data = doc.to_dict()
        restored = SourceDocument.from_dict(data)

        assert "search_score" not in data
        assert restored.search_score == 0.0
        assert restored.additional_data == {"Country": "ES"}
        assert restored.embedding == [0.1, 0.2]

    def test_semantic_text_joins_non_empty_fields(self):
        doc = SourceDocument(id="1", name="VPN", keywords="zscaler")
        assert doc.semantic_text() == "VPN zscaler"


class TestTicketSolution:
    def test_validate_increments_count(self):
        solution = TicketSolution(ticket_id="MT-1", title="VPN down")
        assert solution.validate() == 1
        assert solution.validate() == 2
        assert solution.usage_count == 2

    def test_from_dict_normalises_id_and_clamps_count(self):
        solution = TicketSolution.from_dict(
            {"ticket_id": "mt-12", "title": "x", "validation_count": -3}
        )
        assert solution.ticket_id == "MT-12"
        assert solution.validation_count == 0

    def test_searchable_text_contains_all_fields(self):
        solution = TicketSolution(
            ticket_id="MT-1",
            title="Printer jam",
            problem="paper stuck",
            solution="open tray",
            steps=["turn off", "remove paper"],
            keywords=["impresora"],
        )
        text = solution.searchable_text()
        for part in ("Printer jam", "paper stuck", "open tray", "remove paper", "impresora"):
            assert part in text

    def test_round_trip_keeps_dates(self):
        resolved = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        solution = TicketSolution(ticket_id="MT-1", title="x", resolved_date=resolved)
        restored = TicketSolution.from_dict(solution.to_dict())
        assert restored.resolved_date == resolved


class TestFailurePattern:
    def test_signature_is_sorted_top_three(self):
        assert FailurePattern.signature_for(["vpn", "casa", "zscaler", "lento"]) == "casa|vpn|zscaler"

    def test_signature_without_keywords(self):
        assert FailurePattern.signature_for([]) == GENERAL_FAILURE_SIGNATURE
        assert FailurePattern(signature=GENERAL_FAILURE_SIGNATURE).keywords == []

    def test_record_bounds_and_dedupes_samples(self):
        pattern = FailurePattern(signature="vpn")
        for i in range(7):
            pattern.record(f"query {i}")
        pattern.record("query 6")

        assert pattern.failure_count == 8
        assert pattern.sample_queries == [f"query {i}" for i in range(2, 7)]

    def test_missing_signature_raises_key_error(self):
        with pytest.raises(KeyError):
            FailurePattern.from_dict({"failure_count": 2})


class TestCachedResponse:
    def test_eviction_key_orders_least_used_then_oldest(self):
        now = datetime.now(timezone.utc)
        old_unused = CachedResponse(query="a", answer="a", cached_at=now - timedelta(hours=1))
        new_unused = CachedResponse(query="b", answer="b", cached_at=now)
        used = CachedResponse(query="c", answer="c", cached_at=now - timedelta(hours=2))
        used.touch()

        ordered = sorted([used, new_unused, old_unused], key=lambda e: e.eviction_key())
        assert [e.query for e in ordered] == ["a", "b", "c"]


class TestFeedbackEntities:
    def test_feedback_round_trip(self):
        record = FeedbackRecord(
            query="vpn no funciona",
            answer="...",
            is_helpful=False,
            extracted_keywords=["vpn", "funciona"],
            suggested_keywords=["vpn"],
        )
        restored = FeedbackRecord.from_dict(record.to_dict())
        assert restored.id == record.id
        assert restored.extracted_keywords == ["vpn", "funciona"]
        assert restored.timestamp == record.timestamp

    def test_keyword_suggestion_round_trip(self):
        suggestion = KeywordSuggestion(keyword="impresora", frequency=3, was_auto_applied=True)
        restored = KeywordSuggestion.from_dict(suggestion.to_dict())
        assert restored.frequency == 3
        assert restored.was_auto_applied is True


class TestValueObjects:
    def test_intent_from_label(self):
        assert IntentCategory.from_label(" sap. ") == IntentCategory.SAP
        assert IntentCategory.from_label("how-to") == IntentCategory.HOW_TO
        assert IntentCategory.from_label("banana") == IntentCategory.GENERAL
        assert IntentCategory.from_label(None) == IntentCategory.GENERAL

    def test_weight_for_kind(self):
        weights = SearchWeights(ticket_forms=2.5, reference=0.2)
        assert weights.weight_for(SourceKind.TICKET_FORM) == 2.5
        assert weights.weight_for(SourceKind.REFERENCE) == 0.2
        assert weights.weight_for(SourceKind.ARTICLE) == 1.0

    def test_scaled_returns_copy(self):
        hit = ScoredDocument(item=SourceDocument(id="1", name="x"), score=0.5)
        scaled = hit.scaled(2.0)
        assert scaled.score == 1.0
        assert hit.score == 0.5
        assert scaled.doc_id == "1"

    def test_ticket_render_keeps_last_three_comments(self):
        ticket = TicketDetails(
            ticket_id="MT-1",
            summary="VPN",
            status="Open",
            comments=["c1", "c2", "c3", "c4"],
            url="https://jira.example.com/browse/MT-1",
        )
        text = ticket.render()
        assert text.startswith("TICKET MT-1: VPN")
        assert "Status: Open" in text
        assert "c1" not in text
        assert "Comment: c4" in text
        assert "Link: https://jira.example.com/browse/MT-1" in text
