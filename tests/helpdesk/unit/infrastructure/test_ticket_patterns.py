"""
Unit tests for ticket ID detection.
"""

import logging
import time

import pytest

from src.helpdesk.domain.value_objects import ChatMessage
from src.helpdesk.exceptions import ValidationFailureError
from src.helpdesk.infrastructure import ticket_patterns
from src.helpdesk.infrastructure.ticket_patterns import (
    TicketPatternMatcher,
    refers_to_previous_ticket,
)


@pytest.fixture
def matcher():
    return TicketPatternMatcher(timeout=0.1, max_tickets=3)


class TestExtraction:
    def test_mixed_language_query(self, matcher):
        assert matcher.extract_ticket_ids("ayuda con MT-799225 y también IT-4") == [
            "MT-799225",
            "IT-4",
        ]

    def test_lowercase_is_normalised_and_deduplicated(self, matcher):
        assert matcher.extract_ticket_ids("mt-12 and MT-12 then sd-9") == ["MT-12", "SD-9"]

    def test_capped_at_three(self, matcher):
        text = "MT-1 MT-2 MT-3 MT-4 MT-5"
        assert matcher.extract_ticket_ids(text) == ["MT-1", "MT-2", "MT-3"]

    def test_eight_digits_do_not_match(self, matcher):
        assert matcher.extract_ticket_ids("MT-12345678") == []
        assert matcher.contains_ticket_reference("MT-12345678") is False

    def test_unknown_prefix(self, matcher):
        assert matcher.extract_ticket_ids("ABC-123") == []

    def test_empty_input(self, matcher):
        assert matcher.extract_ticket_ids("") == []
        assert matcher.contains_ticket_reference("") is False

    def test_ticket_beyond_scan_limit_is_ignored(self, matcher):
        text = "x " * 6000 + "MT-5"
        assert matcher.extract_ticket_ids(text) == []


class TestValidation:
    @pytest.mark.parametrize("ticket_id", ["MT-1", "mt-1234567", "HELP-1234567", "INC-42"])
    def test_valid_ids(self, matcher, ticket_id):
        assert matcher.is_valid_ticket_id(ticket_id) is True

    @pytest.mark.parametrize("ticket_id", ["", "MT-", "MT-12345678", "XX-1", "MT-1; DROP", "MT 1"])
    def test_invalid_ids(self, matcher, ticket_id):
        assert matcher.is_valid_ticket_id(ticket_id) is False

    def test_require_valid_normalises(self, matcher):
        assert matcher.require_valid(" it-77 ") == "IT-77"

    def test_require_valid_rejects(self, matcher):
        with pytest.raises(ValidationFailureError) as exc:
            matcher.require_valid("MT-1/../../admin")
        assert exc.value.value == "MT-1/../../admin"


class TestHistory:
    def test_extract_from_history_in_order(self, matcher):
        history = [
            ChatMessage("system", "MT-999"),
            ChatMessage("user", "what about MT-1?"),
            ChatMessage("assistant", "MT-1 is closed, see also IT-2"),
        ]
        assert matcher.extract_from_history(history) == ["MT-1", "IT-2"]

    def test_empty_history(self, matcher):
        assert matcher.extract_from_history(None) == []

    @pytest.mark.parametrize(
        "query,expected",
        [
            ("dame más detalles", True),
            ("What is the ticket status?", True),
            ("how do I reset my password", False),
        ],
    )
    def test_refers_to_previous_ticket(self, query, expected):
        assert refers_to_previous_ticket(query) is expected


class TestAdversarialInput:
    @pytest.mark.parametrize(
        "text",
        [
            "MT-" * 5000,
            "MT-1" * 5000,
            "-" * 50000,
            "HELP-" + "9" * 50000,
        ],
    )
    def test_completes_quickly(self, matcher, text):
        start = time.perf_counter()
        matcher.extract_ticket_ids(text)
        matcher.contains_ticket_reference(text)
        assert time.perf_counter() - start < 2.0

    def test_timeout_means_no_ticket(self, monkeypatch, caplog):
        class SlowPattern:
            def finditer(self, text, timeout=None):
                raise TimeoutError("regex timed out")

            def search(self, text, timeout=None):
                raise TimeoutError("regex timed out")

            def fullmatch(self, text, timeout=None):
                raise TimeoutError("regex timed out")

        monkeypatch.setattr(ticket_patterns, "TICKET_PATTERN", SlowPattern())
        monkeypatch.setattr(ticket_patterns, "TICKET_ID_PATTERN", SlowPattern())
        matcher = TicketPatternMatcher(timeout=1e-7)

        with caplog.at_level(logging.WARNING):
            assert matcher.extract_ticket_ids("MT-1 " * 2000) == []
            assert matcher.contains_ticket_reference("MT-1 " * 2000) is False
            assert matcher.is_valid_ticket_id("MT-1") is False

        assert caplog.text.count("timed out") == 3
