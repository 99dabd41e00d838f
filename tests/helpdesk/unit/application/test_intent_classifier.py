"""
Unit tests for the intent classification cascade and per-intent weights.
"""

from unittest.mock import AsyncMock

import pytest

from src.helpdesk.application.intent_classifier import IntentClassifier, IntentRules
from src.helpdesk.application.search_weights import (
    DEFAULT_WEIGHTS,
    apply_weights,
    merge_weighted,
    weights_for,
)
from src.helpdesk.domain.entities import SourceDocument, SourceKind
from src.helpdesk.domain.value_objects import ChatMessage, IntentCategory, ScoredDocument
from src.helpdesk.infrastructure.code_directory import CodeDirectory


@pytest.fixture
def classifier():
    return IntentClassifier()


def create_hit(doc_id, score):
    return ScoredDocument(item=SourceDocument(id=doc_id, name=doc_id), score=score)


class TestRuleCascade:
    @pytest.mark.asyncio
    async def test_ticket_reference_wins(self, classifier):
        result = await classifier.classify("ayuda con MT-799225 y la vpn")

        assert result.category == IntentCategory.TICKET_LOOKUP
        assert result.matched_keywords == ["MT-799225"]
        assert result.rule == "ticket"
        assert result.confidence == 1.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "query,expected",
        [
            ("Zscaler no conecta desde casa", IntentCategory.NETWORK),
            ("Necesito abrir un ticket para una laptop nueva", IntentCategory.TICKET_REQUEST),
            ("how do I change my password", IntentCategory.HOW_TO),
            ("what is company 1000", IntentCategory.LOOKUP),
            ("the printer shows an error", IntentCategory.TROUBLESHOOTING),
            ("Error de SAP al guardar", IntentCategory.SAP),
        ],
    )
    async def test_keyword_rules(self, classifier, query, expected):
        result = await classifier.classify(query)
        assert result.category == expected
        assert result.rule == "keyword"

    @pytest.mark.asyncio
    async def test_ambiguous_follow_up_uses_history(self, classifier):
        history = [
            ChatMessage("user", "Zscaler no funciona"),
            ChatMessage("assistant", "Prueba a reiniciar el cliente"),
        ]
        result = await classifier.classify("y ahora?", history)

        assert result.category == IntentCategory.NETWORK
        assert result.rule == "history"

    @pytest.mark.asyncio
    async def test_specific_query_ignores_history(self, classifier):
        history = [ChatMessage("user", "Zscaler no funciona")]
        result = await classifier.classify("Necesito abrir un ticket para una laptop nueva", history)
        assert result.category == IntentCategory.TICKET_REQUEST

    @pytest.mark.asyncio
    async def test_transaction_code(self, classifier):
        result = await classifier.classify("SU01 bloqueada")
        assert result.category == IntentCategory.SAP
        assert result.rule == "transaction_code"

    @pytest.mark.asyncio
    async def test_known_code_from_directory(self):
        classifier = IntentClassifier(code_directory=CodeDirectory(transactions=["ZFI9"]))
        result = await classifier.classify("asignar zfi9 urgente")
        assert result.category == IntentCategory.SAP
        assert result.rule == "known_code"

    @pytest.mark.asyncio
    async def test_fallback(self):
        fallback = AsyncMock()
        fallback.classify.return_value = IntentCategory.NETWORK
        classifier = IntentClassifier(fallback=fallback)

        result = await classifier.classify("algo raro pasa con la pantalla")

        assert result.category == IntentCategory.NETWORK
        assert result.rule == "fallback"
        fallback.classify.assert_awaited_once_with("algo raro pasa con la pantalla")

    @pytest.mark.asyncio
    async def test_default_without_fallback(self, classifier):
        result = await classifier.classify("algo raro pasa con la pantalla")
        assert result.category == IntentCategory.GENERAL
        assert result.confidence == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_empty_query(self, classifier):
        result = await classifier.classify("   ")
        assert result.category == IntentCategory.GENERAL
        assert result.confidence == 0.0

    @pytest.mark.asyncio
    async def test_classify_batch(self, classifier):
        results = await classifier.classify_batch(["vpn caida", "MT-1"])
        assert [r.category for r in results] == [IntentCategory.NETWORK, IntentCategory.TICKET_LOOKUP]


class TestRules:
    def test_is_ambiguous(self, classifier):
        assert classifier.is_ambiguous("ok")
        assert classifier.is_ambiguous("me puedes dar mas informacion sobre eso")
        assert not classifier.is_ambiguous("la impresora de la segunda planta tiene atasco de papel")

    def test_custom_rules(self):
        rules = IntentRules.from_dict(
            {"keyword_rules": [{"category": "SAP", "keywords": ["transacción"]}]}
        )
        classifier = IntentClassifier(rules=rules)
        assert classifier.get_category_keywords(IntentCategory.SAP) == ["transaccion"]
        assert classifier.get_category_keywords(IntentCategory.NETWORK) == []


class TestSearchWeights:
    def test_weights_for_intent(self):
        assert weights_for(IntentCategory.TICKET_REQUEST).ticket_forms == 2.5
        assert weights_for(IntentCategory.LOOKUP).reference == 3.0
        assert weights_for(IntentCategory.GENERAL) == DEFAULT_WEIGHTS

    def test_apply_weights(self):
        weights = weights_for(IntentCategory.LOOKUP)
        scaled = apply_weights([create_hit("a", 0.5)], SourceKind.REFERENCE, weights)
        assert scaled[0].score == pytest.approx(1.5)

    def test_merge_keeps_best_per_document(self):
        merged = merge_weighted(
            [[create_hit("a", 0.4), create_hit("b", 0.9)], [create_hit("a", 1.2)]],
            max_results=5,
        )
        assert [(h.doc_id, h.score) for h in merged] == [("a", 1.2), ("b", 0.9)]

    def test_merge_limit(self):
        hits = [create_hit(str(i), i / 10) for i in range(10)]
        assert len(merge_weighted([hits], max_results=3)) == 3
