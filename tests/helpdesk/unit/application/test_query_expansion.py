"""
Unit tests for query decomposition, context expansion and synonym expansion.
"""

import pytest

from src.helpdesk.application.query_expansion import ExpandedQuery, QueryExpander
from src.helpdesk.domain.value_objects import ChatMessage

EXPANSION_CONFIG = {
    "rules": [
        {"triggers": ["vpn"], "expansions": ["Zscaler remote access"]},
        {"triggers": ["zscaler"], "requires_any": ["error"], "expansions": ["Zscaler troubleshooting"]},
        {"triggers": ["centro"], "expansions": ["centre"], "include_codes": True},
    ],
    "known_entities": ["sap", "zscaler"],
    "reference_patterns": ["más información", "more details"],
    "follow_up_prefixes": ["y ", "and "],
    "topic_keywords": ["Zscaler", "SAP"],
    "topic_patterns": ["\\b[A-Z]{2}\\d{2}\\b"],
    "centre_code_pattern": "\\b[A-Z]\\d{3}\\b",
    "max_topics": 5,
}


@pytest.fixture
def expander():
    return QueryExpander(EXPANSION_CONFIG)


def create_history():
    return [
        ChatMessage("user", "Problema con MT-12 en SAP"),
        ChatMessage("assistant", "Revisa SU01 en el centro A123"),
    ]


class TestDecomposition:
    def test_conjunction_split(self, expander):
        query = "¿Cómo configuro SAP y cómo instalo Zscaler?"
        assert expander.decompose(query) == [
            query,
            "¿Cómo configuro SAP",
            "cómo instalo Zscaler?",
        ]

    def test_multiple_questions(self, expander):
        query = "¿Qué es SAP? ¿Dónde está Zscaler?"
        assert expander.decompose(query) == [query, "¿Qué es SAP?", "¿Dónde está Zscaler?"]

    def test_entity_sub_queries(self, expander):
        assert expander.decompose("ticket para SAP") == ["ticket para SAP", "ticket SAP"]
        assert expander.decompose("how do I use SAP") == ["how do I use SAP", "how to SAP"]

    def test_plain_query_is_untouched(self, expander):
        assert expander.decompose("la impresora no imprime") == ["la impresora no imprime"]

    def test_empty_query(self, expander):
        assert expander.decompose("  ") == []

    def test_extract_entities(self, expander):
        assert expander.extract_entities("Acceso a SAP desde IAL") == ["SAP", "IAL"]


class TestContextExpansion:
    @pytest.mark.parametrize(
        "query,expected",
        [
            ("y el otro?", True),
            ("Necesito más información sobre eso", True),
            ("How do I configure the VPN client on my laptop", False),
            ("impresora", False),
        ],
    )
    def test_is_follow_up(self, expander, query, expected):
        assert expander.is_follow_up(query) is expected

    def test_extract_topics(self, expander):
        assert expander.extract_topics(create_history()) == ["MT-12", "SAP", "SU01", "A123"]

    def test_follow_up_gets_topics(self, expander):
        expanded = expander.expand_with_context("y el otro?", create_history())
        assert expanded == "y el otro? [Contexto conversación: MT-12, SAP, SU01, A123]"

    def test_non_follow_up_is_unchanged(self, expander):
        query = "How do I configure the VPN client on my laptop"
        assert expander.expand_with_context(query, create_history()) == query

    def test_no_history(self, expander):
        assert expander.expand_with_context("y el otro?", None) == "y el otro?"


class TestSynonymExpansion:
    def test_trigger_adds_expansions(self, expander):
        assert expander.expand_with_synonyms("vpn lenta") == "vpn lenta Zscaler remote access"

    def test_requires_any(self, expander):
        assert expander.expand_with_synonyms("instalar zscaler") == "instalar zscaler"
        assert expander.expand_with_synonyms("zscaler error") == "zscaler error Zscaler troubleshooting"

    def test_include_codes(self, expander):
        assert expander.expand_with_synonyms("centro ABC") == "centro ABC ABC centre"

    def test_default_rules_load(self):
        assert "Zscaler remote access" in QueryExpander().expand_with_synonyms("vpn")


class TestExpand:
    def test_expand_combines_rewrites(self, expander):
        result = expander.expand("y la vpn?", create_history())

        assert isinstance(result, ExpandedQuery)
        assert result.sub_queries == ["y la vpn?"]
        assert result.context_query.startswith("y la vpn? [Contexto conversación:")
        assert result.expanded_query.endswith("Zscaler remote access")
        assert result.search_queries == [result.context_query]
