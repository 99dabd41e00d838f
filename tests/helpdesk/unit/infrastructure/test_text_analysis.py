"""
Unit tests for text analysis helpers.
"""

import numpy as np
import pytest

from src.helpdesk.infrastructure.text_analysis import (
    contains_term,
    detect_system,
    extract_feedback_keywords,
    extract_search_terms,
    normalize_for_search,
    normalize_query,
    remove_accents,
    word_count,
)
from src.helpdesk.infrastructure.vector_math import (
    cosine_similarities,
    cosine_similarity,
)


class TestNormalization:
    def test_normalize_for_search_folds_accents(self):
        assert normalize_for_search("Configuración de Año Pingüino") == "configuracion de ano pinguino"

    def test_normalize_for_search_empty(self):
        assert normalize_for_search("") == ""

    def test_remove_accents_keeps_case(self):
        assert remove_accents("Alcalá") == "Alcala"

    def test_folding_covers_uppercase_and_other_accents(self):
        assert normalize_for_search("ÁREA Configuració Français") == "area configuracio francais"
        assert remove_accents("ÀÈÑ à è ç") == "AEN a e c"

    def test_normalize_query_removes_filler(self):
        assert normalize_query("Reset my password please") == "reset my password"
        assert normalize_query("  ¿Cómo  reinicio   SAP?, por favor ") == "¿cómo reinicio sap?"

    def test_normalize_query_blank(self):
        assert normalize_query("   ") == ""

    def test_word_count(self):
        assert word_count("one two  three") == 3
        assert word_count("") == 0


class TestTermExtraction:
    def test_search_terms_drop_stop_words_and_dedupe(self):
        terms = extract_search_terms("¿Dónde está el centro de Alcalá? Alcalá")
        assert terms == ["está", "alcalá"]

    def test_search_terms_min_length(self):
        assert extract_search_terms("x vpn", min_length=2) == ["vpn"]

    def test_feedback_keywords(self):
        assert extract_feedback_keywords("¿Cómo configuro la VPN en casa?") == [
            "configuro",
            "vpn",
            "casa",
        ]

    def test_feedback_keywords_drop_filler(self):
        assert extract_feedback_keywords("necesito ayuda con un problema de impresora") == ["impresora"]


class TestContainsTerm:
    def test_short_terms_need_word_boundaries(self):
        assert contains_term("problema con mes", "mes") is True
        assert contains_term("el mismo mesa", "mes") is False

    def test_long_terms_match_substrings(self):
        assert contains_term("zscalerapp caido", "zscaler") is True

    def test_empty_term(self):
        assert contains_term("anything", "") is False


class TestDetectSystem:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Problema con Zscaler", "Network"),
            ("No puedo entrar en SAP GUI", "SAP"),
            ("La impresora no imprime", "Workplace"),
            ("Olvidé mi contraseña", "Cybersecurity"),
            ("Pregunta sin sistema", "General"),
            ("", "General"),
        ],
    )
    def test_detect_system(self, text, expected):
        assert detect_system(text) == expected


class TestVectorMath:
    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    @pytest.mark.parametrize(
        "a,b",
        [([], [1.0]), (None, [1.0]), ([1.0, 2.0], [1.0]), ([0.0, 0.0], [1.0, 1.0])],
    )
    def test_degenerate_inputs_score_zero(self, a, b):
        assert cosine_similarity(a, b) == 0.0

    def test_matrix_similarities_handle_zero_rows(self):
        matrix = np.array([[1.0, 0.0], [0.0, 0.0], [0.0, 2.0]])
        sims = cosine_similarities([1.0, 0.0], matrix)
        assert sims.tolist() == pytest.approx([1.0, 0.0, 0.0])

    def test_zero_query_vector(self):
        sims = cosine_similarities([0.0, 0.0], np.array([[1.0, 0.0]]))
        assert sims.tolist() == [0.0]
