"""Tests for in-memory semantic search and relevance ranking."""
import numpy as np
import pytest

from docvec.rag.search import RelevanceBoosts, SearchEngine, cosine_similarity
from tests.unit.conftest import make_chunk, make_embedded


def test_cosine_similarity_identities():
    assert cosine_similarity([1, 2, 3], [1, 2, 3]) == pytest.approx(1.0)
    assert cosine_similarity([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([0, 0, 0], [1, 2, 3]) == 0.0


def test_cosine_similarity_length_mismatch():
    with pytest.raises(ValueError):
        cosine_similarity([1, 0], [1, 0, 0])


def test_function_ranks_above_example(threshold_corpus):
    """Test that the function boost outranks a similar example chunk."""
    engine = SearchEngine(threshold_corpus)

    results = engine.semantic_search([1.0, 0.0, 0.0], min_similarity=0.2)

    assert [r.chunk.id for r in results] == ["fn", "example"]
    assert results[0].similarity == pytest.approx(1.0)
    assert results[1].similarity == pytest.approx(0.9 / np.sqrt(0.82), rel=1e-5)


def test_high_threshold_keeps_exact_match_only(threshold_corpus):
    engine = SearchEngine(threshold_corpus)

    results = engine.semantic_search([0.0, 1.0, 0.0], min_similarity=0.95)

    assert [r.chunk.id for r in results] == ["guide"]
    assert results[0].similarity == pytest.approx(1.0)


def test_results_meet_threshold_and_limit():
    corpus = [make_embedded(f"c{i}", [1.0, i / 10, 0.0]) for i in range(10)]
    engine = SearchEngine(corpus)

    results = engine.semantic_search([1.0, 0.0, 0.0], limit=3, min_similarity=0.5)

    assert len(results) == 3
    assert all(r.similarity >= 0.5 for r in results)
    scores = [r.relevance_score for r in results]
    assert scores == sorted(scores, reverse=True)


def test_relevance_score_boosts_and_clamp():
    """Test each additive boost and the clamp at 1.0."""
    engine = SearchEngine([])

    guide = make_chunk("g", chunk_type="guide", priority=0.5).metadata
    assert engine.calculate_relevance_score(0.5, guide) == pytest.approx(0.6)

    example = make_chunk("e", chunk_type="example", priority=0.8, has_code_example=True).metadata
    assert engine.calculate_relevance_score(0.3, example) == pytest.approx(0.3 + 0.2 + 0.1 + 0.05)

    function = make_chunk("f", chunk_type="function", priority=0.5, parameters=["x"]).metadata
    assert engine.calculate_relevance_score(0.2, function) == pytest.approx(0.2 + 0.3 + 0.05)
    assert engine.calculate_relevance_score(0.95, function) == 1.0


def test_parameter_boost_only_for_functions():
    engine = SearchEngine([])
    klass = make_chunk("k", chunk_type="class", priority=0.5, parameters=["x"]).metadata

    assert engine.calculate_relevance_score(0.2, klass) == pytest.approx(0.45)


def test_custom_boosts():
    engine = SearchEngine([], boosts=RelevanceBoosts(type_boosts={"guide": 0.5}))
    guide = make_chunk("g", chunk_type="guide", priority=0.1).metadata

    assert engine.calculate_relevance_score(0.1, guide) == pytest.approx(0.6)


def test_type_filter_returns_only_matching_types():
    corpus = [
        make_embedded("fn", [1.0, 0.0], chunk_type="function"),
        make_embedded("cls", [1.0, 0.1], chunk_type="class"),
        make_embedded("ex", [1.0, 0.2], chunk_type="example", has_code_example=True),
        make_embedded("gd", [1.0, 0.3], chunk_type="guide"),
    ]
    engine = SearchEngine(corpus)
    query = [1.0, 0.0]

    assert {r.chunk.id for r in engine.semantic_search(query, type_filter="guide")} == {"gd"}
    assert {r.chunk.id for r in engine.search_functions(query)} == {"fn", "cls"}
    assert {r.chunk.id for r in engine.search_examples(query)} == {"ex"}
    assert {r.chunk.id for r in engine.search_guides(query)} == {"gd"}


def test_search_examples_requires_code():
    corpus = [
        make_embedded("with-code", [1.0, 0.0], chunk_type="example", has_code_example=True),
        make_embedded("prose", [1.0, 0.0], chunk_type="example", has_code_example=False),
    ]

    results = SearchEngine(corpus).search_examples([1.0, 0.0])

    assert [r.chunk.id for r in results] == ["with-code"]


def test_category_filter_is_case_insensitive_substring():
    corpus = [
        make_embedded("a", [1.0, 0.0], category="Client API"),
        make_embedded("b", [1.0, 0.0], category="Server"),
        make_embedded("c", [1.0, 0.0]),
    ]
    engine = SearchEngine(corpus)

    results = engine.semantic_search([1.0, 0.0], category_filter=["client"])

    assert [r.chunk.id for r in results] == ["a"]


def test_search_is_deterministic():
    """Test that equal inputs give equal result order, ties in corpus order."""
    corpus = [make_embedded(f"c{i}", [1.0, 0.0]) for i in range(5)]
    engine = SearchEngine(corpus)

    first = [r.chunk.id for r in engine.semantic_search([1.0, 0.0])]
    second = [r.chunk.id for r in engine.semantic_search([1.0, 0.0])]

    assert first == second == ["c0", "c1", "c2", "c3", "c4"]


def test_zero_query_vector_matches_nothing_above_threshold(threshold_corpus):
    engine = SearchEngine(threshold_corpus)

    assert engine.semantic_search([0.0, 0.0, 0.0], min_similarity=0.1) == []


def test_query_dimension_mismatch_rejected(threshold_corpus):
    with pytest.raises(ValueError):
        SearchEngine(threshold_corpus).semantic_search([1.0, 0.0])


def test_mixed_dimensions_rejected():
    corpus = [make_embedded("a", [1.0, 0.0]), make_embedded("b", [1.0, 0.0, 0.0])]

    with pytest.raises(ValueError):
        SearchEngine(corpus)


def test_duplicate_ids_rejected():
    corpus = [make_embedded("a", [1.0, 0.0]), make_embedded("a", [0.0, 1.0])]

    with pytest.raises(ValueError):
        SearchEngine(corpus)


def test_empty_corpus_returns_no_results():
    engine = SearchEngine([])

    assert engine.semantic_search([1.0, 0.0]) == []
    assert len(engine) == 0


def test_snapshot_is_read_only(threshold_corpus):
    engine = SearchEngine(threshold_corpus)

    with pytest.raises(AttributeError):
        engine.chunks.append(threshold_corpus[0])
    with pytest.raises(ValueError):
        engine._matrix[0, 0] = 5.0


def test_from_records(threshold_corpus):
    engine = SearchEngine.from_records([c.to_record() for c in threshold_corpus])

    assert len(engine) == 3
    assert engine.dimension == 3
    assert [r.chunk.id for r in engine.semantic_search([1.0, 0.0, 0.0], min_similarity=0.2)] == [
        "fn",
        "example",
    ]


def test_introspection_helpers():
    corpus = [
        make_embedded("a", [1.0, 0.0], chunk_type="function", category="Client API", function_name="connect"),
        make_embedded("b", [0.0, 1.0], chunk_type="function", category="Client API", function_name="close"),
        make_embedded("c", [1.0, 1.0], chunk_type="guide", category="Setup"),
    ]
    engine = SearchEngine(corpus)

    assert engine.get_categories() == ["Client API", "Setup"]
    assert engine.get_function_names() == ["close", "connect"]
    assert [c.id for c in engine.get_chunks_by_category("client")] == ["a", "b"]

    stats = engine.get_search_stats()
    assert stats == {
        "total_chunks": 3,
        "chunks_by_type": {"function": 2, "guide": 1},
        "average_embedding_dimensions": 2,
        "categories_count": 2,
        "functions_count": 2,
    }
