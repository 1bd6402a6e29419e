import pytest

from memex.search.intent import (
    HIGH,
    MEDIUM,
    DecisionKind,
    IntentType,
    classify_intent,
    decide,
    deduplicate_results,
    is_ambiguous,
    title_similarity,
)
from memex.search.ranker import RankedMemory
from memex.search.settings import SearchSettings
from memex.storage import Memory


def _result(memory_id, similarity, title="Untitled", url=None):
    url = url or f"https://site{memory_id}.example/page"
    memory = Memory(
        id=memory_id,
        owner="alice",
        url=url,
        canonical_url=url,
        title=title,
        content="",
        summary="",
    )
    return RankedMemory(memory, similarity, 1.0, similarity)


def test_title_similarity_ignores_short_words():
    assert title_similarity("How to cook a steak", "How to cook the steak") == 1.0
    assert title_similarity("the a of", "in on at") == 0.0
    assert title_similarity("Reverse sear steak guide", "Reverse sear salmon guide") == pytest.approx(0.6)


def test_dedup_collapses_same_host_similar_titles():
    results = [
        _result(1, 0.9, "Reverse Sear Steak Guide Complete", "https://food.example/a"),
        _result(2, 0.85, "Reverse Sear Steak Guide Complete Edition", "https://food.example/b"),
        _result(3, 0.8, "Reverse Sear Steak Guide Complete", "https://other.example/a"),
        _result(4, 0.7, "Pasta Carbonara Basics", "https://food.example/c"),
    ]
    assert [r.id for r in deduplicate_results(results)] == [1, 3, 4]


def test_dedup_is_stable_for_distinct_results():
    results = [_result(i, 0.9 - i / 100) for i in range(5)]
    assert deduplicate_results(results) == results


@pytest.mark.parametrize(
    "query,similarity,count,expected_type,needs_ai,confidence",
    [
        ("What did I read about cooking steak?", 0.95, 1, IntentType.QUESTION, False, HIGH),
        ("how do I sear steak", 0.8, 1, IntentType.QUESTION, True, HIGH),
        ("why is my bread dense", 0.5, 2, IntentType.QUESTION, True, MEDIUM),
        ("what is the difference between cast iron vs steel", 0.95, 2, IntentType.QUESTION, True, HIGH),
        ("compare sous vide and reverse sear", 0.95, 2, IntentType.SYNTHESIS, True, HIGH),
        ("summarize steak articles", 0.95, 1, IntentType.SYNTHESIS, False, MEDIUM),
        ("find that steak article", 0.72, 3, IntentType.NAVIGATIONAL, False, HIGH),
        ("show me the pasta page", 0.6, 3, IntentType.NAVIGATIONAL, True, MEDIUM),
        ("reverse sear steak", 0.8, 1, IntentType.GENERAL, False, HIGH),
        ("reverse sear steak", 0.5, 1, IntentType.GENERAL, True, MEDIUM),
    ],
)
def test_classify_intent(query, similarity, count, expected_type, needs_ai, confidence):
    intent = classify_intent(query, similarity, count, SearchSettings())
    assert intent.type is expected_type
    assert intent.needs_ai_answer is needs_ai
    assert intent.confidence == confidence


def test_keywords_match_whole_words_only():
    intent = classify_intent("target marketing budget", 0.8, 1)
    assert intent.type is IntentType.GENERAL


def test_is_ambiguous_needs_enough_results_and_small_gap():
    settings = SearchSettings()
    close = [_result(1, 0.80), _result(2, 0.78), _result(3, 0.6)]
    assert is_ambiguous(close, settings)
    assert not is_ambiguous(close[:2], settings)
    assert not is_ambiguous([_result(1, 0.9), _result(2, 0.7), _result(3, 0.6)], settings)


def test_decide_no_results():
    assert decide("anything", []).kind is DecisionKind.NO_RESULTS


def test_decide_weak_match_below_threshold():
    decision = decide("steak", [_result(1, 0.41)])
    assert decision.kind is DecisionKind.WEAK_MATCH
    assert decision.top_similarity == pytest.approx(0.41)
    assert not decision.uses_ai


def test_decide_confident_recall_for_steak_question():
    decision = decide("What did I read about cooking steak?", [_result(1, 0.95)])
    assert decision.kind is DecisionKind.RECALL_ONLY
    assert decision.is_confident_match
    assert not decision.uses_ai


def test_decide_ambiguity_forces_generation():
    results = [_result(1, 0.95), _result(2, 0.94), _result(3, 0.93)]
    decision = decide("What did I read about cooking steak?", results)
    assert decision.is_ambiguous
    assert decision.kind is DecisionKind.GENERATIVE
    assert not decision.is_confident_match


def test_decide_is_pure():
    results = [_result(1, 0.8), _result(2, 0.5)]
    assert decide("how to sear", results) == decide("how to sear", results)
