import pytest

from clipintel.features import extract_features
from clipintel.models import (
    DeviceClass,
    Intent,
    OptimizationSuggestion,
    OptimizationType,
    PatternsSnapshot,
    PerformanceAnalysis,
    Priority,
    ResourcePrediction,
    UserIntentPrediction,
)
from clipintel.recommender import OptimizationRecommender, merge_suggestions
from clipintel.security import build_risk


def make_performance(memory_mb=4.0, cpu_percent=0.2, latency=0.0):
    return PerformanceAnalysis(
        complexity_score=0.1,
        resource_prediction=ResourcePrediction(memory_mb, cpu_percent, 1024, 512),
        cache_hit_probability=0.0,
        performance_score=0.6,
        estimated_load_time=0.7,
        memory_impact=memory_mb,
        device_class=DeviceClass.STANDARD,
        network_latency_ms=latency,
    )


def recommend(url, intent=Intent.UNKNOWN, performance=None, risk=None, patterns=None):
    return OptimizationRecommender().recommend(
        extract_features(url),
        UserIntentPrediction(intent, 0.9),
        performance,
        risk,
        patterns,
    )


def types_of(suggestions):
    return [s.type for s in suggestions]


def test_no_suggestions_for_plain_url():
    assert recommend("https://example.com/") == ()


def test_deep_path_suggests_simplifying():
    suggestions = recommend("https://example.com/a/b/c/d/e/f")

    assert len(suggestions) == 1
    assert suggestions[0].type is OptimizationType.SIMPLIFY_URL_STRUCTURE
    assert suggestions[0].priority is Priority.MEDIUM
    assert suggestions[0].estimated_improvement == 0.15


def test_five_segments_is_not_deep():
    assert recommend("https://example.com/a/b/c/d/e") == ()


def test_many_parameters_suggest_reduction():
    query = "&".join(f"p{i}={i}" for i in range(12))
    suggestions = recommend(f"https://example.com/?{query}")

    reduce = [s for s in suggestions if s.type is OptimizationType.REDUCE_PARAMETERS]
    assert len(reduce) == 1
    assert reduce[0].priority is Priority.HIGH
    assert reduce[0].estimated_improvement == 0.25


def test_ten_parameters_are_fine():
    query = "&".join(f"p{i}={i}" for i in range(10))
    assert recommend(f"https://example.com/?{query}") == ()


@pytest.mark.parametrize(
    "intent,expected_type,priority,improvement",
    [
        (
            Intent.PURCHASE,
            OptimizationType.PRELOAD_PAYMENT_COMPONENTS,
            Priority.HIGH,
            0.4,
        ),
        (Intent.BROWSE, OptimizationType.PREFETCH_CONTENT, Priority.MEDIUM, 0.3),
        (Intent.INFORMATION, OptimizationType.OPTIMIZE_CACHING, Priority.LOW, 0.2),
    ],
)
def test_intent_suggestions(intent, expected_type, priority, improvement):
    suggestions = recommend("https://example.com/", intent=intent)

    assert len(suggestions) == 1
    assert suggestions[0].type is expected_type
    assert suggestions[0].priority is priority
    assert suggestions[0].estimated_improvement == improvement


def test_other_intents_add_nothing():
    assert recommend("https://example.com/", intent=Intent.BOOKING) == ()


def test_resource_rules():
    suggestions = recommend(
        "https://example.com/",
        performance=make_performance(memory_mb=9.0, cpu_percent=0.9, latency=250.0),
    )

    assert set(types_of(suggestions)) == {
        OptimizationType.MEMORY_OPTIMIZATION,
        OptimizationType.CPU_OPTIMIZATION,
        OptimizationType.REQUEST_BATCHING,
    }


def test_resource_thresholds_are_exclusive():
    suggestions = recommend(
        "https://example.com/",
        performance=make_performance(memory_mb=8.0, cpu_percent=0.8, latency=200.0),
    )
    assert suggestions == ()


def test_frequent_paths_merge_with_browse_prefetch():
    patterns = PatternsSnapshot(frequent_paths=("/menu", "/cart"))

    suggestions = recommend(
        "https://example.com/", intent=Intent.BROWSE, patterns=patterns
    )

    assert len(suggestions) == 1
    assert suggestions[0].type is OptimizationType.PREFETCH_CONTENT
    assert suggestions[0].estimated_improvement == 0.35
    assert "/menu" in suggestions[0].description


def test_security_hardening_for_high_risk():
    risk = build_risk(0.5, {"insecure_scheme", "sensitive_parameter"})

    suggestions = recommend("http://example.com/order?token=abc", risk=risk)

    assert suggestions[0].type is OptimizationType.SECURITY_HARDENING
    assert suggestions[0].priority is Priority.HIGH
    assert "enforce_secure_scheme" in suggestions[0].description


def test_security_hardening_is_critical_for_critical_risk():
    suggestions = recommend(
        "https://example.com/", risk=build_risk(0.9, {"suspicious_domain"})
    )
    assert suggestions[0].priority is Priority.CRITICAL


def test_medium_risk_adds_nothing():
    assert recommend("https://example.com/", risk=build_risk(0.3, {"x"})) == ()


def test_ordering_by_priority_then_improvement():
    query = "&".join(f"p{i}={i}" for i in range(12))
    suggestions = recommend(
        f"https://example.com/a/b/c/d/e/f?{query}",
        intent=Intent.PURCHASE,
        performance=make_performance(memory_mb=9.0, latency=300.0),
    )

    assert types_of(suggestions) == [
        OptimizationType.PRELOAD_PAYMENT_COMPONENTS,
        OptimizationType.MEMORY_OPTIMIZATION,
        OptimizationType.REDUCE_PARAMETERS,
        OptimizationType.REQUEST_BATCHING,
        OptimizationType.SIMPLIFY_URL_STRUCTURE,
    ]


def test_merge_keeps_higher_priority():
    low = OptimizationSuggestion(
        OptimizationType.OPTIMIZE_CACHING, Priority.LOW, "low", 0.9
    )
    high = OptimizationSuggestion(
        OptimizationType.OPTIMIZE_CACHING, Priority.HIGH, "high", 0.1
    )

    assert merge_suggestions([low, high]) == (high,)
    assert merge_suggestions([high, low]) == (high,)
