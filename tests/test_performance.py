import pytest

from clipintel.collaborators import (
    HistoricalDataStore,
    InMemoryCacheManager,
    StaticEnvironmentProfiler,
)
from clipintel.errors import CollaboratorError
from clipintel.features import extract_features
from clipintel.models import DeviceClass, EnvironmentConditions
from clipintel.performance import (
    BASELINE,
    PerformanceAnalyzer,
    average_resources,
    complexity_score,
    estimated_load_time,
)

SCENARIO_A = "http://example.com/order?token=abc"


class BrokenHistory(HistoricalDataStore):
    async def similar_urls(self, url, limit):
        raise CollaboratorError(self.name, "store offline")

    async def performance_data(self, scenario):
        return []

    async def new_training_samples(self):
        return []

    async def store_insights(self, behavior, patterns, anomalies):
        return None


def test_baseline_without_history(run, historical, cache):
    analyzer = PerformanceAnalyzer(historical, cache)
    analysis, degraded = run(analyzer.analyze(extract_features(SCENARIO_A)))

    assert degraded == set()
    assert analysis.resource_prediction == BASELINE
    assert analysis.memory_impact == 4.0


def test_scenario_a_scores(run, historical, cache):
    analyzer = PerformanceAnalyzer(historical, cache)
    analysis, _ = run(analyzer.analyze(extract_features(SCENARIO_A)))

    assert analysis.complexity_score == pytest.approx(0.184)
    assert analysis.cache_hit_probability == 0.0
    assert analysis.performance_score == pytest.approx(0.5448)
    assert analysis.estimated_load_time == pytest.approx(0.7276)


def test_resources_average_over_similar_urls(run, historical, cache):
    historical.record_performance(
        "https://example.com/menu", {"memory_mb": 9, "cpu_percent": 0.4}
    )
    historical.record_performance(
        "https://example.com/cart", {"memory_mb": 11, "cpu_percent": 0.6}
    )
    analyzer = PerformanceAnalyzer(historical, cache)

    analysis, degraded = run(
        analyzer.analyze(extract_features("https://example.com/order"))
    )

    resources = analysis.resource_prediction
    assert not degraded
    assert resources.memory_mb == pytest.approx(10.0)
    assert resources.cpu_percent == pytest.approx(0.5)
    # Missing measurements fall back to the baseline
    assert resources.network_bytes == BASELINE.network_bytes


def test_average_resources_ignores_malformed_values():
    prediction = average_resources(
        [{"memory_mb": "oops"}, {"memory_mb": 6.0}, {"memory_mb": 2.0}]
    )
    assert prediction.memory_mb == pytest.approx(4.0)

    assert average_resources([]) is None
    assert average_resources([{"unrelated": 1}]) is None


def test_cache_hit_probability_from_lookups(run, historical):
    cache = InMemoryCacheManager()
    cache.store(SCENARIO_A)
    cache.lookup(SCENARIO_A)
    cache.lookup(SCENARIO_A)
    analyzer = PerformanceAnalyzer(historical, cache)

    analysis, _ = run(analyzer.analyze(extract_features(SCENARIO_A)))

    # Two hits of two lookups, smoothed toward a prior of zero
    assert analysis.cache_hit_probability == pytest.approx(2 / 3)


def test_expired_entries_are_misses():
    now = [0.0]
    cache = InMemoryCacheManager(ttl=10, clock=lambda: now[0])
    cache.store("https://a.com/")
    assert cache.lookup("https://a.com/")
    now[0] = 11.0
    assert not cache.lookup("https://a.com/")


@pytest.mark.parametrize("score", [0.0, 0.25, 0.5, 1.0])
def test_load_time_bounds(score):
    assert 0.5 <= estimated_load_time(score) <= 1.0


def test_complexity_is_clamped():
    url = "https://example.com/" + "/".join(["a"] * 20)
    assert complexity_score(extract_features(url)) == 1.0


def test_environment_context(run, historical, cache):
    profiler = StaticEnvironmentProfiler(
        DeviceClass.LOW, EnvironmentConditions(network_latency_ms=350.0)
    )
    analyzer = PerformanceAnalyzer(historical, cache, profiler)

    analysis, _ = run(analyzer.analyze(extract_features(SCENARIO_A)))

    assert analysis.device_class is DeviceClass.LOW
    assert analysis.network_latency_ms == 350.0


def test_history_failure_degrades_to_baseline(run, cache):
    analyzer = PerformanceAnalyzer(BrokenHistory(), cache)

    analysis, degraded = run(analyzer.analyze(extract_features(SCENARIO_A)))

    assert degraded == {"historical_data"}
    assert analysis.resource_prediction == BASELINE
    assert 0.0 <= analysis.performance_score <= 1.0


def test_cache_statistics_are_bounded():
    cache = InMemoryCacheManager(max_size=100, max_tracked=200)
    for i in range(5000):
        url = f"https://example.com/item/{i}"
        cache.store(url)
        cache.lookup(url)

    assert cache.size == 100
    assert cache.tracked_count == 200


def test_recent_statistics_survive_eviction(run):
    cache = InMemoryCacheManager(max_tracked=2)
    cache.store("https://a.com/")
    cache.lookup("https://a.com/")
    cache.lookup("https://b.com/")
    cache.lookup("https://a.com/")
    cache.lookup("https://c.com/")

    # b.com was the least recently looked up
    assert run(cache.hit_probability("https://b.com/")) == 0.0
    assert run(cache.hit_probability("https://a.com/")) == pytest.approx(2 / 3)
