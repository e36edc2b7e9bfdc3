import asyncio

import pytest

from clipintel.collaborators import (
    InMemoryCacheManager,
    InMemoryHistoricalStore,
    StaticDomainIntelligence,
    StaticEnvironmentProfiler,
    StaticThreatIntelligence,
    ZScoreAnomalyDetector,
)
from clipintel.config import EngineConfig
from clipintel.engine import IntelligenceEngine
from clipintel.intent import IntentClassifier


@pytest.fixture
def run():
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run


@pytest.fixture
def threat_intel():
    return StaticThreatIntelligence(domains=["evil.example"], suffixes=[".phish.test"])


@pytest.fixture
def domain_intel():
    return StaticDomainIntelligence()


@pytest.fixture
def cache():
    return InMemoryCacheManager()


@pytest.fixture
def historical():
    return InMemoryHistoricalStore()


@pytest.fixture
def profiler():
    return StaticEnvironmentProfiler()


@pytest.fixture
def make_engine(threat_intel, domain_intel, cache, historical, profiler):
    """Factory for engines wired with the in-memory collaborators."""

    def _make(config=None, **overrides):
        wiring = {
            "threat_intel": threat_intel,
            "domain_intel": domain_intel,
            "cache": cache,
            "historical": historical,
            "anomaly_detector": ZScoreAnomalyDetector(),
            "profiler": profiler,
        }
        wiring.update(overrides)
        return IntelligenceEngine(config=config or EngineConfig(), **wiring)

    return _make


@pytest.fixture
def classifier():
    """An initialized classifier with the default rule model."""
    clf = IntentClassifier()
    clf.initialize()
    return clf
