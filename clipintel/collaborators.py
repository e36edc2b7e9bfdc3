"""
Contracts for the services the engine consults, plus in-memory versions.

The engine only depends on the abstract classes. The in-memory versions are
what ``build_default_engine`` wires in when a host does not supply its own,
and what the test-suite drives.
"""

import abc
import asyncio
import logging
import time
from collections import OrderedDict, deque
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.neighbors import NearestNeighbors

from clipintel.errors import CollaboratorError, InvalidURL
from clipintel.features import extract_features, structural_vector
from clipintel.models import (
    Anomaly,
    DeviceClass,
    DomainInfo,
    EnvironmentConditions,
    PatternsSnapshot,
    TrainingSample,
    UserBehavior,
    clamp,
)

logger = logging.getLogger(__name__)


class Collaborator(abc.ABC):
    name = "collaborator"

    async def initialize(self) -> None:
        """Hook run once while the engine initializes."""
        return None


class ThreatIntelligence(Collaborator):
    name = "threat_intelligence"

    @abc.abstractmethod
    async def is_domain_suspicious(self, domain: str) -> bool:
        ...


class DomainIntelligence(Collaborator):
    name = "domain_intelligence"

    @abc.abstractmethod
    async def get_domain_info(self, domain: str) -> DomainInfo:
        ...


class CacheManager(Collaborator):
    name = "cache_manager"

    @abc.abstractmethod
    async def hit_probability(self, url: str) -> float:
        ...


class HistoricalDataStore(Collaborator):
    name = "historical_data"

    @abc.abstractmethod
    async def similar_urls(self, url: str, limit: int) -> List[str]:
        ...

    @abc.abstractmethod
    async def performance_data(self, scenario: str) -> List[Dict[str, float]]:
        ...

    @abc.abstractmethod
    async def new_training_samples(self) -> List[TrainingSample]:
        ...

    @abc.abstractmethod
    async def store_insights(
        self,
        behavior: UserBehavior,
        patterns: PatternsSnapshot,
        anomalies: Sequence[Anomaly],
    ) -> None:
        ...


class AnomalyDetector(Collaborator):
    name = "anomaly_detector"

    @abc.abstractmethod
    async def detect(
        self, behavior: UserBehavior, patterns: PatternsSnapshot
    ) -> List[Anomaly]:
        ...


class EnvironmentProfiler(Collaborator):
    name = "environment_profiler"

    @abc.abstractmethod
    async def device_class(self) -> DeviceClass:
        ...

    @abc.abstractmethod
    async def environment(self) -> EnvironmentConditions:
        ...


class StaticThreatIntelligence(ThreatIntelligence):
    """Blocklist of exact domains and domain suffixes."""

    def __init__(
        self,
        domains: Iterable[str] = (),
        suffixes: Iterable[str] = (),
    ):
        self.domains = {d.lower() for d in domains}
        self.suffixes = tuple(s.lower() for s in suffixes)

    async def is_domain_suspicious(self, domain: str) -> bool:
        domain = domain.lower()
        return domain in self.domains or domain.endswith(self.suffixes)


class StaticDomainIntelligence(DomainIntelligence):
    """Lookup table of domain facts; unknown domains count as established."""

    DEFAULT = DomainInfo(age_in_days=3650, reputation_score=0.8)

    def __init__(
        self,
        table: Optional[Dict[str, DomainInfo]] = None,
        default: Optional[DomainInfo] = None,
    ):
        self.table = {k.lower(): v for k, v in (table or {}).items()}
        self.default = default or self.DEFAULT

    async def get_domain_info(self, domain: str) -> DomainInfo:
        return self.table.get(domain.lower(), self.default)


class InMemoryCacheManager(CacheManager):
    """
    Small TTL cache that tracks hits and misses per URL.

    Entries older than ``ttl`` seconds count as misses; beyond ``max_size``
    entries the oldest are evicted. The hit probability of a URL is its
    observed hit rate, smoothed toward ``prior`` while there is little data.
    Hit statistics are kept for the ``max_tracked`` most recently looked-up
    URLs.

    The engine only reads ``hit_probability``; the host routing layer feeds
    the cache through ``store`` and ``lookup`` as it serves requests.
    """

    def __init__(
        self,
        max_size: int = 100,
        ttl: float = 300.0,
        prior: float = 0.0,
        prior_weight: float = 1.0,
        max_tracked: int = 1000,
        clock=time.monotonic,
    ):
        self.max_size = max_size
        self.ttl = ttl
        self.prior = prior
        self.prior_weight = prior_weight
        self.max_tracked = max_tracked
        self._clock = clock
        self._entries: "OrderedDict[str, float]" = OrderedDict()
        self._stats: "OrderedDict[str, Tuple[int, int]]" = OrderedDict()

    @property
    def size(self) -> int:
        return len(self._entries)

    @property
    def tracked_count(self) -> int:
        return len(self._stats)

    def store(self, url: str) -> None:
        self._entries[url] = self._clock()
        self._entries.move_to_end(url)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def lookup(self, url: str) -> bool:
        """Record an access to ``url`` and return whether it was a hit."""
        stored_at = self._entries.get(url)
        hit = stored_at is not None and self._clock() - stored_at <= self.ttl
        if stored_at is not None and not hit:
            del self._entries[url]
        hits, total = self._stats.get(url, (0, 0))
        self._stats[url] = (hits + int(hit), total + 1)
        self._stats.move_to_end(url)
        while len(self._stats) > self.max_tracked:
            self._stats.popitem(last=False)
        return hit

    def clear(self) -> None:
        self._entries.clear()
        self._stats.clear()

    async def hit_probability(self, url: str) -> float:
        hits, total = self._stats.get(url, (0, 0))
        probability = (hits + self.prior * self.prior_weight) / (
            total + self.prior_weight
        )
        return clamp(probability)


class InMemoryHistoricalStore(HistoricalDataStore):
    """
    Historical resource usage, training samples and insights kept in memory.

    Similar URLs are found with a nearest-neighbor search over the structural
    vectors of every URL that has recorded performance data.
    """

    def __init__(self, max_samples: int = 10000, max_insights: int = 1000):
        self._performance: Dict[str, List[Dict[str, float]]] = {}
        self._vectors: Dict[str, List[float]] = {}
        self._samples: deque = deque(maxlen=max_samples)
        self.insights: deque = deque(maxlen=max_insights)
        self._index: Optional[NearestNeighbors] = None
        self._index_urls: List[str] = []

    def record_performance(self, url: str, data: Dict[str, float]) -> None:
        """
        Record one observed resource usage data point for a URL.

        Args:
            url: URL the measurement belongs to
            data: Mapping with memory_mb, cpu_percent, network_bytes, disk_bytes
        """
        features = extract_features(url)
        self._performance.setdefault(features.url, []).append(dict(data))
        self._vectors[features.url] = structural_vector(features)
        self._index = None

    def add_training_samples(self, samples: Iterable[TrainingSample]) -> None:
        self._samples.extend(samples)

    def _build_index(self) -> None:
        self._index_urls = list(self._vectors)
        X = np.array([self._vectors[u] for u in self._index_urls])
        self._index = NearestNeighbors(metric="euclidean").fit(X)

    async def initialize(self) -> None:
        if self._vectors:
            self._build_index()

    async def similar_urls(self, url: str, limit: int) -> List[str]:
        if not self._vectors or limit <= 0:
            return []
        try:
            query = structural_vector(extract_features(url))
        except InvalidURL:
            return []
        if self._index is None:
            self._build_index()
        k = min(limit, len(self._index_urls))
        _, indices = self._index.kneighbors([query], n_neighbors=k)
        return [self._index_urls[i] for i in indices[0]]

    async def performance_data(self, scenario: str) -> List[Dict[str, float]]:
        return list(self._performance.get(scenario, []))

    async def new_training_samples(self) -> List[TrainingSample]:
        samples = list(self._samples)
        self._samples.clear()
        return samples

    async def store_insights(
        self,
        behavior: UserBehavior,
        patterns: PatternsSnapshot,
        anomalies: Sequence[Anomaly],
    ) -> None:
        self.insights.append((behavior, patterns, tuple(anomalies)))


class ZScoreAnomalyDetector(AnomalyDetector):
    """
    Flags session durations far from the learned mean and rapid exits.

    Needs ``min_sessions`` observed sessions before it judges durations.
    """

    def __init__(
        self,
        z_threshold: float = 3.0,
        min_sessions: int = 10,
        rapid_exit_seconds: float = 1.0,
    ):
        self.z_threshold = z_threshold
        self.min_sessions = min_sessions
        self.rapid_exit_seconds = rapid_exit_seconds

    async def detect(
        self, behavior: UserBehavior, patterns: PatternsSnapshot
    ) -> List[Anomaly]:
        anomalies = []

        if (
            behavior.duration > 0
            and patterns.session_count >= self.min_sessions
            and patterns.session_stddev > 0
        ):
            z = (behavior.duration - patterns.session_mean) / patterns.session_stddev
            if abs(z) >= self.z_threshold:
                anomalies.append(
                    Anomaly(
                        "session_duration",
                        clamp(abs(z) / (self.z_threshold * 2)),
                        f"Session of {behavior.duration:.1f}s is {z:+.1f} standard "
                        f"deviations from the mean of {patterns.session_mean:.1f}s",
                    )
                )

        if (
            behavior.action.value == "exit"
            and 0 < behavior.duration < self.rapid_exit_seconds
        ):
            anomalies.append(
                Anomaly(
                    "rapid_exit",
                    0.5,
                    f"Exit after {behavior.duration:.2f}s on {behavior.url}",
                )
            )

        return anomalies


class StaticEnvironmentProfiler(EnvironmentProfiler):
    def __init__(
        self,
        device: DeviceClass = DeviceClass.STANDARD,
        conditions: Optional[EnvironmentConditions] = None,
    ):
        self.device = device
        self.conditions = conditions or EnvironmentConditions()

    async def device_class(self) -> DeviceClass:
        return self.device

    async def environment(self) -> EnvironmentConditions:
        return self.conditions


async def call_with_timeout(coro, timeout: float, name: str):
    """
    Await a collaborator call, bounded by ``timeout`` seconds.

    Returns:
        Tuple of (result, ok). On timeout or error the result is None and ok
        is False; the failure is logged.
    """
    try:
        return await asyncio.wait_for(coro, timeout), True
    except asyncio.TimeoutError:
        logger.warning("%s timed out after %.2fs", name, timeout)
    except CollaboratorError as e:
        logger.warning("%s unavailable: %s", name, e)
    except Exception:
        logger.exception("%s failed", name)
    return None, False
