import asyncio
import logging
from typing import List, Optional, Set, Tuple

import pandas as pd

from clipintel import constants
from clipintel.collaborators import (
    CacheManager,
    EnvironmentProfiler,
    HistoricalDataStore,
    call_with_timeout,
)
from clipintel.models import (
    DeviceClass,
    EnvironmentConditions,
    PerformanceAnalysis,
    ResourcePrediction,
    URLFeatures,
    clamp,
)

logger = logging.getLogger(__name__)

RESOURCE_COLUMNS = ["memory_mb", "cpu_percent", "network_bytes", "disk_bytes"]

BASELINE = ResourcePrediction(**constants.BASELINE_RESOURCES)


def complexity_score(features: URLFeatures) -> float:
    return clamp(
        constants.COMPLEXITY_SEGMENT_WEIGHT * len(features.path_segments)
        + constants.COMPLEXITY_PARAM_WEIGHT * features.parameter_count
        + constants.COMPLEXITY_LENGTH_WEIGHT * features.url_length
    )


def performance_score(
    complexity: float, memory_mb: float, cache_hit_probability: float
) -> float:
    memory_load = clamp(memory_mb / constants.MEMORY_CEILING_MB)
    return clamp(
        constants.PERFORMANCE_COMPLEXITY_WEIGHT * (1.0 - complexity)
        + constants.PERFORMANCE_MEMORY_WEIGHT * (1.0 - memory_load)
        + constants.PERFORMANCE_CACHE_WEIGHT * clamp(cache_hit_probability)
    )


def estimated_load_time(score: float) -> float:
    """Seconds to load: 0.5s at a perfect score, 1.0s at zero."""
    return constants.BASE_LOAD_TIME * (2.0 - score)


def average_resources(data_points: List[dict]) -> Optional[ResourcePrediction]:
    """Mean resource usage over data points, ignoring malformed entries."""
    if not data_points:
        return None
    df = pd.DataFrame(data_points)
    for column in RESOURCE_COLUMNS:
        if column not in df.columns:
            df[column] = float("nan")
    means = df[RESOURCE_COLUMNS].apply(pd.to_numeric, errors="coerce").mean()
    if means.isna().all():
        return None
    means = means.fillna(pd.Series(constants.BASELINE_RESOURCES))
    return ResourcePrediction(
        memory_mb=float(means["memory_mb"]),
        cpu_percent=float(means["cpu_percent"]),
        network_bytes=float(means["network_bytes"]),
        disk_bytes=float(means["disk_bytes"]),
    )


class PerformanceAnalyzer:
    """
    Forecasts the performance impact of opening a URL.

    Resource needs come from the recorded usage of structurally similar
    URLs; cache behavior from the cache manager; device and network context
    from the environment profiler. Collaborator failures fall back to neutral
    defaults and are reported back as degraded sources.
    """

    def __init__(
        self,
        history: HistoricalDataStore,
        cache: CacheManager,
        profiler: Optional[EnvironmentProfiler] = None,
        similar_url_limit: int = constants.SIMILAR_URL_LIMIT,
        timeout: float = 2.0,
    ):
        self.history = history
        self.cache = cache
        self.profiler = profiler
        self.similar_url_limit = similar_url_limit
        self.timeout = timeout

    async def predict_resources(
        self, features: URLFeatures
    ) -> Tuple[ResourcePrediction, bool]:
        similar, ok = await call_with_timeout(
            self.history.similar_urls(features.url, self.similar_url_limit),
            self.timeout,
            self.history.name,
        )
        if not ok:
            return BASELINE, False
        if not similar:
            return BASELINE, True

        lookups = await asyncio.gather(
            *(
                call_with_timeout(
                    self.history.performance_data(url), self.timeout, self.history.name
                )
                for url in similar[: self.similar_url_limit]
            )
        )
        data_points = []
        healthy = True
        for points, point_ok in lookups:
            if not point_ok:
                healthy = False
                continue
            data_points.extend(p for p in points or [] if isinstance(p, dict))

        return average_resources(data_points) or BASELINE, healthy

    async def _environment(self) -> Tuple[DeviceClass, EnvironmentConditions, bool]:
        if self.profiler is None:
            return DeviceClass.STANDARD, EnvironmentConditions(), True
        (device, device_ok), (conditions, env_ok) = await asyncio.gather(
            call_with_timeout(
                self.profiler.device_class(), self.timeout, self.profiler.name
            ),
            call_with_timeout(
                self.profiler.environment(), self.timeout, self.profiler.name
            ),
        )
        return (
            device if device_ok else DeviceClass.STANDARD,
            conditions if env_ok else EnvironmentConditions(),
            device_ok and env_ok,
        )

    async def analyze(
        self, features: URLFeatures
    ) -> Tuple[PerformanceAnalysis, Set[str]]:
        """
        Analyze the performance impact of a URL.

        Args:
            features: Extracted URL features

        Returns:
            Tuple of the analysis and the names of collaborators that failed
        """
        degraded = set()
        complexity = complexity_score(features)

        (resources, resources_ok), (cache_prob, cache_ok), env = await asyncio.gather(
            self.predict_resources(features),
            call_with_timeout(
                self.cache.hit_probability(features.url), self.timeout, self.cache.name
            ),
            self._environment(),
        )
        device, conditions, env_ok = env

        if not resources_ok:
            degraded.add(self.history.name)
        if not cache_ok:
            degraded.add(self.cache.name)
            cache_prob = 0.0
        if not env_ok:
            degraded.add(self.profiler.name)

        cache_prob = clamp(float(cache_prob))
        score = performance_score(complexity, resources.memory_mb, cache_prob)

        analysis = PerformanceAnalysis(
            complexity_score=complexity,
            resource_prediction=resources,
            cache_hit_probability=cache_prob,
            performance_score=score,
            estimated_load_time=estimated_load_time(score),
            memory_impact=resources.memory_mb,
            device_class=device,
            network_latency_ms=float(conditions.network_latency_ms),
        )
        logger.debug(
            "Performance for %s: score=%.3f load=%.3fs",
            features.url,
            score,
            analysis.estimated_load_time,
        )
        return analysis, degraded
