import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from clipintel import constants
from clipintel.collaborators import (
    AnomalyDetector,
    HistoricalDataStore,
    call_with_timeout,
)
from clipintel.errors import InvalidURL
from clipintel.features import extract_features
from clipintel.intent import IntentClassifier
from clipintel.models import (
    Anomaly,
    OptimizationSuggestion,
    PatternsSnapshot,
    TrainingSample,
    UserBehavior,
    UserPatterns,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LearningOutcome:
    patterns: PatternsSnapshot
    anomalies: Tuple[Anomaly, ...] = ()
    samples_added: int = 0
    suggestions: Tuple[OptimizationSuggestion, ...] = ()
    degraded_sources: Tuple[str, ...] = ()


def behavior_path(behavior: UserBehavior) -> str:
    """Path the behavior happened on, or the raw URL if it cannot be parsed."""
    try:
        return extract_features(behavior.url).path
    except InvalidURL:
        return behavior.url


def derive_training_sample(behavior: UserBehavior) -> Optional[TrainingSample]:
    """Label the behavior's URL with the intent its action reveals, if any."""
    label = constants.ACTION_INTENT_LABELS.get(behavior.action.value)
    if label is None:
        return None
    return TrainingSample(behavior.url, label)


class BehaviorLearningLoop:
    """
    Learns usage patterns from observed user behavior.

    Each event updates the pattern aggregate, is checked for anomalies, is
    stored as an insight, and may become a training sample for the intent
    classifier. Patterns only grow; ``reset_patterns`` is the only way to
    clear them.
    """

    def __init__(
        self,
        classifier: IntentClassifier,
        history: HistoricalDataStore,
        anomaly_detector: Optional[AnomalyDetector] = None,
        timeout: float = 2.0,
        min_frequency: int = constants.PATTERN_MIN_FREQUENCY,
        max_frequent_paths: int = constants.MAX_FREQUENT_PATHS,
        derive_samples: bool = True,
    ):
        self.classifier = classifier
        self.history = history
        self.anomaly_detector = anomaly_detector
        self.timeout = timeout
        self.min_frequency = min_frequency
        self.max_frequent_paths = max_frequent_paths
        self.derive_samples = derive_samples
        self._patterns = UserPatterns()
        self._lock = asyncio.Lock()

    def snapshot(self) -> PatternsSnapshot:
        return self._patterns.snapshot(self.min_frequency, self.max_frequent_paths)

    async def reset_patterns(self) -> None:
        async with self._lock:
            self._patterns.reset()

    async def _detect(
        self, behavior: UserBehavior, patterns: PatternsSnapshot
    ) -> Tuple[List[Anomaly], bool]:
        if self.anomaly_detector is None:
            return [], True
        anomalies, ok = await call_with_timeout(
            self.anomaly_detector.detect(behavior, patterns),
            self.timeout,
            self.anomaly_detector.name,
        )
        return list(anomalies or []), ok

    async def ingest(self, behavior: UserBehavior) -> LearningOutcome:
        """
        Process a single behavior event.

        Args:
            behavior: Observed user action

        Returns:
            LearningOutcome with the refreshed patterns and any anomalies
        """
        degraded = []

        # Judge the event against the patterns from before it was recorded
        anomalies, ok = await self._detect(behavior, self.snapshot())
        if not ok:
            degraded.append(self.anomaly_detector.name)

        async with self._lock:
            self._patterns.record(
                behavior.action.value, behavior_path(behavior), behavior.duration
            )
            patterns = self.snapshot()

        for anomaly in anomalies:
            logger.warning(
                "Anomaly %s (severity %.2f): %s",
                anomaly.anomaly_type,
                anomaly.severity,
                anomaly.description,
            )

        _, stored = await call_with_timeout(
            self.history.store_insights(behavior, patterns, anomalies),
            self.timeout,
            self.history.name,
        )

        samples = []
        if self.derive_samples:
            sample = derive_training_sample(behavior)
            if sample is not None:
                samples.append(sample)
        external, fetched = await call_with_timeout(
            self.history.new_training_samples(), self.timeout, self.history.name
        )
        samples.extend(external or [])
        if not (stored and fetched):
            degraded.append(self.history.name)

        added = self.classifier.add_samples(samples)

        return LearningOutcome(
            patterns=patterns,
            anomalies=tuple(anomalies),
            samples_added=added,
            degraded_sources=tuple(sorted(set(degraded))),
        )
