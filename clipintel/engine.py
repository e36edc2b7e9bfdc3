import asyncio
import concurrent.futures
import dataclasses
import logging
import time
from datetime import datetime, timezone
from typing import Optional, Tuple

from clipintel.collaborators import (
    AnomalyDetector,
    CacheManager,
    DomainIntelligence,
    EnvironmentProfiler,
    HistoricalDataStore,
    InMemoryCacheManager,
    InMemoryHistoricalStore,
    StaticDomainIntelligence,
    StaticEnvironmentProfiler,
    StaticThreatIntelligence,
    ThreatIntelligence,
    ZScoreAnomalyDetector,
)
from clipintel.config import EngineConfig
from clipintel.errors import EngineInitializationError, EngineNotReady
from clipintel.features import extract_features
from clipintel.history import AnalysisHistory
from clipintel.intent import IntentClassifier, create_model
from clipintel.learning import BehaviorLearningLoop, LearningOutcome
from clipintel.models import (
    AnalysisResult,
    EngineState,
    PatternsSnapshot,
    URLFeatures,
    UserBehavior,
    UserIntentPrediction,
)
from clipintel.performance import PerformanceAnalyzer
from clipintel.recommender import OptimizationRecommender
from clipintel.security import SecurityRiskAssessor, build_risk

logger = logging.getLogger(__name__)

ANALYSIS_FAILED = "analysis_failed"


class IntelligenceEngine:
    """
    Adaptive URL intelligence engine.

    Turns an invocation URL into an intent prediction, a performance
    forecast, a security risk assessment and ranked optimization
    suggestions, and refines its intent model from observed behavior.

    The engine must be initialized before use. ``analyze`` and
    ``ingest_behavior`` may then be called concurrently from the same event
    loop. Retraining of the intent model runs in the background once enough
    new samples have accumulated, and never more than one at a time.
    """

    def __init__(
        self,
        threat_intel: ThreatIntelligence,
        domain_intel: DomainIntelligence,
        cache: CacheManager,
        historical: HistoricalDataStore,
        anomaly_detector: Optional[AnomalyDetector] = None,
        profiler: Optional[EnvironmentProfiler] = None,
        config: Optional[EngineConfig] = None,
        classifier: Optional[IntentClassifier] = None,
        recommender: Optional[OptimizationRecommender] = None,
    ):
        self.config = config or EngineConfig()
        timeout = self.config.collaborator_timeout

        self.collaborators = [
            c
            for c in (
                threat_intel,
                domain_intel,
                cache,
                historical,
                anomaly_detector,
                profiler,
            )
            if c is not None
        ]
        self.classifier = classifier or IntentClassifier(
            create_model(self.config.intent_model),
            retrain_threshold=self.config.retrain_threshold,
        )
        self.performance = PerformanceAnalyzer(
            historical,
            cache,
            profiler,
            similar_url_limit=self.config.similar_url_limit,
            timeout=timeout,
        )
        self.security = SecurityRiskAssessor(threat_intel, domain_intel, timeout=timeout)
        self.recommender = recommender or OptimizationRecommender()
        self.learning = BehaviorLearningLoop(
            self.classifier,
            historical,
            anomaly_detector,
            timeout=timeout,
            min_frequency=self.config.pattern_min_frequency,
            max_frequent_paths=self.config.max_frequent_paths,
            derive_samples=self.config.derive_training_samples,
        )
        self.history = AnalysisHistory(self.config.history_capacity)

        self._state = EngineState.UNINITIALIZED
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.config.retrain_workers
        )
        self._retrain_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def retraining(self) -> bool:
        return self._retrain_task is not None and not self._retrain_task.done()

    async def initialize(self) -> None:
        """
        Initialize the classifier and every collaborator.

        Allowed from the uninitialized and failed states. Any failure leaves
        the engine in the failed state until ``initialize`` is called again;
        a shut down engine cannot be initialized again.

        Raises:
            EngineInitializationError: if a sub-component failed to initialize
        """
        if self._state is EngineState.READY:
            return
        if self._state is EngineState.INITIALIZING:
            raise EngineInitializationError("Initialization already in progress")
        if self._state is EngineState.STOPPED:
            raise EngineInitializationError("Engine has been shut down")

        self._state = EngineState.INITIALIZING
        try:
            self.classifier.initialize(self.config.model_path)
            await asyncio.gather(*(c.initialize() for c in self.collaborators))
        except Exception as e:
            self._state = EngineState.FAILED
            logger.exception("Engine initialization failed")
            raise EngineInitializationError(str(e)) from e

        self._state = EngineState.READY
        logger.info("Engine ready (intent model: %s)", self.classifier.model.name)

    def _require_ready(self) -> None:
        if self._state is not EngineState.READY:
            raise EngineNotReady(f"Engine is {self._state.value}")

    async def analyze(self, url: str) -> AnalysisResult:
        """
        Analyze an invocation URL.

        Args:
            url: URL to analyze

        Returns:
            The AnalysisResult, also appended to the history

        Raises:
            EngineNotReady: if the engine has not been initialized
            InvalidURL: if the URL cannot be parsed
        """
        self._require_ready()
        started = time.perf_counter()
        features = extract_features(
            url,
            secure_schemes=self.config.secure_schemes,
            max_url_length=self.config.max_url_length,
        )

        try:
            result = await self._analyze_features(features, started)
        except Exception:
            logger.exception("Analysis of %s failed, returning fallback", features.url)
            result = self._fallback_result(features, started)

        # Nothing is stored if the caller was cancelled before this point
        await self.history.append(result)
        return result

    async def _analyze_features(
        self, features: URLFeatures, started: float
    ) -> AnalysisResult:
        timestamp = datetime.now(timezone.utc)
        intent = self.classifier.predict(features)

        (performance, perf_degraded), (risk, risk_degraded) = await asyncio.gather(
            self.performance.analyze(features),
            self.security.assess(features),
        )

        degraded = tuple(sorted(perf_degraded | risk_degraded))
        if degraded:
            intent = intent.scaled(self.config.degraded_confidence_factor)

        suggestions = self.recommender.recommend(
            features, intent, performance, risk, self.learning.snapshot()
        )

        return AnalysisResult(
            url=features.url,
            features=features,
            intent=intent,
            performance=performance,
            risk=risk,
            suggestions=suggestions,
            timestamp=timestamp,
            duration=time.perf_counter() - started,
            degraded=bool(degraded),
            degraded_sources=degraded,
        )

    def _fallback_result(self, features: URLFeatures, started: float) -> AnalysisResult:
        return AnalysisResult(
            url=features.url,
            features=features,
            intent=UserIntentPrediction.unknown(),
            performance=None,
            risk=build_risk(self.config.fallback_risk_score, {ANALYSIS_FAILED}),
            suggestions=(),
            timestamp=datetime.now(timezone.utc),
            duration=time.perf_counter() - started,
            degraded=True,
            degraded_sources=("engine",),
        )

    async def ingest_behavior(self, behavior: UserBehavior) -> LearningOutcome:
        """
        Learn from an observed user action.

        Updates usage patterns, schedules a retrain when enough samples have
        accumulated, and regenerates suggestions for the latest analysis of
        the behavior's URL using the refreshed patterns.

        Raises:
            EngineNotReady: if the engine has not been initialized
        """
        self._require_ready()
        outcome = await self.learning.ingest(behavior)
        self.maybe_schedule_retrain()

        previous = self.history.latest_for(behavior.url.strip())
        if previous is not None and previous.features is not None:
            suggestions = self.recommender.recommend(
                previous.features,
                previous.intent,
                previous.performance,
                previous.risk,
                outcome.patterns,
            )
            outcome = dataclasses.replace(outcome, suggestions=suggestions)
        return outcome

    def maybe_schedule_retrain(self) -> bool:
        """
        Start a background retrain if the classifier asks for one.

        Returns:
            True if a new retrain task was started
        """
        if self._state is not EngineState.READY:
            return False
        if not self.classifier.should_retrain():
            return False
        if self.retraining:
            logger.debug("Retrain already in progress, trigger suppressed")
            return False
        self._retrain_task = asyncio.get_running_loop().create_task(self._retrain())
        return True

    async def _retrain(self) -> int:
        samples = self.classifier.take_pending()
        logger.info("Retraining intent model on %d samples", len(samples))
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                self._executor, self.classifier.incremental_update, samples
            )
        except Exception:
            # Keep the batch for the next trigger
            restored = self.classifier.add_samples(samples)
            logger.exception(
                "Intent model retraining failed, %d samples requeued", restored
            )
            return 0

    async def wait_for_retraining(self) -> Optional[int]:
        """Wait for a running retrain, returning the number of samples used."""
        if self._retrain_task is None:
            return None
        return await self._retrain_task

    def patterns_snapshot(self) -> PatternsSnapshot:
        return self.learning.snapshot()

    async def reset_patterns(self) -> None:
        await self.learning.reset_patterns()

    async def shutdown(self) -> None:
        """
        Abandon any running retrain and release the worker pool.

        The engine ends in the stopped state and rejects further analysis
        and behavior events.
        """
        self._state = EngineState.STOPPED
        self.classifier.close()
        if self.retraining:
            self._retrain_task.cancel()
            try:
                await self._retrain_task
            except asyncio.CancelledError:
                pass
        self._executor.shutdown(wait=False, cancel_futures=True)


def build_default_engine(
    config: Optional[EngineConfig] = None,
    **collaborators,
) -> Tuple[IntelligenceEngine, dict]:
    """
    Wire an engine with in-memory collaborators.

    Any collaborator passed by keyword (``threat_intel``, ``domain_intel``,
    ``cache``, ``historical``, ``anomaly_detector``, ``profiler``) replaces
    the in-memory default.

    Returns:
        Tuple of the engine and the collaborators it was wired with
    """
    wiring = {
        "threat_intel": StaticThreatIntelligence(),
        "domain_intel": StaticDomainIntelligence(),
        "cache": InMemoryCacheManager(),
        "historical": InMemoryHistoricalStore(),
        "anomaly_detector": ZScoreAnomalyDetector(),
        "profiler": StaticEnvironmentProfiler(),
    }
    unknown = set(collaborators) - set(wiring)
    if unknown:
        raise TypeError(f"Unknown collaborators: {', '.join(sorted(unknown))}")
    wiring.update(collaborators)
    return IntelligenceEngine(config=config, **wiring), wiring
