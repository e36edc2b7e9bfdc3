import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a value into [low, high], mapping NaN to ``low``."""
    if value is None or math.isnan(value):
        return low
    return max(low, min(high, value))


class Intent(str, Enum):
    PURCHASE = "purchase"
    BROWSE = "browse"
    INFORMATION = "information"
    BOOKING = "booking"
    SOCIAL = "social"
    ENTERTAINMENT = "entertainment"
    PRODUCTIVITY = "productivity"
    UNKNOWN = "unknown"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    Priority.LOW: 0,
    Priority.MEDIUM: 1,
    Priority.HIGH: 2,
    Priority.CRITICAL: 3,
}


class OptimizationType(str, Enum):
    SIMPLIFY_URL_STRUCTURE = "simplify_url_structure"
    REDUCE_PARAMETERS = "reduce_parameters"
    PRELOAD_PAYMENT_COMPONENTS = "preload_payment_components"
    PREFETCH_CONTENT = "prefetch_content"
    OPTIMIZE_CACHING = "optimize_caching"
    MEMORY_OPTIMIZATION = "memory_optimization"
    CPU_OPTIMIZATION = "cpu_optimization"
    REQUEST_BATCHING = "request_batching"
    SECURITY_HARDENING = "security_hardening"


class BehaviorAction(str, Enum):
    URL_ACCESS = "url_access"
    BUTTON_TAP = "button_tap"
    SWIPE_GESTURE = "swipe_gesture"
    PURCHASE = "purchase"
    SEARCH = "search"
    NAVIGATION = "navigation"
    EXIT = "exit"


class DeviceClass(str, Enum):
    LOW = "low"
    STANDARD = "standard"
    HIGH = "high"


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"
    STOPPED = "stopped"


@dataclass(frozen=True)
class URLFeatures:
    """Structured, immutable summary of a single URL."""

    url: str
    scheme: str
    host: str
    path: str
    path_segments: Tuple[str, ...]
    query_params: Mapping[str, str]
    fragment: Optional[str]
    path_length: int
    parameter_count: int
    url_length: int
    is_secure: bool
    domain_complexity: float
    semantic_score: float

    def __post_init__(self):
        # Freeze the mapping so the record cannot be mutated through it
        if not isinstance(self.query_params, MappingProxyType):
            object.__setattr__(
                self, "query_params", MappingProxyType(dict(self.query_params))
            )

    def __hash__(self):
        return hash(self.url)


@dataclass(frozen=True)
class IntentFactor:
    name: str
    weight: float
    value: float


@dataclass(frozen=True)
class UserIntentPrediction:
    intent: Intent = Intent.UNKNOWN
    confidence: float = 0.0
    factors: Tuple[IntentFactor, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "confidence", clamp(self.confidence))

    @classmethod
    def unknown(cls) -> "UserIntentPrediction":
        return cls(Intent.UNKNOWN, 0.0, ())

    def scaled(self, factor: float) -> "UserIntentPrediction":
        """Return a copy with confidence multiplied by ``factor``."""
        return UserIntentPrediction(self.intent, self.confidence * factor, self.factors)


@dataclass(frozen=True)
class ResourcePrediction:
    memory_mb: float
    cpu_percent: float
    network_bytes: float
    disk_bytes: float


@dataclass(frozen=True)
class PerformanceAnalysis:
    complexity_score: float
    resource_prediction: ResourcePrediction
    cache_hit_probability: float
    performance_score: float
    estimated_load_time: float
    memory_impact: float
    device_class: DeviceClass = DeviceClass.STANDARD
    network_latency_ms: float = 0.0


@dataclass(frozen=True)
class SecurityRisk:
    level: RiskLevel
    score: float
    raw_score: float
    factors: FrozenSet[str] = frozenset()
    mitigations: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class OptimizationSuggestion:
    type: OptimizationType
    priority: Priority
    description: str
    estimated_improvement: float


@dataclass(frozen=True)
class AnalysisResult:
    url: str
    features: Optional[URLFeatures]
    intent: UserIntentPrediction
    performance: Optional[PerformanceAnalysis]
    risk: SecurityRisk
    suggestions: Tuple[OptimizationSuggestion, ...]
    timestamp: datetime
    duration: float
    degraded: bool = False
    degraded_sources: Tuple[str, ...] = ()

    def to_record(self) -> Dict[str, Any]:
        """Flatten into a single row for tabular export."""
        record = {
            "url": self.url,
            "timestamp": self.timestamp.isoformat(),
            "duration": self.duration,
            "intent": self.intent.intent.value,
            "intent_confidence": self.intent.confidence,
            "risk_level": self.risk.level.value,
            "risk_score": self.risk.score,
            "risk_factors": ",".join(sorted(self.risk.factors)),
            "mitigations": ",".join(sorted(self.risk.mitigations)),
            "suggestions": ",".join(s.type.value for s in self.suggestions),
            "degraded": self.degraded,
        }
        if self.performance is not None:
            record.update(
                {
                    "complexity_score": self.performance.complexity_score,
                    "performance_score": self.performance.performance_score,
                    "cache_hit_probability": self.performance.cache_hit_probability,
                    "estimated_load_time": self.performance.estimated_load_time,
                    "memory_impact": self.performance.memory_impact,
                }
            )
        return record


@dataclass(frozen=True)
class UserBehavior:
    action: BehaviorAction
    url: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration: float = 0.0
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TrainingSample:
    url: str
    intent: str


@dataclass(frozen=True)
class Anomaly:
    anomaly_type: str
    severity: float
    description: str


@dataclass(frozen=True)
class DomainInfo:
    age_in_days: int
    reputation_score: float


@dataclass(frozen=True)
class EnvironmentConditions:
    network_type: str = "wifi"
    battery_level: float = 1.0
    memory_pressure: str = "normal"
    thermal_state: str = "nominal"
    network_latency_ms: float = 0.0


@dataclass(frozen=True)
class PatternsSnapshot:
    """Read-only view of the learned usage patterns."""

    frequent_paths: Tuple[str, ...] = ()
    preferred_actions: Tuple[str, ...] = ()
    path_counts: Mapping[str, int] = field(default_factory=dict)
    session_count: int = 0
    session_mean: float = 0.0
    session_stddev: float = 0.0
    path_sequences: Tuple[Tuple[str, str, int], ...] = ()
    total_events: int = 0


@dataclass
class UserPatterns:
    """
    Mutable usage-pattern aggregate.

    Only the learning loop writes to it. Counts grow monotonically and are
    cleared only through ``reset``.
    """

    path_counts: Dict[str, int] = field(default_factory=dict)
    action_counts: Dict[str, int] = field(default_factory=dict)
    transition_counts: Dict[Tuple[str, str], int] = field(default_factory=dict)
    session_count: int = 0
    session_mean: float = 0.0
    session_m2: float = 0.0
    last_path: Optional[str] = None
    total_events: int = 0

    def record(self, action: str, path: str, duration: float) -> None:
        self.total_events += 1
        self.action_counts[action] = self.action_counts.get(action, 0) + 1
        self.path_counts[path] = self.path_counts.get(path, 0) + 1

        if self.last_path is not None and self.last_path != path:
            key = (self.last_path, path)
            self.transition_counts[key] = self.transition_counts.get(key, 0) + 1
        self.last_path = path

        if duration > 0:
            # Welford running mean / variance
            self.session_count += 1
            delta = duration - self.session_mean
            self.session_mean += delta / self.session_count
            self.session_m2 += delta * (duration - self.session_mean)

    @property
    def session_stddev(self) -> float:
        if self.session_count < 2:
            return 0.0
        return math.sqrt(self.session_m2 / (self.session_count - 1))

    def reset(self) -> None:
        self.path_counts.clear()
        self.action_counts.clear()
        self.transition_counts.clear()
        self.session_count = 0
        self.session_mean = 0.0
        self.session_m2 = 0.0
        self.last_path = None
        self.total_events = 0

    def snapshot(self, min_frequency: int = 2, max_paths: int = 10) -> PatternsSnapshot:
        frequent = sorted(
            (p for p, c in self.path_counts.items() if c >= min_frequency),
            key=lambda p: (-self.path_counts[p], p),
        )[:max_paths]
        actions = sorted(self.action_counts, key=lambda a: (-self.action_counts[a], a))
        sequences = sorted(
            ((a, b, c) for (a, b), c in self.transition_counts.items()),
            key=lambda t: (-t[2], t[0], t[1]),
        )
        return PatternsSnapshot(
            frequent_paths=tuple(frequent),
            preferred_actions=tuple(actions),
            path_counts=MappingProxyType(dict(self.path_counts)),
            session_count=self.session_count,
            session_mean=self.session_mean,
            session_stddev=self.session_stddev,
            path_sequences=tuple(sequences),
            total_events=self.total_events,
        )


def suggestion_sort_key(suggestion: OptimizationSuggestion) -> Tuple[int, float, str]:
    return (
        -suggestion.priority.rank,
        -suggestion.estimated_improvement,
        suggestion.type.value,
    )

