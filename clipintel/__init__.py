from clipintel.config import EngineConfig
from clipintel.engine import IntelligenceEngine, build_default_engine
from clipintel.errors import (
    ClipIntelError,
    CollaboratorError,
    EngineInitializationError,
    EngineNotReady,
    InvalidURL,
)
from clipintel.features import extract_features
from clipintel.learning import LearningOutcome
from clipintel.models import (
    AnalysisResult,
    BehaviorAction,
    EngineState,
    Intent,
    OptimizationType,
    Priority,
    RiskLevel,
    UserBehavior,
)

__version__ = "0.1.0"

__all__ = [
    "AnalysisResult",
    "BehaviorAction",
    "ClipIntelError",
    "CollaboratorError",
    "EngineConfig",
    "EngineInitializationError",
    "EngineNotReady",
    "EngineState",
    "Intent",
    "IntelligenceEngine",
    "InvalidURL",
    "LearningOutcome",
    "OptimizationType",
    "Priority",
    "RiskLevel",
    "UserBehavior",
    "build_default_engine",
    "extract_features",
]
