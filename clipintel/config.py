import os
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

from clipintel import constants

ENV_PREFIX = "CLIPINTEL_"


def _env_bool(name: str, default: bool = False) -> bool:
    val = os.environ.get(name)
    if val is None:
        return default
    return str(val).strip().lower() in ("1", "true", "yes", "on")


def _env_tuple(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    val = os.environ.get(name)
    if not val:
        return default
    return tuple(part.strip().lower() for part in val.split(",") if part.strip())


@dataclass(frozen=True)
class EngineConfig:
    """
    Tunable parameters of the intelligence engine.

    Every weight and threshold the scorers use lives in ``constants``; the
    values here are the ones a host is expected to override per deployment.
    """

    history_capacity: int = constants.HISTORY_CAPACITY
    retrain_threshold: int = constants.RETRAIN_THRESHOLD
    collaborator_timeout: float = 2.0
    similar_url_limit: int = constants.SIMILAR_URL_LIMIT
    degraded_confidence_factor: float = 0.5
    # Midpoint of the medium band
    fallback_risk_score: float = 0.35
    secure_schemes: Tuple[str, ...] = constants.SECURE_SCHEMES
    max_url_length: int = constants.MAX_URL_LENGTH
    intent_model: str = "rules"
    model_path: Optional[str] = None
    pattern_min_frequency: int = constants.PATTERN_MIN_FREQUENCY
    max_frequent_paths: int = constants.MAX_FREQUENT_PATHS
    retrain_workers: int = 1
    derive_training_samples: bool = True

    def __post_init__(self):
        if self.history_capacity <= 0:
            raise ValueError("history_capacity must be positive")
        if self.retrain_threshold <= 0:
            raise ValueError("retrain_threshold must be positive")
        if self.collaborator_timeout <= 0:
            raise ValueError("collaborator_timeout must be positive")
        if not 0.0 <= self.degraded_confidence_factor <= 1.0:
            raise ValueError("degraded_confidence_factor must be within [0, 1]")
        if not 0.0 <= self.fallback_risk_score <= 1.0:
            raise ValueError("fallback_risk_score must be within [0, 1]")
        if self.intent_model not in ("rules", "online"):
            raise ValueError(f"Unknown intent model: {self.intent_model}")

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "EngineConfig":
        """
        Build a config from ``CLIPINTEL_*`` environment variables.

        Args:
            env_file: Optional path to a ``.env`` file loaded before reading.

        Returns:
            An EngineConfig with defaults for every unset variable.
        """
        load_dotenv(env_file)
        defaults = cls()
        return cls(
            history_capacity=int(
                os.environ.get(ENV_PREFIX + "HISTORY_CAPACITY")
                or defaults.history_capacity
            ),
            retrain_threshold=int(
                os.environ.get(ENV_PREFIX + "RETRAIN_THRESHOLD")
                or defaults.retrain_threshold
            ),
            collaborator_timeout=float(
                os.environ.get(ENV_PREFIX + "COLLABORATOR_TIMEOUT")
                or defaults.collaborator_timeout
            ),
            similar_url_limit=int(
                os.environ.get(ENV_PREFIX + "SIMILAR_URL_LIMIT")
                or defaults.similar_url_limit
            ),
            degraded_confidence_factor=float(
                os.environ.get(ENV_PREFIX + "DEGRADED_CONFIDENCE_FACTOR")
                or defaults.degraded_confidence_factor
            ),
            fallback_risk_score=float(
                os.environ.get(ENV_PREFIX + "FALLBACK_RISK_SCORE")
                or defaults.fallback_risk_score
            ),
            secure_schemes=_env_tuple(
                ENV_PREFIX + "SECURE_SCHEMES", defaults.secure_schemes
            ),
            max_url_length=int(
                os.environ.get(ENV_PREFIX + "MAX_URL_LENGTH")
                or defaults.max_url_length
            ),
            intent_model=os.environ.get(ENV_PREFIX + "INTENT_MODEL")
            or defaults.intent_model,
            model_path=os.environ.get(ENV_PREFIX + "MODEL_PATH") or None,
            pattern_min_frequency=int(
                os.environ.get(ENV_PREFIX + "PATTERN_MIN_FREQUENCY")
                or defaults.pattern_min_frequency
            ),
            max_frequent_paths=int(
                os.environ.get(ENV_PREFIX + "MAX_FREQUENT_PATHS")
                or defaults.max_frequent_paths
            ),
            derive_training_samples=_env_bool(
                ENV_PREFIX + "DERIVE_TRAINING_SAMPLES",
                defaults.derive_training_samples,
            ),
        )
