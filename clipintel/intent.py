import abc
import copy
import logging
import os
import re
import threading
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import joblib
import numpy as np
from sklearn.exceptions import NotFittedError
from sklearn.feature_extraction.text import HashingVectorizer
from sklearn.linear_model import SGDClassifier

from clipintel import constants
from clipintel.errors import InvalidURL
from clipintel.features import extract_features
from clipintel.models import (
    Intent,
    IntentFactor,
    TrainingSample,
    URLFeatures,
    UserIntentPrediction,
)

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[^a-z0-9]+")

# Relative weight of a keyword hit by where it was found
SOURCE_WEIGHTS = {"path": 1.0, "query": 0.5, "host": 0.25}
LEARNED_WEIGHT = 1.0
CONFIDENCE_SMOOTHING = 0.5

TRAINABLE_INTENTS = [i for i in Intent if i is not Intent.UNKNOWN]

LabeledFeatures = Tuple[URLFeatures, Intent]


def tokenize(features: URLFeatures) -> List[Tuple[str, str]]:
    """Split a URL into (source, token) pairs for keyword matching."""
    tokens = []
    for segment in features.path_segments:
        tokens.extend(("path", t) for t in _TOKEN_RE.split(segment.lower()) if t)
    for key in features.query_params:
        tokens.extend(("query", t) for t in _TOKEN_RE.split(key.lower()) if t)
    # Skip the TLD, it says nothing about intent
    for label in features.host.split(".")[:-1]:
        tokens.extend(("host", t) for t in _TOKEN_RE.split(label.lower()) if t)
    return tokens


def url_document(features: URLFeatures) -> str:
    """Text form of a URL fed to the vectorizer."""
    return " ".join(
        [features.host, features.path, " ".join(sorted(features.query_params))]
    ).lower()


class IntentModel(abc.ABC):
    """Pluggable model behind the intent classifier."""

    name = "base"

    @abc.abstractmethod
    def predict(self, features: URLFeatures) -> UserIntentPrediction:
        """Predict the intent of a single URL."""

    @abc.abstractmethod
    def partial_fit(self, samples: Sequence[LabeledFeatures]) -> None:
        """Update the model in place with labeled samples."""


class RuleBasedIntentModel(IntentModel):
    """
    Deterministic keyword rule table.

    Base rules come from ``constants.INTENT_KEYWORDS``. Online updates add
    token -> intent counts on top of the rules without changing them.
    """

    name = "rules"

    def __init__(self, keywords: Optional[Dict[str, Iterable[str]]] = None):
        keywords = keywords or constants.INTENT_KEYWORDS
        self.rules: Dict[Intent, Tuple[str, ...]] = {
            Intent(intent): tuple(words) for intent, words in keywords.items()
        }
        self.learned: Dict[str, Dict[Intent, int]] = defaultdict(dict)

    def _rule_intents(self, token: str) -> List[Intent]:
        return [
            intent
            for intent, words in self.rules.items()
            if any(token == word or token.startswith(word) for word in words)
        ]

    def predict(self, features: URLFeatures) -> UserIntentPrediction:
        scores: Dict[Intent, float] = defaultdict(float)
        contributions: Dict[Intent, List[IntentFactor]] = defaultdict(list)

        for source, token in tokenize(features):
            weight = SOURCE_WEIGHTS[source]
            for intent in self._rule_intents(token):
                scores[intent] += weight
                contributions[intent].append(
                    IntentFactor(f"{source}:{token}", weight, 1.0)
                )

            learned = self.learned.get(token)
            if learned:
                total = sum(learned.values())
                for intent, count in learned.items():
                    value = count / (total + 1.0)
                    scores[intent] += LEARNED_WEIGHT * weight * value
                    contributions[intent].append(
                        IntentFactor(f"learned:{token}", LEARNED_WEIGHT * weight, value)
                    )

        if not scores:
            return UserIntentPrediction.unknown()

        # Ties resolve by declaration order of Intent
        order = {intent: i for i, intent in enumerate(Intent)}
        best = min(scores, key=lambda i: (-scores[i], order[i]))
        total = sum(scores.values())
        confidence = scores[best] / (total + CONFIDENCE_SMOOTHING)

        return UserIntentPrediction(best, confidence, tuple(contributions[best]))

    def partial_fit(self, samples: Sequence[LabeledFeatures]) -> None:
        for features, intent in samples:
            for _, token in tokenize(features):
                counts = self.learned[token]
                counts[intent] = counts.get(intent, 0) + 1


class OnlineIntentModel(IntentModel):
    """
    Linear model trained online on hashed character n-grams.

    The hashing vectorizer keeps the feature space fixed, so the classifier
    can be updated with ``partial_fit`` without refitting a vocabulary.
    """

    name = "online"

    def __init__(self, random_state: int = 42):
        self.vectorizer = HashingVectorizer(
            analyzer="char_wb",
            ngram_range=(2, 5),
            lowercase=True,
            n_features=2**18,
            alternate_sign=False,
        )
        self.classifier = SGDClassifier(
            loss="log_loss",
            alpha=1e-4,
            class_weight=None,
            random_state=random_state,
        )
        self.classes = np.array([i.value for i in TRAINABLE_INTENTS])
        self.samples_seen = 0

    def predict(self, features: URLFeatures) -> UserIntentPrediction:
        X = self.vectorizer.transform([url_document(features)])
        try:
            probs = self.classifier.predict_proba(X)[0]
        except NotFittedError:
            return UserIntentPrediction.unknown()

        ranked = sorted(
            zip(self.classifier.classes_, probs), key=lambda item: -item[1]
        )
        label, confidence = ranked[0]
        factors = tuple(
            IntentFactor(f"probability:{name}", 1.0, float(prob))
            for name, prob in ranked[:3]
        )
        return UserIntentPrediction(Intent(label), float(confidence), factors)

    def partial_fit(self, samples: Sequence[LabeledFeatures]) -> None:
        if not samples:
            return
        X = self.vectorizer.transform([url_document(f) for f, _ in samples])
        y = np.array([intent.value for _, intent in samples])
        self.classifier.partial_fit(X, y, classes=self.classes)
        self.samples_seen += len(samples)


def create_model(kind: str) -> IntentModel:
    if kind == "rules":
        return RuleBasedIntentModel()
    if kind == "online":
        return OnlineIntentModel()
    raise ValueError(f"Unknown intent model: {kind}")


class IntentClassifier:
    """
    Predicts user intent and accumulates samples for incremental retraining.

    Predictions return ``unknown`` until ``initialize`` has run. Retraining is
    requested only once ``retrain_threshold`` new samples have accumulated
    since the last update.
    """

    def __init__(
        self,
        model: Optional[IntentModel] = None,
        retrain_threshold: int = constants.RETRAIN_THRESHOLD,
    ):
        self.model = model or RuleBasedIntentModel()
        self.retrain_threshold = retrain_threshold
        self.initialized = False
        self.version = 0
        self.closed = False
        self._pending: List[TrainingSample] = []
        self._lock = threading.Lock()

    def initialize(self, model_path: Optional[str] = None) -> None:
        """
        Prepare the classifier, loading a saved model when one exists.

        Args:
            model_path: Path to a model saved with ``save_model``
        """
        if model_path and os.path.exists(model_path):
            model = joblib.load(model_path)
            if not isinstance(model, IntentModel):
                raise TypeError(f"{model_path} does not contain an intent model")
            self.model = model
            logger.info("Loaded intent model from %s", model_path)
        self.initialized = True

    def predict(self, features: URLFeatures) -> UserIntentPrediction:
        if not self.initialized:
            return UserIntentPrediction.unknown()
        return self.model.predict(features)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def add_samples(self, samples: Iterable[TrainingSample]) -> int:
        samples = list(samples)
        with self._lock:
            self._pending.extend(samples)
        return len(samples)

    def should_retrain(self) -> bool:
        return len(self._pending) >= self.retrain_threshold

    def take_pending(self) -> List[TrainingSample]:
        with self._lock:
            pending, self._pending = self._pending, []
        return pending

    def _validate(self, samples: Iterable[TrainingSample]) -> List[LabeledFeatures]:
        valid = []
        for sample in samples:
            try:
                intent = Intent(sample.intent)
                if intent is Intent.UNKNOWN:
                    raise ValueError("unknown is not a trainable label")
                valid.append((extract_features(sample.url), intent))
            except (InvalidURL, ValueError, AttributeError) as e:
                logger.warning("Skipping invalid training sample %r: %s", sample, e)
        return valid

    def incremental_update(self, samples: Iterable[TrainingSample]) -> int:
        """
        Update the model with a batch of samples without full retraining.

        A copy of the current model is trained and then swapped in, so
        predictions running concurrently keep using a consistent model.

        Args:
            samples: Labeled training samples; invalid ones are skipped

        Returns:
            Number of samples the model was trained on
        """
        valid = self._validate(samples)
        if not valid:
            return 0

        candidate = copy.deepcopy(self.model)
        candidate.partial_fit(valid)
        if self.closed:
            logger.info(
                "Classifier closed, discarding update of %d samples", len(valid)
            )
            return 0
        self.model = candidate
        self.version += 1
        logger.info(
            "Intent model %s updated with %d samples (version %d)",
            candidate.name,
            len(valid),
            self.version,
        )
        return len(valid)

    def close(self) -> None:
        """Stop accepting model updates; a fit still running is discarded."""
        self.closed = True

    def train(self, urls: List[str], labels: List[str]) -> int:
        """Fit the model on URLs and their intent labels in one batch."""
        samples = [TrainingSample(u, l) for u, l in zip(urls, labels)]
        return self.incremental_update(samples)

    def save_model(self, model_path: str) -> None:
        """
        Save the current model to a file.

        Args:
            model_path: Path where the model will be saved
        """
        model_dir = os.path.dirname(model_path)
        if model_dir:
            os.makedirs(model_dir, exist_ok=True)
        joblib.dump(self.model, model_path)
