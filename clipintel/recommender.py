from typing import Dict, List, Optional, Tuple

from clipintel import constants
from clipintel.models import (
    Intent,
    OptimizationSuggestion,
    OptimizationType,
    PatternsSnapshot,
    PerformanceAnalysis,
    Priority,
    RiskLevel,
    SecurityRisk,
    URLFeatures,
    UserIntentPrediction,
    suggestion_sort_key,
)

INTENT_SUGGESTIONS = {
    Intent.PURCHASE: (
        OptimizationType.PRELOAD_PAYMENT_COMPONENTS,
        Priority.HIGH,
        "Preload payment components",
        0.4,
    ),
    Intent.BROWSE: (
        OptimizationType.PREFETCH_CONTENT,
        Priority.MEDIUM,
        "Prefetch likely content",
        0.3,
    ),
    Intent.INFORMATION: (
        OptimizationType.OPTIMIZE_CACHING,
        Priority.LOW,
        "Optimize caching of informational content",
        0.2,
    ),
}


def merge_suggestions(
    suggestions: List[OptimizationSuggestion],
) -> Tuple[OptimizationSuggestion, ...]:
    """
    Deduplicate suggestions by type and order them.

    Of two suggestions with the same type the one with the higher priority
    wins, then the one with the larger improvement. The result is sorted by
    priority, then improvement, both descending.
    """
    best: Dict[OptimizationType, OptimizationSuggestion] = {}
    for suggestion in suggestions:
        current = best.get(suggestion.type)
        if current is None or suggestion_sort_key(suggestion) < suggestion_sort_key(
            current
        ):
            best[suggestion.type] = suggestion
    return tuple(sorted(best.values(), key=suggestion_sort_key))


class OptimizationRecommender:
    """Turns the analysis outputs and learned patterns into suggestions."""

    def recommend(
        self,
        features: URLFeatures,
        intent: UserIntentPrediction,
        performance: Optional[PerformanceAnalysis],
        risk: Optional[SecurityRisk],
        patterns: Optional[PatternsSnapshot] = None,
    ) -> Tuple[OptimizationSuggestion, ...]:
        suggestions = []

        segments = len(features.path_segments)
        if segments > constants.MAX_PATH_SEGMENTS:
            suggestions.append(
                OptimizationSuggestion(
                    OptimizationType.SIMPLIFY_URL_STRUCTURE,
                    Priority.MEDIUM,
                    f"Simplify URL structure ({segments} path segments)",
                    0.15,
                )
            )

        if features.parameter_count > constants.MAX_QUERY_PARAMS:
            suggestions.append(
                OptimizationSuggestion(
                    OptimizationType.REDUCE_PARAMETERS,
                    Priority.HIGH,
                    f"Reduce query parameters ({features.parameter_count} present)",
                    0.25,
                )
            )

        if intent.intent in INTENT_SUGGESTIONS:
            suggestions.append(OptimizationSuggestion(*INTENT_SUGGESTIONS[intent.intent]))

        if performance is not None:
            resources = performance.resource_prediction
            if resources.memory_mb > constants.HIGH_MEMORY_MB:
                suggestions.append(
                    OptimizationSuggestion(
                        OptimizationType.MEMORY_OPTIMIZATION,
                        Priority.HIGH,
                        f"Reduce memory footprint ({resources.memory_mb:.1f}MB predicted)",
                        0.3,
                    )
                )
            if resources.cpu_percent > constants.HIGH_CPU_PERCENT:
                suggestions.append(
                    OptimizationSuggestion(
                        OptimizationType.CPU_OPTIMIZATION,
                        Priority.HIGH,
                        "Defer CPU-heavy work off the launch path",
                        0.25,
                    )
                )
            if performance.network_latency_ms > constants.HIGH_NETWORK_LATENCY_MS:
                suggestions.append(
                    OptimizationSuggestion(
                        OptimizationType.REQUEST_BATCHING,
                        Priority.MEDIUM,
                        "Batch and compress network requests",
                        0.4,
                    )
                )

        if patterns is not None and patterns.frequent_paths:
            suggestions.append(
                OptimizationSuggestion(
                    OptimizationType.PREFETCH_CONTENT,
                    Priority.MEDIUM,
                    "Prefetch frequently accessed content: "
                    + ", ".join(patterns.frequent_paths[:3]),
                    0.35,
                )
            )

        if risk is not None and risk.level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            suggestions.append(
                OptimizationSuggestion(
                    OptimizationType.SECURITY_HARDENING,
                    Priority.CRITICAL
                    if risk.level is RiskLevel.CRITICAL
                    else Priority.HIGH,
                    "Address security risk: "
                    + ", ".join(sorted(risk.mitigations or risk.factors)),
                    0.5,
                )
            )

        return merge_suggestions(suggestions)
