import asyncio
import logging
from typing import Iterable, Mapping, Optional, Set, Tuple

from clipintel import constants
from clipintel.collaborators import (
    DomainIntelligence,
    ThreatIntelligence,
    call_with_timeout,
)
from clipintel.models import RiskLevel, SecurityRisk, URLFeatures, clamp

logger = logging.getLogger(__name__)

# Factor flags
INSECURE_SCHEME = "insecure_scheme"
SUSPICIOUS_DOMAIN = "suspicious_domain"
NEW_DOMAIN = "new_domain"
LOW_REPUTATION = "low_reputation"
SENSITIVE_PARAMETER = "sensitive_parameter"
DOMAIN_UNVERIFIED = "domain_unverified"

# Mitigation actions
ENFORCE_SECURE_SCHEME = "enforce_secure_scheme"
MOVE_TO_REQUEST_BODY = "move_to_request_body"
ENCRYPT_PARAMETERS = "encrypt_parameters"
BLOCK_CONNECTION = "block_connection"
SHOW_WARNING = "show_warning"

MITIGATIONS = {
    INSECURE_SCHEME: (ENFORCE_SECURE_SCHEME,),
    SENSITIVE_PARAMETER: (MOVE_TO_REQUEST_BODY, ENCRYPT_PARAMETERS),
    SUSPICIOUS_DOMAIN: (BLOCK_CONNECTION, SHOW_WARNING),
}


def classify_risk(score: float) -> RiskLevel:
    """
    Map a risk score to its level.

    Each band includes its lower bound: 0.2 is medium, 0.5 is high and
    0.8 is critical.
    """
    score = round(score, 6)
    if score >= constants.RISK_CRITICAL_THRESHOLD:
        return RiskLevel.CRITICAL
    if score >= constants.RISK_HIGH_THRESHOLD:
        return RiskLevel.HIGH
    if score >= constants.RISK_MEDIUM_THRESHOLD:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def find_sensitive_parameter(
    params: Mapping[str, str],
    terms: Iterable[str] = constants.SENSITIVE_PARAM_TERMS,
) -> Optional[str]:
    """Return the first query key or value containing a sensitive term."""
    terms = tuple(terms)
    for key, value in params.items():
        for candidate in (key, value):
            lowered = (candidate or "").lower()
            if any(term in lowered for term in terms):
                return key
    return None


def build_risk(score: float, factors: Set[str]) -> SecurityRisk:
    raw = round(score, 6)
    mitigations = set()
    for factor in factors:
        mitigations.update(MITIGATIONS.get(factor, ()))
    return SecurityRisk(
        level=classify_risk(raw),
        score=clamp(raw),
        raw_score=raw,
        factors=frozenset(factors),
        mitigations=frozenset(mitigations),
    )


class SecurityRiskAssessor:
    """
    Scores the security risk of opening a URL.

    Signals add up: insecure scheme, threat-intelligence verdict, domain age
    and reputation, and sensitive data in the query string. When a domain
    lookup fails the domain counts as clean, but the level is floored at
    medium since the domain could not be verified.
    """

    def __init__(
        self,
        threat_intel: ThreatIntelligence,
        domain_intel: DomainIntelligence,
        timeout: float = 2.0,
    ):
        self.threat_intel = threat_intel
        self.domain_intel = domain_intel
        self.timeout = timeout

    async def _domain_signals(self, host: str) -> Tuple[float, Set[str], Set[str]]:
        score = 0.0
        factors = set()
        degraded = set()

        (suspicious, threat_ok), (info, info_ok) = await asyncio.gather(
            call_with_timeout(
                self.threat_intel.is_domain_suspicious(host),
                self.timeout,
                self.threat_intel.name,
            ),
            call_with_timeout(
                self.domain_intel.get_domain_info(host),
                self.timeout,
                self.domain_intel.name,
            ),
        )

        if not threat_ok:
            degraded.add(self.threat_intel.name)
        elif suspicious:
            score += constants.SUSPICIOUS_DOMAIN_RISK
            factors.add(SUSPICIOUS_DOMAIN)

        if not info_ok:
            degraded.add(self.domain_intel.name)
        else:
            if info.age_in_days < constants.NEW_DOMAIN_AGE_DAYS:
                score += constants.NEW_DOMAIN_RISK
                factors.add(NEW_DOMAIN)
            if info.reputation_score < constants.LOW_REPUTATION_THRESHOLD:
                score += constants.LOW_REPUTATION_RISK
                factors.add(LOW_REPUTATION)

        return score, factors, degraded

    async def assess(self, features: URLFeatures) -> Tuple[SecurityRisk, Set[str]]:
        """
        Assess the security risk of a URL.

        Args:
            features: Extracted URL features

        Returns:
            Tuple of the risk and the names of collaborators that failed
        """
        score = 0.0
        factors = set()

        if not features.is_secure:
            score += constants.INSECURE_SCHEME_RISK
            factors.add(INSECURE_SCHEME)

        domain_score, domain_factors, degraded = await self._domain_signals(
            features.host
        )
        score += domain_score
        factors |= domain_factors

        sensitive = find_sensitive_parameter(features.query_params)
        if sensitive is not None:
            score += constants.SENSITIVE_PARAM_RISK
            factors.add(SENSITIVE_PARAMETER)

        if degraded:
            factors.add(DOMAIN_UNVERIFIED)
            score = max(score, constants.RISK_MEDIUM_THRESHOLD)

        risk = build_risk(score, factors)
        if risk.level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            logger.info(
                "%s risk for %s (score %.2f): %s",
                risk.level.value,
                features.url,
                risk.raw_score,
                ", ".join(sorted(risk.factors)),
            )
        return risk, degraded
