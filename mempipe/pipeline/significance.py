"""
Significance Evaluator.

Decides whether a memory earns enrichment (concept index + graph). The
policy is deliberately restrictive: routine memories are stored canonically
and cached, only lasting ones are enriched.

    score = w * confidence + (1 - w) * scorer(analysis)
    significant = score >= threshold
                  or (signal == 1.0 and confidence >= signal_confidence)

The scorer is pluggable so deployments can replace the heuristic without
touching the pipeline.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional

import structlog

from mempipe.models import SemanticAnalysis, SignificanceDecision

logger = structlog.get_logger(__name__)

Scorer = Callable[[SemanticAnalysis], float]

# Memory types given full weight by the default heuristic
HIGH_VALUE_TYPES = frozenset(
    {"erlebnisse", "bewusstsein", "humor", "zusammenarbeit", "kernerinnerungen"}
)
LOW_VALUE_TYPE_WEIGHT = 0.3


def default_heuristic(analysis: SemanticAnalysis) -> float:
    """Blend of the LLM's significance signal, memory type and concept richness."""
    type_weight = 1.0 if analysis.memory_type in HIGH_VALUE_TYPES else LOW_VALUE_TYPE_WEIGHT
    richness = min(1.0, len(analysis.concepts) / 3)
    return 0.6 * analysis.significance_signal + 0.25 * type_weight + 0.15 * richness


@dataclass(frozen=True)
class SignificancePolicy:
    """Tunable parameters of the significance gate.

    An explicit significance flag from the analyzer (signal 1.0) is honoured
    on its own once the analysis confidence reaches signal_confidence; set it
    above 1.0 to rely on the blended score only.
    """

    threshold: float = 0.8
    confidence_weight: float = 0.5
    signal_confidence: float = 0.7
    scorer: Scorer = field(default=default_heuristic)

    def __post_init__(self) -> None:
        if not 0.0 <= self.threshold <= 1.0:
            raise ValueError("threshold must be within [0, 1]")
        if not 0.0 <= self.confidence_weight <= 1.0:
            raise ValueError("confidence_weight must be within [0, 1]")
        if self.signal_confidence < 0.0:
            raise ValueError("signal_confidence must not be negative")

    def is_flagged(self, analysis: SemanticAnalysis) -> bool:
        return (
            analysis.significance_signal >= 1.0
            and analysis.confidence >= self.signal_confidence
        )


class SignificanceEvaluator:
    """Applies a SignificancePolicy to one analysis."""

    def __init__(self, policy: Optional[SignificancePolicy] = None) -> None:
        self.policy = policy or SignificancePolicy()

    def evaluate(self, analysis: Optional[SemanticAnalysis]) -> SignificanceDecision:
        if analysis is None:
            return SignificanceDecision(
                significant=False,
                score=0.0,
                reason="analysis_unavailable",
            )

        heuristic = min(1.0, max(0.0, float(self.policy.scorer(analysis))))
        weight = self.policy.confidence_weight
        score = round(weight * analysis.confidence + (1 - weight) * heuristic, 4)
        flagged = self.policy.is_flagged(analysis)
        significant = score >= self.policy.threshold or flagged

        if score >= self.policy.threshold:
            reason = (
                f"significant {analysis.memory_type} memory "
                f"(score {score:.2f} >= {self.policy.threshold:.2f})"
            )
        elif flagged:
            reason = (
                f"significant {analysis.memory_type} memory "
                f"(flagged by analysis, confidence {analysis.confidence:.2f})"
            )
        else:
            reason = (
                f"below significance threshold "
                f"(score {score:.2f} < {self.policy.threshold:.2f})"
            )

        logger.debug(
            "significance_evaluated",
            significant=significant,
            score=score,
            flagged=flagged,
            confidence=analysis.confidence,
            heuristic=heuristic,
        )
        return SignificanceDecision(significant=significant, score=score, reason=reason)
