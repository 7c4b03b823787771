"""Category Router: reconciles the caller's category with the LLM suggestion."""

from typing import Iterable, Optional

import structlog

from mempipe.models import RoutingDecision

logger = structlog.get_logger(__name__)

CATEGORY_CORRECTED = "category_corrected"


class CategoryRouter:
    """
    Replaces the caller category with a confident, valid LLM suggestion.

    Auto-correction never rejects a write: an invalid suggestion falls back
    to the caller's category.
    """

    def __init__(self, allowed_categories: Iterable[str], override_threshold: float = 0.85) -> None:
        self._allowed = frozenset(c.strip().lower() for c in allowed_categories)
        self._override_threshold = override_threshold

    def resolve(
        self,
        caller_category: str,
        suggested_category: Optional[str],
        confidence: float,
    ) -> RoutingDecision:
        suggested = (suggested_category or "").strip().lower()
        if not suggested or suggested == caller_category:
            return RoutingDecision(category=caller_category)

        if confidence <= self._override_threshold:
            return RoutingDecision(category=caller_category)

        if suggested not in self._allowed:
            logger.info(
                "category_suggestion_ignored",
                caller_category=caller_category,
                suggested_category=suggested,
            )
            return RoutingDecision(category=caller_category)

        logger.info(
            "category_corrected",
            caller_category=caller_category,
            category=suggested,
            confidence=confidence,
        )
        return RoutingDecision(category=suggested, corrected=True)
