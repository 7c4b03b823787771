"""Ingestion gate: the only stage allowed to reject a memory."""

from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Union

import pydantic
import structlog

from mempipe.core.exceptions import ValidationError
from mempipe.models import ForceRelationship, RawMemory

logger = structlog.get_logger(__name__)


class IngestionGate:
    """Validates and normalizes incoming memories against the category allow-list."""

    def __init__(self, allowed_categories: Iterable[str]) -> None:
        self._allowed = frozenset(c.strip().lower() for c in allowed_categories)

    @property
    def allowed_categories(self) -> frozenset[str]:
        return self._allowed

    def is_allowed(self, category: str | None) -> bool:
        return bool(category) and category.strip().lower() in self._allowed

    def validate(self, category: str, topic: str, content: str) -> RawMemory:
        """
        Normalize a memory or reject it.

        Raises:
            ValidationError: Unknown category, or empty topic/content after trimming.
        """
        normalized_category = (category or "").strip().lower()
        if normalized_category not in self._allowed:
            logger.info("memory_rejected", field="category", category=category)
            raise ValidationError(
                "category",
                f"Invalid category '{category}'. Allowed: {', '.join(sorted(self._allowed))}",
                category,
            )

        normalized_topic = (topic or "").strip()
        if not normalized_topic:
            logger.info("memory_rejected", field="topic")
            raise ValidationError("topic", "Topic must not be empty", topic)

        normalized_content = (content or "").strip()
        if not normalized_content:
            logger.info("memory_rejected", field="content")
            raise ValidationError("content", "Content must not be empty", content)

        now = datetime.now(timezone.utc)
        return RawMemory(
            category=normalized_category,
            topic=normalized_topic,
            content=normalized_content,
            date=now.date().isoformat(),
            received_at=now.isoformat(),
        )

    def parse_force_relationships(
        self,
        items: Optional[Iterable[Union[ForceRelationship, dict[str, Any]]]],
    ) -> list[ForceRelationship]:
        """
        Coerce caller-requested edges.

        Raises:
            ValidationError: An item is not a valid ForceRelationship.
        """
        parsed = []
        for position, item in enumerate(items or []):
            try:
                parsed.append(ForceRelationship.model_validate(item))
            except pydantic.ValidationError as e:
                logger.info("memory_rejected", field="force_relationships", position=position)
                raise ValidationError(
                    "force_relationships",
                    f"Invalid forced relationship at position {position}: "
                    f"{e.errors()[0]['msg']}",
                    item,
                ) from e
        return parsed
