"""
Concept Index Writer.

Persists each extracted concept of a significant memory as its own entry in
the concept store. Writes are independent: one failing concept never blocks
its siblings, and the aggregate result reports how many landed.
"""

import asyncio
from typing import Any

import structlog

from mempipe.knowledge.base import ConceptStore
from mempipe.models import CanonicalMemoryRecord, Concept, ConceptStoreResult, utc_now_iso
from mempipe.monitoring.metrics import record_enrichment_writes

logger = structlog.get_logger(__name__)


def concept_entry_id(memory_id: Any, ordinal: int) -> str:
    """Synthetic key of the ordinal-th concept (1-based) of a memory."""
    return f"memory_{memory_id}_concept_{ordinal}"


class ConceptIndexWriter:
    """
    Writes concepts to the concept store with bounded concurrency.

    Args:
        store: Concept store receiving the entries.
        concurrency: Maximum concept writes in flight at once.
        timeout: Seconds allowed for each individual write.
    """

    def __init__(self, store: ConceptStore, concurrency: int = 4, timeout: float = 15.0) -> None:
        self._store = store
        self._concurrency = concurrency
        self._timeout = timeout

    def build_entry(
        self, record: CanonicalMemoryRecord, concept: Concept, ordinal: int
    ) -> tuple[str, str, dict[str, Any]]:
        """Return (id, document, metadata) for one concept."""
        metadata = {
            "concept_title": concept.concept_title,
            "source_memory_id": str(record.id),
            "source_category": record.category,
            "source_topic": record.topic,
            "source_date": record.date,
            "memory_type": concept.memory_type,
            "confidence": concept.confidence,
            "mood": concept.mood,
            "keywords": concept.keywords,
            "extracted_concepts": concept.extracted_concepts,
            "created_at": utc_now_iso(),
            "source": "semantic_analysis",
        }
        return concept_entry_id(record.id, ordinal), concept.concept_description, metadata

    async def store(
        self, record: CanonicalMemoryRecord, concepts: list[Concept]
    ) -> ConceptStoreResult:
        """
        Write every concept independently.

        Returns:
            success is True only if no write failed; stored counts the
            writes that succeeded; errors has one entry per failure.
        """
        if not concepts:
            return ConceptStoreResult(success=True, stored=0)

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _write(ordinal: int, concept: Concept) -> None:
            entry_id, document, metadata = self.build_entry(record, concept, ordinal)
            async with semaphore:
                await asyncio.wait_for(
                    self._store.add(ids=[entry_id], documents=[document], metadatas=[metadata]),
                    timeout=self._timeout,
                )

        outcomes = await asyncio.gather(
            *(_write(ordinal, concept) for ordinal, concept in enumerate(concepts, start=1)),
            return_exceptions=True,
        )

        errors = []
        for ordinal, outcome in enumerate(outcomes, start=1):
            if isinstance(outcome, BaseException):
                message = str(outcome) or type(outcome).__name__
                errors.append(f"Concept {ordinal}: {message}")
                logger.warning(
                    "concept_write_failed",
                    memory_id=record.id,
                    ordinal=ordinal,
                    error=message,
                    error_type=type(outcome).__name__,
                )

        stored = len(concepts) - len(errors)
        record_enrichment_writes("concepts", succeeded=stored, failed=len(errors))
        logger.info(
            "concepts_stored",
            memory_id=record.id,
            stored=stored,
            failed=len(errors),
        )
        return ConceptStoreResult(success=not errors, stored=stored, errors=errors)
