"""
Claude-backed semantic analysis.

Sends one memory to Claude with a fixed JSON contract and returns the raw
payload; validation and policy live in the pipeline's SemanticAnalyzer.
Transport failures are mapped onto the LLM exception hierarchy so the
analyzer can tell retryable failures from permanent ones.

Standalone usage:
    backend = AnthropicAnalysisBackend(api_key, categories=DEFAULT_CATEGORIES)
    payload = await backend.analyze("Neo4j Setup", "Heute Neo4j mit Docker aufgesetzt...")
"""

import json
import re
from typing import Any

import anthropic
import structlog

from mempipe.core.exceptions import (
    LLMError,
    LLMRateLimitError,
    LLMResponseError,
    LLMTimeoutError,
    LLMUnavailableError,
)

logger = structlog.get_logger(__name__)

PROVIDER = "anthropic"

SYSTEM_PROMPT = """You analyze personal memories of an AI assistant and return strict JSON.
Never add commentary outside the JSON object."""

ANALYSIS_PROMPT = """Analyze the following memory.

Topic: {topic}
Content: {content}

Allowed categories: {categories}

Respond with exactly one JSON object:
{{
  "memory_type": "<one of the allowed categories that best describes the memory>",
  "confidence": <0.0-1.0, how sure you are about memory_type>,
  "mood": "positive" | "neutral" | "negative",
  "keywords": ["3-5 short keywords"],
  "extracted_concepts": ["2-4 key concepts"],
  "category_suggestion": "<allowed category this memory should be filed under>",
  "significance_signal": <0.0-1.0, how lasting and important this memory is; most memories are routine and score below 0.3>,
  "concepts": [
    {{
      "title": "<short concept title>",
      "description": "<one or two self-contained sentences>",
      "memory_type": "<allowed category>",
      "confidence": <0.0-1.0>,
      "mood": "positive" | "neutral" | "negative",
      "keywords": ["..."],
      "extracted_concepts": ["..."]
    }}
  ]
}}

Extract between 2 and {max_concepts} semantically distinct concepts."""


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse the JSON object in a model response, tolerating code fences and prose."""
    text = text.strip()

    if text.startswith("```"):
        lines = text.split("\n")[1:]
        if lines and lines[-1].strip().startswith("```"):
            lines = lines[:-1]
        text = "\n".join(lines)

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        match = re.search(r"\{[\s\S]*\}", text)
        if not match:
            raise LLMResponseError(PROVIDER, "No JSON object in response", {"response": text[:300]})
        try:
            parsed = json.loads(match.group())
        except json.JSONDecodeError as e:
            raise LLMResponseError(PROVIDER, f"Invalid JSON in response: {e}", {"response": text[:300]})

    if not isinstance(parsed, dict):
        raise LLMResponseError(PROVIDER, "Response JSON is not an object", {"response": text[:300]})
    return parsed


class AnthropicAnalysisBackend:
    """
    Semantic analysis through the Anthropic Messages API.

    Args:
        api_key: Anthropic API key.
        categories: Category names offered to the model.
        model: Claude model id.
        max_concepts: Upper bound of concepts requested.
        max_tokens: Response token budget.
    """

    def __init__(
        self,
        api_key: str,
        categories: list[str],
        model: str = "claude-sonnet-4-20250514",
        max_concepts: int = 5,
        max_tokens: int = 1500,
    ) -> None:
        # Retries are owned by the analyzer; the SDK must not retry underneath it
        self.client = anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)
        self.model = model
        self._categories = categories
        self._max_concepts = max(2, max_concepts)
        self._max_tokens = max_tokens

    def build_prompt(self, topic: str, content: str) -> str:
        return ANALYSIS_PROMPT.format(
            topic=topic,
            content=content,
            categories=", ".join(self._categories),
            max_concepts=self._max_concepts,
        )

    async def analyze(self, topic: str, content: str) -> dict[str, Any]:
        """
        Run one analysis call.

        Raises:
            LLMRateLimitError, LLMTimeoutError, LLMUnavailableError: Retryable.
            LLMResponseError: The model answered with unusable output.
            LLMError: Any other API rejection (auth, bad request).
        """
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self._max_tokens,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": self.build_prompt(topic, content)}],
            )
        except anthropic.RateLimitError as e:
            raise LLMRateLimitError(PROVIDER, f"Rate limited: {e}")
        except anthropic.APITimeoutError as e:
            raise LLMTimeoutError(PROVIDER, f"Request timed out: {e}")
        except anthropic.APIConnectionError as e:
            raise LLMUnavailableError(PROVIDER, f"Connection failed: {e}")
        except anthropic.InternalServerError as e:
            raise LLMUnavailableError(PROVIDER, f"Server error: {e}", {"status": e.status_code})
        except anthropic.APIStatusError as e:
            raise LLMError(PROVIDER, f"Request rejected: {e}", {"status": e.status_code})

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        logger.debug(
            "anthropic_analysis_received",
            model=self.model,
            response_length=len(text),
            stop_reason=response.stop_reason,
        )
        return parse_json_object(text)
