"""LLM collaborators for semantic analysis."""

from mempipe.llm.anthropic_client import AnthropicAnalysisBackend, parse_json_object

__all__ = ["AnthropicAnalysisBackend", "parse_json_object"]
