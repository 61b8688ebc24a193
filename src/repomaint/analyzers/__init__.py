"""Analyzers for fetching and scoring repository data."""

from repomaint.analyzers.dispatcher import DispatchError, LLMDispatcher
from repomaint.analyzers.github import GitHubFetcher
from repomaint.analyzers.llm import LLMAnalyzer
from repomaint.analyzers.llm_cache import ResponseCache, content_hash
from repomaint.analyzers.llm_client import LLMClient, LLMError, LLMResponse
from repomaint.analyzers.pipeline import AnalysisPipeline
from repomaint.analyzers.scorer import Scorer

__all__ = [
    "AnalysisPipeline",
    "DispatchError",
    "GitHubFetcher",
    "LLMAnalyzer",
    "LLMClient",
    "LLMDispatcher",
    "LLMError",
    "LLMResponse",
    "ResponseCache",
    "Scorer",
    "content_hash",
]
