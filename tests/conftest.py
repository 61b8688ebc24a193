"""Shared fixtures for repomaint tests."""

import json
from unittest.mock import AsyncMock

import pytest

from repomaint.analyzers.github import GitHubFetcher
from repomaint.analyzers.llm_client import LLMResponse
from repomaint.models.schemas import CommitInfo, RepositoryInfo

README_TEXT = (
    "# Widget\n\nWidget renders widgets.\n\n## Installation\n\npip install widget\n\n"
    "## Usage\n\nwidget --help\n"
)

BATCH_REPLY = {
    "readme": {
        "clarity": 8,
        "completeness": 7,
        "newcomerFriendly": 8,
        "strengths": ["clear quick start"],
        "suggestions": ["add troubleshooting section"],
    },
    "commits": {
        "clarity": 7,
        "consistency": 8,
        "informativeness": 7,
        "patterns": ["Positive: imperative subject lines"],
    },
    "community": {
        "responsiveness": 7,
        "helpfulness": 7,
        "tone": 8,
        "strengths": ["welcoming contributing guide"],
        "suggestions": ["triage issues faster"],
    },
    "qualityIndicator": 80,
    "integratedInsights": ["documentation and commit style are consistent"],
}


def kind_of(prompt: str) -> str:
    """Tell which analysis a prompt asks for."""
    if "integratedInsights" in prompt:
        return "batch"
    if "Newcomer Friendly (1-10)" in prompt:
        return "readme"
    if "Analyze these commit messages" in prompt:
        return "commits"
    if "Analyze the community health" in prompt:
        return "community"
    return "unknown"


class FakeLLMClient:
    """LLM client that answers from a table of replies keyed by prompt kind.

    A reply may be a string (returned as content), an exception (raised) or
    an LLMResponse (returned as-is).
    """

    def __init__(self, replies: dict, tokens: int = 100) -> None:
        self.replies = replies
        self.tokens = tokens
        self.calls: list[str] = []
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> LLMResponse:
        kind = kind_of(prompt)
        self.calls.append(kind)
        self.prompts.append(prompt)
        reply = self.replies.get(kind, self.replies.get("default"))
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, LLMResponse):
            return reply
        return LLMResponse(content=reply, tokens_used=self.tokens)


@pytest.fixture
def batch_reply_text():
    return json.dumps(BATCH_REPLY)


@pytest.fixture
def fake_github():
    """GitHubFetcher stand-in with a README and a few commits."""
    github = AsyncMock(spec=GitHubFetcher)
    github.fetch_readme_content.return_value = README_TEXT
    github.get_recent_commits.return_value = [
        CommitInfo(sha="a1", message="feat: add widget renderer"),
        CommitInfo(sha="b2", message="fix: handle empty input"),
        CommitInfo(sha="c3", message="docs: describe installation"),
    ]
    github.get_repository.return_value = RepositoryInfo(
        owner="acme", name="widget", full_name="acme/widget", description="Widgets"
    )
    github.has_file.return_value = False
    return github
