"""Prompt templates for LLM repository analysis."""

MAX_README_CHARS = 4000
MAX_COMMIT_CHARS = 1000

_JSON_ONLY = (
    "IMPORTANT: Respond ONLY with a valid JSON object. "
    "No markdown, no explanations, no additional text."
)


def build_batch_prompt(readme: str, commit_messages: str, owner: str, repo: str) -> str:
    """Build one prompt that asks for README, commit and community analysis at once.

    Args:
        readme: README text; anything past MAX_README_CHARS is dropped.
        commit_messages: Newline-joined commit messages; cut at MAX_COMMIT_CHARS.
        owner: Repository owner.
        repo: Repository name.

    Returns:
        Prompt text requesting a single JSON object.
    """
    return f"""{_JSON_ONLY}

You are reviewing the GitHub repository {owner}/{repo}. Evaluate three aspects
and score every numeric field from 1 (poor) to 10 (excellent).

1. README: clarity of the project description, completeness of the usual
   sections (installation, usage, contributing, license), and how friendly it
   is to newcomers.
2. COMMITS: clarity, consistency of format, and informativeness of the commit
   messages below. List 3-5 patterns, prefixed with "Positive:" or "Negative:".
3. COMMUNITY: responsiveness, helpfulness and tone you would expect from the
   maintainers, judging from the material below.

Also report "qualityIndicator" (0-100): how confident you are in this review
given the material provided. Add 2-4 "integratedInsights" that connect the
three aspects.

Your response MUST be ONLY a JSON object in exactly this format:
{{"readme":{{"clarity":8,"completeness":7,"newcomerFriendly":8,"strengths":["clear quick start"],"suggestions":["add troubleshooting section"]}},"commits":{{"clarity":7,"consistency":6,"informativeness":7,"patterns":["Positive: imperative subject lines","Negative: inconsistent prefixes"]}},"community":{{"responsiveness":6,"helpfulness":7,"tone":8,"strengths":["welcoming contributing guide"],"suggestions":["triage issues faster"]}},"qualityIndicator":80,"integratedInsights":["documentation and commit style are consistent"]}}

README content:
{readme[:MAX_README_CHARS]}

Recent commit messages:
{commit_messages[:MAX_COMMIT_CHARS]}

CRITICAL: Output ONLY the JSON object. No markdown formatting, no code blocks, no explanations.
"""


def build_readme_prompt(readme: str, repo_context: str) -> str:
    """Prompt for README-only analysis, used when the batch call fails."""
    return f"""{_JSON_ONLY}

Analyze the following README documentation and provide objective scores (1-10) for three key metrics.

SCORING GUIDELINES (be fair and realistic):

Clarity (1-10):
- 8-10: Clear project description, purpose, and value proposition with examples
- 6-7: Good description but could be clearer or more detailed
- 4-5: Basic description present but lacks clarity
- 1-3: Unclear or missing project description

Completeness (1-10):
- 9-10: Has Quick Start, installation, usage examples, contributing section, license info, and links to docs
- 7-8: Has most sections (installation, usage, contributing) but missing some details
- 5-6: Has basic installation and usage but missing contributing or examples
- 3-4: Only has minimal information
- 1-2: Very incomplete

Newcomer Friendly (1-10):
- 9-10: Step-by-step Quick Start, clear prerequisites, multiple examples, troubleshooting
- 7-8: Good Quick Start with examples, easy to follow
- 5-6: Has basic instructions but could be clearer
- 3-4: Instructions present but confusing
- 1-2: Very hard for newcomers to understand

{repo_context}

RULES:
1. Do NOT suggest adding files that already exist (LICENSE, CONTRIBUTING, etc.)
2. If the README links to existing files, give higher completeness scores
3. Focus suggestions on README content improvements only

Provide 2-3 specific strengths and 3-5 actionable suggestions.

Expected JSON format (no markdown, no code blocks):
{{"clarity":8,"completeness":8,"newcomerFriendly":9,"strengths":["excellent quick start guide"],"suggestions":["add API reference section"]}}

README content:
{readme[:MAX_README_CHARS]}

CRITICAL: Output ONLY the JSON object.
"""


def build_commit_prompt(commit_messages: str) -> str:
    return f"""{_JSON_ONLY}

Analyze these commit messages and provide scores (1-10) for clarity, consistency, and informativeness.
Also identify 3-5 patterns (positive and negative).

Your response MUST be ONLY a JSON object in this exact format:
{{"clarity":8,"consistency":6,"informativeness":7,"patterns":["Positive: clear subject lines","Negative: inconsistent capitalization"]}}

Commits:
{commit_messages[:MAX_COMMIT_CHARS]}

IMPORTANT: Output ONLY the JSON object, nothing else.
"""


def build_community_prompt(owner: str, repo: str) -> str:
    return f"""{_JSON_ONLY}

Analyze the community health of repository {owner}/{repo} and provide scores (1-10) for responsiveness, helpfulness, and tone.
Provide 2-3 strengths and 3-5 suggestions.

Your response MUST be ONLY a JSON object in this exact format:
{{"responsiveness":8,"helpfulness":7,"tone":9,"strengths":["active maintainers"],"suggestions":["implement triage system"]}}

IMPORTANT: Output ONLY the JSON object, nothing else.
"""


def build_repository_context(existing_files: list[str]) -> str:
    """Describe which standard documentation files the repository already has."""
    lines = ["REPOSITORY CONTEXT - Essential documentation files:"]
    if existing_files:
        lines.extend(f"- {name} exists" for name in existing_files)
        lines.append("")
        lines.append("Do NOT suggest adding files that are already present above!")
    else:
        lines.append("- No standard documentation files detected")
    return "\n".join(lines)
