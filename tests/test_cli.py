"""
Tests for the command line interface.
"""

import json

import pytest
import typer
from typer.testing import CliRunner

from repomaint import __version__
from repomaint.analyzers.llm import (
    default_commit_analysis,
    default_community_analysis,
    default_readme_analysis,
)
from repomaint.analyzers.llm_client import LLMClient
from repomaint.cli import app, parse_repository
from repomaint.models.schemas import (
    AnalysisMode,
    LLMAnalysis,
    MaintainabilityReport,
    MetricResult,
    Rating,
)

runner = CliRunner()


def _report(llm_analysis: LLMAnalysis | None = None) -> MaintainabilityReport:
    return MaintainabilityReport(
        repository="acme/widget",
        overall_score=82.5,
        rating=Rating.GOOD,
        metrics={
            "Activity": MetricResult(
                name="Activity", score=90, weight=0.15, details="Last commit was 10 days ago"
            )
        },
        recommendation="Good repository maintainability. Keep up the good work!",
        llm_analysis=llm_analysis,
    )


class FakePipeline:
    """Stand-in for AnalysisPipeline that returns a canned report."""

    instances: list["FakePipeline"] = []
    report: MaintainabilityReport | None = None

    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.analyzed: list[tuple[str, str]] = []
        FakePipeline.instances.append(self)

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *args) -> None:
        pass

    async def analyze(self, owner: str, repo: str) -> MaintainabilityReport | None:
        self.analyzed.append((owner, repo))
        if repo == "missing":
            return None
        return FakePipeline.report


@pytest.fixture
def fake_pipeline(monkeypatch):
    FakePipeline.instances = []
    FakePipeline.report = _report()
    monkeypatch.setattr("repomaint.cli.AnalysisPipeline", FakePipeline)
    return FakePipeline


class TestParseRepository:
    """Test repository argument parsing."""

    @pytest.mark.parametrize(
        "value",
        [
            "acme/widget",
            "https://github.com/acme/widget",
            "https://github.com/acme/widget.git",
            "https://github.com/acme/widget/",
            "  acme/widget  ",
        ],
    )
    def test_accepted_forms(self, value):
        assert parse_repository(value) == ("acme", "widget")

    @pytest.mark.parametrize("value", ["widget", "acme/widget/extra", "", "https://gitlab.com/a/b"])
    def test_rejected_forms(self, value):
        with pytest.raises(typer.BadParameter):
            parse_repository(value)


class TestCommands:
    """Test CLI commands."""

    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_invalid_format(self, fake_pipeline):
        """Test an unknown output format is a usage error."""
        result = runner.invoke(app, ["analyze", "acme/widget", "--format", "xml"])
        assert result.exit_code == 2

    def test_invalid_repository(self, fake_pipeline):
        result = runner.invoke(app, ["analyze", "not-a-repo"])
        assert result.exit_code == 2

    def test_text_report(self, fake_pipeline):
        """Test the text report shows the score and rating."""
        result = runner.invoke(app, ["analyze", "acme/widget", "--quiet"])

        assert result.exit_code == 0, result.output
        assert "acme/widget" in result.output
        assert "GOOD" in result.output
        assert fake_pipeline.instances[0].analyzed == [("acme", "widget")]

    def test_json_to_file(self, fake_pipeline, tmp_path):
        """Test JSON output written to a file."""
        target = tmp_path / "report.json"
        result = runner.invoke(
            app, ["analyze", "acme/widget", "--format", "json", "--output", str(target), "-q"]
        )

        assert result.exit_code == 0, result.output
        data = json.loads(target.read_text())
        assert data["repository"] == "acme/widget"
        assert data["rating"] == "GOOD"

    def test_multiple_repositories_share_one_pipeline(self, fake_pipeline, tmp_path):
        """Test several repositories are analyzed by one pipeline and reported as a list."""
        target = tmp_path / "reports.json"
        result = runner.invoke(
            app,
            ["analyze", "acme/widget", "acme/gadget", "-f", "json", "-o", str(target), "-q"],
        )

        assert result.exit_code == 0, result.output
        assert len(fake_pipeline.instances) == 1
        assert fake_pipeline.instances[0].analyzed == [("acme", "widget"), ("acme", "gadget")]
        assert len(json.loads(target.read_text())) == 2

    def test_missing_repository_exits_nonzero(self, fake_pipeline):
        result = runner.invoke(app, ["analyze", "acme/missing", "-q"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_llm_without_key(self, fake_pipeline, monkeypatch):
        """Test --llm without an API key skips LLM analysis with a warning."""
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        result = runner.invoke(app, ["analyze", "acme/widget", "--llm", "-q"])

        assert result.exit_code == 0, result.output
        assert "OPENROUTER_API_KEY" in result.output
        assert fake_pipeline.instances[0].kwargs["llm_client"] is None

    def test_llm_with_key(self, fake_pipeline, monkeypatch):
        """Test --llm with a key configures the client and timeout."""
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-test")
        result = runner.invoke(
            app, ["analyze", "acme/widget", "--llm", "--model", "test/model", "--timeout", "5", "-q"]
        )

        assert result.exit_code == 0, result.output
        kwargs = fake_pipeline.instances[0].kwargs
        assert isinstance(kwargs["llm_client"], LLMClient)
        assert kwargs["llm_client"].model == "test/model"
        assert kwargs["llm_timeout"] == 5.0

    def test_degraded_analysis_notice(self, fake_pipeline):
        """Test a degraded LLM analysis is flagged in the text report."""
        fake_pipeline.report = _report(
            LLMAnalysis(
                readme=default_readme_analysis(),
                commits=default_commit_analysis(),
                community=default_community_analysis(),
                confidence=50.0,
                mode=AnalysisMode.FALLBACK,
                fallback_count=3,
            )
        )
        result = runner.invoke(app, ["analyze", "acme/widget", "-q"])

        assert result.exit_code == 0, result.output
        assert "Degraded analysis (FALLBACK)" in result.output
