"""
Run report generator.

Renders the results of a finished run as JSON, Markdown, HTML or JUnit XML.
Templates can be overridden by placing ``report.html``, ``report.md`` or
``junit.xml`` in a template directory; built-in templates are used otherwise.
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from jinja2 import ChoiceLoader, DictLoader, Environment, FileSystemLoader, select_autoescape
from pydantic import BaseModel, Field

from ..core.exceptions import PersistenceError
from ..execution.models import (
    RunSummary,
    ScenarioExecutionResult,
    ScenarioStatus,
    utc_now_iso,
)


class ReportFormat(Enum):
    """Supported report formats."""

    JSON = "json"
    MARKDOWN = "markdown"
    HTML = "html"
    JUNIT = "junit"

    @property
    def extension(self) -> str:
        return {"json": "json", "markdown": "md", "html": "html", "junit": "xml"}[self.value]


class RunReport(BaseModel):
    """Everything a report renders about one run."""

    run_id: str
    status: str
    target_url: Optional[str] = None
    generated_at: str = Field(default_factory=utc_now_iso)
    summary: RunSummary
    results: List[ScenarioExecutionResult] = Field(default_factory=list)

    @property
    def success_rate(self) -> float:
        if self.summary.total == 0:
            return 0.0
        return self.summary.passed / self.summary.total * 100

    @property
    def total_duration_ms(self) -> int:
        return sum(result.duration_ms for result in self.results)

    @property
    def failures(self) -> List[ScenarioExecutionResult]:
        return [result for result in self.results if result.status == ScenarioStatus.FAIL]

    def by_viewport(self) -> Dict[str, List[ScenarioExecutionResult]]:
        grouped: Dict[str, List[ScenarioExecutionResult]] = {}
        for result in self.results:
            grouped.setdefault(result.viewport, []).append(result)
        return grouped


HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Run Report - {{ report.run_id }}</title>
    <style>
        body { font-family: Arial, sans-serif; margin: 20px; }
        .header { background: #f5f5f5; padding: 20px; border-radius: 5px; }
        .pass { color: green; }
        .fail { color: red; }
        .skip { color: orange; }
        table { border-collapse: collapse; width: 100%; }
        th, td { border: 1px solid #ddd; padding: 8px; text-align: left; vertical-align: top; }
        th { background-color: #f2f2f2; }
        pre { white-space: pre-wrap; margin: 0; }
    </style>
</head>
<body>
    <div class="header">
        <h1>Run Report</h1>
        <p><strong>Run ID:</strong> {{ report.run_id }}</p>
        <p><strong>Status:</strong> {{ report.status }}</p>
        {% if report.target_url %}<p><strong>Target:</strong> {{ report.target_url }}</p>{% endif %}
        <p><strong>Generated:</strong> {{ report.generated_at }}</p>
    </div>

    <h2>Summary</h2>
    <p><strong>Total:</strong> {{ report.summary.total }}</p>
    <p><strong>Passed:</strong> <span class="pass">{{ report.summary.passed }}</span></p>
    <p><strong>Failed:</strong> <span class="fail">{{ report.summary.failed }}</span></p>
    <p><strong>Skipped:</strong> <span class="skip">{{ report.summary.skipped }}</span></p>
    <p><strong>Success Rate:</strong> {{ "%.1f"|format(report.success_rate) }}%</p>

    <h2>Results</h2>
    <table>
        <tr>
            <th>Scenario</th>
            <th>Viewport</th>
            <th>Status</th>
            <th>Duration</th>
            <th>Attempts</th>
            <th>Errors</th>
        </tr>
        {% for result in report.results %}
        <tr>
            <td>{{ result.scenario_name }}</td>
            <td>{{ result.viewport }} ({{ result.viewport_size }})</td>
            <td class="{{ result.status.value }}">{{ result.status.value.upper() }}</td>
            <td>{{ result.duration_ms }}ms</td>
            <td>{{ result.attempts }}</td>
            <td>{% for error in result.errors %}<pre>{{ error.message }}</pre>{% endfor %}</td>
        </tr>
        {% endfor %}
    </table>

    {% set shots = report.results | map(attribute="screenshots") | sum(start=[]) %}
    {% if shots %}
    <h2>Screenshots</h2>
    <ul>
        {% for path in shots %}
        <li>{{ path }}</li>
        {% endfor %}
    </ul>
    {% endif %}
</body>
</html>
"""

MARKDOWN_TEMPLATE = """# Run Report - {{ report.run_id }}

**Status:** {{ report.status }}
{% if report.target_url %}**Target:** {{ report.target_url }}
{% endif %}**Generated:** {{ report.generated_at }}

## Summary

- **Total:** {{ report.summary.total }}
- **Passed:** {{ report.summary.passed }}
- **Failed:** {{ report.summary.failed }}
- **Skipped:** {{ report.summary.skipped }}
- **Success Rate:** {{ "%.1f"|format(report.success_rate) }}%

## Results

| Scenario | Viewport | Status | Duration | Attempts |
|----------|----------|--------|----------|----------|
{% for result in report.results -%}
| {{ result.scenario_name }} | {{ result.viewport }} ({{ result.viewport_size }}) | {{ result.status.value.upper() }} | {{ result.duration_ms }}ms | {{ result.attempts }} |
{% endfor %}
{% if report.failures %}
## Failures
{% for result in report.failures %}
### {{ result.scenario_name }} @ {{ result.viewport }}

{% for error in result.errors -%}
- {{ error.message }}
{% endfor %}
{% endfor %}
{% endif %}
"""

JUNIT_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<testsuites name="{{ report.run_id }}" tests="{{ report.summary.total }}" failures="{{ report.summary.failed }}" skipped="{{ report.summary.skipped }}" time="{{ report.total_duration_ms / 1000 }}">
{% for viewport, results in report.by_viewport().items() %}
    <testsuite name="{{ viewport }}" tests="{{ results|length }}" failures="{{ results|selectattr('status.value', 'equalto', 'fail')|list|length }}" skipped="{{ results|selectattr('status.value', 'equalto', 'skip')|list|length }}">
    {% for result in results %}
        <testcase name="{{ result.scenario_name }}" classname="{{ viewport }}" time="{{ result.duration_ms / 1000 }}">
        {% if result.status.value == "fail" %}
            <failure message="{{ result.errors[0].message if result.errors else 'Scenario failed' }}">{% for error in result.errors %}{{ error.stack or error.message }}
{% endfor %}</failure>
        {% elif result.status.value == "skip" %}
            <skipped message="Scenario skipped" />
        {% endif %}
        </testcase>
    {% endfor %}
    </testsuite>
{% endfor %}
</testsuites>
"""

DEFAULT_TEMPLATES = {
    "report.html": HTML_TEMPLATE,
    "report.md": MARKDOWN_TEMPLATE,
    "junit.xml": JUNIT_TEMPLATE,
}

_TEMPLATE_NAMES = {
    ReportFormat.HTML: "report.html",
    ReportFormat.MARKDOWN: "report.md",
    ReportFormat.JUNIT: "junit.xml",
}


class ReportGenerator:
    """Builds and writes run reports."""

    def __init__(
        self,
        output_dir: Union[str, Path],
        template_dir: Optional[Path] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the report generator.

        Args:
            output_dir: Directory for generated reports
            template_dir: Directory with template overrides
            logger: Optional logger instance
        """
        self.output_dir = Path(output_dir)
        self.template_dir = template_dir
        self.logger = logger or logging.getLogger(__name__)

        loaders = [DictLoader(DEFAULT_TEMPLATES)]
        if template_dir is not None:
            loaders.insert(0, FileSystemLoader(str(template_dir)))
        self.jinja_env = Environment(
            loader=ChoiceLoader(loaders),
            autoescape=select_autoescape(enabled_extensions=("html", "xml")),
        )

    def build_report(
        self,
        run_id: str,
        results: List[ScenarioExecutionResult],
        status: str,
        target_url: Optional[str] = None,
    ) -> RunReport:
        summary = RunSummary(
            total=len(results),
            passed=sum(1 for r in results if r.status == ScenarioStatus.PASS),
            failed=sum(1 for r in results if r.status == ScenarioStatus.FAIL),
            skipped=sum(1 for r in results if r.status == ScenarioStatus.SKIP),
        )
        return RunReport(
            run_id=run_id,
            status=status,
            target_url=target_url,
            summary=summary,
            results=results,
        )

    def report_from_record(self, record: Dict[str, Any]) -> RunReport:
        """Build a report from a stored run record."""
        results = [
            ScenarioExecutionResult.model_validate(item) for item in record.get("results", [])
        ]
        metadata = record.get("metadata") or {}
        return self.build_report(
            run_id=record["runId"],
            results=results,
            status=record.get("status", "unknown"),
            target_url=metadata.get("targetUrl"),
        )

    def render(self, report: RunReport, format: ReportFormat) -> str:
        if format == ReportFormat.JSON:
            payload = {
                "runId": report.run_id,
                "status": report.status,
                "targetUrl": report.target_url,
                "generatedAt": report.generated_at,
                "successRate": round(report.success_rate, 1),
                "summary": report.summary.to_wire(),
                "results": [result.to_wire() for result in report.results],
            }
            return json.dumps(payload, indent=2, ensure_ascii=False)

        template = self.jinja_env.get_template(_TEMPLATE_NAMES[format])
        return template.render(report=report)

    def write(
        self,
        report: RunReport,
        format: ReportFormat,
        output_path: Optional[Path] = None,
    ) -> Path:
        """
        Render and save a report.

        Raises:
            PersistenceError: If the report file cannot be written
        """
        if output_path is None:
            output_path = self.output_dir / f"{report.run_id}.{format.extension}"
        output_path = Path(output_path)

        content = self.render(report, format)
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise PersistenceError(
                f"Failed to save report: {e}",
                run_id=report.run_id,
                operation="write_report",
            ) from e

        self.logger.info(f"Saved {format.value} report to: {output_path}")
        return output_path
