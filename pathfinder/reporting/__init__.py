"""Run reports rendered from execution results."""

from .generator import ReportFormat, ReportGenerator, RunReport

__all__ = ["ReportFormat", "ReportGenerator", "RunReport"]
