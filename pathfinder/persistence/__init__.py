"""Result stores and the suite-file scenario source."""

from .store import ResultStore, InMemoryResultStore, JsonFileResultStore
from .source import Suite, SuiteSource, load_suite_file

__all__ = [
    "ResultStore",
    "InMemoryResultStore",
    "JsonFileResultStore",
    "Suite",
    "SuiteSource",
    "load_suite_file",
]
