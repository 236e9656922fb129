"""JSON serialization of analysis results.

Functions:
    mappings_to_json(mappings, pretty)  -> str
    issues_to_json(issues, pretty)      -> str
    result_to_json(result, pretty)      -> str
    mappings_from_json(text)            -> list[TableMapping]
    load_result(text)                   -> AnalysisResult
"""

import json
from typing import Any, Iterable

from sentinel_index.models import AnalysisIssue, AnalysisResult, TableMapping


def _dumps(data: Any, pretty: bool) -> str:
    return json.dumps(data, indent=2 if pretty else None, ensure_ascii=False)


def mappings_to_json(mappings: Iterable[TableMapping], pretty: bool = True) -> str:
    return _dumps([m.to_dict() for m in mappings], pretty)


def issues_to_json(issues: Iterable[AnalysisIssue], pretty: bool = True) -> str:
    return _dumps([i.to_dict() for i in issues], pretty)


def result_to_json(result: AnalysisResult, pretty: bool = True) -> str:
    return _dumps(result.to_dict(), pretty)


def mappings_from_json(text: str) -> list[TableMapping]:
    return [TableMapping.from_dict(item) for item in json.loads(text)]


def load_result(text: str) -> AnalysisResult:
    """Parse a full index written by ``result_to_json``."""
    return AnalysisResult.from_dict(json.loads(text))
