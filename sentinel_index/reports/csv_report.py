"""CSV report writers.

Functions:
    write_mappings_csv(mappings, stream, show_detection_methods)  -> None
    write_issues_csv(issues, stream)                              -> bool
"""

import csv
from typing import IO, Iterable

from sentinel_index.models import AnalysisIssue, TableMapping

#: (column title, TableMapping attribute) in output order
_MAPPING_COLUMNS: list[tuple[str, str]] = [
    ("Solution",        "solution"),
    ("Publisher",       "publisher"),
    ("Version",         "version"),
    ("Support Tier",    "support_tier"),
    ("Connector ID",    "connector_id"),
    ("Connector Title", "connector_title"),
    ("Description",     "connector_description"),
    ("Table Name",      "table_name"),
    ("Is Unique",       "is_unique"),
]

_DETECTION_COLUMN = ("Detection Method", "detection_method")

_URL_COLUMNS: list[tuple[str, str]] = [
    ("Solution GitHub URL", "solution_url"),
    ("Connector File URL",  "connector_file_url"),
]

_ISSUE_COLUMNS = ["Solution", "Connector ID", "Issue Type", "Message", "File Path"]


def mapping_columns(show_detection_methods: bool = False) -> list[tuple[str, str]]:
    columns = list(_MAPPING_COLUMNS)
    if show_detection_methods:
        columns.append(_DETECTION_COLUMN)
    return columns + _URL_COLUMNS


def write_mappings_csv(
    mappings: Iterable[TableMapping],
    stream: IO[str],
    show_detection_methods: bool = False,
) -> None:
    """Write one row per mapping to *stream*.

    Newlines in descriptions become ``<br>`` so every record stays on one
    line; the uniqueness flag renders as ``Yes``/``No``.
    """
    columns = mapping_columns(show_detection_methods)
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow([title for title, _ in columns])
    for mapping in mappings:
        writer.writerow([_format_cell(mapping, attr) for _, attr in columns])


def write_issues_csv(issues: Iterable[AnalysisIssue], stream: IO[str]) -> bool:
    """Write one row per issue. Writes nothing and returns False when empty."""
    issues = list(issues)
    if not issues:
        return False

    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(_ISSUE_COLUMNS)
    for issue in issues:
        writer.writerow([
            issue.solution,
            issue.connector_id or "",
            issue.issue_type.value,
            issue.message,
            issue.file_path or "",
        ])
    return True


def _format_cell(mapping: TableMapping, attr: str) -> str:
    value = getattr(mapping, attr)
    if attr == "is_unique":
        return "Yes" if value else "No"
    if attr == "connector_description":
        return value.replace("\r\n", "<br>").replace("\n", "<br>")
    return value or ""
