"""Parsing of connector definition files and solution metadata.

Functions:
    parse_connector_file(text, path, solution, file_url)  -> list[ConnectorDefinition]
    parse_solution_metadata(solution, metadata_text, data_text, url) -> SolutionInfo

Both raise DefinitionError when a file cannot be read at all. Problems that
leave a connector partially usable (bad identifier, unreadable table entry)
are attached to the returned ConnectorDefinition instead.
"""

import json
import logging
import re
from pathlib import PurePosixPath
from typing import Any, Iterator

from sentinel_index.models import (
    AnalysisIssue,
    ConnectorDefinition,
    IssueType,
    SolutionInfo,
    TableRef,
)

logger = logging.getLogger(__name__)

TABLE_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
CONNECTOR_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")

_LEADING_IDENTIFIER_RE = re.compile(r"^\s*\(?\s*([A-Za-z_][A-Za-z0-9_]*)")

# KQL statements that may open a query without naming a table
_KQL_KEYWORDS = frozenset({
    "let", "union", "search", "find", "print", "datatable", "range",
    "externaldata", "set", "declare", "materialize", "view", "evaluate",
})

# Keys whose presence marks a JSON object as a connector UI definition
_TABLE_SOURCE_KEYS = ("dataTypes", "graphQueries", "connectivityCriterias", "connectivityCriteria")

DETECTION_DATA_TYPES = "dataTypes"
DETECTION_GRAPH_QUERIES = "graphQueries"
DETECTION_CONNECTIVITY = "connectivityCriterias"


class DefinitionError(Exception):
    """Raised when a definition file cannot be parsed at all."""

    def __init__(self, issue_type: IssueType, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.issue_type = issue_type
        self.path = path


# ---------------------------------------------------------------------------
# Connector definitions
# ---------------------------------------------------------------------------

def parse_connector_file(
    text: str,
    path: str,
    solution: str,
    file_url: str = "",
) -> list[ConnectorDefinition]:
    """Return every connector defined in the JSON document *text*.

    An empty list means the file is valid JSON but holds no connector
    definition (function-app settings, plain deployment templates, ...).
    """
    document = load_json(text, path)
    blocks = list(_iter_connector_blocks(document))
    if not blocks:
        logger.debug("No connector definition in %s", path)
        return []
    return [_build_connector(block, path, solution, file_url) for block in blocks]


def load_json(text: str, path: str) -> Any:
    try:
        return json.loads(text.lstrip("\ufeff"))
    except json.JSONDecodeError as exc:
        raise DefinitionError(
            IssueType.MALFORMED_DEFINITION,
            f"Invalid JSON in {path}: {exc.msg} (line {exc.lineno}, column {exc.colno})",
            path,
        ) from exc


def _looks_like_connector(node: dict) -> bool:
    if any(isinstance(node.get(key), list) for key in _TABLE_SOURCE_KEYS):
        return True
    return "title" in node and "descriptionMarkdown" in node


def _iter_connector_blocks(node: Any) -> Iterator[dict]:
    """Yield connector blocks found anywhere in a JSON document.

    Connectors shipped as ARM templates nest the definition under
    ``resources[].properties.connectorUiConfig``; a walk covers both layouts.
    """
    if isinstance(node, dict):
        if _looks_like_connector(node):
            yield node
            return
        for value in node.values():
            yield from _iter_connector_blocks(value)
    elif isinstance(node, list):
        for item in node:
            yield from _iter_connector_blocks(item)


def _build_connector(block: dict, path: str, solution: str, file_url: str) -> ConnectorDefinition:
    problems: list[AnalysisIssue] = []

    def problem(issue_type: IssueType, message: str, connector_id: str | None) -> None:
        problems.append(AnalysisIssue(
            solution=solution,
            issue_type=issue_type,
            message=message,
            connector_id=connector_id,
            file_path=path,
        ))

    raw_id = block.get("id")
    if raw_id is None or (isinstance(raw_id, str) and not raw_id.strip()):
        connector_id = PurePosixPath(path).stem
        problem(
            IssueType.MISSING_CONNECTOR_ID,
            f"Connector has no 'id'; using file name '{connector_id}'",
            connector_id,
        )
    else:
        connector_id = str(raw_id).strip()
        if not isinstance(raw_id, str) or not CONNECTOR_ID_RE.match(connector_id):
            problem(
                IssueType.MALFORMED_IDENTIFIER,
                f"Connector id {raw_id!r} is not a plain identifier",
                connector_id,
            )

    tables: dict[str, str] = {}

    for raw_name in _entries(block, "dataTypes", "name"):
        name = table_from_data_type(raw_name)
        if name is None:
            problem(
                IssueType.INVALID_TABLE_NAME,
                f"dataTypes entry {raw_name!r} does not name a table",
                connector_id,
            )
            continue
        tables.setdefault(name, DETECTION_DATA_TYPES)

    for query in _entries(block, "graphQueries", "baseQuery"):
        name = table_from_query(query)
        if name is not None:
            tables.setdefault(name, DETECTION_GRAPH_QUERIES)

    for key in ("connectivityCriterias", "connectivityCriteria"):
        for value in _entries(block, key, "value"):
            queries = value if isinstance(value, list) else [value]
            for query in queries:
                name = table_from_query(query)
                if name is not None:
                    tables.setdefault(name, DETECTION_CONNECTIVITY)

    return ConnectorDefinition(
        solution=solution,
        connector_id=connector_id,
        title=_as_text(block.get("title")),
        description=_as_text(block.get("descriptionMarkdown") or block.get("description")),
        tables=tuple(TableRef(name, method) for name, method in tables.items()),
        file_path=path,
        file_url=file_url,
        problems=tuple(problems),
    )


def _entries(block: dict, list_key: str, item_key: str) -> Iterator[Any]:
    """Yield ``item[item_key]`` for each object in ``block[list_key]``."""
    items = block.get(list_key)
    if not isinstance(items, list):
        return
    for item in items:
        if isinstance(item, dict) and item.get(item_key) is not None:
            yield item[item_key]


def table_from_data_type(value: Any) -> str | None:
    """Return the table named by a ``dataTypes[].name`` entry.

    Entries may carry a qualifier, e.g. ``CommonSecurityLog (Fortinet)``.
    """
    if not isinstance(value, str):
        return None
    name = value.split("(", 1)[0].strip()
    if not TABLE_NAME_RE.match(name) or name.lower() in _KQL_KEYWORDS:
        return None
    return name


def table_from_query(query: Any) -> str | None:
    """Return the table a KQL query starts from, or None."""
    if not isinstance(query, str):
        return None
    match = _LEADING_IDENTIFIER_RE.match(query)
    if match is None:
        return None
    name = match.group(1)
    if name.lower() in _KQL_KEYWORDS or not TABLE_NAME_RE.match(name):
        return None
    return name


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


# ---------------------------------------------------------------------------
# Solution metadata
# ---------------------------------------------------------------------------

def parse_solution_metadata(
    solution: str,
    metadata_text: str | None = None,
    data_text: str | None = None,
    url: str = "",
    metadata_path: str = "SolutionMetadata.json",
    data_path: str = "Data/Solution.json",
) -> SolutionInfo:
    """Build a SolutionInfo from ``SolutionMetadata.json`` and ``Data/Solution_*.json``.

    Either text may be None when the file does not exist. The paths only
    label errors.
    """
    metadata = _load_object(metadata_text, metadata_path)
    data = _load_object(data_text, data_path)

    support = metadata.get("support")
    support_tier = support.get("tier", "") if isinstance(support, dict) else ""

    publisher = metadata.get("publisherId") or data.get("Publisher") or ""
    if not publisher and isinstance(data.get("Author"), str):
        publisher = data["Author"].split(" - ", 1)[0].strip()

    version = data.get("Version") or metadata.get("version") or ""

    return SolutionInfo(
        name=solution,
        publisher=_as_text(publisher),
        version=_as_text(version),
        support_tier=_as_text(support_tier),
        url=url,
    )


def _load_object(text: str | None, path: str) -> dict:
    if text is None:
        return {}
    document = load_json(text, path)
    if not isinstance(document, dict):
        raise DefinitionError(
            IssueType.MALFORMED_DEFINITION,
            f"{path} must contain a JSON object",
            path,
        )
    return document
