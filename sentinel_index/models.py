"""Data models for the solution index.

Contains frozen dataclasses used to structure and serialize the output:
    - IssueType
    - AnalysisIssue
    - TableMapping
    - SolutionInfo
    - TableRef / ConnectorDefinition   (parsed input of the analyzer)
    - AnalysisResult

JSON dicts use camelCase keys so that the reports stay compatible with
indexes produced by earlier releases of the tool.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------

class IssueType(str, Enum):
    """Categories of problems detected while analysing connectors.

    New categories can be added freely; reports carry the string value.
    """

    MISSING_TABLE = "missing-table"
    MALFORMED_DEFINITION = "malformed-definition"
    DUPLICATE_MAPPING = "duplicate-mapping"
    DUPLICATE_CONNECTOR_ID = "duplicate-connector-id"
    MISSING_CONNECTOR_ID = "missing-connector-id"
    MALFORMED_IDENTIFIER = "malformed-identifier"
    INVALID_TABLE_NAME = "invalid-table-name"
    FETCH_FAILED = "fetch-failed"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class AnalysisIssue:
    solution: str
    issue_type: IssueType
    message: str
    connector_id: str | None = None
    file_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "solution":    self.solution,
            "connectorId": self.connector_id,
            "issueType":   self.issue_type.value,
            "message":     self.message,
            "filePath":    self.file_path,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AnalysisIssue":
        return cls(
            solution=data["solution"],
            issue_type=IssueType(data["issueType"]),
            message=data["message"],
            connector_id=data.get("connectorId"),
            file_path=data.get("filePath"),
        )


# ---------------------------------------------------------------------------
# Mappings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TableMapping:
    solution: str
    connector_id: str
    table_name: str
    publisher: str = ""
    version: str = ""
    support_tier: str = ""
    connector_title: str = ""
    connector_description: str = ""
    is_unique: bool = False
    detection_method: str = ""
    solution_url: str = ""
    connector_file_url: str = ""

    @property
    def key(self) -> tuple[str, str, str]:
        """The (solution, connector, table) identity of this mapping."""
        return (self.solution, self.connector_id, self.table_name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "solution":             self.solution,
            "publisher":            self.publisher,
            "version":              self.version,
            "supportTier":          self.support_tier,
            "connectorId":          self.connector_id,
            "connectorTitle":       self.connector_title,
            "connectorDescription": self.connector_description,
            "tableName":            self.table_name,
            "isUnique":             self.is_unique,
            "detectionMethod":      self.detection_method,
            "solutionUrl":          self.solution_url,
            "connectorFileUrl":     self.connector_file_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TableMapping":
        return cls(
            solution=data["solution"],
            connector_id=data["connectorId"],
            table_name=data["tableName"],
            publisher=data.get("publisher") or "",
            version=data.get("version") or "",
            support_tier=data.get("supportTier") or "",
            connector_title=data.get("connectorTitle") or "",
            connector_description=data.get("connectorDescription") or "",
            is_unique=bool(data.get("isUnique", False)),
            detection_method=data.get("detectionMethod") or "",
            solution_url=data.get("solutionUrl") or "",
            connector_file_url=data.get("connectorFileUrl") or "",
        )


# ---------------------------------------------------------------------------
# Analyzer input
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SolutionInfo:
    name: str
    publisher: str = ""
    version: str = ""
    support_tier: str = ""
    url: str = ""


@dataclass(frozen=True)
class TableRef:
    name: str
    detection_method: str


@dataclass(frozen=True)
class ConnectorDefinition:
    """One connector as parsed from a definition file.

    ``problems`` holds non-fatal issues found while parsing; the analyzer
    reports them alongside the ones it detects itself.
    """

    solution: str
    connector_id: str
    title: str = ""
    description: str = ""
    tables: tuple[TableRef, ...] = ()
    file_path: str | None = None
    file_url: str = ""
    problems: tuple[AnalysisIssue, ...] = ()

    @property
    def table_names(self) -> list[str]:
        return [t.name for t in self.tables]


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AnalysisResult:
    mappings: list[TableMapping] = field(default_factory=list)
    issues: list[AnalysisIssue] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "metadata": dict(self.metadata),
            "mappings": [m.to_dict() for m in self.mappings],
            "issues":   [i.to_dict() for i in self.issues],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AnalysisResult":
        return cls(
            mappings=[TableMapping.from_dict(m) for m in data.get("mappings", [])],
            issues=[AnalysisIssue.from_dict(i) for i in data.get("issues", [])],
            metadata=dict(data.get("metadata") or {}),
        )
