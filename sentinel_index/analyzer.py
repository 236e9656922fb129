"""Cross-referencing connectors against the tables they ingest.

Functions:
    analyze_connectors(connectors, solutions, issues)  -> AnalysisResult
    SolutionAnalyzer(client, ...).analyze()            -> AnalysisResult

``analyze_connectors`` is pure: it turns parsed connector definitions into
deduplicated (solution, connector, table) mappings plus the issues found on
the way. ``SolutionAnalyzer`` drives one remote run: list the tree, fetch
the files, parse them and hand the result to ``analyze_connectors``.
"""

import logging
import re
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable

from sentinel_index import __version__
from sentinel_index.client import DecodeError, GitHubClient, GitHubClientError
from sentinel_index.models import (
    AnalysisIssue,
    AnalysisResult,
    ConnectorDefinition,
    IssueType,
    SolutionInfo,
    TableMapping,
)
from sentinel_index.parser import (
    DefinitionError,
    parse_connector_file,
    parse_solution_metadata,
)
from sentinel_index.repository import SolutionFiles, discover_solutions

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Core
# ---------------------------------------------------------------------------

def analyze_connectors(
    connectors: Iterable[ConnectorDefinition],
    solutions: dict[str, SolutionInfo] | None = None,
    issues: Iterable[AnalysisIssue] | None = None,
) -> AnalysisResult:
    """Build the mapping index for *connectors*.

    *solutions* supplies publisher/version/support data per solution name;
    *issues* are problems already found upstream (fetch or parse failures)
    and are kept at the head of the issue list.
    """
    connectors = list(connectors)
    solutions = solutions or {}
    found: list[AnalysisIssue] = list(issues or [])

    pending: list[TableMapping] = []
    seen_keys: set[tuple[str, str, str]] = set()
    # connector id -> file that defined it first
    seen_ids: dict[str, str | None] = {}

    for connector in connectors:
        found.extend(connector.problems)
        cid = connector.connector_id

        if cid in seen_ids and seen_ids[cid] != connector.file_path:
            found.append(_issue(
                connector, IssueType.DUPLICATE_CONNECTOR_ID,
                f"Connector id '{cid}' is also defined in {seen_ids[cid] or 'another definition'}",
            ))
        seen_ids.setdefault(cid, connector.file_path)

        if not connector.tables:
            found.append(_issue(
                connector, IssueType.MISSING_TABLE,
                f"Connector '{cid}' does not reference any table",
            ))
            continue

        info = solutions.get(connector.solution) or SolutionInfo(name=connector.solution)
        repeated: list[str] = []
        for ref in connector.tables:
            mapping = TableMapping(
                solution=connector.solution,
                connector_id=cid,
                table_name=ref.name,
                publisher=info.publisher,
                version=info.version,
                support_tier=info.support_tier,
                connector_title=connector.title,
                connector_description=connector.description,
                detection_method=ref.detection_method,
                solution_url=info.url,
                connector_file_url=connector.file_url,
            )
            if mapping.key in seen_keys:
                repeated.append(ref.name)
                continue
            seen_keys.add(mapping.key)
            pending.append(mapping)

        if repeated:
            found.append(_issue(
                connector, IssueType.DUPLICATE_MAPPING,
                f"Connector '{cid}' maps table(s) already indexed for this solution: "
                + ", ".join(repeated),
            ))

    references = Counter(m.table_name for m in pending)
    mappings = [replace(m, is_unique=references[m.table_name] == 1) for m in pending]

    metadata = {
        "generatedAt":     datetime.now(timezone.utc).isoformat(),
        "totalSolutions":  len({c.solution for c in connectors}),
        "totalConnectors": len(connectors),
        "totalTables":     len(references),
        "totalMappings":   len(mappings),
        "totalIssues":     len(found),
    }
    return AnalysisResult(mappings=mappings, issues=found, metadata=metadata)


def _issue(connector: ConnectorDefinition, issue_type: IssueType, message: str) -> AnalysisIssue:
    return AnalysisIssue(
        solution=connector.solution,
        issue_type=issue_type,
        message=message,
        connector_id=connector.connector_id,
        file_path=connector.file_path,
    )


# ---------------------------------------------------------------------------
# Remote run
# ---------------------------------------------------------------------------

class SolutionAnalyzer:
    """Analyse every solution of a repository reached through a GitHubClient.

    All state of a run (including the client's content cache) belongs to the
    instance; create one analyzer per run.
    """

    def __init__(
        self,
        client: GitHubClient,
        solutions_path: str = "Solutions",
        max_workers: int = 8,
    ) -> None:
        self.client = client
        self.solutions_path = solutions_path
        self.max_workers = max_workers

    def analyze(self) -> AnalysisResult:
        """Run the full pipeline.

        Raises:
            GitHubClientError: if the repository tree cannot be listed.
        """
        commit_sha = self._commit_sha()
        tree = self.client.get_tree()
        prefix = re.escape(self.solutions_path.strip("/"))
        json_files = self.client.filter_tree(tree, rf"^{prefix}/.*\.json$")

        solutions = [
            s for s in discover_solutions(json_files, self.solutions_path)
            if s.connector_paths
        ]
        logger.info("Found %d solutions with data connectors", len(solutions))

        paths: list[str] = []
        for solution in solutions:
            if solution.metadata_path:
                paths.append(solution.metadata_path)
            paths.extend(solution.data_paths[:1])
            paths.extend(solution.connector_paths)

        contents, failures = self._fetch_all(paths)

        issues: list[AnalysisIssue] = []
        infos: dict[str, SolutionInfo] = {}
        connectors: list[ConnectorDefinition] = []
        for solution in solutions:
            infos[solution.name] = self._solution_info(solution, contents, failures, issues)
            for path in solution.connector_paths:
                if path in failures:
                    issues.append(_fetch_issue(solution.name, path, failures[path]))
                    continue
                try:
                    connectors.extend(parse_connector_file(
                        contents[path], path, solution.name, self.client.blob_url(path),
                    ))
                except DefinitionError as exc:
                    issues.append(AnalysisIssue(
                        solution=solution.name,
                        issue_type=exc.issue_type,
                        message=str(exc),
                        file_path=path,
                    ))

        result = analyze_connectors(connectors, infos, issues)
        logger.info(
            "Indexed %d mappings from %d connectors (%d issues)",
            len(result.mappings), len(connectors), len(result.issues),
        )
        metadata = {
            **result.metadata,
            "repository": f"{self.client.owner}/{self.client.name}",
            "branch":     self.client.branch,
            "commitSha":  commit_sha,
            "version":    __version__,
        }
        return AnalysisResult(mappings=result.mappings, issues=result.issues, metadata=metadata)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _commit_sha(self) -> str:
        try:
            return self.client.get_latest_commit_sha()
        except GitHubClientError as exc:
            logger.warning("Failed to resolve latest commit SHA: %s", exc)
            return "unknown"

    def _fetch_all(self, paths: list[str]) -> tuple[dict[str, str], dict[str, Exception]]:
        """Fetch every path concurrently; all fetches finish before returning."""
        contents: dict[str, str] = {}
        failures: dict[str, Exception] = {}
        if not paths:
            return contents, failures

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(self.client.get_file_content, p): p for p in paths}
            for future in as_completed(futures):
                path = futures[future]
                try:
                    contents[path] = future.result()
                except GitHubClientError as exc:
                    logger.warning("Failed to fetch %s: %s", path, exc)
                    failures[path] = exc

        logger.debug("Fetched %d files (%d failed)", len(contents), len(failures))
        return contents, failures

    def _solution_info(
        self,
        solution: SolutionFiles,
        contents: dict[str, str],
        failures: dict[str, Exception],
        issues: list[AnalysisIssue],
    ) -> SolutionInfo:
        url = self.client.github_url(solution.path)
        metadata_path = solution.metadata_path
        data_path = solution.data_paths[0] if solution.data_paths else None

        for path in (metadata_path, data_path):
            if path in failures:
                issues.append(_fetch_issue(solution.name, path, failures[path]))

        try:
            return parse_solution_metadata(
                solution.name,
                contents.get(metadata_path) if metadata_path else None,
                contents.get(data_path) if data_path else None,
                url=url,
                metadata_path=metadata_path or "SolutionMetadata.json",
                data_path=data_path or "Data/Solution.json",
            )
        except DefinitionError as exc:
            issues.append(AnalysisIssue(
                solution=solution.name,
                issue_type=exc.issue_type,
                message=str(exc),
                file_path=exc.path,
            ))
            return SolutionInfo(name=solution.name, url=url)


def _fetch_issue(solution: str, path: str, exc: Exception) -> AnalysisIssue:
    if isinstance(exc, DecodeError):
        return AnalysisIssue(
            solution=solution,
            issue_type=IssueType.MALFORMED_DEFINITION,
            message=str(exc),
            file_path=path,
        )
    return AnalysisIssue(
        solution=solution,
        issue_type=IssueType.FETCH_FAILED,
        message=f"Could not fetch file: {exc}",
        file_path=path,
    )
