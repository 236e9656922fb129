"""Locating solutions and their connector files in a repository tree.

A solution lives in ``<solutions_path>/<Solution Name>/`` and carries:
    SolutionMetadata.json                    publisher / support tier
    Data/Solution_<Name>.json                version / author
    Data Connectors/**/*.json                connector definitions
"""

import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath

# Directory names that hold connector definitions ("Data Connectors", "DataConnectors", ...)
_CONNECTOR_DIR_RE = re.compile(r"^data[\s_-]?connectors?$", re.IGNORECASE)

# Function-app and tooling files that sit next to connector definitions
_IGNORED_FILE_NAMES = frozenset({
    "host.json",
    "function.json",
    "proxies.json",
    "local.settings.json",
    "package.json",
    "package-lock.json",
    "extensions.json",
    "tsconfig.json",
})


@dataclass
class SolutionFiles:
    name: str
    path: str
    metadata_path: str | None = None
    data_paths: list[str] = field(default_factory=list)
    connector_paths: list[str] = field(default_factory=list)


def discover_solutions(tree_items: list[dict], solutions_path: str) -> list[SolutionFiles]:
    """Group the blob paths of a recursive tree listing by solution.

    Solutions are returned in order of first appearance in the tree; GitHub
    lists trees sorted by path, which keeps reports deterministic.
    """
    root = PurePosixPath(solutions_path.strip("/"))
    depth = len(root.parts)
    solutions: dict[str, SolutionFiles] = {}

    for item in tree_items:
        if item.get("type") != "blob":
            continue
        path = PurePosixPath(item["path"])
        if path.parts[:depth] != root.parts or len(path.parts) < depth + 2:
            continue

        name = path.parts[depth]
        rest = path.parts[depth + 1:]
        solution = solutions.setdefault(
            name, SolutionFiles(name=name, path=str(root / name))
        )

        if rest == ("SolutionMetadata.json",):
            solution.metadata_path = str(path)
        elif _is_solution_data_file(rest):
            solution.data_paths.append(str(path))
        elif _is_connector_file(rest):
            solution.connector_paths.append(str(path))

    return list(solutions.values())


def _is_solution_data_file(rest: tuple[str, ...]) -> bool:
    return (
        len(rest) == 2
        and rest[0] == "Data"
        and rest[1].startswith("Solution_")
        and rest[1].lower().endswith(".json")
    )


def _is_connector_file(rest: tuple[str, ...]) -> bool:
    file_name = rest[-1]
    if not file_name.lower().endswith(".json") or file_name.lower() in _IGNORED_FILE_NAMES:
        return False
    return any(_CONNECTOR_DIR_RE.match(part) for part in rest[:-1])
